# lxe

Building blocks for running Kubernetes-style pods on LXD. The package has no
runtime dependencies. It works against server and CNI objects that you pass
in.

## Modules

- **`lxe.cloudinit`**: cloud-init v1 network config documents.
  - `NetworkConfig`, `NetworkConfigEntryNameserver`, `NetworkConfigEntryPhysical`
    and `NetworkConfigEntryPhysicalSubnet` are dataclasses.
  - Each one serialises to a plain dictionary through `to_dict()`. You can dump
    that dictionary as YAML or JSON.
- **`lxe.lxf_util`**: helpers for config mappings.
  - `set_if_set` sets a key only when the value is non-empty.
  - `append_if_set` does the same, but if the key already holds a value it
    appends the new value after a newline.
  - `b32lower_encode` encodes bytes as padded, lower-case base32.
- **`lxe.lxo`**: `LXO(server)` wraps an LXD server object and waits for each
  operation to finish.
  - Each server method must return an operation with `wait()`, and that
    `wait()` must raise when the operation fails.
  - The container methods are `start_container`, `stop_container`,
    `create_container`, `update_container` and `delete_container`.
  - The image methods are `copy_image`, `delete_image` and `create_image`.
  - `stop_container(id, timeout, retries)` tries up to `retries + 1` times and
    forces the stop on the last attempt. An "is already stopped" failure counts
    as success.
  - `create_image` returns the fingerprint from the operation metadata. It
    raises `LXOParseError` when no fingerprint string is present.
- **`lxe.network.base`**: the shared data types and the no-op plugin.
  - The data types are `Properties`, `PropertiesRunning`, `Result`, `Status`
    and `Nic`.
  - The errors are `NotSupportedError` and `NoopError`.
  - `init_plugin_noop()` returns the no-op plugin. Its `status()` and
    `update_runtime_config()` raise `NoopError`. Its pod and container network
    hooks do nothing.
- **`lxe.network.iputil`**: `find_free_ip(subnet, leases, start, end)` picks a
  random IPv4 address in a subnet.
  - It never picks a leased address, the network address or the broadcast
    address.
  - It stays within `start`..`end`. Those default to the usable range.
  - It raises `ValueError` when no address is free.
- **`lxe.network.lxdbridge`**: the LXD bridge plugin.
  - `init_plugin_lxd_bridge(server, conf)` makes sure the bridge exists, and
    creates or updates it. The bridge defaults to `lxdbr0`.
  - The bridge address is the first address of `ConfLXDBridge.cidr`, or
    `auto` when no cidr is set.
  - `pod_network(...).when_created(...)` reserves a free address on the bridge.
    It returns a bridged `Nic` and a DHCP cloud-init interface entry.
  - `status()` reports the reserved address.
- **`lxe.network.cni`**: the CNI plugin.
  - `init_plugin_cni(conf, cni)` fills in the default paths. The defaults are
    `/opt/cni/bin`, `/etc/cni/net.d` and `/run/netns`.
  - `pod_network()` loads the first usable `.conf`, `.conflist` or `.json`
    file from the config directory, through `load_network_config_list`.
  - When a container starts, the plugin calls your CNI executor's
    `add_network_list`. On deletion it calls `del_network_list`.
  - `convert_result` turns CNI results of versions 0.1.0 to 1.0.0 into the
    1.0.0 shape. `status()` reads the first IP from the saved result.

## Example

```python
import ipaddress

from lxe.network.iputil import find_free_ip

subnet = ipaddress.ip_network("192.168.224.0/30")
leases = [ipaddress.ip_address("192.168.224.1")]
print(find_free_ip(subnet, leases, None, None))  # 192.168.224.2
```

## What it does not do

- There is no LXD client. `LXO` and the bridge plugin call methods on a server
  object that you provide.
- There are no CNI plugin binaries. The CNI plugin hands network lists to an
  executor that you provide.
- There is no command-line tool and no runtime service.

## Development

```
pip install -e .[test]
pytest
```