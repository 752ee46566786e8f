import ipaddress
import json

import pytest

from lxe.network.base import NoopError, Properties, PropertiesRunning
from lxe.network.cni import (
    CNIContainerNetwork,
    CNIPlugin,
    CNIPodNetwork,
    ConfCNI,
    NetworkConfigList,
    NoNetworksFoundError,
    RuntimeConf,
    convert_result,
    init_plugin_cni,
    load_network_config_list,
)


class FakeCNI:
    def __init__(self, add_result=None):
        self.add_result = add_result if add_result is not None else {"cniVersion": "1.0.0"}
        self.add_calls = []
        self.del_calls = []

    def add_network_list(self, net_list, runtime_conf):
        self.add_calls.append((net_list, runtime_conf, runtime_conf.net_ns))
        return self.add_result

    def del_network_list(self, net_list, runtime_conf):
        self.del_calls.append((net_list, runtime_conf, runtime_conf.net_ns))


LO_CONF = """
{
    "cniVersion": "0.4.0",
    "name": "lo",
    "type": "loopback"
}"""


@pytest.fixture
def cni_paths(tmp_path):
    bin_path = tmp_path / "opt" / "cni" / "bin"
    conf_path = tmp_path / "etc" / "cni" / "net.d"
    netns_path = tmp_path / "run" / "netns"
    conf_path.mkdir(parents=True)
    netns_path.mkdir(parents=True)
    (conf_path / "99-lo.conf").write_text(LO_CONF)
    return str(bin_path), str(conf_path), str(netns_path)


@pytest.fixture
def plugin(cni_paths):
    bin_path, conf_path, netns_path = cni_paths
    fake = FakeCNI()
    return CNIPlugin(fake, ConfCNI(bin_path=bin_path, conf_path=conf_path, netns_path=netns_path))


@pytest.fixture
def pod_net(plugin):
    return CNIPodNetwork(plugin=plugin, net_list=None, runtime_conf=plugin.get_runtime_conf("foo"))


@pytest.fixture
def cont_net(pod_net):
    return CNIContainerNetwork(pod=pod_net, cid="bar")


def test_init_plugin_cni(cni_paths):
    bin_path, conf_path, netns_path = cni_paths
    fake = FakeCNI()
    plugin = init_plugin_cni(
        ConfCNI(bin_path=bin_path, conf_path=conf_path, netns_path=netns_path), fake
    )
    assert plugin.cni is fake
    assert plugin.conf.conf_path == conf_path
    assert plugin.conf.bin_path == bin_path


def test_init_plugin_cni_sets_defaults():
    plugin = init_plugin_cni(ConfCNI(), FakeCNI())
    assert plugin.conf.bin_path == "/opt/cni/bin"
    assert plugin.conf.conf_path == "/etc/cni/net.d"
    assert plugin.conf.netns_path == "/run/netns"


def test_plugin_pod_network_simple(plugin):
    pod = plugin.pod_network("foo", None)
    assert isinstance(pod.net_list, NetworkConfigList)
    assert pod.net_list.name == "lo"
    assert pod.net_list.plugins[0]["type"] == "loopback"
    assert pod.runtime_conf.container_id == "foo"


def test_plugin_pod_network_without_config(tmp_path):
    plugin = CNIPlugin(FakeCNI(), ConfCNI(conf_path=str(tmp_path)))
    with pytest.raises(NoNetworksFoundError):
        plugin.pod_network("foo", None)


def test_plugin_update_runtime_config(plugin):
    before = plugin.conf.conf_path
    assert plugin.update_runtime_config(None) is None
    assert plugin.conf.conf_path == before


def test_plugin_status_is_noop(plugin):
    with pytest.raises(NoopError):
        plugin.status()


def test_plugin_get_runtime_conf(plugin):
    assert plugin.get_runtime_conf("foo") == RuntimeConf(
        container_id="foo", net_ns="", if_name="eth0", args=[]
    )


def test_load_network_config_list_conflist_sorted_first(tmp_path):
    (tmp_path / "10-net.conflist").write_text(
        json.dumps(
            {
                "cniVersion": "1.0.0",
                "name": "mynet",
                "plugins": [{"type": "bridge"}, {"type": "portmap"}],
            }
        )
    )
    (tmp_path / "99-lo.conf").write_text(LO_CONF)
    conf_list = load_network_config_list(tmp_path)
    assert conf_list.name == "mynet"
    assert [p["type"] for p in conf_list.plugins] == ["bridge", "portmap"]


def test_load_network_config_list_skips_conf_without_type(tmp_path):
    (tmp_path / "01-bad.conf").write_text(json.dumps({"name": "bad"}))
    (tmp_path / "02-broken.json").write_text("{not json")
    (tmp_path / "99-lo.conf").write_text(LO_CONF)
    conf_list = load_network_config_list(tmp_path)
    assert conf_list.name == "lo"
    assert conf_list.cni_version == "0.4.0"


def test_load_network_config_list_only_broken(tmp_path):
    (tmp_path / "01-bad.conflist").write_text(json.dumps({"name": "bad"}))
    with pytest.raises(NoNetworksFoundError):
        load_network_config_list(tmp_path)


def test_load_network_config_list_missing_dir(tmp_path):
    with pytest.raises(NoNetworksFoundError):
        load_network_config_list(tmp_path / "missing")


def test_pod_network_container_network(pod_net):
    cont = pod_net.container_network("bar", None)
    assert cont.cid == "bar"
    assert cont.pod is pod_net


def test_pod_network_status_simple(pod_net):
    result = (
        '{"cniVersion":"1.0.0","ips":[{"version":"4","interface":2,'
        '"address":"10.22.0.64/16","gateway":"10.22.0.1"}]}'
    )
    status = pod_net.status(PropertiesRunning(data={"result": result}))
    assert len(status.ips) == 1
    assert str(status.ips[0]) == "10.22.0.64"


def test_pod_network_status_missing(pod_net):
    with pytest.raises(ValueError):
        pod_net.status(PropertiesRunning(data={"result": '{"cniVersion":"0.4.0","ips":[]}'}))


def test_pod_network_setup_simple(pod_net, plugin):
    plugin.cni.add_result = {"cniVersion": "1.0.0"}
    result = pod_net.setup("/proc/5/ns/net")
    assert result["cniVersion"] == "1.0.0"
    assert len(plugin.cni.add_calls) == 1
    assert plugin.cni.add_calls[0][2] == "/proc/5/ns/net"


@pytest.mark.parametrize("version", ["0.2.0", "0.4.0"])
def test_pod_network_setup_old_versions(pod_net, plugin, version):
    plugin.cni.add_result = json.dumps({"cniVersion": version})
    result = pod_net.setup("/proc/5/ns/net")
    assert result["cniVersion"] == "1.0.0"
    assert len(plugin.cni.add_calls) == 1
    assert plugin.cni.add_calls[0][2] == "/proc/5/ns/net"


def test_pod_network_teardown_after_setup(pod_net, plugin):
    pod_net.setup("/proc/5/ns/net")
    pod_net.teardown()
    assert len(plugin.cni.add_calls) == 1
    assert len(plugin.cni.del_calls) == 1
    assert plugin.cni.del_calls[0][2] == ""


@pytest.mark.parametrize(
    "raw",
    [
        b'{"cniVersion":"1.0.0", "ips":[{"address":"10.22.0.64/16"}]}',
        b'{"cniVersion":"0.2.0", "ip4": {"ip": "10.22.0.64/16"}}',
        b'{"cniVersion":"0.4.0", "ips":[{"address":"10.22.0.64/16"}]}',
    ],
)
def test_pod_network_ips(pod_net, raw):
    ips = pod_net.ips(raw)
    assert ips == [ipaddress.ip_address("10.22.0.64")]


def test_pod_network_ips_missing(pod_net):
    with pytest.raises(ValueError):
        pod_net.ips(b'{"cniVersion":"1.0.0", "ips":[{"foo":"bar"}]}')


def test_pod_network_ips_invalid(pod_net):
    with pytest.raises(ValueError):
        pod_net.ips(b'{"cniVersion":"1.0.0", "ips":[{"address":"bar"}]}')


def test_pod_network_ips_empty(pod_net):
    with pytest.raises(ValueError):
        pod_net.ips(None)


def test_convert_result_from_020_moves_routes_and_gateway():
    result = convert_result(
        {
            "cniVersion": "0.2.0",
            "ip4": {
                "ip": "10.1.0.5/24",
                "gateway": "10.1.0.1",
                "routes": [{"dst": "0.0.0.0/0"}],
            },
        }
    )
    assert result["ips"] == [{"address": "10.1.0.5/24", "gateway": "10.1.0.1"}]
    assert result["routes"] == [{"dst": "0.0.0.0/0"}]
    assert result["cniVersion"] == "1.0.0"


def test_convert_result_unsupported_version():
    with pytest.raises(ValueError):
        convert_result({"cniVersion": "9.9.9"})


def test_container_network_when_started(cont_net, plugin):
    plugin.cni.add_result = {"cniVersion": "1.0.0", "ips": []}
    res = cont_net.when_started(PropertiesRunning(pid=6))
    assert len(plugin.cni.add_calls) == 1
    assert plugin.cni.add_calls[0][2] == "/proc/6/ns/net"
    assert json.loads(res.data["result"])["cniVersion"] == "1.0.0"
    assert res.nics == []
    assert res.network_config_entries == []


def test_container_network_when_deleted(cont_net, plugin):
    cont_net.when_deleted(Properties())
    assert len(plugin.cni.del_calls) == 1
    assert plugin.cni.del_calls[0][2] == ""