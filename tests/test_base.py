import pytest

from lxe.network.base import (
    NoopContainerNetwork,
    NoopError,
    NoopPlugin,
    NoopPodNetwork,
    Properties,
    PropertiesRunning,
    Result,
    Status,
    init_plugin_noop,
)


def test_init_plugin_noop():
    plugin = init_plugin_noop()
    assert isinstance(plugin, NoopPlugin)
    with pytest.raises(NoopError):
        plugin.status()


def test_noop_plugin_pod_network():
    pod_net = NoopPlugin().pod_network("", None)
    assert isinstance(pod_net, NoopPodNetwork)
    assert pod_net.when_created(None) is None


def test_noop_plugin_status():
    with pytest.raises(NoopError, match="never running"):
        NoopPlugin().status()


def test_noop_plugin_update_runtime_config():
    with pytest.raises(NoopError):
        NoopPlugin().update_runtime_config(None)


def test_noop_pod_network_container_network():
    cont_net = NoopPodNetwork().container_network("", None)
    assert isinstance(cont_net, NoopContainerNetwork)
    assert cont_net.when_started(None) is None


def test_noop_pod_network_status():
    assert NoopPodNetwork().status(None) is None


def test_noop_pod_network_when_created():
    assert NoopPodNetwork().when_created(None) is None


def test_noop_pod_network_when_started():
    assert NoopPodNetwork().when_started(None) is None


def test_noop_pod_network_when_stopped():
    assert NoopPodNetwork().when_stopped(None) is None


def test_noop_pod_network_when_deleted():
    assert NoopPodNetwork().when_deleted(None) is None


def test_noop_container_network_when_created():
    assert NoopContainerNetwork().when_created(None) is None


def test_noop_container_network_when_started():
    assert NoopContainerNetwork().when_started(None) is None


def test_noop_container_network_when_stopped():
    assert NoopContainerNetwork().when_stopped(None) is None


def test_noop_container_network_when_deleted():
    assert NoopContainerNetwork().when_deleted(None) is None


def test_properties_defaults_are_independent():
    a, b = Properties(), Properties()
    a.data["x"] = "y"
    assert b.data == {}


def test_properties_running_carries_data_and_pid():
    prop = PropertiesRunning(data={"result": "r"}, pid=6)
    assert prop.data == {"result": "r"}
    assert prop.pid == 6
    assert PropertiesRunning().pid == 0


def test_result_and_status_defaults():
    res = Result()
    assert res.data is None
    assert res.nics == []
    assert res.network_config_entries == []
    assert Status().ips == []