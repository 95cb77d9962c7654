import pytest

from labvoyager.common.errors import ConfigurationError, ResourceNotFoundError, UnsupportedMediaError
from labvoyager.core.deployment.prober import (
    probe_control_plane_kind,
    probe_environment,
    probe_software_version,
    resolve_network,
    resolve_storage,
)
from labvoyager.models.deployment_plan import ControlPlaneKind, SoftwareVersion, StorageKind, SwitchKind

from tests.fakes import FakeLab, build_lab, write_media


def _client(**kwargs):
    return FakeLab(**kwargs).connect("outer", "user", "secret")


def test_control_plane_kind_from_api_type():
    assert probe_control_plane_kind(_client(api_type="VirtualCenter")) is ControlPlaneKind.cluster_manager
    assert probe_control_plane_kind(_client(api_type="HostAgent")) is ControlPlaneKind.hypervisor


def test_unknown_api_type_falls_back_to_host_listing():
    assert probe_control_plane_kind(_client(api_type=None)) is ControlPlaneKind.hypervisor

    fake = FakeLab(api_type="Mystery")
    fake.outer_hosts = []
    with pytest.raises(ConfigurationError):
        probe_control_plane_kind(fake.connect("outer", "user", "secret"))


def test_storage_prefers_pool_then_volume():
    client = _client()

    pool = resolve_storage(client, "pod-1")
    volume = resolve_storage(client, "datastore1")

    assert pool.kind is StorageKind.pool
    assert pool.select_volume_with_most_free_space().name == "ds-b"
    assert volume.kind is StorageKind.volume
    assert volume.select_volume_with_most_free_space().name == "datastore1"
    with pytest.raises(ResourceNotFoundError):
        resolve_storage(client, "missing")


def test_network_prefers_distributed_then_standalone():
    client = _client()

    assert resolve_network(client, "dv-lab").kind is SwitchKind.distributed
    assert resolve_network(client, "VM Network").kind is SwitchKind.standalone
    with pytest.raises(ResourceNotFoundError, match="既不是"):
        resolve_network(client, "missing")


def test_probe_environment_on_hypervisor_ignores_cluster(tmp_path):
    fake = FakeLab(api_type="HostAgent")
    lab = build_lab(tmp_path, datastore="pod-1", network="dv-lab")

    facts = probe_environment(fake.connect("outer", "root", "x"), lab.target)

    assert facts.control_plane_kind is ControlPlaneKind.hypervisor
    assert facts.storage.kind is StorageKind.pool
    assert facts.network.kind is SwitchKind.distributed
    assert fake.calls_named("resolve_placement") == [("resolve_placement", "outer", None)]
    assert len(facts.outer_hosts) == 2


def test_version_read_from_build_file(tmp_path):
    media = write_media(tmp_path, "VMware-vCenter-Server-Appliance-6.0.0.20000-5202501")

    assert probe_software_version(media) == SoftwareVersion(6, 0, 0)


def test_version_falls_back_to_readme(tmp_path):
    media = tmp_path / "media"
    media.mkdir()
    (media / "readme.txt").write_text("VMware vCenter Server Appliance 6.7.0 installer\n", encoding="utf-8")

    assert probe_software_version(media) == SoftwareVersion(6, 7, 0)


def test_unreadable_media_raises(tmp_path):
    media = tmp_path / "empty"
    media.mkdir()

    with pytest.raises(UnsupportedMediaError):
        probe_software_version(media)
