import pytest

from labvoyager.core.deployment.config_schema import (
    CURRENT,
    LEGACY,
    build_appliance_fields,
    render_document,
    schema_for,
    select_key_set,
)
from labvoyager.models.deployment_plan import (
    ClusterNode,
    ControlPlaneKind,
    DeploymentPlan,
    NetworkTarget,
    NodeSizing,
    SchemaGeneration,
    SoftwareVersion,
    StorageKind,
    StorageResource,
    SwitchKind,
    Topology,
    VolumeInfo,
)

from tests.fakes import build_lab

SIZING = NodeSizing(vcpu=2, memory_gb=32, cache_disk_gb=16, capacity_disk_gb=200)


def _plan(lab, *, topology=Topology.standard, kind=ControlPlaneKind.cluster_manager):
    nodes = tuple(ClusterNode(name, str(ip), SIZING) for name, ip in sorted(lab.cluster_nodes.nodes.items()))
    return DeploymentPlan(
        topology=topology,
        control_plane_kind=kind,
        software_version=SoftwareVersion(6, 5, 0),
        schema=SchemaGeneration.current,
        include_overlay_network=False,
        patch_nodes=False,
        node_sizing=SIZING,
        nodes=nodes,
        storage=StorageResource("datastore1", StorageKind.volume, (VolumeInfo("datastore1", 1),)),
        network=NetworkTarget("VM Network", SwitchKind.standalone),
        bootstrap_node=nodes[0] if topology is Topology.self_hosted else None,
    )


@pytest.mark.parametrize(
    "version, expected",
    [
        (SoftwareVersion(6, 0, 0), LEGACY),
        (SoftwareVersion(6, 0, 99), LEGACY),
        (SoftwareVersion(6, 5, 0), CURRENT),
        (SoftwareVersion(6, 7, 0), CURRENT),
    ],
)
def test_key_set_selected_by_version(version, expected):
    assert select_key_set(version) is expected


def test_schema_for_generation():
    assert schema_for(SchemaGeneration.legacy) is LEGACY
    assert schema_for(SchemaGeneration.current) is CURRENT


def test_current_document_targets_cluster_manager(tmp_path):
    lab = build_lab(tmp_path)
    fields = build_appliance_fields(_plan(lab), lab, datastore_name="ds-b")

    template = {"__version": "2.3.0", "new.vcsa": {"vc": {"hostname": "<FQDN>"}}, "ceip": {"settings": {}}}
    document = render_document(template, CURRENT, fields)

    vcsa = document["new.vcsa"]
    assert vcsa["vc"]["hostname"] == "vcenter.outer.lab"
    assert vcsa["vc"]["datastore"] == "ds-b"
    assert vcsa["vc"]["datacenter"] == ["Outer-DC"]
    assert vcsa["vc"]["target"] == ["Outer-Cluster"]
    assert vcsa["vc"]["deployment.network"] == "VM Network"
    assert vcsa["network"]["system.name"] == "vcsa.lab.local"
    assert vcsa["network"]["dns.servers"] == ["10.0.0.2"]
    assert vcsa["sso"]["password"] == "SsoPass1!"
    assert document["__version"] == "2.3.0"
    # 模板本身不被修改
    assert template["new.vcsa"]["vc"] == {"hostname": "<FQDN>"}
    assert "--acknowledge-ceip" in CURRENT.installer_flags


def test_legacy_document_on_hypervisor_uses_old_keys(tmp_path):
    lab = build_lab(tmp_path)
    fields = build_appliance_fields(_plan(lab, kind=ControlPlaneKind.hypervisor), lab, datastore_name="datastore1")

    document = render_document({}, LEGACY, fields)

    vcsa = document["target.vcsa"]
    assert vcsa["esx"]["hostname"] == "vcenter.outer.lab"
    assert "datacenter" not in vcsa["esx"]
    assert vcsa["appliance"]["deployment.network"] == "VM Network"
    assert vcsa["network"]["hostname"] == "vcsa.lab.local"
    assert "system.name" not in vcsa["network"]
    assert "--acknowledge-ceip" not in LEGACY.installer_flags


def test_self_hosted_fields_target_seed_node(tmp_path):
    lab = build_lab(tmp_path, topology="self_hosted", memory_gb=32)
    fields = build_appliance_fields(_plan(lab, topology=Topology.self_hosted), lab, datastore_name="ignored")

    assert fields.on_cluster_manager is False
    assert fields.target_host == "10.0.0.11"
    assert fields.target_username == "root"
    assert fields.target_password == "NodePass1!"
    assert fields.datastore == "vsanDatastore"
    assert fields.deployment_network == "VM Network"
