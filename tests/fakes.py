"""测试用的外部协作者假实现：一个共享的 FakeLab 记录所有调用。"""
from __future__ import annotations

import io
from pathlib import Path
from typing import Any, Dict, List, Optional

from rich.console import Console

from labvoyager.common.config import load_config
from labvoyager.common.errors import ExternalOperationError, ResourceNotFoundError
from labvoyager.common.logging_config import RunLog
from labvoyager.core.deployment.runtime_context import LabServices, RunContext
from labvoyager.integrations.vsphere.tasks import ProvisioningTask, TaskStatus
from labvoyager.models.deployment_plan import (
    LocalDisk,
    NetworkTarget,
    PhaseSelection,
    Placement,
    StorageKind,
    StorageResource,
    SwitchKind,
    VolumeInfo,
)
from labvoyager.models.lab_models import LabInput

NODES = {"node-1": "10.0.0.11", "node-2": "10.0.0.12", "node-3": "10.0.0.13"}

# 只读或会话类调用，其余都视为变更操作
READ_ONLY_CALLS = {"connect", "disconnect", "list_hosts", "resolve_placement", "outer_hosts", "lookup"}


class FakeTask(ProvisioningTask):
    def __init__(self, label: str, result: Any = None, error: Optional[str] = None, polls: int = 1) -> None:
        super().__init__(label)
        self.result = result
        self.error = error
        self.remaining = polls

    def poll(self) -> TaskStatus:
        self.remaining -= 1
        if self.remaining > 0:
            return TaskStatus(done=False)
        return TaskStatus(done=True, result=self.result, error=self.error)


class FakeVM:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"FakeVM({self.name})"


class FakeHost:
    def __init__(self, name: str, disks: List[LocalDisk], *, disk_group: bool = False) -> None:
        self.name = name
        self.disks = disks
        self.disk_group = disk_group
        self.in_maintenance = True


def make_disks(prefix: str, cache_gb: int, capacity_gb: int) -> List[LocalDisk]:
    return [
        LocalDisk(name=f"{prefix}-cache", size_gb=cache_gb),
        LocalDisk(name=f"{prefix}-capacity", size_gb=capacity_gb),
        LocalDisk(name=f"{prefix}-spare", size_gb=capacity_gb + 100),
    ]


class FakeInfra:
    def __init__(self, lab: "FakeLab", address: str, username: str) -> None:
        self.lab = lab
        self.address = address
        self.username = username

    def _record(self, name: str, *args: Any) -> None:
        self.lab.calls.append((name, self.address, *args))

    @property
    def api_type(self) -> Optional[str]:
        return self.lab.api_type

    def disconnect(self) -> None:
        self._record("disconnect")
        self.lab.open_sessions -= 1

    def list_hosts(self) -> List[Any]:
        return list(self.lab.outer_hosts)

    def host_name(self, host: Any) -> str:
        return host.name

    def find_vm(self, name: str) -> Any:
        self._record("lookup", name)
        return FakeVM(name)

    def get_volume_pool(self, name: str) -> StorageResource:
        if name not in self.lab.pools:
            raise ResourceNotFoundError(f"no pool {name}", target=name)
        volumes = tuple(VolumeInfo(n, free, ref=f"ds:{n}") for n, free in self.lab.pools[name].items())
        return StorageResource(name=name, kind=StorageKind.pool, volumes=volumes, ref=f"pod:{name}")

    def get_volume(self, name: str) -> StorageResource:
        if name not in self.lab.volumes:
            raise ResourceNotFoundError(f"no datastore {name}", target=name)
        return StorageResource(
            name=name,
            kind=StorageKind.volume,
            volumes=(VolumeInfo(name, self.lab.volumes[name], ref=f"ds:{name}"),),
            ref=f"ds:{name}",
            is_vsan=self.lab.outer_vsan,
        )

    def get_distributed_network(self, name: str) -> NetworkTarget:
        if name not in self.lab.distributed_networks:
            raise ResourceNotFoundError(f"no dvpg {name}", target=name)
        return NetworkTarget(name=name, kind=SwitchKind.distributed, ref=f"dvpg:{name}")

    def get_standalone_network(self, name: str) -> NetworkTarget:
        if name not in self.lab.standalone_networks:
            raise ResourceNotFoundError(f"no pg {name}", target=name)
        return NetworkTarget(name=name, kind=SwitchKind.standalone, ref=f"pg:{name}")

    def resolve_placement(self, cluster_name: Optional[str] = None) -> Placement:
        self._record("resolve_placement", cluster_name)
        return Placement(host="outer-host", resource_pool="outer-pool", folder="outer-folder", datacenter="outer-dc")

    def outer_hosts(self, cluster_name: Optional[str] = None) -> List[Any]:
        self._record("outer_hosts", cluster_name)
        return list(self.lab.outer_hosts)

    def import_ova(self, image_path: Path, *, name: str, placement: Placement, datastore: Any, network: Any, properties=None) -> Any:
        self._record("import_ova", name, dict(properties or {}), datastore, network)
        return FakeVM(name)

    def reconfigure_vm(self, vm: Any, **kwargs: Any) -> None:
        self._record("reconfigure_vm", vm.name, kwargs)

    def power_on(self, vm: Any) -> ProvisioningTask:
        self._record("power_on", vm.name)
        # 开机任务不会被等待，永远处于未完成状态也不影响流程
        return FakeTask(f"power-on {vm.name}", polls=10**6)

    def create_vapp(self, name: str, placement: Placement) -> Any:
        self._record("create_vapp", name)
        return f"vapp:{name}"

    def move_into_vapp(self, vapp: Any, vms: List[Any]) -> None:
        self._record("move_into_vapp", vapp, [vm.name for vm in vms])

    def set_host_advanced_option(self, host: Any, key: str, value: int) -> None:
        self._record("set_host_advanced_option", host.name, key, value)

    def exit_maintenance_mode_async(self, host: Any) -> Optional[ProvisioningTask]:
        if not host.in_maintenance:
            return None
        self._record("exit_maintenance_mode", host.name)
        host.in_maintenance = False
        return FakeTask(f"exit-mm {host.name}")

    def host_has_disk_group(self, host: Any) -> bool:
        return host.disk_group

    def list_eligible_disks(self, host: Any) -> List[LocalDisk]:
        return list(host.disks)

    def create_disk_group_async(self, host: Any, cache: LocalDisk, capacity: LocalDisk) -> ProvisioningTask:
        self._record("create_disk_group", host.name, cache.name, capacity.name)
        host.disk_group = True
        return FakeTask(f"disk-group {host.name}", polls=2)

    def create_datacenter(self, name: str) -> Any:
        self._record("create_datacenter", name)
        return f"dc:{name}"

    def create_cluster(self, datacenter: Any, name: str, *, vsan: bool = True) -> Any:
        self._record("create_cluster", datacenter, name, vsan)
        return f"cluster:{name}"

    def add_host_to_cluster_async(self, cluster: Any, address: str, username: str, password: str, thumbprint: str) -> ProvisioningTask:
        self._record("add_host", cluster, address, thumbprint)
        sizing = self.lab.nested_disk_sizes
        host = FakeHost(address, make_disks(address, *sizing), disk_group=address in self.lab.seeded)
        self.lab.nested_hosts[address] = host
        return FakeTask(f"add-host {address}", result=host)

    def triggered_alarms(self, entity: Any) -> List[Any]:
        return list(self.lab.alarms)

    def acknowledge_alarm(self, alarm_state: Any) -> None:
        if alarm_state == "broken":
            raise RuntimeError("cannot acknowledge")
        self._record("acknowledge_alarm", alarm_state)

    def create_distributed_switch(self, datacenter: Any, name: str, *, mtu: int) -> Any:
        self._record("create_distributed_switch", name, mtu)
        return f"dvs:{name}"

    def create_dvportgroup(self, switch: Any, name: str) -> Any:
        self._record("create_dvportgroup", switch, name)
        return f"dvpg:{name}"

    def add_host_to_distributed_switch(self, switch: Any, host: Any, uplink_nic: str) -> None:
        self._record("add_host_to_dvs", host.name, uplink_nic)

    def add_vmkernel_interface(self, host: Any, switch: Any, portgroup: Any, *, ip_address: str, netmask: str, mtu: int) -> str:
        self._record("add_vmkernel", host.name, ip_address, netmask, mtu)
        return "vmk1"


class FakeShell:
    def __init__(self, lab: "FakeLab", host: str, username: str, password: str, log=None) -> None:
        self.lab = lab
        self.host = host
        self.username = username

    def _record(self, name: str, *args: Any) -> None:
        self.lab.calls.append((f"shell.{name}", self.host, *args))

    def __enter__(self) -> "FakeShell":
        self._record("open")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._record("close")

    def enter_maintenance_mode(self) -> None:
        self._record("enter_maintenance_mode")

    def exit_maintenance_mode(self) -> None:
        self._record("exit_maintenance_mode")

    def upload(self, local_path: Path, remote_path: str) -> str:
        self._record("upload", remote_path)
        return remote_path

    def install_patch_bundle(self, remote_path: str) -> None:
        if self.lab.patch_error:
            raise ExternalOperationError("vib update failed", target=self.host)
        self._record("install_patch_bundle", remote_path)

    def reboot(self, reason: str) -> None:
        self._record("reboot", reason)

    def set_default_storage_policy(self, policy_class: str, policy: str) -> None:
        self._record("set_default_storage_policy", policy_class, policy)

    def create_storage_cluster(self) -> None:
        self._record("create_storage_cluster")

    def list_local_disks(self) -> List[LocalDisk]:
        return make_disks(self.host, *self.lab.nested_disk_sizes)

    def tag_capacity_disk(self, device: str) -> None:
        self._record("tag_capacity_disk", device)

    def add_storage_group(self, cache_device: str, capacity_device: str) -> None:
        self._record("add_storage_group", cache_device, capacity_device)
        self.lab.seeded.add(self.host)


class FakeInstaller:
    def __init__(self, lab: "FakeLab", media_root: Path, run_log=None) -> None:
        self.lab = lab
        self.media_root = media_root
        self.run_log = run_log

    def load_template(self, *, on_cluster_manager: bool) -> Dict[str, Any]:
        self.lab.calls.append(("installer.load_template", on_cluster_manager))
        return {"__version": "2.3.0", "__comments": ["template"]}

    def install(self, document: Dict[str, Any], flags) -> int:
        self.lab.calls.append(("installer.install", document, list(flags)))
        if self.run_log is not None:
            self.run_log.write_output("vcsa-deploy", "Installation succeeded")
        return 0


class FakeOverlayClient:
    def __init__(self, lab: "FakeLab", address: str, username: str) -> None:
        self.lab = lab
        self.address = address
        self.username = username

    def register_management_domain(self, **kwargs: Any) -> None:
        self.lab.calls.append(("overlay.register_management_domain", kwargs))

    def register_identity_authority(self, **kwargs: Any) -> None:
        self.lab.calls.append(("overlay.register_identity_authority", kwargs))

    def disconnect(self) -> None:
        self.lab.calls.append(("overlay.disconnect", self.address))


class FakeLab:
    """外层环境 + 新 vCenter + 节点 SSH + 安装器的统一假实现。"""

    def __init__(
        self,
        *,
        api_type: Optional[str] = "VirtualCenter",
        nested_disk_sizes: tuple = (4, 8),
        outer_vsan: bool = False,
    ) -> None:
        self.api_type = api_type
        self.nested_disk_sizes = nested_disk_sizes
        self.outer_vsan = outer_vsan
        self.outer_hosts = [FakeHost("esx-outer-1", []), FakeHost("esx-outer-2", [])]
        self.pools: Dict[str, Dict[str, int]] = {"pod-1": {"ds-a": 100, "ds-b": 500}}
        self.volumes: Dict[str, int] = {"datastore1": 1000}
        self.distributed_networks = {"dv-lab"}
        self.standalone_networks = {"VM Network"}
        self.alarms: List[Any] = ["alarm-1", "broken", "alarm-2"]
        self.patch_error = False
        self.calls: List[tuple] = []
        self.seeded: set = set()
        self.nested_hosts: Dict[str, FakeHost] = {}
        self.open_sessions = 0
        self.max_sessions = 0
        self.sleeps: List[float] = []

    # --- 工厂 -----------------------------------------------------------
    def connect(self, address: str, username: str, password: str, **kwargs: Any) -> FakeInfra:
        self.calls.append(("connect", address, username))
        self.open_sessions += 1
        self.max_sessions = max(self.max_sessions, self.open_sessions)
        return FakeInfra(self, address, username)

    def open_shell(self, host: str, username: str, password: str, **kwargs: Any) -> FakeShell:
        return FakeShell(self, host, username, password)

    def create_installer(self, media_root: Path, **kwargs: Any) -> FakeInstaller:
        return FakeInstaller(self, media_root, **kwargs)

    def connect_overlay(self, address: str, username: str, password: str) -> FakeOverlayClient:
        self.calls.append(("overlay.connect", address, username))
        return FakeOverlayClient(self, address, username)

    def services(self) -> LabServices:
        return LabServices(
            connect_infrastructure=self.connect,
            open_node_shell=self.open_shell,
            create_installer=self.create_installer,
            connect_overlay_manager=self.connect_overlay,
            reachability_probe=lambda host: True,
            fetch_thumbprint=lambda host: "AA:BB:CC",
            sleep=self.sleeps.append,
        )

    # --- 查询 -----------------------------------------------------------
    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    def mutating_calls(self) -> List[tuple]:
        return [call for call in self.calls if call[0] not in READ_ONLY_CALLS]


def write_media(root: Path, build: str = "VMware-vCenter-Server-Appliance-6.5.0.5100-5318154") -> Path:
    media = root / "vcsa-media"
    (media / "vcsa").mkdir(parents=True, exist_ok=True)
    (media / "vcsa" / "version.txt").write_text(build + "\n", encoding="utf-8")
    return media


def lab_payload(
    root: Path,
    *,
    topology: str = "standard",
    memory_gb: int = 6,
    overlay: bool = False,
    upgrade: bool = False,
    bundle: Optional[str] = None,
    datastore: str = "datastore1",
    network: str = "VM Network",
) -> Dict[str, Any]:
    image = root / "Nested_ESXi6.5.ova"
    image.write_bytes(b"ova")
    media = write_media(root)
    payload: Dict[str, Any] = {
        "topology": topology,
        "target": {
            "address": "vcenter.outer.lab",
            "username": "administrator@vsphere.local",
            "password": "OuterPass1!",
            "datacenter": "Outer-DC",
            "cluster": "Outer-Cluster",
            "network": network,
            "datastore": datastore,
        },
        "guest_network": {
            "netmask": "255.255.255.0",
            "gateway": "10.0.0.1",
            "dns_servers": ["10.0.0.2", "10.0.0.3"],
            "ntp_server": "pool.ntp.org",
            "syslog_server": "10.0.0.4",
            "domain": "lab.local",
        },
        "cluster_nodes": {
            "image_path": str(image),
            "nodes": dict(NODES),
            "sizing": {"vcpu": 2, "memory_gb": memory_gb, "cache_disk_gb": 4, "capacity_disk_gb": 8},
            "root_password": "NodePass1!",
            "upgrade_nodes": upgrade,
        },
        "appliance": {
            "media_path": str(media),
            "ip_address": "10.0.0.20",
            "hostname": "vcsa.lab.local",
            "root_password": "VcsaPass1!",
            "sso_password": "SsoPass1!",
        },
    }
    if bundle:
        bundle_path = root / bundle
        bundle_path.write_bytes(b"zip")
        payload["cluster_nodes"]["patch_bundle_path"] = str(bundle_path)
    if overlay:
        nsx = root / "VMware-NSX-Manager.ova"
        nsx.write_bytes(b"ova")
        payload["overlay"] = {
            "image_path": str(nsx),
            "ip_address": "10.0.0.30",
            "hostname": "nsx.lab.local",
            "admin_password": "NsxPass1!",
            "enable_password": "NsxEnable1!",
            "fabric": {"subnet": "172.16.30.0/24"},
        }
    return payload


def build_lab(root: Path, **kwargs: Any) -> LabInput:
    return LabInput.model_validate(lab_payload(root, **kwargs))


def make_context(
    lab: LabInput,
    fake: FakeLab,
    run_log_path: Path,
    *,
    confirm: bool = True,
    phases: Optional[PhaseSelection] = None,
) -> RunContext:
    return RunContext(
        lab=lab,
        config=load_config(),
        run_log=RunLog(run_log_path),
        services=fake.services(),
        phases=phases or PhaseSelection(),
        confirmer=lambda summary: confirm,
        console=Console(file=io.StringIO(), width=160),
    )
