# SPDX-License-Identifier: GPL-3.0-or-later
# This file is part of LabVoyager.
#
# LabVoyager is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# LabVoyager is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with LabVoyager.  If not, see <https://www.gnu.org/licenses/>.

"""vSphere 控制面客户端（ESXi 或 vCenter）。

对 pyVmomi 做一层薄封装：查找对象、导入 OVA、重配置虚拟机、
创建数据中心/集群/分布式交换机以及提交 vSAN 磁盘组等任务。
异步操作返回 :class:`~labvoyager.integrations.vsphere.tasks.ProvisioningTask`，
同步操作在内部等待任务完成。
"""
from __future__ import annotations

import logging
import ssl
from pathlib import Path
from typing import Any, List, Mapping, Optional

try:
    from pyVim import connect
    from pyVmomi import VmomiSupport, vim, vmodl  # type: ignore
except ImportError as exc:  # pragma: no cover - environment issue, provide actionable hint
    raise ImportError("缺少第三方依赖 'pyvmomi'，请先运行 'pip install pyvmomi'") from exc

from labvoyager.common.errors import ExternalOperationError, ResourceNotFoundError
from labvoyager.models.deployment_plan import (
    LocalDisk,
    NetworkTarget,
    Placement,
    StorageKind,
    StorageResource,
    SwitchKind,
    VolumeInfo,
)
from .ova_import import import_ova
from .tasks import ProvisioningTask, VimTask, wait_for_task

logger = logging.getLogger(__name__)

_GB = 1024 ** 3


def build_ssl_context(insecure: bool) -> Optional[ssl.SSLContext]:
    """根据是否忽略证书构造 SSL Context."""
    if insecure:
        return ssl._create_unverified_context()  # type: ignore[attr-defined]
    return None


class InfrastructureClient:
    """单个 vSphere 会话。"""

    def __init__(self, service_instance: Any, *, address: str, insecure: bool = True) -> None:
        self.service_instance = service_instance
        self.address = address
        self.insecure = insecure
        self.content = service_instance.RetrieveContent()

    @classmethod
    def connect(
        cls,
        address: str,
        username: str,
        password: str,
        *,
        port: int = 443,
        insecure: bool = True,
    ) -> "InfrastructureClient":
        try:
            si = connect.SmartConnect(
                host=address,
                user=username,
                pwd=password,
                port=port,
                sslContext=build_ssl_context(insecure),
            )
        except (vim.fault.InvalidLogin, vmodl.MethodFault, OSError) as exc:
            message = getattr(exc, "msg", None) or str(exc)
            raise ExternalOperationError(f"连接 vSphere 失败: {message}", target=address) from exc
        logger.info("已连接 vSphere %s", address)
        return cls(si, address=address, insecure=insecure)

    def disconnect(self) -> None:
        connect.Disconnect(self.service_instance)
        logger.info("已断开 vSphere %s", self.address)

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    @property
    def api_type(self) -> Optional[str]:
        return getattr(self.content.about, "apiType", None)

    def _list(self, vimtype: Any) -> List[Any]:
        container = self.content.viewManager.CreateContainerView(self.content.rootFolder, [vimtype], True)
        try:
            return list(container.view)
        finally:
            container.Destroy()

    def find_obj_by_name(self, vimtype: Any, name: str) -> Optional[Any]:
        """在清单中查找指定名称对象 (精确匹配)。"""
        for obj in self._list(vimtype):
            if obj.name == name:
                return obj
        return None

    def list_hosts(self) -> List[Any]:
        return sorted(self._list(vim.HostSystem), key=lambda host: host.name)

    def host_name(self, host: Any) -> str:
        return host.name

    def find_vm(self, name: str) -> Any:
        vm = self.find_obj_by_name(vim.VirtualMachine, name)
        if vm is None:
            raise ResourceNotFoundError(f"找不到虚拟机 {name}", target=name)
        return vm

    @staticmethod
    def _describe_volume(datastore: Any) -> VolumeInfo:
        return VolumeInfo(name=datastore.name, free_bytes=int(datastore.summary.freeSpace), ref=datastore)

    def get_volume_pool(self, name: str) -> StorageResource:
        pod = self.find_obj_by_name(vim.StoragePod, name)
        if pod is None:
            raise ResourceNotFoundError(f"找不到数据存储集群 {name}", target=name)
        members = [child for child in pod.childEntity if isinstance(child, vim.Datastore)]
        return StorageResource(
            name=name,
            kind=StorageKind.pool,
            volumes=tuple(self._describe_volume(ds) for ds in members),
            ref=pod,
            is_vsan=any(ds.summary.type == "vsan" for ds in members),
        )

    def get_volume(self, name: str) -> StorageResource:
        datastore = self.find_obj_by_name(vim.Datastore, name)
        if datastore is None:
            raise ResourceNotFoundError(f"找不到数据存储 {name}", target=name)
        return StorageResource(
            name=name,
            kind=StorageKind.volume,
            volumes=(self._describe_volume(datastore),),
            ref=datastore,
            is_vsan=datastore.summary.type == "vsan",
        )

    def get_distributed_network(self, name: str) -> NetworkTarget:
        portgroup = self.find_obj_by_name(vim.dvs.DistributedVirtualPortgroup, name)
        if portgroup is None:
            raise ResourceNotFoundError(f"找不到分布式端口组 {name}", target=name)
        return NetworkTarget(name=name, kind=SwitchKind.distributed, ref=portgroup)

    def get_standalone_network(self, name: str) -> NetworkTarget:
        for network in self._list(vim.Network):
            if network.name == name and not isinstance(network, vim.dvs.DistributedVirtualPortgroup):
                return NetworkTarget(name=name, kind=SwitchKind.standalone, ref=network)
        raise ResourceNotFoundError(f"找不到标准端口组 {name}", target=name)

    def resolve_placement(self, cluster_name: Optional[str] = None) -> Placement:
        """确定导入虚拟机的主机、资源池与文件夹。"""

        clusters = self._list(vim.ClusterComputeResource)
        if cluster_name:
            compute = next((item for item in clusters if item.name == cluster_name), None)
            if compute is None:
                raise ResourceNotFoundError(f"找不到集群 {cluster_name}", target=cluster_name)
        elif clusters:
            compute = sorted(clusters, key=lambda item: item.name)[0]
        else:
            compute = self._list(vim.ComputeResource)[0]

        hosts = [host for host in compute.host if str(host.runtime.connectionState) == "connected"]
        if not hosts:
            raise ResourceNotFoundError(f"{compute.name} 中没有已连接的主机", target=compute.name)
        host = sorted(hosts, key=lambda item: item.name)[0]

        datacenter = compute.parent
        while datacenter is not None and not isinstance(datacenter, vim.Datacenter):
            datacenter = datacenter.parent
        if datacenter is None:
            raise ResourceNotFoundError(f"无法定位 {compute.name} 所属数据中心", target=compute.name)
        return Placement(host=host, resource_pool=compute.resourcePool, folder=datacenter.vmFolder, datacenter=datacenter)

    def outer_hosts(self, cluster_name: Optional[str] = None) -> List[Any]:
        if cluster_name:
            cluster = self.find_obj_by_name(vim.ClusterComputeResource, cluster_name)
            if cluster is None:
                raise ResourceNotFoundError(f"找不到集群 {cluster_name}", target=cluster_name)
            return sorted(cluster.host, key=lambda host: host.name)
        return self.list_hosts()

    # ------------------------------------------------------------------
    # 虚拟机
    # ------------------------------------------------------------------
    def import_ova(
        self,
        image_path: Path,
        *,
        name: str,
        placement: Placement,
        datastore: Any,
        network: Any,
        properties: Optional[Mapping[str, str]] = None,
    ) -> Any:
        return import_ova(
            self.content,
            image_path,
            name=name,
            placement=placement,
            datastore=datastore,
            network=network,
            properties=properties or {},
            lease_host=self.address,
            verify=not self.insecure,
        )

    def reconfigure_vm(
        self,
        vm: Any,
        *,
        vcpu: Optional[int] = None,
        memory_gb: Optional[int] = None,
        disk_sizes_gb: Optional[Mapping[int, int]] = None,
        extra_config: Optional[Mapping[str, str]] = None,
    ) -> None:
        spec = vim.vm.ConfigSpec()
        if vcpu is not None:
            spec.numCPUs = vcpu
        if memory_gb is not None:
            spec.memoryMB = memory_gb * 1024
        if extra_config:
            spec.extraConfig = [vim.option.OptionValue(key=key, value=str(value)) for key, value in extra_config.items()]

        changes = []
        disks = {
            device.deviceInfo.label: device
            for device in vm.config.hardware.device
            if isinstance(device, vim.vm.device.VirtualDisk)
        }
        for index, size_gb in (disk_sizes_gb or {}).items():
            disk = disks.get(f"Hard disk {index}")
            if disk is None:
                raise ResourceNotFoundError(f"虚拟机 {vm.name} 缺少第 {index} 块磁盘", target=vm.name)
            disk.capacityInKB = size_gb * 1024 * 1024
            changes.append(vim.vm.device.VirtualDeviceSpec(operation=vim.vm.device.VirtualDeviceSpec.Operation.edit, device=disk))
        if changes:
            spec.deviceChange = changes

        wait_for_task(VimTask(f"重配置 {vm.name}", vm.ReconfigVM_Task(spec=spec)))

    def power_on(self, vm: Any) -> ProvisioningTask:
        return VimTask(f"开机 {vm.name}", vm.PowerOnVM_Task())

    def create_vapp(self, name: str, placement: Placement) -> Any:
        allocation = vim.ResourceAllocationInfo(
            reservation=0,
            expandableReservation=True,
            limit=-1,
            shares=vim.SharesInfo(level=vim.SharesInfo.Level.normal),
        )
        res_spec = vim.ResourceConfigSpec(cpuAllocation=allocation, memoryAllocation=allocation)
        return placement.resource_pool.CreateVApp(
            name=name,
            resSpec=res_spec,
            configSpec=vim.vApp.VAppConfigSpec(),
            vmFolder=placement.folder,
        )

    def move_into_vapp(self, vapp: Any, vms: List[Any]) -> None:
        if vms:
            vapp.MoveIntoResourcePool(list=vms)

    # ------------------------------------------------------------------
    # 主机
    # ------------------------------------------------------------------
    def set_host_advanced_option(self, host: Any, key: str, value: int) -> None:
        long_type = VmomiSupport.GetVmodlType("long")
        option = vim.option.OptionValue(key=key, value=long_type(value))
        host.configManager.advancedOption.UpdateOptions(changedValue=[option])

    def exit_maintenance_mode_async(self, host: Any) -> Optional[ProvisioningTask]:
        if not host.runtime.inMaintenanceMode:
            return None
        return VimTask(f"{host.name} 退出维护模式", host.ExitMaintenanceMode_Task(timeout=0))

    def host_has_disk_group(self, host: Any) -> bool:
        config = host.configManager.vsanSystem.config
        storage_info = getattr(config, "storageInfo", None)
        return bool(storage_info and storage_info.diskMapping)

    def list_eligible_disks(self, host: Any) -> List[LocalDisk]:
        disks: List[LocalDisk] = []
        for result in host.configManager.vsanSystem.QueryDisksForVsan():
            if result.state != "eligible":
                continue
            capacity = result.disk.capacity
            size_gb = round(capacity.block * capacity.blockSize / _GB)
            disks.append(LocalDisk(name=result.disk.canonicalName, size_gb=size_gb, ref=result.disk))
        return disks

    def create_disk_group_async(self, host: Any, cache: LocalDisk, capacity: LocalDisk) -> ProvisioningTask:
        mapping = vim.vsan.host.DiskMapping(ssd=cache.ref, nonSsd=[capacity.ref])
        task = host.configManager.vsanSystem.InitializeDisks_Task(mapping=[mapping])
        return VimTask(f"{host.name} 创建磁盘组", task)

    # ------------------------------------------------------------------
    # 新管理域
    # ------------------------------------------------------------------
    def create_datacenter(self, name: str) -> Any:
        existing = self.find_obj_by_name(vim.Datacenter, name)
        if existing is not None:
            return existing
        return self.content.rootFolder.CreateDatacenter(name=name)

    def create_cluster(self, datacenter: Any, name: str, *, vsan: bool = True) -> Any:
        spec = vim.cluster.ConfigSpecEx()
        if vsan:
            spec.vsanConfig = vim.vsan.cluster.ConfigInfo(
                enabled=True,
                defaultConfig=vim.vsan.cluster.ConfigInfo.HostDefaultInfo(autoClaimStorage=False),
            )
        return datacenter.hostFolder.CreateClusterEx(name=name, spec=spec)

    def add_host_to_cluster_async(
        self,
        cluster: Any,
        address: str,
        username: str,
        password: str,
        thumbprint: str,
    ) -> ProvisioningTask:
        spec = vim.host.ConnectSpec(
            hostName=address,
            userName=username,
            password=password,
            sslThumbprint=thumbprint,
            force=True,
        )
        return VimTask(f"添加主机 {address}", cluster.AddHost_Task(spec=spec, asConnected=True))

    def triggered_alarms(self, entity: Any) -> List[Any]:
        return list(entity.triggeredAlarmState or [])

    def acknowledge_alarm(self, alarm_state: Any) -> None:
        self.content.alarmManager.AcknowledgeAlarm(alarm=alarm_state.alarm, entity=alarm_state.entity)

    # ------------------------------------------------------------------
    # 分布式交换机
    # ------------------------------------------------------------------
    def create_distributed_switch(self, datacenter: Any, name: str, *, mtu: int) -> Any:
        config = vim.dvs.VmwareDistributedVirtualSwitch.ConfigSpec(name=name, maxMtu=mtu)
        spec = vim.DistributedVirtualSwitch.CreateSpec(configSpec=config)
        return wait_for_task(VimTask(f"创建分布式交换机 {name}", datacenter.networkFolder.CreateDVS_Task(spec)))

    def create_dvportgroup(self, switch: Any, name: str) -> Any:
        spec = vim.dvs.DistributedVirtualPortgroup.ConfigSpec(name=name, type="earlyBinding", numPorts=128)
        wait_for_task(VimTask(f"创建端口组 {name}", switch.AddDVPortgroup_Task([spec])))
        for portgroup in switch.portgroup:
            if portgroup.name == name:
                return portgroup
        raise ResourceNotFoundError(f"端口组 {name} 创建后未找到", target=name)

    def add_host_to_distributed_switch(self, switch: Any, host: Any, uplink_nic: str) -> None:
        backing = vim.dvs.HostMember.PnicBacking(pnicSpec=[vim.dvs.HostMember.PnicSpec(pnicDevice=uplink_nic)])
        member = vim.dvs.HostMember.ConfigSpec(operation="add", host=host, backing=backing)
        spec = vim.dvs.VmwareDistributedVirtualSwitch.ConfigSpec(configVersion=switch.config.configVersion, host=[member])
        wait_for_task(VimTask(f"{host.name} 加入 {switch.name}", switch.ReconfigureDvs_Task(spec)))

    def add_vmkernel_interface(
        self,
        host: Any,
        switch: Any,
        portgroup: Any,
        *,
        ip_address: str,
        netmask: str,
        mtu: int,
    ) -> str:
        nic_spec = vim.host.VirtualNic.Specification(
            ip=vim.host.IpConfig(dhcp=False, ipAddress=ip_address, subnetMask=netmask),
            mtu=mtu,
            distributedVirtualPort=vim.dvs.PortConnection(switchUuid=switch.uuid, portgroupKey=portgroup.key),
        )
        return host.configManager.networkSystem.AddVirtualNic(portgroup="", nic=nic_spec)
