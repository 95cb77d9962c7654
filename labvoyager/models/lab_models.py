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

"""实验室输入文件数据模型。"""
from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, IPvAnyAddress, IPvAnyNetwork, ValidationError, field_validator, model_validator

from labvoyager.common.errors import ConfigurationError
from .deployment_plan import NodeSizing, Topology


class TargetEndpoint(BaseModel):
    address: str = Field(..., description="外层 vCenter 或 ESXi 地址")
    username: str
    password: str
    datacenter: Optional[str] = Field(None, description="外层为 vCenter 时的数据中心")
    cluster: Optional[str] = Field(None, description="外层为 vCenter 时的目标集群")
    network: str = Field("VM Network", description="端口组名称，分布式或标准均可")
    datastore: str = Field(..., description="数据存储或数据存储集群名称")


class GuestNetwork(BaseModel):
    netmask: IPvAnyAddress
    gateway: IPvAnyAddress
    dns_servers: List[IPvAnyAddress] = Field(..., min_length=1)
    ntp_server: str = "pool.ntp.org"
    syslog_server: Optional[str] = None
    domain: str = "lab.local"


class NodeSizingInput(BaseModel):
    vcpu: int = Field(2, ge=1)
    memory_gb: int = Field(6, ge=1)
    cache_disk_gb: int = Field(4, ge=1)
    capacity_disk_gb: int = Field(8, ge=1)

    def to_sizing(self) -> NodeSizing:
        return NodeSizing(
            vcpu=self.vcpu,
            memory_gb=self.memory_gb,
            cache_disk_gb=self.cache_disk_gb,
            capacity_disk_gb=self.capacity_disk_gb,
        )


class ClusterNodesInput(BaseModel):
    image_path: Path = Field(..., description="嵌套 ESXi OVA 路径")
    nodes: Dict[str, IPvAnyAddress] = Field(..., description="节点名称到管理地址的映射")
    sizing: NodeSizingInput = Field(default_factory=NodeSizingInput)
    root_password: str
    enable_ssh: bool = True
    patch_bundle_path: Optional[Path] = Field(None, description="ESXi 离线补丁包路径")
    upgrade_nodes: bool = False

    @field_validator("nodes")
    @classmethod
    def _check_nodes(cls, value: Dict[str, IPvAnyAddress]) -> Dict[str, IPvAnyAddress]:
        if not value:
            raise ValueError("至少需要一个嵌套节点")
        addresses = [str(ip) for ip in value.values()]
        if len(set(addresses)) != len(addresses):
            raise ValueError("节点管理地址不能重复")
        return value


class ApplianceInput(BaseModel):
    media_path: Path = Field(..., description="vCenter 安装介质解压目录")
    deployment_size: str = "tiny"
    display_name: str = "vcsa-lab"
    ip_address: IPvAnyAddress
    hostname: str
    prefix: int = Field(24, ge=1, le=32)
    root_password: str
    sso_domain: str = "vsphere.local"
    sso_site_name: str = "lab-site"
    sso_password: str
    enable_ssh: bool = True
    thin_disk_mode: bool = True

    @property
    def administrator(self) -> str:
        return f"administrator@{self.sso_domain}"


class NewDomainInput(BaseModel):
    datacenter_name: str = "Datacenter"
    cluster_name: str = "Cluster"
    vapp_name: str = "Nested-Lab"
    add_hosts_by_name: bool = False


class OverlayFabricInput(BaseModel):
    switch_name: str = "VDS-Overlay"
    portgroup_name: str = "Overlay-Transport"
    uplink_nic: str = "vmnic1"
    subnet: IPvAnyNetwork = Field(..., description="覆盖网络 VTEP 子网")
    mtu: int = Field(1600, ge=1500, le=9000)


class OverlayManagerInput(BaseModel):
    image_path: Path = Field(..., description="NSX Manager OVA 路径")
    display_name: str = "nsx-manager"
    vcpu: int = Field(2, ge=1)
    memory_gb: int = Field(8, ge=1)
    ip_address: IPvAnyAddress
    hostname: str
    username: str = "admin"
    admin_password: str
    enable_password: str
    enable_ssh: bool = True
    fabric: OverlayFabricInput


class LabInput(BaseModel):
    topology: Topology = Topology.standard
    target: TargetEndpoint
    guest_network: GuestNetwork
    cluster_nodes: ClusterNodesInput
    appliance: ApplianceInput
    new_domain: NewDomainInput = Field(default_factory=NewDomainInput)
    overlay: Optional[OverlayManagerInput] = None
    source_file: Optional[str] = None

    @model_validator(mode="after")
    def _check_addresses(self) -> "LabInput":
        node_addresses = {str(ip) for ip in self.cluster_nodes.nodes.values()}
        if str(self.appliance.ip_address) in node_addresses:
            raise ValueError("vCenter 设备地址与嵌套节点地址冲突")
        if self.overlay and str(self.overlay.ip_address) in node_addresses | {str(self.appliance.ip_address)}:
            raise ValueError("NSX Manager 地址与其他地址冲突")
        return self

    @property
    def overlay_requested(self) -> bool:
        return self.overlay is not None


def load_lab_input(path: Path) -> LabInput:
    """读取 YAML/JSON 实验室输入文件并校验。"""

    if not path.exists():
        raise ConfigurationError(f"输入文件不存在: {path}", target=str(path))
    with path.open("r", encoding="utf-8") as file:
        data = yaml.safe_load(file) or {}
    if not isinstance(data, dict):
        raise ConfigurationError("输入文件顶层必须是映射", target=str(path))
    data.setdefault("source_file", str(path))
    try:
        return LabInput.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"输入文件校验失败: {exc}", target=str(path)) from exc
