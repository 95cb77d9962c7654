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

"""部署规划相关的不可变数据结构。

探测阶段产出 :class:`ProbedFacts`，规划阶段将其与输入合并为
:class:`DeploymentPlan`；规划对象在整个运行过程中只读。
"""
from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional, Tuple

from labvoyager.common.errors import ConfigurationError


class Topology(str, enum.Enum):
    standard = "standard"
    self_hosted = "self_hosted"


class ControlPlaneKind(enum.Enum):
    hypervisor = "hypervisor"
    cluster_manager = "cluster_manager"


class StorageKind(enum.Enum):
    volume = "volume"
    pool = "pool"


class SwitchKind(enum.Enum):
    standalone = "standalone"
    distributed = "distributed"


class SchemaGeneration(enum.Enum):
    legacy = "legacy"
    current = "current"


_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)(?:\.(\d+))?")


@dataclass(frozen=True, order=True)
class SoftwareVersion:
    major: int
    minor: int
    patch: int = 0

    @classmethod
    def parse(cls, text: str) -> Optional["SoftwareVersion"]:
        """从文本中提取第一个 ``major.minor[.patch]`` 片段。"""

        match = _VERSION_PATTERN.search(text or "")
        if not match:
            return None
        major, minor, patch = match.groups()
        return cls(int(major), int(minor), int(patch or 0))

    def same_release(self, other: "SoftwareVersion") -> bool:
        return (self.major, self.minor) == (other.major, other.minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


@dataclass(frozen=True)
class NodeSizing:
    vcpu: int
    memory_gb: int
    cache_disk_gb: int
    capacity_disk_gb: int

    @property
    def storage_gb(self) -> int:
        return self.cache_disk_gb + self.capacity_disk_gb


@dataclass(frozen=True)
class ClusterNode:
    name: str
    ip_address: str
    sizing: NodeSizing

    @property
    def last_octet(self) -> str:
        return self.ip_address.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class VolumeInfo:
    """单个数据存储的名称、剩余空间与原始对象引用。"""

    name: str
    free_bytes: int
    ref: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class StorageResource:
    name: str
    kind: StorageKind
    volumes: Tuple[VolumeInfo, ...]
    ref: Any = field(default=None, compare=False, repr=False)
    is_vsan: bool = False

    def select_volume_with_most_free_space(self) -> VolumeInfo:
        """单卷直接返回自身；存储池返回剩余空间最大的成员卷。"""

        if not self.volumes:
            raise ConfigurationError(f"存储 {self.name} 不包含任何数据存储", target=self.name)
        if self.kind is StorageKind.volume:
            return self.volumes[0]
        return max(self.volumes, key=lambda volume: volume.free_bytes)


@dataclass(frozen=True)
class NetworkTarget:
    name: str
    kind: SwitchKind
    ref: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class LocalDisk:
    """节点上可用于 vSAN 的本地磁盘。"""

    name: str
    size_gb: int
    ref: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Placement:
    """外层环境中导入虚拟机的位置。"""

    host: Any
    resource_pool: Any
    folder: Any
    datacenter: Any = None


@dataclass(frozen=True)
class ProbedFacts:
    control_plane_kind: ControlPlaneKind
    storage: StorageResource
    network: NetworkTarget
    placement: Optional[Placement] = None
    outer_hosts: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class PhaseSelection:
    """各阶段开关，缺省全部启用。"""

    confirm_deployment: bool = True
    deploy_cluster_nodes: bool = True
    deploy_overlay_manager: bool = True
    patch_cluster_nodes: bool = True
    deploy_management_appliance: bool = True
    group_vms: bool = True
    setup_new_domain: bool = True
    admit_cluster_nodes: bool = True
    setup_overlay_fabric: bool = True
    build_disk_groups: bool = True
    clear_alarms: bool = True
    register_overlay_manager: bool = True

    @classmethod
    def flag_names(cls) -> Tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "PhaseSelection":
        values = dict(mapping or {})
        unknown = sorted(set(values) - set(cls.flag_names()))
        if unknown:
            raise ConfigurationError(f"未知阶段开关: {', '.join(unknown)}")
        return cls(**{key: bool(value) for key, value in values.items()})

    def without(self, *names: str) -> "PhaseSelection":
        return self.__class__.from_mapping({**self.to_dict(), **{name: False for name in names}})

    def to_dict(self) -> Dict[str, bool]:
        return {name: getattr(self, name) for name in self.flag_names()}


@dataclass(frozen=True)
class DeploymentPlan:
    topology: Topology
    control_plane_kind: ControlPlaneKind
    software_version: SoftwareVersion
    schema: SchemaGeneration
    include_overlay_network: bool
    patch_nodes: bool
    node_sizing: NodeSizing
    nodes: Tuple[ClusterNode, ...]
    storage: StorageResource
    network: NetworkTarget
    bootstrap_node: Optional[ClusterNode] = None
    warnings: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if (self.bootstrap_node is not None) != (self.topology is Topology.self_hosted):
            raise ConfigurationError("仅自托管拓扑需要且必须指定引导节点")
        if self.bootstrap_node is not None and self.bootstrap_node not in self.nodes:
            raise ConfigurationError(f"引导节点 {self.bootstrap_node.name} 不在节点列表中")

    @property
    def is_self_hosted(self) -> bool:
        return self.topology is Topology.self_hosted

    @property
    def on_cluster_manager(self) -> bool:
        return self.control_plane_kind is ControlPlaneKind.cluster_manager

    def node(self, name: str) -> ClusterNode:
        for item in self.nodes:
            if item.name == name:
                return item
        raise KeyError(name)
