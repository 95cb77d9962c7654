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

"""嵌套节点规格解析。"""
from __future__ import annotations

from dataclasses import replace
from typing import List, Tuple

from labvoyager.common.system_constants import (
    SELF_HOSTED_MIN_CAPACITY_DISK_GB,
    SELF_HOSTED_MIN_CACHE_DISK_GB,
    SELF_HOSTED_MIN_MEMORY_GB,
)
from labvoyager.models.deployment_plan import NodeSizing, Topology

_SELF_HOSTED_FLOORS = (
    ("memory_gb", "内存", SELF_HOSTED_MIN_MEMORY_GB),
    ("cache_disk_gb", "缓存盘", SELF_HOSTED_MIN_CACHE_DISK_GB),
    ("capacity_disk_gb", "容量盘", SELF_HOSTED_MIN_CAPACITY_DISK_GB),
)


def resolve_sizing(requested: NodeSizing, topology: Topology) -> Tuple[NodeSizing, List[str]]:
    """返回生效规格与提示信息。

    自托管拓扑需要在单节点 vSAN 上承载 vCenter 设备，内存和两块数据盘
    低于下限时会被提升，每提升一个字段产生一条提示；vCPU 不做调整。
    """

    if topology is not Topology.self_hosted:
        return requested, []

    effective = requested
    warnings: List[str] = []
    for attr, label, floor in _SELF_HOSTED_FLOORS:
        current = getattr(effective, attr)
        if current < floor:
            warnings.append(f"自托管拓扑要求{label}至少 {floor}GB，已从 {current}GB 调整为 {floor}GB")
            effective = replace(effective, **{attr: floor})
    return effective, warnings
