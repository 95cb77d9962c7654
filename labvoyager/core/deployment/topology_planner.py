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

"""拓扑规划：把输入与探测结果合并为不可变的 :class:`DeploymentPlan`。

覆盖网络与自托管互斥；节点补丁需要补丁包版本与介质版本一致；
请求覆盖网络时会强制启用补丁，并在确认前统一检查其前置条件。
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Tuple

from labvoyager.common.errors import ConfigurationError, MissingDependencyError
from labvoyager.models.deployment_plan import (
    ClusterNode,
    ControlPlaneKind,
    DeploymentPlan,
    ProbedFacts,
    SoftwareVersion,
    Topology,
)
from labvoyager.models.lab_models import LabInput
from .config_schema import select_key_set
from .sizing import resolve_sizing

logger = logging.getLogger(__name__)

# ESXi650-201701001.zip -> 6.5.0
_BUNDLE_PATTERN = re.compile(r"ESXi(\d)(\d)(\d)", re.IGNORECASE)


def parse_bundle_version(path: Path) -> Optional[SoftwareVersion]:
    match = _BUNDLE_PATTERN.search(path.name)
    if match:
        return SoftwareVersion(*(int(part) for part in match.groups()))
    return SoftwareVersion.parse(path.name)


def select_bootstrap_node(nodes: Iterable[ClusterNode]) -> ClusterNode:
    return min(nodes, key=lambda node: node.name)


def missing_local_files(lab: LabInput) -> List[str]:
    candidates: List[Tuple[str, Optional[Path]]] = [
        ("嵌套 ESXi OVA", lab.cluster_nodes.image_path),
        ("vCenter 安装介质", lab.appliance.media_path),
        ("ESXi 补丁包", lab.cluster_nodes.patch_bundle_path),
        ("NSX Manager OVA", lab.overlay.image_path if lab.overlay else None),
    ]
    return [f"{label}: {path}" for label, path in candidates if path is not None and not Path(path).exists()]


def _overlay_eligible(lab: LabInput, facts: ProbedFacts, warnings: List[str]) -> bool:
    if not lab.overlay_requested:
        return False
    if lab.topology is Topology.self_hosted:
        warnings.append("自托管拓扑不支持部署 NSX，已忽略覆盖网络配置")
        return False
    if facts.control_plane_kind is ControlPlaneKind.hypervisor:
        logger.info("外层为独立 ESXi，跳过覆盖网络部署")
        return False
    return True


def _patch_eligible(
    lab: LabInput,
    version: SoftwareVersion,
    include_overlay: bool,
    warnings: List[str],
) -> bool:
    requested = lab.cluster_nodes.upgrade_nodes
    if include_overlay and not requested:
        warnings.append("部署 NSX 需要先为嵌套 ESXi 打补丁，已自动启用节点补丁")
        requested = True
    if not requested:
        return False

    bundle = lab.cluster_nodes.patch_bundle_path
    if bundle is None:
        if not include_overlay:
            warnings.append("未提供补丁包，跳过节点补丁")
        return False
    bundle_version = parse_bundle_version(bundle)
    if bundle_version is None or not bundle_version.same_release(version):
        if not include_overlay:
            warnings.append(f"补丁包 {bundle.name} 与介质版本 {version} 不匹配，跳过节点补丁")
        return False
    return True


def _check_overlay_preconditions(lab: LabInput, version: SoftwareVersion, *, companion_available: bool) -> None:
    missing: List[str] = []
    mismatched: List[str] = []
    if not companion_available:
        missing.append("未找到 NSX 配套自动化模块")
    bundle = lab.cluster_nodes.patch_bundle_path
    if bundle is None:
        missing.append("部署 NSX 需要提供 ESXi 补丁包")
    else:
        bundle_version = parse_bundle_version(bundle)
        if bundle_version is None or not bundle_version.same_release(version):
            mismatched.append(f"补丁包 {bundle.name} 与介质版本 {version} 不匹配")

    if missing:
        raise MissingDependencyError("; ".join(missing + mismatched))
    if mismatched:
        raise ConfigurationError("; ".join(mismatched), target=str(bundle))


def plan_deployment(
    lab: LabInput,
    facts: ProbedFacts,
    version: SoftwareVersion,
    *,
    companion_available: bool,
    appliance_sizes: Optional[Mapping[str, object]] = None,
) -> DeploymentPlan:
    missing = missing_local_files(lab)
    if missing:
        raise ConfigurationError("以下文件不存在: " + "; ".join(missing))
    if appliance_sizes and lab.appliance.deployment_size not in appliance_sizes:
        raise ConfigurationError(
            f"未知的 vCenter 部署规格 {lab.appliance.deployment_size}，可选: {', '.join(appliance_sizes)}",
        )

    warnings: List[str] = []
    sizing, sizing_warnings = resolve_sizing(lab.cluster_nodes.sizing.to_sizing(), lab.topology)
    warnings.extend(sizing_warnings)

    nodes = tuple(
        sorted(
            (ClusterNode(name=name, ip_address=str(ip), sizing=sizing) for name, ip in lab.cluster_nodes.nodes.items()),
            key=lambda node: node.name,
        )
    )

    include_overlay = _overlay_eligible(lab, facts, warnings)
    patch_nodes = _patch_eligible(lab, version, include_overlay, warnings)
    if include_overlay:
        _check_overlay_preconditions(lab, version, companion_available=companion_available)

    bootstrap = select_bootstrap_node(nodes) if lab.topology is Topology.self_hosted else None

    return DeploymentPlan(
        topology=lab.topology,
        control_plane_kind=facts.control_plane_kind,
        software_version=version,
        schema=select_key_set(version).generation,
        include_overlay_network=include_overlay,
        patch_nodes=patch_nodes,
        node_sizing=sizing,
        nodes=nodes,
        storage=facts.storage,
        network=facts.network,
        bootstrap_node=bootstrap,
        warnings=tuple(warnings),
    )
