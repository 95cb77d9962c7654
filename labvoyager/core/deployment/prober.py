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

"""外层环境探测。

控制面类型、存储与网络均采用“先尝试 A，找不到再尝试 B”的方式解析；
介质版本在建立任何连接之前从安装介质中读取。
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Optional

from labvoyager.common.errors import ConfigurationError, ResourceNotFoundError, UnsupportedMediaError
from labvoyager.models.deployment_plan import (
    ControlPlaneKind,
    NetworkTarget,
    ProbedFacts,
    SoftwareVersion,
    StorageResource,
)
from labvoyager.models.lab_models import TargetEndpoint

logger = logging.getLogger(__name__)

VERSION_FILE = Path("vcsa") / "version.txt"
README_FILE = Path("readme.txt")

_API_TYPES = {
    "VirtualCenter": ControlPlaneKind.cluster_manager,
    "HostAgent": ControlPlaneKind.hypervisor,
}

# VMware-vCenter-Server-Appliance-6.5.0.5100-5318154
_BUILD_PATTERN = re.compile(r"Appliance-(\d+)\.(\d+)\.(\d+)")
_README_PATTERN = re.compile(r"vCenter Server[^\d]*(\d+\.\d+(?:\.\d+)?)", re.IGNORECASE)


def probe_control_plane_kind(client: Any) -> ControlPlaneKind:
    api_type = client.api_type
    kind = _API_TYPES.get(api_type or "")
    if kind is not None:
        return kind
    if client.list_hosts():
        logger.warning("未识别的控制面类型 %r，按 ESXi 处理", api_type)
        return ControlPlaneKind.hypervisor
    raise ConfigurationError(f"无法识别控制面类型 {api_type!r} 且未发现任何主机", target=client.address)


def resolve_storage(client: Any, name: str) -> StorageResource:
    try:
        return client.get_volume_pool(name)
    except ResourceNotFoundError:
        logger.debug("%s 不是数据存储集群，按单个数据存储查找", name)
    try:
        return client.get_volume(name)
    except ResourceNotFoundError as exc:
        raise ResourceNotFoundError(f"存储 {name} 既不是数据存储集群也不是数据存储", target=name) from exc


def resolve_network(client: Any, name: str) -> NetworkTarget:
    try:
        return client.get_distributed_network(name)
    except ResourceNotFoundError:
        logger.debug("%s 不是分布式端口组，按标准端口组查找", name)
    try:
        return client.get_standalone_network(name)
    except ResourceNotFoundError as exc:
        raise ResourceNotFoundError(f"网络 {name} 既不是分布式端口组也不是标准端口组", target=name) from exc


def _read_text(path: Path) -> Optional[str]:
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8", errors="ignore")


def probe_software_version(media_root: Path) -> SoftwareVersion:
    """从安装介质读取 vCenter 版本。"""

    build = _read_text(media_root / VERSION_FILE)
    if build:
        match = _BUILD_PATTERN.search(build)
        version = SoftwareVersion(*map(int, match.groups())) if match else SoftwareVersion.parse(build)
        if version is not None:
            return version

    readme = _read_text(media_root / README_FILE)
    if readme:
        match = _README_PATTERN.search(readme)
        if match:
            version = SoftwareVersion.parse(match.group(1))
            if version is not None:
                return version

    raise UnsupportedMediaError(f"无法从安装介质识别 vCenter 版本: {media_root}", target=str(media_root))


def probe_environment(client: Any, target: TargetEndpoint) -> ProbedFacts:
    kind = probe_control_plane_kind(client)
    storage = resolve_storage(client, target.datastore)
    network = resolve_network(client, target.network)
    cluster_name = target.cluster if kind is ControlPlaneKind.cluster_manager else None
    return ProbedFacts(
        control_plane_kind=kind,
        storage=storage,
        network=network,
        placement=client.resolve_placement(cluster_name),
        outer_hosts=tuple(client.outer_hosts(cluster_name)),
    )
