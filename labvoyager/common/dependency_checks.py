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

"""依赖检查工具。"""
from __future__ import annotations
import importlib
import logging
from types import ModuleType
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

REQUIRED_PACKAGES = [
    "pyVmomi",
    "paramiko",
    "requests",
    "pydantic",
    "yaml",
]

OPTIONAL_PACKAGES = [
    "httpx",
]

# 覆盖网络配套模块须导出的客户端类
COMPANION_ENTRY_POINT = "OverlayManagerClient"


def check_dependencies(optional: bool = False) -> Dict[str, bool]:
    status: Dict[str, bool] = {}
    pkgs: List[str] = REQUIRED_PACKAGES.copy()
    if optional:
        pkgs += OPTIONAL_PACKAGES
    for pkg in pkgs:
        status[pkg] = load_module(pkg) is not None
    return status


def load_module(name: str) -> Optional[ModuleType]:
    """按名称导入模块，失败时返回 None。"""

    try:
        return importlib.import_module(name)
    except ImportError as exc:
        logger.debug("模块 %s 无法导入: %s", name, exc)
        return None


def is_companion_module_available(name: str) -> bool:
    """检测覆盖网络配套自动化模块是否可用。

    模块必须能导入（连同它依赖的第三方库，默认模块依赖 httpx），
    且导出带 ``connect`` 的 ``OverlayManagerClient``。
    """

    module = load_module(name) if name else None
    if module is None:
        return False
    client = getattr(module, COMPANION_ENTRY_POINT, None)
    if client is None or not callable(getattr(client, "connect", None)):
        logger.debug("模块 %s 未提供 %s.connect", name, COMPANION_ENTRY_POINT)
        return False
    return True
