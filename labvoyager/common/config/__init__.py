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

"""运行配置加载：默认 YAML + LABVOYAGER_* 环境变量覆盖。"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml

from ..system_constants import DEFAULT_CONFIG_FILE

_TRUTHY = {"1", "true", "yes", "on"}

# 环境变量 -> (配置段, 键, 取值转换)；转换失败的值直接忽略
ENV_OVERRIDES: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    "LABVOYAGER_LOG_LEVEL": ("logging", "level", str.upper),
    "LABVOYAGER_RUN_LOG": ("logging", "run_log", str),
    "LABVOYAGER_REACHABILITY_TIMEOUT": ("bootstrap", "reachability_timeout", int),
    "LABVOYAGER_INSECURE": ("connection", "insecure", lambda raw: raw.lower() in _TRUTHY),
}


class Config(dict):
    """dict 子类，顶层键可以按属性读取。"""

    def __getattr__(self, item):  # noqa: D401
        try:
            return self[item]
        except KeyError as exc:
            raise AttributeError(item) from exc

    def section(self, name: str) -> Dict[str, Any]:
        """返回某个配置段的浅拷贝，缺失或类型不对时返回空字典。"""
        value = self.get(name)
        return dict(value) if isinstance(value, dict) else {}


def load_config(path: Optional[Path] = None) -> Config:
    cfg_path = Path(path) if path else DEFAULT_CONFIG_FILE
    raw: Dict[str, Any] = {}
    if cfg_path.exists():
        raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    return Config(_merge(raw, env_overrides()))


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Dict[str, Any]]:
    """从环境变量收集配置覆盖项。"""
    environ = os.environ if environ is None else environ
    result: Dict[str, Dict[str, Any]] = {}
    for env_key, (section, key, convert) in ENV_OVERRIDES.items():
        raw = (environ.get(env_key) or "").strip()
        if not raw:
            continue
        try:
            value = convert(raw)
        except ValueError:
            continue
        result.setdefault(section, {})[key] = value
    return result


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        merged[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) else value
    return merged
