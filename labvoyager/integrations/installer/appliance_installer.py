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

"""vCenter Server Appliance 命令行安装器封装。

安装介质根目录下包含 ``vcsa-cli-installer``：模板位于
``templates/install``，可执行文件按平台位于 ``lin64``、``win32`` 或 ``mac``。
"""
from __future__ import annotations

import json
import logging
import os
import platform
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from labvoyager.common.errors import ConfigurationError, ExternalOperationError
from labvoyager.common.logging_config import RunLog

logger = logging.getLogger(__name__)

INSTALLER_DIR = "vcsa-cli-installer"
TEMPLATE_ON_CLUSTER_MANAGER = "embedded_vCSA_on_VC.json"
TEMPLATE_ON_HYPERVISOR = "embedded_vCSA_on_ESXi.json"

_PLATFORM_EXECUTABLES = {
    "linux": ("lin64", "vcsa-deploy"),
    "windows": ("win32", "vcsa-deploy.exe"),
    "darwin": ("mac", "vcsa-deploy"),
}


class ApplianceInstaller:
    """在本机运行 ``vcsa-deploy install``，输出逐行写入运行日志。"""

    def __init__(
        self,
        media_root: Path,
        *,
        run_log: Optional[RunLog] = None,
        popen: Callable[..., Any] = subprocess.Popen,
        system: Optional[str] = None,
    ) -> None:
        self.media_root = Path(media_root)
        self.run_log = run_log
        self._popen = popen
        self._system = (system or platform.system()).lower()

    @property
    def installer_root(self) -> Path:
        return self.media_root / INSTALLER_DIR

    def executable(self) -> Path:
        try:
            folder, name = _PLATFORM_EXECUTABLES[self._system]
        except KeyError as exc:
            raise ConfigurationError(f"不支持的平台: {self._system}") from exc
        return self.installer_root / folder / name

    def template_path(self, *, on_cluster_manager: bool) -> Path:
        name = TEMPLATE_ON_CLUSTER_MANAGER if on_cluster_manager else TEMPLATE_ON_HYPERVISOR
        return self.installer_root / "templates" / "install" / name

    def load_template(self, *, on_cluster_manager: bool) -> Dict[str, Any]:
        path = self.template_path(on_cluster_manager=on_cluster_manager)
        if not path.exists():
            raise ConfigurationError(f"安装模板不存在: {path}", target=str(path))
        with path.open("r", encoding="utf-8") as file:
            return json.load(file)

    def build_command(self, config_path: Path, flags: Sequence[str]) -> List[str]:
        return [str(self.executable()), "install", *flags, str(config_path)]

    def install(self, document: Dict[str, Any], flags: Sequence[str]) -> int:
        """写入临时配置并执行安装，无论成败都删除临时文件。"""

        fd, raw_path = tempfile.mkstemp(prefix="labvoyager-vcsa-", suffix=".json")
        config_path = Path(raw_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                json.dump(document, file, indent=2)
            command = self.build_command(config_path, flags)
            logger.info("执行 vCenter 安装器: %s", " ".join(command))
            process = self._popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
            for line in process.stdout:
                if self.run_log is not None:
                    self.run_log.write_output("vcsa-deploy", line)
            return_code = process.wait()
            if return_code != 0:
                raise ExternalOperationError(f"vCenter 安装器退出码 {return_code}", target=str(self.media_root))
            return return_code
        finally:
            config_path.unlink(missing_ok=True)
