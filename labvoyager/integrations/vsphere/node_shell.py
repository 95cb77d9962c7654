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

"""通过 SSH 在嵌套 ESXi 节点上执行 esxcli。"""
from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import paramiko

from labvoyager.common.errors import ExternalOperationError
from labvoyager.models.deployment_plan import LocalDisk

logger = logging.getLogger(__name__)

SSH_KEEPALIVE_INTERVAL = 30


@dataclass
class CommandResult:
    exit_status: int
    stdout: str
    stderr: str


def parse_device_list(output: str) -> List[LocalDisk]:
    """解析 ``esxcli storage core device list`` 输出，返回本地非启动盘。

    每个设备块以顶格的设备名开头，属性行缩进，``Size`` 单位为 MB。
    """

    disks: List[LocalDisk] = []
    current: Optional[str] = None
    attrs: dict = {}

    def _flush() -> None:
        if current is None:
            return
        if attrs.get("Is Local", "true") != "true" or attrs.get("Is Boot Device", "false") == "true":
            return
        size_mb = attrs.get("Size")
        if not size_mb or not size_mb.isdigit() or int(size_mb) == 0:
            return
        disks.append(LocalDisk(name=current, size_gb=round(int(size_mb) / 1024)))

    for line in output.splitlines():
        if not line.strip():
            continue
        if not line[0].isspace():
            _flush()
            current = line.strip()
            attrs = {}
            continue
        key, _, value = line.strip().partition(":")
        attrs[key.strip()] = value.strip()
    _flush()
    return disks


class NodeShell:
    """单个节点的 SSH 会话，作为上下文管理器使用。"""

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 22,
        timeout: int = 30,
        log: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ) -> None:
        self.host = host
        self.username = username
        self.password = password
        self.port = port
        self.timeout = timeout
        self.log = log or logger
        self._client: Optional[paramiko.SSHClient] = None

    def open(self) -> "NodeShell":
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
        except (paramiko.SSHException, OSError) as exc:
            client.close()
            raise ExternalOperationError(f"SSH 连接失败: {exc}", target=self.host) from exc
        transport = client.get_transport()
        if transport is not None:
            transport.set_keepalive(SSH_KEEPALIVE_INTERVAL)
        self._client = client
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "NodeShell":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def run(self, command: str, *, check: bool = True) -> CommandResult:
        if self._client is None:
            raise ExternalOperationError("SSH 会话尚未建立", target=self.host)
        self.log.debug("[%s] $ %s", self.host, command)
        _, stdout, stderr = self._client.exec_command(command, timeout=None)
        exit_status = stdout.channel.recv_exit_status()
        result = CommandResult(
            exit_status=exit_status,
            stdout=stdout.read().decode("utf-8", "ignore"),
            stderr=stderr.read().decode("utf-8", "ignore"),
        )
        if check and exit_status != 0:
            detail = result.stderr.strip() or result.stdout.strip() or exit_status
            raise ExternalOperationError(f"命令执行失败 `{command}`: {detail}", target=self.host)
        return result

    def esxcli(self, *args: str) -> CommandResult:
        return self.run("esxcli " + " ".join(args))

    def upload(self, local_path: Path, remote_path: str) -> str:
        if self._client is None:
            raise ExternalOperationError("SSH 会话尚未建立", target=self.host)
        self.log.info("上传 %s 到 %s:%s", local_path, self.host, remote_path)
        sftp = self._client.open_sftp()
        try:
            sftp.put(str(local_path), remote_path)
        finally:
            sftp.close()
        return remote_path

    # ------------------------------------------------------------------
    # 补丁
    # ------------------------------------------------------------------
    def enter_maintenance_mode(self) -> None:
        self.esxcli("system", "maintenanceMode", "set", "--enable", "true")

    def exit_maintenance_mode(self) -> None:
        self.esxcli("system", "maintenanceMode", "set", "--enable", "false")

    def install_patch_bundle(self, remote_path: str) -> None:
        self.esxcli("software", "vib", "update", "-d", shlex.quote(remote_path))

    def reboot(self, reason: str) -> None:
        # 命令立即返回，节点随后异步重启
        self.esxcli("system", "shutdown", "reboot", "-r", shlex.quote(reason))

    # ------------------------------------------------------------------
    # 单节点 vSAN
    # ------------------------------------------------------------------
    def set_default_storage_policy(self, policy_class: str, policy: str) -> None:
        self.esxcli("vsan", "policy", "setdefault", "-c", policy_class, "-p", shlex.quote(policy))

    def create_storage_cluster(self) -> None:
        self.esxcli("vsan", "cluster", "new")

    def list_local_disks(self) -> List[LocalDisk]:
        return parse_device_list(self.esxcli("storage", "core", "device", "list").stdout)

    def tag_capacity_disk(self, device: str) -> None:
        self.esxcli("vsan", "storage", "tag", "add", "-d", device, "-t", "capacityFlash")

    def add_storage_group(self, cache_device: str, capacity_device: str) -> None:
        self.esxcli("vsan", "storage", "add", "-s", cache_device, "-d", capacity_device)
