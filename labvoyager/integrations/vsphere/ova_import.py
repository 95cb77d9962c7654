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

"""通过 HttpNfcLease 将 OVA 导入 vSphere。"""
from __future__ import annotations

import logging
import tarfile
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional

import requests
from pyVmomi import vim  # type: ignore

from labvoyager.common.errors import ExternalOperationError
from labvoyager.models.deployment_plan import Placement

logger = logging.getLogger(__name__)

LEASE_POLL_INTERVAL = 1.0
LEASE_KEEPALIVE_INTERVAL = 30.0
UPLOAD_CHUNK_SIZE = 1024 * 1024


class OvaPackage:
    """OVA（tar 包）读取器。"""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._tar = tarfile.open(self.path)
        self.descriptor = self._read_descriptor()

    def _read_descriptor(self) -> str:
        for member in self._tar.getmembers():
            if member.name.endswith(".ovf"):
                handle = self._tar.extractfile(member)
                if handle is None:
                    break
                return handle.read().decode("utf-8")
        raise ExternalOperationError("OVA 中缺少 OVF 描述文件", target=str(self.path))

    def member(self, name: str) -> tarfile.TarInfo:
        return self._tar.getmember(name)

    def open_member(self, name: str):
        handle = self._tar.extractfile(self.member(name))
        if handle is None:
            raise ExternalOperationError(f"OVA 中缺少文件 {name}", target=str(self.path))
        return handle

    def close(self) -> None:
        self._tar.close()


class _SizedUpload:
    """已知长度的上传体，requests 据此只发送 Content-Length 而不做分块编码。"""

    def __init__(self, stream: Any, size: int) -> None:
        self._stream = stream
        self._size = size

    def __len__(self) -> int:
        return self._size

    def read(self, amount: int = UPLOAD_CHUNK_SIZE) -> bytes:
        return self._stream.read(amount)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.read(UPLOAD_CHUNK_SIZE)
            if not chunk:
                return
            yield chunk


class _LeaseKeepAlive(threading.Thread):
    """上传期间定期汇报进度，避免租约超时。"""

    def __init__(self, lease: Any) -> None:
        super().__init__(daemon=True)
        self.lease = lease
        self.progress = 0
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(LEASE_KEEPALIVE_INTERVAL):
            if self.lease.state != vim.HttpNfcLease.State.ready:
                return
            self.lease.HttpNfcLeaseProgress(self.progress)

    def stop(self) -> None:
        self._stop_event.set()


def _wait_lease_ready(lease: Any) -> None:
    while True:
        state = lease.state
        if state == vim.HttpNfcLease.State.ready:
            return
        if state == vim.HttpNfcLease.State.error:
            raise ExternalOperationError(f"导入租约失败: {lease.error.msg if lease.error else state}")
        time.sleep(LEASE_POLL_INTERVAL)


def _build_import_params(
    content: Any,
    descriptor: str,
    *,
    name: str,
    network: Any,
    properties: Mapping[str, str],
) -> Any:
    parsed = content.ovfManager.ParseDescriptor(descriptor, vim.OvfManager.ParseDescriptorParams())
    network_mapping = [
        vim.OvfManager.NetworkMapping(name=item.name, network=network)
        for item in (parsed.network or [])
    ]
    return vim.OvfManager.CreateImportSpecParams(
        entityName=name,
        diskProvisioning="thin",
        networkMapping=network_mapping,
        propertyMapping=[vim.KeyValue(key=key, value=str(value)) for key, value in properties.items()],
    )


def import_ova(
    content: Any,
    image_path: Path,
    *,
    name: str,
    placement: Placement,
    datastore: Any,
    network: Any,
    properties: Optional[Mapping[str, str]] = None,
    lease_host: str,
    verify: bool = False,
) -> Any:
    """导入 OVA 并返回新虚拟机对象（未开机）。"""

    package = OvaPackage(image_path)
    try:
        params = _build_import_params(content, package.descriptor, name=name, network=network, properties=properties or {})
        result = content.ovfManager.CreateImportSpec(package.descriptor, placement.resource_pool, datastore, params)
        if result.error:
            messages = "; ".join(error.msg for error in result.error)
            raise ExternalOperationError(f"生成导入规格失败: {messages}", target=name)

        lease = placement.resource_pool.ImportVApp(result.importSpec, placement.folder, placement.host)
        _wait_lease_ready(lease)

        file_items: Dict[str, Any] = {item.deviceId: item for item in result.fileItem or []}
        total = sum(package.member(item.path).size for item in file_items.values()) or 1
        uploaded = 0
        keepalive = _LeaseKeepAlive(lease)
        keepalive.start()
        try:
            for device_url in lease.info.deviceUrl:
                item = file_items.get(device_url.importKey)
                if item is None:
                    continue
                url = device_url.url.replace("*", lease_host)
                size = package.member(item.path).size
                logger.info("上传 %s -> %s (%d bytes)", item.path, name, size)
                with package.open_member(item.path) as stream:
                    response = requests.post(
                        url,
                        data=_SizedUpload(stream, size),
                        headers={"Content-Type": "application/x-vnd.vmware-streamVmdk"},
                        verify=verify,
                    )
                response.raise_for_status()
                uploaded += size
                keepalive.progress = int(uploaded * 100 / total)
        except (requests.RequestException, OSError) as exc:
            lease.HttpNfcLeaseAbort()
            raise ExternalOperationError(f"上传磁盘失败: {exc}", target=name) from exc
        finally:
            keepalive.stop()

        lease.HttpNfcLeaseProgress(100)
        lease.HttpNfcLeaseComplete()
        return lease.info.entity
    finally:
        package.close()

