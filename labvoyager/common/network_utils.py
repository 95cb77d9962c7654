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

"""网络连通性、可达性等待与证书指纹工具。"""
from __future__ import annotations

import hashlib
import ipaddress
import logging
import math
import platform
import socket
import ssl
import subprocess
import time
from typing import Callable, List, Optional

from tenacity import RetryError, Retrying, retry_if_result, stop_after_attempt, stop_after_delay, wait_fixed

from .errors import ExternalOperationError
from .system_constants import DEFAULT_REACHABILITY_TIMEOUT, REACHABILITY_POLL_INTERVAL

logger = logging.getLogger(__name__)


def _build_ping_command(host: str, count: int, timeout: int) -> List[str]:
    system = platform.system().lower()
    if system == "windows":
        return ["ping", "-n", str(count), "-w", str(timeout * 1000), host]
    return ["ping", "-c", str(count), "-W", str(timeout), host]


def ping(host: str, count: int = 1, timeout: int = 1) -> bool:
    """执行 ICMP 探测，返回是否连通。"""

    try:
        command = _build_ping_command(host, count, timeout)
        result = subprocess.run(command, capture_output=True, text=True)
        return result.returncode == 0
    except OSError:
        return False


def check_port(host: str, port: int, timeout: float = 1.0) -> bool:
    """执行 TCP 端口握手检查。"""

    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_until_reachable(
    host: str,
    *,
    interval: float = REACHABILITY_POLL_INTERVAL,
    timeout: float = DEFAULT_REACHABILITY_TIMEOUT,
    probe: Optional[Callable[[str], bool]] = None,
    sleep: Callable[[float], None] = time.sleep,
    log: Optional[logging.Logger | logging.LoggerAdapter] = None,
) -> int:
    """按固定间隔探测主机，直到可达或超过 ``timeout`` 秒。

    返回成功前的探测次数；超时抛出 :class:`ExternalOperationError`。
    """

    check = probe or (lambda target: ping(target, count=1, timeout=2))
    active_logger = log or logger
    attempts = 0
    # 探测次数不超过 timeout / interval + 1，与实际耗时上限取先到者
    max_attempts = max(1, math.floor(timeout / interval) + 1) if interval > 0 else 1

    def _attempt() -> bool:
        nonlocal attempts
        attempts += 1
        reachable = bool(check(host))
        if not reachable:
            active_logger.info("节点 %s 暂不可达，%ss 后重试（第 %d 次）", host, interval, attempts)
        return reachable

    retryer = Retrying(
        retry=retry_if_result(lambda reachable: reachable is False),
        wait=wait_fixed(interval),
        stop=stop_after_delay(timeout) | stop_after_attempt(max_attempts),
        sleep=sleep,
    )
    try:
        retryer(_attempt)
    except RetryError as exc:
        raise ExternalOperationError(
            f"等待节点可达超时（{timeout}s，共探测 {attempts} 次）",
            target=host,
        ) from exc
    return attempts


def fetch_certificate_thumbprint(host: str, port: int = 443, timeout: float = 10.0) -> str:
    """读取服务端证书并返回 SHA-1 指纹（冒号分隔的大写十六进制）。"""

    pem = ssl.get_server_certificate((host, port), timeout=timeout)
    der = ssl.PEM_cert_to_DER_cert(pem)
    digest = hashlib.sha1(der).hexdigest().upper()
    return ":".join(digest[i:i + 2] for i in range(0, len(digest), 2))


def synthesize_host_address(subnet: str, host_ip: str) -> str:
    """用子网前三段与主机地址最后一段拼出新地址。"""

    network_octets = str(ipaddress.ip_network(subnet, strict=False).network_address).split(".")
    last_octet = str(ipaddress.IPv4Address(host_ip)).split(".")[-1]
    return ".".join(network_octets[:3] + [last_octet])
