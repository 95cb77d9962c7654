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

"""NSX Manager REST 客户端。

只覆盖部署流程需要的接口：认证校验、注册 vCenter（vcconfig）
以及注册 SSO 查找服务（ssoconfig）。
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, Optional

import httpx

from labvoyager.common.errors import ExternalOperationError

logger = logging.getLogger(__name__)

GLOBAL_INFO_PATH = "/api/1.0/appliance-management/global/info"
VCCONFIG_PATH = "/api/2.0/services/vcconfig"
SSOCONFIG_PATH = "/api/2.0/services/ssoconfig"


def _to_xml(root: str, fields: Dict[str, str]) -> str:
    element = ET.Element(root)
    for key, value in fields.items():
        ET.SubElement(element, key).text = value
    return ET.tostring(element, encoding="unicode")


class OverlayManagerClient:
    """基于 httpx 的同步客户端，使用 Basic 认证。"""

    def __init__(
        self,
        address: str,
        username: str,
        password: str,
        *,
        timeout: float = 30.0,
        verify: bool = False,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.address = address
        self._client = httpx.Client(
            base_url=f"https://{address}",
            auth=(username, password),
            timeout=timeout,
            verify=verify,
            transport=transport,
            headers={"Accept": "application/xml"},
        )

    @classmethod
    def connect(cls, address: str, username: str, password: str, **kwargs: Any) -> "OverlayManagerClient":
        client = cls(address, username, password, **kwargs)
        client.authenticate()
        return client

    def _request(self, method: str, path: str, *, body: Optional[str] = None) -> httpx.Response:
        headers = {"Content-Type": "application/xml"} if body is not None else None
        try:
            response = self._client.request(method, path, content=body, headers=headers)
        except httpx.HTTPError as exc:
            raise ExternalOperationError(f"NSX Manager 请求失败 {method} {path}: {exc}", target=self.address) from exc
        if response.status_code >= 400:
            raise ExternalOperationError(
                f"NSX Manager 返回 {response.status_code} {method} {path}: {response.text[:200]}",
                target=self.address,
            )
        return response

    def authenticate(self) -> None:
        self._request("GET", GLOBAL_INFO_PATH)
        logger.info("已通过 NSX Manager %s 认证", self.address)

    def register_management_domain(self, *, vc_address: str, username: str, password: str, thumbprint: str) -> None:
        body = _to_xml(
            "vcInfo",
            {
                "ipAddress": vc_address,
                "userName": username,
                "password": password,
                "certificateThumbprint": thumbprint,
                "assignRoleToUser": "true",
            },
        )
        self._request("PUT", VCCONFIG_PATH, body=body)
        logger.info("NSX Manager 已注册 vCenter %s", vc_address)

    def register_identity_authority(self, *, lookup_service_url: str, username: str, password: str, thumbprint: str) -> None:
        body = _to_xml(
            "ssoConfig",
            {
                "ssoLookupServiceUrl": lookup_service_url,
                "ssoAdminUsername": username,
                "ssoAdminUserpassword": password,
                "certificateThumbprint": thumbprint,
            },
        )
        self._request("POST", SSOCONFIG_PATH, body=body)
        logger.info("NSX Manager 已注册 SSO %s", lookup_service_url)

    def disconnect(self) -> None:
        self._client.close()
