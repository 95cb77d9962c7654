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

"""vCenter 安装器配置文档的键集合。

6.5 之前的模板以 ``target.vcsa`` 为根，网络挂在 ``appliance`` 下，主机名
键为 ``network.hostname``；6.5 起以 ``new.vcsa`` 为根，网络挂在目标
（``esxi``/``vc``）下，主机名键为 ``network.system.name``。两种键集合
都从同一份 :class:`ApplianceFields` 生成，选择由版本表决定。
"""
from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from labvoyager.common.system_constants import SEED_NODE_DATASTORE, SEED_NODE_NETWORK, SEED_NODE_USERNAME
from labvoyager.models.deployment_plan import DeploymentPlan, SchemaGeneration, SoftwareVersion
from labvoyager.models.lab_models import LabInput

KeyPath = Tuple[str, ...]

_BASE_FLAGS = ("--no-esx-ssl-verify", "--accept-eula")


@dataclass(frozen=True)
class ApplianceFields:
    on_cluster_manager: bool
    target_host: str
    target_username: str
    target_password: str
    target_datacenter: Optional[str]
    target_cluster: Optional[str]
    deployment_network: str
    datastore: str
    deployment_option: str
    appliance_name: str
    thin_disk_mode: bool
    ip_address: str
    prefix: int
    gateway: str
    dns_server: str
    system_name: str
    root_password: str
    enable_ssh: bool
    sso_password: str
    sso_domain: str
    sso_site_name: str


def _common_keys(root: str, fields: ApplianceFields) -> Dict[KeyPath, Any]:
    return {
        (root, "appliance", "deployment.option"): fields.deployment_option,
        (root, "appliance", "name"): fields.appliance_name,
        (root, "appliance", "thin.disk.mode"): fields.thin_disk_mode,
        (root, "network", "ip.family"): "ipv4",
        (root, "network", "mode"): "static",
        (root, "network", "ip"): fields.ip_address,
        (root, "network", "prefix"): str(fields.prefix),
        (root, "network", "gateway"): fields.gateway,
        (root, "network", "dns.servers"): [fields.dns_server],
        (root, "os", "password"): fields.root_password,
        (root, "os", "ssh.enable"): fields.enable_ssh,
        (root, "sso", "password"): fields.sso_password,
        (root, "sso", "domain-name"): fields.sso_domain,
        (root, "sso", "site-name"): fields.sso_site_name,
    }


@dataclass(frozen=True)
class LegacySchema:
    generation: SchemaGeneration = SchemaGeneration.legacy
    root_key: str = "target.vcsa"
    installer_flags: Tuple[str, ...] = _BASE_FLAGS

    def field_map(self, fields: ApplianceFields) -> Dict[KeyPath, Any]:
        root = self.root_key
        section = "vc" if fields.on_cluster_manager else "esx"
        mapping = _common_keys(root, fields)
        mapping.update(
            {
                (root, section, "hostname"): fields.target_host,
                (root, section, "username"): fields.target_username,
                (root, section, "password"): fields.target_password,
                (root, section, "datastore"): fields.datastore,
                (root, "appliance", "deployment.network"): fields.deployment_network,
                (root, "network", "hostname"): fields.system_name,
            }
        )
        if fields.on_cluster_manager:
            mapping[(root, section, "datacenter")] = fields.target_datacenter
            mapping[(root, section, "target")] = fields.target_cluster
        return mapping


@dataclass(frozen=True)
class CurrentSchema:
    generation: SchemaGeneration = SchemaGeneration.current
    root_key: str = "new.vcsa"
    installer_flags: Tuple[str, ...] = _BASE_FLAGS + ("--acknowledge-ceip",)

    def field_map(self, fields: ApplianceFields) -> Dict[KeyPath, Any]:
        root = self.root_key
        section = "vc" if fields.on_cluster_manager else "esxi"
        mapping = _common_keys(root, fields)
        mapping.update(
            {
                (root, section, "hostname"): fields.target_host,
                (root, section, "username"): fields.target_username,
                (root, section, "password"): fields.target_password,
                (root, section, "datastore"): fields.datastore,
                (root, section, "deployment.network"): fields.deployment_network,
                (root, "network", "system.name"): fields.system_name,
            }
        )
        if fields.on_cluster_manager:
            mapping[(root, section, "datacenter")] = [fields.target_datacenter]
            mapping[(root, section, "target")] = [fields.target_cluster]
        return mapping


ApplianceSchema = Union[LegacySchema, CurrentSchema]

LEGACY = LegacySchema()
CURRENT = CurrentSchema()

# 按最低版本从高到低匹配
_KEY_SET_TABLE: Tuple[Tuple[SoftwareVersion, ApplianceSchema], ...] = (
    (SoftwareVersion(6, 5, 0), CURRENT),
    (SoftwareVersion(0, 0, 0), LEGACY),
)

_BY_GENERATION = {schema.generation: schema for _, schema in _KEY_SET_TABLE}


def select_key_set(version: SoftwareVersion) -> ApplianceSchema:
    for minimum, schema in _KEY_SET_TABLE:
        if version >= minimum:
            return schema
    return LEGACY


def schema_for(generation: SchemaGeneration) -> ApplianceSchema:
    return _BY_GENERATION[generation]


def render_document(template: Mapping[str, Any], schema: ApplianceSchema, fields: ApplianceFields) -> Dict[str, Any]:
    """在模板副本上写入各字段，返回新的配置文档。"""

    document = copy.deepcopy(dict(template))
    for path, value in schema.field_map(fields).items():
        node = document
        for key in path[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[path[-1]] = value
    return document


def build_appliance_fields(plan: DeploymentPlan, lab: LabInput, *, datastore_name: str) -> ApplianceFields:
    """由规划与输入得到安装器字段；自托管时目标改为引导节点。"""

    appliance = lab.appliance
    common = dict(
        deployment_option=appliance.deployment_size,
        appliance_name=appliance.display_name,
        thin_disk_mode=appliance.thin_disk_mode,
        ip_address=str(appliance.ip_address),
        prefix=appliance.prefix,
        gateway=str(lab.guest_network.gateway),
        dns_server=str(lab.guest_network.dns_servers[0]),
        system_name=appliance.hostname,
        root_password=appliance.root_password,
        enable_ssh=appliance.enable_ssh,
        sso_password=appliance.sso_password,
        sso_domain=appliance.sso_domain,
        sso_site_name=appliance.sso_site_name,
    )
    if plan.bootstrap_node is not None:
        return ApplianceFields(
            on_cluster_manager=False,
            target_host=plan.bootstrap_node.ip_address,
            target_username=SEED_NODE_USERNAME,
            target_password=lab.cluster_nodes.root_password,
            target_datacenter=None,
            target_cluster=None,
            deployment_network=SEED_NODE_NETWORK,
            datastore=SEED_NODE_DATASTORE,
            **common,
        )

    target = lab.target
    on_cluster_manager = plan.on_cluster_manager
    return ApplianceFields(
        on_cluster_manager=on_cluster_manager,
        target_host=target.address,
        target_username=target.username,
        target_password=target.password,
        target_datacenter=target.datacenter if on_cluster_manager else None,
        target_cluster=target.cluster if on_cluster_manager else None,
        deployment_network=plan.network.name,
        datastore=datastore_name,
        **common,
    )
