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

# 嵌套 ESXi 节点：外层 vSAN 兼容、导入部署、补丁
from __future__ import annotations

import posixpath
from typing import Dict

from labvoyager.common.system_constants import (
    CACHE_DISK_INDEX,
    CAPACITY_DISK_INDEX,
    VSAN_FAKE_SCSI_RESERVATIONS_KEY,
)
from labvoyager.common.timing import VM
from labvoyager.core.deployment.node_access import node_shell, wait_for_node
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler
from labvoyager.models.deployment_plan import ClusterNode
from labvoyager.models.lab_models import LabInput


def node_guest_properties(node: ClusterNode, lab: LabInput) -> Dict[str, str]:
    """嵌套 ESXi OVA 识别的 guestinfo 属性；只传递第一个 DNS。"""

    network = lab.guest_network
    properties = {
        "guestinfo.hostname": node.name,
        "guestinfo.ipaddress": node.ip_address,
        "guestinfo.netmask": str(network.netmask),
        "guestinfo.gateway": str(network.gateway),
        "guestinfo.dns": str(network.dns_servers[0]),
        "guestinfo.domain": network.domain,
        "guestinfo.ntp": network.ntp_server,
        "guestinfo.password": lab.cluster_nodes.root_password,
        "guestinfo.ssh": "True" if lab.cluster_nodes.enable_ssh else "False",
        "guestinfo.createvmfs": "False",
    }
    if network.syslog_server:
        properties["guestinfo.syslog"] = network.syslog_server
    return properties


@stage_handler(Stage.enable_storage_compat)
def run_enable_storage_compat_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.enable_storage_compat)
    for host in ctx.facts.outer_hosts:
        name = ctx.infra.host_name(host)
        ctx.infra.set_host_advanced_option(host, VSAN_FAKE_SCSI_RESERVATIONS_KEY, 1)
        stage_logger.info("外层主机 %s 已设置 %s=1", name, VSAN_FAKE_SCSI_RESERVATIONS_KEY)


@stage_handler(Stage.deploy_cluster_nodes)
def run_deploy_cluster_nodes_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.deploy_cluster_nodes)
    plan = ctx.plan
    lab = ctx.lab
    infra = ctx.infra
    volume = plan.storage.select_volume_with_most_free_space()
    sizing = plan.node_sizing

    for node in plan.nodes:
        properties = node_guest_properties(node, lab)
        with ctx.timer.measure(node.name, category=VM):
            stage_logger.info("导入节点 %s 到 %s", node.name, volume.name)
            # 外层为 vCenter 时通过 OVF 属性注入，独立 ESXi 只能导入后写 extraConfig
            vm = infra.import_ova(
                lab.cluster_nodes.image_path,
                name=node.name,
                placement=ctx.facts.placement,
                datastore=volume.ref,
                network=plan.network.ref,
                properties=properties if plan.on_cluster_manager else None,
            )
            infra.reconfigure_vm(
                vm,
                vcpu=sizing.vcpu,
                memory_gb=sizing.memory_gb,
                disk_sizes_gb={
                    CACHE_DISK_INDEX: sizing.cache_disk_gb,
                    CAPACITY_DISK_INDEX: sizing.capacity_disk_gb,
                },
                extra_config=None if plan.on_cluster_manager else properties,
            )
            infra.power_on(vm)
        ctx.deployed_vms[node.name] = vm
        stage_logger.info("节点 %s 已开机", node.name, progress_extra={"ip": node.ip_address})


@stage_handler(Stage.patch_cluster_nodes)
def run_patch_cluster_nodes_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.patch_cluster_nodes)
    patch_cfg = ctx.cfg("patching")
    bundle = ctx.lab.cluster_nodes.patch_bundle_path
    remote_path = posixpath.join(patch_cfg.get("remote_dir", "/tmp"), bundle.name)
    reason = patch_cfg.get("reboot_reason", "LabVoyager patch")

    for node in ctx.plan.nodes:
        wait_for_node(ctx, node, stage_logger)
        with node_shell(ctx, node, stage_logger) as shell:
            shell.enter_maintenance_mode()
            shell.upload(bundle, remote_path)
            shell.install_patch_bundle(remote_path)
            shell.reboot(reason)
        stage_logger.info("节点 %s 补丁已安装，正在重启", node.name)
