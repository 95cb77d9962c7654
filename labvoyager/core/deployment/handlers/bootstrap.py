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

# 自托管拓扑：在引导节点上建单节点 vSAN，部署完成后恢复默认策略
from __future__ import annotations

from labvoyager.core.deployment.disk_groups import select_disk_by_size
from labvoyager.core.deployment.node_access import node_shell, wait_for_node
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler

POLICY_CLASSES = ("cluster", "vdisk", "vmnamespace", "vmswap", "vmem")
RELAXED_POLICY = '(("hostFailuresToTolerate" i0) ("forceProvisioning" i1))'
DEFAULT_POLICY = '(("hostFailuresToTolerate" i1))'


@stage_handler(Stage.bootstrap_seed_node)
def run_bootstrap_seed_node_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.bootstrap_seed_node)
    node = ctx.plan.bootstrap_node
    sizing = ctx.plan.node_sizing

    wait_for_node(ctx, node, stage_logger)
    with node_shell(ctx, node, stage_logger) as shell:
        # 补丁重启后节点仍处于维护模式
        if Stage.patch_cluster_nodes.value in ctx.completed_stages:
            shell.exit_maintenance_mode()
            stage_logger.info("引导节点 %s 已退出维护模式", node.name)
        for policy_class in POLICY_CLASSES:
            shell.set_default_storage_policy(policy_class, RELAXED_POLICY)
        shell.create_storage_cluster()

        disks = shell.list_local_disks()
        cache = select_disk_by_size(disks, sizing.cache_disk_gb, target=node.name)
        capacity = select_disk_by_size(disks, sizing.capacity_disk_gb, exclude=[cache.name], target=node.name)
        shell.tag_capacity_disk(capacity.name)
        shell.add_storage_group(cache.name, capacity.name)

    stage_logger.info(
        "引导节点 %s 单节点 vSAN 已就绪",
        node.name,
        progress_extra={"cache": cache.name, "capacity": capacity.name},
    )


@stage_handler(Stage.restore_default_storage_policy)
def run_restore_default_storage_policy_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.restore_default_storage_policy)
    node = ctx.plan.bootstrap_node
    with node_shell(ctx, node, stage_logger) as shell:
        for policy_class in POLICY_CLASSES:
            shell.set_default_storage_policy(policy_class, DEFAULT_POLICY)
    stage_logger.info("引导节点 %s 默认存储策略已恢复", node.name)
