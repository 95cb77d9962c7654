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

# 新 vCenter 上组建集群：数据中心、加主机、磁盘组、告警与维护模式
from __future__ import annotations

from typing import List

from labvoyager.common.system_constants import SEED_NODE_USERNAME
from labvoyager.core.deployment.disk_groups import DiskGroupCoordinator
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler
from labvoyager.integrations.vsphere.tasks import ProvisioningTask, join_tasks


def _poll_interval(ctx: RunContext) -> float:
    return float(ctx.cfg("tasks").get("poll_interval", 2))


@stage_handler(Stage.create_domain_and_cluster)
def run_create_domain_and_cluster_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.create_domain_and_cluster)
    settings = ctx.lab.new_domain
    datacenter = ctx.infra.create_datacenter(settings.datacenter_name)
    cluster = ctx.infra.create_cluster(datacenter, settings.cluster_name, vsan=True)
    ctx.new_domain.update({"datacenter": datacenter, "cluster": cluster})
    stage_logger.info("已创建数据中心 %s 与 vSAN 集群 %s", settings.datacenter_name, settings.cluster_name)


@stage_handler(Stage.admit_cluster_nodes)
def run_admit_cluster_nodes_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.admit_cluster_nodes)
    lab = ctx.lab
    nodes = ctx.plan.nodes
    cluster = ctx.new_domain["cluster"]

    tasks: List[ProvisioningTask] = []
    for node in nodes:
        address = node.name if lab.new_domain.add_hosts_by_name else node.ip_address
        thumbprint = ctx.services.fetch_thumbprint(address)
        stage_logger.info("提交添加主机 %s", address, progress_extra={"thumbprint": thumbprint})
        tasks.append(
            ctx.infra.add_host_to_cluster_async(
                cluster,
                address,
                SEED_NODE_USERNAME,
                lab.cluster_nodes.root_password,
                thumbprint,
            )
        )

    hosts = join_tasks(tasks, poll_interval=_poll_interval(ctx), sleep=ctx.services.sleep, log=stage_logger)
    for node, host in zip(nodes, hosts):
        ctx.admitted_hosts[node.name] = host
    stage_logger.info("已加入 %d 台主机", len(hosts))


@stage_handler(Stage.build_storage_disk_groups)
def run_build_storage_disk_groups_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.build_storage_disk_groups)
    coordinator = DiskGroupCoordinator(
        ctx.infra,
        poll_interval=_poll_interval(ctx),
        sleep=ctx.services.sleep,
        log=stage_logger,
    )
    report = coordinator.build(ctx.admitted_hosts, ctx.plan.node_sizing)
    ctx.extra["disk_groups"] = report
    stage_logger.info("磁盘组构建完成: 提交 %d 台，跳过 %d 台", len(report.submitted), len(report.skipped))


@stage_handler(Stage.clear_stale_alarms)
def run_clear_stale_alarms_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.clear_stale_alarms)
    cluster = ctx.new_domain["cluster"]
    cleared = 0
    for alarm_state in ctx.infra.triggered_alarms(cluster):
        try:
            ctx.infra.acknowledge_alarm(alarm_state)
            cleared += 1
        except Exception as exc:  # noqa: BLE001 - 单条告警失败不阻断
            stage_logger.warning("确认告警失败: %s", exc)
    stage_logger.info("已确认 %d 条告警", cleared)


@stage_handler(Stage.exit_maintenance_mode)
def run_exit_maintenance_mode_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.exit_maintenance_mode)
    tasks: List[ProvisioningTask] = []
    for name in sorted(ctx.admitted_hosts):
        task = ctx.infra.exit_maintenance_mode_async(ctx.admitted_hosts[name])
        if task is not None:
            tasks.append(task)
    join_tasks(tasks, poll_interval=_poll_interval(ctx), sleep=ctx.services.sleep, log=stage_logger)
    stage_logger.info("%d 台主机已退出维护模式", len(tasks))
