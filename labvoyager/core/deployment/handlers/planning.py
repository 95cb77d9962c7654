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

# 探测、规划与确认：在任何变更之前完成
from __future__ import annotations

from labvoyager.common.dependency_checks import is_companion_module_available
from labvoyager.common.errors import OperatorAbortError
from labvoyager.core.deployment.confirmation import (
    build_plan_summary,
    console_confirmer,
    render_plan_summary,
)
from labvoyager.core.deployment.prober import probe_environment
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import DEFAULT_OVERLAY_MODULE, RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler
from labvoyager.core.deployment.topology_planner import plan_deployment


@stage_handler(Stage.probe)
def run_probe_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.probe)
    facts = probe_environment(ctx.infra, ctx.lab.target)
    ctx.facts = facts
    stage_logger.info(
        "控制面类型: %s，存储: %s (%s)，网络: %s (%s)",
        facts.control_plane_kind.value,
        facts.storage.name,
        facts.storage.kind.value,
        facts.network.name,
        facts.network.kind.value,
        progress_extra={"outer_hosts": len(facts.outer_hosts), "vsan": facts.storage.is_vsan},
    )


@stage_handler(Stage.plan)
def run_plan_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.plan)
    lab = ctx.lab

    companion_available = True
    if lab.overlay_requested:
        module_name = ctx.cfg("overlay").get("companion_module") or DEFAULT_OVERLAY_MODULE
        companion_available = is_companion_module_available(module_name)

    plan = plan_deployment(
        lab,
        ctx.facts,
        ctx.software_version,
        companion_available=companion_available,
        appliance_sizes=ctx.cfg("appliance_sizes") or None,
    )
    ctx.plan = plan
    for warning in plan.warnings:
        stage_logger.warning(warning)
    stage_logger.info(
        "规划完成: 拓扑=%s 键集合=%s 节点数=%d 补丁=%s NSX=%s",
        plan.topology.value,
        plan.schema.value,
        len(plan.nodes),
        plan.patch_nodes,
        plan.include_overlay_network,
    )


@stage_handler(Stage.confirm)
def run_confirm_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.confirm)
    summary = build_plan_summary(ctx.plan, ctx.lab, ctx.cfg("appliance_sizes"))
    ctx.extra["plan_summary"] = summary
    render_plan_summary(ctx.console, summary)

    confirmer = ctx.confirmer or console_confirmer(ctx.console)
    if not confirmer(summary):
        raise OperatorAbortError("操作员取消了部署")
    stage_logger.info("操作员已确认部署")
