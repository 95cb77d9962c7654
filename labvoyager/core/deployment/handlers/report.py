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

# 部署报告
from __future__ import annotations

from labvoyager.core.deployment.confirmation import build_run_report, render_run_report
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler


@stage_handler(Stage.report)
def run_report_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.report)
    report = build_run_report(ctx.timer, lab=ctx.lab, plan=ctx.plan)
    ctx.extra["run_report"] = report
    render_run_report(ctx.console, ctx.timer, report)
    stage_logger.info("部署总耗时 %s，vCenter 地址 %s", report["total"], report["appliance_url"])
