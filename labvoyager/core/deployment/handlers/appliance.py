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

# vCenter 设备部署与 vApp 归组
from __future__ import annotations

from typing import Any, List

from labvoyager.common.timing import VM
from labvoyager.core.deployment.config_schema import build_appliance_fields, render_document, schema_for
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler


@stage_handler(Stage.deploy_management_appliance)
def run_deploy_management_appliance_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.deploy_management_appliance)
    plan = ctx.plan
    appliance = ctx.lab.appliance

    # 存储池时安装器只接受具体数据存储，取剩余空间最大的成员
    volume = plan.storage.select_volume_with_most_free_space()
    fields = build_appliance_fields(plan, ctx.lab, datastore_name=volume.name)
    schema = schema_for(plan.schema)

    installer = ctx.services.create_installer(appliance.media_path, run_log=ctx.run_log)
    template = installer.load_template(on_cluster_manager=fields.on_cluster_manager)
    document = render_document(template, schema, fields)
    flags = [*schema.installer_flags, *ctx.cfg("installer").get("extra_flags", [])]

    stage_logger.info(
        "部署 vCenter %s 到 %s (%s)",
        appliance.display_name,
        fields.target_host,
        fields.datastore,
        progress_extra={"schema": schema.generation.value, "flags": flags},
    )
    with ctx.timer.measure(appliance.display_name, category=VM):
        installer.install(document, flags)
    stage_logger.info("vCenter 安装器执行完成")


def _lookup_vm(ctx: RunContext, name: str) -> Any:
    vm = ctx.deployed_vms.get(name)
    if vm is None:
        vm = ctx.infra.find_vm(name)
    return vm


@stage_handler(Stage.group_vms)
def run_group_vms_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.group_vms)
    plan = ctx.plan
    lab = ctx.lab

    names: List[str] = [node.name for node in plan.nodes]
    if not plan.is_self_hosted:
        names.append(lab.appliance.display_name)
    if plan.include_overlay_network and ctx.phases.deploy_overlay_manager:
        names.append(lab.overlay.display_name)

    vapp = ctx.infra.create_vapp(lab.new_domain.vapp_name, ctx.facts.placement)
    ctx.infra.move_into_vapp(vapp, [_lookup_vm(ctx, name) for name in names])
    stage_logger.info("已将 %d 台虚拟机移入 vApp %s", len(names), lab.new_domain.vapp_name, progress_extra={"vms": names})
