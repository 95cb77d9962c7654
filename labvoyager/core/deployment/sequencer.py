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

"""按固定顺序推进部署阶段。

可选阶段由两类条件共同决定：规划结果（拓扑、控制面类型、是否部署
覆盖网络等）以及 :class:`PhaseSelection` 中的开关。确认环节被拒绝时
直接跳到断开连接，不再输出报告；其余失败同样会尽力关闭会话后上抛。
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from labvoyager.common.errors import ExternalOperationError, LabVoyagerError, OperatorAbortError
from labvoyager.common.timing import PHASE
from labvoyager.models.deployment_plan import DeploymentPlan
from .progress import stage_logger_for
from .runtime_context import RunContext
from .stage_manager import Handler, Stage, get_stage_info, load_stage_handlers

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Stage, RunContext], None]
PlanPredicate = Callable[[DeploymentPlan], bool]

_FINAL_STAGES = (Stage.disconnect, Stage.report)
_MAIN_STAGES: Tuple[Stage, ...] = tuple(stage for stage in Stage if stage not in _FINAL_STAGES)

# 阶段 -> 规划条件；未列出的阶段总是适用
_APPLICABILITY: Dict[Stage, PlanPredicate] = {
    Stage.enable_storage_compat: lambda plan: plan.storage.is_vsan,
    Stage.deploy_overlay_manager_vm: lambda plan: plan.include_overlay_network,
    Stage.patch_cluster_nodes: lambda plan: plan.patch_nodes,
    Stage.bootstrap_seed_node: lambda plan: plan.is_self_hosted,
    Stage.group_vms: lambda plan: plan.on_cluster_manager,
    Stage.setup_overlay_fabric: lambda plan: plan.include_overlay_network,
    Stage.restore_default_storage_policy: lambda plan: plan.is_self_hosted,
    Stage.register_overlay_manager: lambda plan: plan.include_overlay_network,
}

# 阶段 -> 需要同时开启的开关
_PHASE_FLAGS: Dict[Stage, Tuple[str, ...]] = {
    Stage.confirm: ("confirm_deployment",),
    Stage.enable_storage_compat: ("deploy_cluster_nodes",),
    Stage.deploy_cluster_nodes: ("deploy_cluster_nodes",),
    Stage.deploy_overlay_manager_vm: ("deploy_overlay_manager",),
    Stage.patch_cluster_nodes: ("patch_cluster_nodes",),
    Stage.bootstrap_seed_node: ("deploy_management_appliance",),
    Stage.deploy_management_appliance: ("deploy_management_appliance",),
    Stage.group_vms: ("group_vms",),
    Stage.connect_new_management_domain: ("setup_new_domain",),
    Stage.create_domain_and_cluster: ("setup_new_domain",),
    Stage.admit_cluster_nodes: ("setup_new_domain", "admit_cluster_nodes"),
    Stage.setup_overlay_fabric: ("setup_new_domain", "setup_overlay_fabric"),
    Stage.build_storage_disk_groups: ("setup_new_domain", "build_disk_groups"),
    Stage.clear_stale_alarms: ("setup_new_domain", "clear_alarms"),
    Stage.exit_maintenance_mode: ("setup_new_domain", "admit_cluster_nodes"),
    Stage.restore_default_storage_policy: ("setup_new_domain",),
    Stage.register_overlay_manager: ("register_overlay_manager",),
}


class ProvisioningSequencer:
    """驱动单次部署的状态机。"""

    def __init__(
        self,
        ctx: RunContext,
        *,
        handlers: Optional[Mapping[Stage, Handler]] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.ctx = ctx
        self.handlers: Dict[Stage, Handler] = dict(handlers) if handlers is not None else load_stage_handlers()
        self.progress_callback = progress_callback

    def is_applicable(self, stage: Stage) -> bool:
        phases = self.ctx.phases
        for flag in _PHASE_FLAGS.get(stage, ()):
            if not getattr(phases, flag):
                return False
        predicate = _APPLICABILITY.get(stage)
        if predicate is None:
            return True
        if self.ctx.plan is None:
            return False
        return predicate(self.ctx.plan)

    def run(self) -> List[str]:
        self.ctx.timer.start()
        try:
            for stage in _MAIN_STAGES:
                if not self.is_applicable(stage):
                    stage_logger_for(self.ctx, stage).info("跳过阶段 %s", stage.value)
                    continue
                self._run_stage(stage)
        except OperatorAbortError:
            self._run_stage(Stage.disconnect)
            raise
        except Exception:
            self._disconnect_quietly()
            raise

        for stage in _FINAL_STAGES:
            self._run_stage(stage)
        return list(self.ctx.completed_stages)

    def _run_stage(self, stage: Stage) -> None:
        handler = self.handlers.get(stage)
        if handler is None:
            logger.warning("阶段 %s 未注册处理器，已跳过", stage.value)
            return

        info = get_stage_info(stage)
        stage_log = stage_logger_for(self.ctx, stage)
        stage_log.info("开始: %s", info.label)
        if self.progress_callback:
            self.progress_callback("start", stage, self.ctx)

        try:
            if stage in _FINAL_STAGES:
                handler(self.ctx)
            else:
                with self.ctx.timer.measure(info.label, category=PHASE):
                    handler(self.ctx)
        except OperatorAbortError as exc:
            exc.stage = exc.stage or stage.value
            stage_log.warning("操作员取消部署: %s", exc.message)
            raise
        except LabVoyagerError as exc:
            exc.stage = exc.stage or stage.value
            stage_log.error("阶段失败: %s", exc.describe())
            raise
        except Exception as exc:  # noqa: BLE001
            stage_log.error("阶段出现未预期异常: %s", exc)
            raise ExternalOperationError(f"阶段 {stage.value} 执行失败: {exc}", stage=stage.value) from exc

        self.ctx.completed_stages.append(stage.value)
        if self.progress_callback:
            self.progress_callback("complete", stage, self.ctx)
        stage_log.info("完成: %s", info.label)

    def _disconnect_quietly(self) -> None:
        try:
            self._run_stage(Stage.disconnect)
        except Exception as exc:  # noqa: BLE001
            logger.warning("失败后断开连接时出错: %s", exc)
