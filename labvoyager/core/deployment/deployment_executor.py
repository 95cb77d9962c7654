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

"""Deployment execution helpers shared by CLI entry points."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from rich.console import Console

from labvoyager.common.config import Config, load_config
from labvoyager.common.dependency_checks import check_dependencies
from labvoyager.common.errors import LabVoyagerError
from labvoyager.common.logging_config import RunLog, setup_logging
from labvoyager.common.system_constants import DEFAULT_RUN_LOG_FILE
from labvoyager.core.deployment.config_schema import select_key_set
from labvoyager.core.deployment.prober import probe_software_version
from labvoyager.core.deployment.runtime_context import LabServices, RunContext
from labvoyager.core.deployment.sequencer import ProgressCallback, ProvisioningSequencer
from labvoyager.core.deployment.sizing import resolve_sizing
from labvoyager.core.deployment.stage_manager import StageInfo, list_stage_info
from labvoyager.core.deployment.topology_planner import missing_local_files
from labvoyager.models.deployment_plan import PhaseSelection, Topology
from labvoyager.models.lab_models import load_lab_input

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """User provided run options (mirrors CLI flags)."""

    assume_yes: bool = False
    skip: Sequence[str] = field(default_factory=tuple)
    debug: bool | None = None
    config_path: Path | None = None
    run_log_path: Path | None = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["skip"] = list(self.skip)
        data["config_path"] = str(self.config_path) if self.config_path else None
        data["run_log_path"] = str(self.run_log_path) if self.run_log_path else None
        return data


@dataclass
class RunResult:
    """Outcome of a deployment run."""

    completed_stages: List[str]
    started_at: datetime
    finished_at: datetime
    run_log: str
    summary: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "completed_stages": self.completed_stages,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "run_log": self.run_log,
            "summary": self.summary,
        }


def list_stage_infos() -> List[StageInfo]:
    """Return metadata for all stages in declaration order."""

    return list_stage_info()


def resolve_phase_selection(cfg: Config, options: RunOptions) -> PhaseSelection:
    """配置文件中的阶段开关叠加命令行 ``--skip`` 与 ``--yes``。"""

    phases = PhaseSelection.from_mapping(cfg.section("phases"))
    if options.skip:
        phases = phases.without(*options.skip)
    if options.assume_yes:
        phases = phases.without("confirm_deployment")
    return phases


def _resolve_log_level(cfg: Config, options: RunOptions) -> str:
    level = str(cfg.section("logging").get("level", "INFO")).upper()
    return "DEBUG" if options.debug else level


def _resolve_run_log_path(cfg: Config, options: RunOptions) -> Path:
    if options.run_log_path is not None:
        return Path(options.run_log_path)
    configured = cfg.section("logging").get("run_log")
    return Path(configured) if configured else DEFAULT_RUN_LOG_FILE


def execute_run(
    lab_path: Path,
    options: RunOptions | None = None,
    *,
    services: LabServices | None = None,
    confirmer: Optional[Callable[[Any], bool]] = None,
    console: Console | None = None,
    progress_callback: ProgressCallback | None = None,
) -> RunResult:
    """Execute the full provisioning workflow for one lab input file."""

    options = options or RunOptions()
    cfg = load_config(options.config_path)
    setup_logging(_resolve_log_level(cfg, options))

    lab = load_lab_input(Path(lab_path))
    phases = resolve_phase_selection(cfg, options)
    run_log_path = _resolve_run_log_path(cfg, options)
    logger.info("输入文件: %s", lab_path)
    logger.info("运行参数: %s", options.to_dict())
    logger.debug("阶段开关: %s", phases.to_dict())

    started = datetime.now(timezone.utc)
    with RunLog(run_log_path) as run_log:
        ctx = RunContext(
            lab=lab,
            config=cfg,
            run_log=run_log,
            services=services or LabServices.default(cfg),
            phases=phases,
            confirmer=confirmer,
            console=console or Console(),
        )
        run_log.info("开始部署，输入文件 %s", lab_path)
        try:
            completed = ProvisioningSequencer(ctx, progress_callback=progress_callback).run()
        except LabVoyagerError as exc:
            run_log.error("部署终止: %s", exc.describe())
            raise
        run_log.info("部署结束，完成阶段: %s", ", ".join(completed))

    return RunResult(
        completed_stages=completed,
        started_at=started,
        finished_at=datetime.now(timezone.utc),
        run_log=str(run_log_path),
        summary=dict(ctx.extra.get("run_report") or {}),
    )


def check_lab(lab_path: Path, *, config_path: Path | None = None) -> Dict[str, Any]:
    """离线检查：解析输入、读取介质版本、计算节点规格并检查依赖库，不连接任何环境。"""

    cfg = load_config(config_path)
    lab = load_lab_input(Path(lab_path))
    version = probe_software_version(lab.appliance.media_path)
    sizing, warnings = resolve_sizing(lab.cluster_nodes.sizing.to_sizing(), lab.topology)
    if lab.topology is Topology.self_hosted and lab.overlay_requested:
        warnings.append("自托管拓扑不支持部署 NSX，运行时将忽略覆盖网络配置")

    sizes = cfg.section("appliance_sizes")
    if sizes and lab.appliance.deployment_size not in sizes:
        warnings.append(f"未知的 vCenter 部署规格 {lab.appliance.deployment_size}")

    return {
        "topology": lab.topology.value,
        "software_version": str(version),
        "schema": select_key_set(version).generation.value,
        "node_sizing": asdict(sizing),
        "nodes": sorted(lab.cluster_nodes.nodes),
        "missing_files": missing_local_files(lab),
        "warnings": warnings,
        "dependencies": check_dependencies(optional=True),
    }
