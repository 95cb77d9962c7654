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

"""命令行接口。"""
from __future__ import annotations
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.markup import escape

from labvoyager.common.errors import LabVoyagerError
from labvoyager.common.logging_config import setup_logging
from labvoyager.common.system_constants import EXIT_RUNTIME_ERROR
from labvoyager.core.deployment.deployment_executor import (
    RunOptions,
    check_lab,
    execute_run,
    list_stage_infos,
)
from labvoyager.models.deployment_plan import PhaseSelection

app = typer.Typer(help="LabVoyager 嵌套 vSphere 实验室自动化部署 CLI")
console = Console()


def _split_skip(value: str | None) -> List[str]:
    tokens = [part.strip() for part in (value or "").split(",") if part.strip()]
    unknown = sorted(set(tokens) - set(PhaseSelection.flag_names()))
    if unknown:
        console.print(f"[red]未知阶段开关: {', '.join(unknown)}[/red]")
        console.print(f"可选: {', '.join(PhaseSelection.flag_names())}")
        raise typer.Exit(code=1)
    return tokens


def _fail(exc: LabVoyagerError) -> None:
    console.print(f"[red]执行失败: {escape(exc.describe())}[/red]")
    raise typer.Exit(code=exc.exit_code) from exc


@app.command()
def run(
    lab_file: Path = typer.Argument(..., help="实验室输入文件 (YAML/JSON)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="跳过部署前确认"),
    skip: str | None = typer.Option(None, help="逗号分隔的阶段开关，例如 patch_cluster_nodes,group_vms"),
    debug: bool | None = typer.Option(None, "--debug/--no-debug", help="调试模式：启用额外调试日志"),
    config: Path | None = typer.Option(None, help="配置文件路径，缺省使用内置 default.yml"),
    run_log: Path | None = typer.Option(None, help="运行日志路径，覆盖配置中的 logging.run_log"),
):
    """执行完整部署流程。"""
    opts = RunOptions(
        assume_yes=yes,
        skip=_split_skip(skip),
        debug=debug,
        config_path=config,
        run_log_path=run_log,
    )
    try:
        result = execute_run(lab_file, opts, console=console)
    except LabVoyagerError as exc:
        _fail(exc)
    except Exception as exc:  # pragma: no cover - surfaced to user as error message
        console.print(f"[red]执行失败: {escape(str(exc))}[/red]")
        raise typer.Exit(code=EXIT_RUNTIME_ERROR) from exc

    console.print_json(data={"status": "ok", **result.to_dict()})


@app.command()
def check(
    lab_file: Path = typer.Argument(..., help="实验室输入文件 (YAML/JSON)"),
    config: Path | None = typer.Option(None, help="配置文件路径"),
):
    """离线检查输入文件与安装介质，不连接任何环境。"""
    setup_logging()
    try:
        report = check_lab(lab_file, config_path=config)
    except LabVoyagerError as exc:
        _fail(exc)
    console.print_json(data=report)
    if report["missing_files"]:
        raise typer.Exit(code=1)


@app.command()
def stages_list():
    """列出所有阶段及说明。"""
    info = [
        {
            "name": meta.name,
            "label": meta.label,
            "description": meta.description,
            "group": meta.group,
            "order": meta.order,
        }
        for meta in list_stage_infos()
    ]
    console.print_json(data=info)


if __name__ == "__main__":  # pragma: no cover
    app()
