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

"""部署前确认与部署后汇总。"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from rich.console import Console
from rich.table import Table

from labvoyager.common.system_constants import NODE_BOOT_DISK_GB, OVERLAY_MANAGER_STORAGE_GB
from labvoyager.common.timing import PHASE, VM, RunTimer, format_duration
from labvoyager.models.deployment_plan import DeploymentPlan, SchemaGeneration
from labvoyager.models.lab_models import LabInput

OUTER = "外层环境"
NESTED = "嵌套集群"

_AFFIRMATIVE = {"y", "yes"}


def mask_secret(value: Optional[str]) -> str:
    if not value:
        return ""
    if len(value) <= 4:
        return "***"
    return f"{value[:2]}***{value[-2:]}"


def is_affirmative(answer: Optional[str]) -> bool:
    return (answer or "").strip().lower() in _AFFIRMATIVE


@dataclass
class ResourceLine:
    phase: str
    vcpu: int
    memory_gb: int
    storage_gb: int
    location: str = OUTER


@dataclass
class PlanSummary:
    rows: List[Tuple[str, str]] = field(default_factory=list)
    nodes: List[Tuple[str, str]] = field(default_factory=list)
    resources: List[ResourceLine] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def outer_totals(self) -> ResourceLine:
        lines = [line for line in self.resources if line.location == OUTER]
        return ResourceLine(
            phase="合计",
            vcpu=sum(line.vcpu for line in lines),
            memory_gb=sum(line.memory_gb for line in lines),
            storage_gb=sum(line.storage_gb for line in lines),
        )


def build_plan_summary(
    plan: DeploymentPlan,
    lab: LabInput,
    appliance_sizes: Mapping[str, Mapping[str, Any]],
) -> PlanSummary:
    volume = plan.storage.select_volume_with_most_free_space()
    summary = PlanSummary(
        rows=[
            ("拓扑", plan.topology.value),
            ("外层控制面", plan.control_plane_kind.value),
            ("外层地址", lab.target.address),
            ("外层用户", lab.target.username),
            ("外层密码", mask_secret(lab.target.password)),
            ("vCenter 版本", str(plan.software_version)),
            ("安装器键集合", plan.schema.value),
            ("存储", f"{plan.storage.name} ({plan.storage.kind.value}) -> {volume.name}"),
            ("网络", f"{plan.network.name} ({plan.network.kind.value})"),
            ("节点规格", f"{plan.node_sizing.vcpu} vCPU / {plan.node_sizing.memory_gb}GB / "
                      f"缓存 {plan.node_sizing.cache_disk_gb}GB / 容量 {plan.node_sizing.capacity_disk_gb}GB"),
            ("vCenter 规格", lab.appliance.deployment_size),
            ("vCenter 地址", f"{lab.appliance.hostname} ({lab.appliance.ip_address})"),
            ("节点补丁", "是" if plan.patch_nodes else "否"),
            ("NSX 覆盖网络", "是" if plan.include_overlay_network else "否"),
            ("引导节点", plan.bootstrap_node.name if plan.bootstrap_node else "-"),
        ],
        nodes=[(node.name, node.ip_address) for node in plan.nodes],
        warnings=list(plan.warnings),
    )

    sizing = plan.node_sizing
    count = len(plan.nodes)
    summary.resources.append(
        ResourceLine(
            phase="嵌套 ESXi",
            vcpu=sizing.vcpu * count,
            memory_gb=sizing.memory_gb * count,
            storage_gb=(sizing.storage_gb + NODE_BOOT_DISK_GB) * count,
        )
    )
    size = appliance_sizes.get(lab.appliance.deployment_size, {})
    summary.resources.append(
        ResourceLine(
            phase="vCenter 设备",
            vcpu=int(size.get("vcpu", 0)),
            memory_gb=int(size.get("memory_gb", 0)),
            storage_gb=int(size.get("storage_gb", 0)),
            location=NESTED if plan.is_self_hosted else OUTER,
        )
    )
    if plan.include_overlay_network and lab.overlay is not None:
        summary.resources.append(
            ResourceLine(
                phase="NSX Manager",
                vcpu=lab.overlay.vcpu,
                memory_gb=lab.overlay.memory_gb,
                storage_gb=OVERLAY_MANAGER_STORAGE_GB,
            )
        )
    return summary


def render_plan_summary(console: Console, summary: PlanSummary) -> None:
    overview = Table(title="部署规划", show_header=False)
    overview.add_column("项目", style="cyan")
    overview.add_column("值")
    for key, value in summary.rows:
        overview.add_row(key, value)
    console.print(overview)

    nodes = Table(title="嵌套节点")
    nodes.add_column("名称", style="cyan")
    nodes.add_column("管理地址")
    for name, ip in summary.nodes:
        nodes.add_row(name, ip)
    console.print(nodes)

    resources = Table(title="资源需求")
    for column in ("阶段", "位置", "vCPU", "内存(GB)", "存储(GB)"):
        resources.add_column(column)
    for line in summary.resources + [summary.outer_totals()]:
        resources.add_row(line.phase, line.location, str(line.vcpu), str(line.memory_gb), str(line.storage_gb))
    console.print(resources)

    for warning in summary.warnings:
        console.print(f"[yellow]提示: {warning}[/yellow]")


def console_confirmer(console: Console) -> Callable[[PlanSummary], bool]:
    def _confirm(summary: PlanSummary) -> bool:
        answer = console.input("是否开始部署? [y/N]: ")
        return is_affirmative(answer)

    return _confirm


def appliance_url(lab: LabInput, schema: SchemaGeneration) -> str:
    path = "vsphere-client/" if schema is SchemaGeneration.legacy else "ui/"
    return f"https://{lab.appliance.hostname}/{path}"


def build_run_report(timer: RunTimer, *, lab: LabInput, plan: DeploymentPlan) -> Dict[str, Any]:
    report = timer.summary()
    report["appliance_url"] = appliance_url(lab, plan.schema)
    report["sso_user"] = lab.appliance.administrator
    report["total"] = format_duration(report["total_seconds"])
    return report


def render_run_report(console: Console, timer: RunTimer, report: Mapping[str, Any]) -> None:
    phases = Table(title="阶段耗时")
    phases.add_column("阶段", style="cyan")
    phases.add_column("耗时")
    for record in timer.by_category(PHASE):
        phases.add_row(record.label, format_duration(record.elapsed))
    console.print(phases)

    vms = timer.by_category(VM)
    if vms:
        vm_table = Table(title="虚拟机部署耗时")
        vm_table.add_column("虚拟机", style="cyan")
        vm_table.add_column("耗时")
        for record in vms:
            vm_table.add_row(record.label, format_duration(record.elapsed))
        console.print(vm_table)

    console.print(f"[green]部署完成，总耗时 {report['total']}[/green]")
    console.print(f"vCenter: {report['appliance_url']}  用户: {report['sso_user']}")
