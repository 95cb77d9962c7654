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

"""部署阶段定义与处理器注册。"""
from __future__ import annotations
import enum
import importlib
import logging
import pkgutil
from dataclasses import dataclass
from typing import Callable, Dict, List

from .runtime_context import RunContext

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    connect = "connect"
    probe = "probe"
    plan = "plan"
    confirm = "confirm"
    enable_storage_compat = "enable_storage_compat"
    deploy_cluster_nodes = "deploy_cluster_nodes"
    deploy_overlay_manager_vm = "deploy_overlay_manager_vm"
    patch_cluster_nodes = "patch_cluster_nodes"
    bootstrap_seed_node = "bootstrap_seed_node"
    deploy_management_appliance = "deploy_management_appliance"
    group_vms = "group_vms"
    connect_new_management_domain = "connect_new_management_domain"
    create_domain_and_cluster = "create_domain_and_cluster"
    admit_cluster_nodes = "admit_cluster_nodes"
    setup_overlay_fabric = "setup_overlay_fabric"
    build_storage_disk_groups = "build_storage_disk_groups"
    clear_stale_alarms = "clear_stale_alarms"
    exit_maintenance_mode = "exit_maintenance_mode"
    restore_default_storage_policy = "restore_default_storage_policy"
    register_overlay_manager = "register_overlay_manager"
    disconnect = "disconnect"
    report = "report"


Handler = Callable[[RunContext], None]

_STAGE_HANDLERS: Dict[Stage, Handler] = {}


@dataclass(frozen=True)
class StageInfo:
    name: str
    label: str
    description: str
    group: str | None = None
    order: int = 0


# (阶段, 显示名, 分组, 说明)，按 Stage 枚举顺序排列
_STAGE_TABLE = (
    (Stage.connect, "连接外层环境", "前置准备", "读取安装介质版本并建立唯一的控制面会话。"),
    (Stage.probe, "环境探测", "前置准备", "识别控制面类型，解析目标存储与网络，收集外层主机。"),
    (Stage.plan, "部署规划", "前置准备", "计算节点规格、引导节点、安装器键集合并检查前置条件。"),
    (Stage.confirm, "操作确认", "前置准备", "展示规划摘要与资源需求，等待操作员确认。"),
    (Stage.enable_storage_compat, "外层 vSAN 兼容", "嵌套节点", "外层存储为 vSAN 时，在所有外层主机上开启 FakeSCSIReservations。"),
    (Stage.deploy_cluster_nodes, "部署嵌套 ESXi", "嵌套节点", "按名称顺序导入节点 OVA，写入客户机属性、规格与磁盘后开机。"),
    (Stage.deploy_overlay_manager_vm, "部署 NSX Manager", "嵌套节点", "导入 NSX Manager OVA 并开机。"),
    (Stage.patch_cluster_nodes, "节点补丁", "嵌套节点", "逐台进入维护模式、上传补丁包、升级并重启。"),
    (Stage.bootstrap_seed_node, "引导节点初始化", "管理平面", "在引导节点上创建单节点 vSAN，用于承载 vCenter。"),
    (Stage.deploy_management_appliance, "部署 vCenter", "管理平面", "生成安装器配置文档并执行 vcsa-deploy。"),
    (Stage.group_vms, "归组虚拟机", "管理平面", "创建 vApp 并移入本次部署的虚拟机。"),
    (Stage.connect_new_management_domain, "切换到新 vCenter", "管理平面", "关闭外层会话，连接新部署的 vCenter。"),
    (Stage.create_domain_and_cluster, "创建数据中心与集群", "集群组建", "创建数据中心与启用 vSAN 的集群。"),
    (Stage.admit_cluster_nodes, "添加主机", "集群组建", "获取证书指纹后并发提交加主机任务并统一等待。"),
    (Stage.setup_overlay_fabric, "覆盖网络底座", "集群组建", "创建分布式交换机与端口组，为每台主机添加 VTEP 接口。"),
    (Stage.build_storage_disk_groups, "构建磁盘组", "集群组建", "为每台主机提交磁盘组任务并统一等待。"),
    (Stage.clear_stale_alarms, "清理告警", "收尾", "确认集群上已触发的告警。"),
    (Stage.exit_maintenance_mode, "退出维护模式", "收尾", "所有已加入主机退出维护模式。"),
    (Stage.restore_default_storage_policy, "恢复默认存储策略", "收尾", "引导节点的默认 vSAN 策略恢复为容忍一次故障。"),
    (Stage.register_overlay_manager, "注册 NSX Manager", "收尾", "将 NSX Manager 注册到新 vCenter 与 SSO。"),
    (Stage.disconnect, "断开连接", "收尾", "关闭当前打开的控制面会话。"),
    (Stage.report, "部署报告", "收尾", "输出阶段耗时、虚拟机耗时、总耗时与 vCenter 地址。"),
)

_STAGE_METADATA: Dict[Stage, StageInfo] = {
    stage: StageInfo(name=stage.value, label=label, description=description, group=group, order=order)
    for order, (stage, label, group, description) in enumerate(_STAGE_TABLE, start=1)
}


def get_stage_info(stage: Stage) -> StageInfo:
    return _STAGE_METADATA[stage]


def list_stage_info() -> List[StageInfo]:
    return [get_stage_info(stage) for stage in Stage]


def stage_handler(stage: Stage):  # decorator
    def wrapper(func: Handler):
        _STAGE_HANDLERS[stage] = func
        return func
    return wrapper


def load_stage_handlers() -> Dict[Stage, Handler]:
    """导入 handlers 包下所有模块以完成注册（只执行一次）。"""

    if not _STAGE_HANDLERS:
        package = __name__.rsplit('.', 1)[0] + '.handlers'
        pkg = importlib.import_module(package)
        for module in pkgutil.walk_packages(pkg.__path__, pkg.__name__ + "."):
            importlib.import_module(module.name)
        logger.debug("已注册阶段处理器: %s", [stage.value for stage in _STAGE_HANDLERS])
    return dict(_STAGE_HANDLERS)
