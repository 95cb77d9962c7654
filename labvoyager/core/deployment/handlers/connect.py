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

# 会话管理：连接外层环境、切换到新 vCenter、断开连接
from __future__ import annotations

from labvoyager.core.deployment.prober import probe_software_version
from labvoyager.core.deployment.progress import stage_logger_for
from labvoyager.core.deployment.runtime_context import RunContext
from labvoyager.core.deployment.stage_manager import Stage, stage_handler


def _open_session(ctx: RunContext, address: str, username: str, password: str):
    conn_cfg = ctx.cfg("connection")
    return ctx.services.connect_infrastructure(
        address,
        username,
        password,
        port=int(conn_cfg.get("port", 443)),
        insecure=bool(conn_cfg.get("insecure", True)),
    )


def _close_session(ctx: RunContext) -> bool:
    if ctx.infra is None:
        return False
    try:
        ctx.infra.disconnect()
    finally:
        ctx.infra = None
    return True


@stage_handler(Stage.connect)
def run_connect_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.connect)
    lab = ctx.lab

    # 介质版本不依赖网络，先于连接读取
    ctx.software_version = probe_software_version(lab.appliance.media_path)
    stage_logger.info("vCenter 安装介质版本: %s", ctx.software_version)

    ctx.infra = _open_session(ctx, lab.target.address, lab.target.username, lab.target.password)
    ctx.extra["session_target"] = lab.target.address
    stage_logger.info("已连接外层环境 %s", lab.target.address)


@stage_handler(Stage.connect_new_management_domain)
def run_connect_new_management_domain_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.connect_new_management_domain)
    appliance = ctx.lab.appliance

    if _close_session(ctx):
        stage_logger.info("已关闭外层会话")
    address = str(appliance.ip_address)
    ctx.infra = _open_session(ctx, address, appliance.administrator, appliance.sso_password)
    ctx.extra["session_target"] = address
    stage_logger.info("已连接新 vCenter %s (%s)", appliance.hostname, address)


@stage_handler(Stage.disconnect)
def run_disconnect_stage(ctx: RunContext) -> None:
    stage_logger = stage_logger_for(ctx, Stage.disconnect)
    target = ctx.extra.pop("session_target", None)
    if _close_session(ctx):
        stage_logger.info("已断开 %s", target)
    else:
        stage_logger.debug("当前没有打开的会话")
