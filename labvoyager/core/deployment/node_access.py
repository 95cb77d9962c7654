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

"""嵌套节点的可达性等待与 SSH 会话。"""
from __future__ import annotations

import logging
from typing import Any, Dict

from labvoyager.common.network_utils import wait_until_reachable
from labvoyager.common.system_constants import (
    DEFAULT_REACHABILITY_TIMEOUT,
    REACHABILITY_POLL_INTERVAL,
    SEED_NODE_USERNAME,
)
from labvoyager.models.deployment_plan import ClusterNode
from .runtime_context import RunContext


def reachability_settings(ctx: RunContext) -> Dict[str, float]:
    bootstrap_cfg = ctx.cfg("bootstrap")
    return {
        "interval": float(bootstrap_cfg.get("reachability_interval", REACHABILITY_POLL_INTERVAL)),
        "timeout": float(bootstrap_cfg.get("reachability_timeout", DEFAULT_REACHABILITY_TIMEOUT)),
    }


def wait_for_node(ctx: RunContext, node: ClusterNode, log: logging.Logger | logging.LoggerAdapter) -> int:
    settings = reachability_settings(ctx)
    log.info("等待节点 %s (%s) 可达", node.name, node.ip_address)
    return wait_until_reachable(
        node.ip_address,
        interval=settings["interval"],
        timeout=settings["timeout"],
        probe=ctx.services.reachability_probe,
        sleep=ctx.services.sleep,
        log=log,
    )


def node_shell(ctx: RunContext, node: ClusterNode, log: logging.Logger | logging.LoggerAdapter) -> Any:
    """返回尚未打开的节点会话，调用方以 ``with`` 使用。"""

    return ctx.services.open_node_shell(
        node.ip_address,
        SEED_NODE_USERNAME,
        ctx.lab.cluster_nodes.root_password,
        log=log,
    )
