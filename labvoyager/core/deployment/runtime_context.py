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

"""运行时上下文对象。"""
from __future__ import annotations
import importlib
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from pathlib import Path

from rich.console import Console

from labvoyager.common.config import Config
from labvoyager.common.logging_config import RunLog
from labvoyager.common.network_utils import fetch_certificate_thumbprint, ping
from labvoyager.common.timing import RunTimer
from labvoyager.models.deployment_plan import DeploymentPlan, PhaseSelection, ProbedFacts, SoftwareVersion
from labvoyager.models.lab_models import LabInput

DEFAULT_OVERLAY_MODULE = "labvoyager.integrations.overlay.manager_client"


@dataclass
class LabServices:
    """外部协作者的工厂集合，测试中以假实现替换。"""

    connect_infrastructure: Callable[..., Any]
    open_node_shell: Callable[..., Any]
    create_installer: Callable[..., Any]
    connect_overlay_manager: Callable[..., Any]
    reachability_probe: Callable[[str], bool]
    fetch_thumbprint: Callable[[str], str]
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def default(cls, config: Config | None = None) -> "LabServices":
        from labvoyager.integrations.installer.appliance_installer import ApplianceInstaller
        from labvoyager.integrations.vsphere.client import InfrastructureClient
        from labvoyager.integrations.vsphere.node_shell import NodeShell

        overlay_cfg = (config or Config()).section("overlay")
        module_name = overlay_cfg.get("companion_module") or DEFAULT_OVERLAY_MODULE

        def _connect_overlay(address: str, username: str, password: str) -> Any:
            module = importlib.import_module(module_name)
            return module.OverlayManagerClient.connect(address, username, password)

        return cls(
            connect_infrastructure=InfrastructureClient.connect,
            open_node_shell=NodeShell,
            create_installer=ApplianceInstaller,
            connect_overlay_manager=_connect_overlay,
            reachability_probe=lambda host: ping(host, count=1, timeout=2),
            fetch_thumbprint=fetch_certificate_thumbprint,
        )


@dataclass
class RunContext:
    lab: LabInput | None = None
    config: Config | None = None
    run_log: RunLog | None = None
    services: LabServices | None = None
    phases: PhaseSelection = field(default_factory=PhaseSelection)
    confirmer: Optional[Callable[[Any], bool]] = None
    console: Console = field(default_factory=Console)
    timer: RunTimer = field(default_factory=RunTimer)
    software_version: SoftwareVersion | None = None
    facts: ProbedFacts | None = None
    plan: DeploymentPlan | None = None
    infra: Any = None
    deployed_vms: Dict[str, Any] = field(default_factory=dict)
    admitted_hosts: Dict[str, Any] = field(default_factory=dict)
    new_domain: Dict[str, Any] = field(default_factory=dict)
    work_dir: Path = Path.cwd()
    extra: Dict[str, Any] = field(default_factory=dict)
    completed_stages: List[str] = field(default_factory=list)

    def cfg(self, section: str) -> Dict[str, Any]:
        return self.config.section(section) if self.config is not None else {}
