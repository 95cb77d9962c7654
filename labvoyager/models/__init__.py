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

from .deployment_plan import (  # noqa: F401
    ClusterNode,
    ControlPlaneKind,
    DeploymentPlan,
    LocalDisk,
    NetworkTarget,
    NodeSizing,
    PhaseSelection,
    Placement,
    ProbedFacts,
    SchemaGeneration,
    SoftwareVersion,
    StorageKind,
    StorageResource,
    SwitchKind,
    Topology,
    VolumeInfo,
)
from .lab_models import LabInput, load_lab_input  # noqa: F401
