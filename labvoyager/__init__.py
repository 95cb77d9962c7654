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

"""嵌套 vSphere 实验室自动化部署工具包。

提供：
- 外层环境探测（控制面类型、存储、网络、介质版本）
- 规格与拓扑规划
- 分阶段部署编排（嵌套 ESXi、vCenter 设备、可选 NSX 覆盖网络）
- CLI 接口
"""
from .application_version import __version__  # noqa: F401
