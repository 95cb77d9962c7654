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

"""全局常量与魔法字符串集中管理。"""
from pathlib import Path

# 日志与配置目录
PACKAGE_DIR = Path(__file__).resolve().parent
BASE_DIR = PACKAGE_DIR.parent
PROJECT_ROOT = BASE_DIR.parent
CONFIG_DIR = PACKAGE_DIR / "config"
LOG_DIR = PROJECT_ROOT / "logs"

DEFAULT_CONFIG_FILE = CONFIG_DIR / "default.yml"
DEFAULT_RUN_LOG_FILE = LOG_DIR / "labvoyager-run.log"

# 自托管拓扑的嵌套节点资源下限（单节点 vSAN 承载 vCenter 设备）
SELF_HOSTED_MIN_MEMORY_GB = 32
SELF_HOSTED_MIN_CACHE_DISK_GB = 16
SELF_HOSTED_MIN_CAPACITY_DISK_GB = 200

# 嵌套 ESXi OVA 自带的启动盘容量，仅用于资源汇总
NODE_BOOT_DISK_GB = 2
# NSX Manager 设备磁盘容量，仅用于资源汇总
OVERLAY_MANAGER_STORAGE_GB = 60

# 节点可达性等待（秒）
REACHABILITY_POLL_INTERVAL = 60
DEFAULT_REACHABILITY_TIMEOUT = 30 * 60

# 自托管模式下 vCenter 安装器的目标参数
SEED_NODE_USERNAME = "root"
SEED_NODE_NETWORK = "VM Network"
SEED_NODE_DATASTORE = "vsanDatastore"

# 外层 vSAN 兼容开关
VSAN_FAKE_SCSI_RESERVATIONS_KEY = "VSAN.FakeSCSIReservations"

# 嵌套节点磁盘顺序：1 为启动盘，2 为缓存盘，3 为容量盘
CACHE_DISK_INDEX = 2
CAPACITY_DISK_INDEX = 3

# CLI 退出码
EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RUNTIME_ERROR = 2
EXIT_OPERATOR_ABORT = 3
