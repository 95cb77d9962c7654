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

"""vSAN 磁盘组构建：逐台提交，统一等待。"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

from labvoyager.common.errors import ResourceNotFoundError
from labvoyager.integrations.vsphere.tasks import ProvisioningTask, join_tasks
from labvoyager.models.deployment_plan import LocalDisk, NodeSizing

logger = logging.getLogger(__name__)

Chooser = Callable[[Sequence[LocalDisk]], LocalDisk]


def select_disk_by_size(
    disks: Iterable[LocalDisk],
    size_gb: int,
    *,
    exclude: Iterable[str] = (),
    chooser: Chooser = random.choice,
    target: Optional[str] = None,
) -> LocalDisk:
    """在容量相同的候选盘中任选一块。"""

    excluded = set(exclude)
    candidates = [disk for disk in disks if disk.size_gb == size_gb and disk.name not in excluded]
    if not candidates:
        raise ResourceNotFoundError(f"找不到容量为 {size_gb}GB 的可用磁盘", target=target)
    return chooser(candidates)


@dataclass
class DiskGroupReport:
    submitted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class DiskGroupCoordinator:
    """为每台主机创建一个“缓存盘 + 容量盘”磁盘组。

    已存在磁盘映射的主机会被跳过，因此重复执行不会再提交任何任务。
    """

    def __init__(
        self,
        client: Any,
        *,
        chooser: Chooser = random.choice,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        log: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ) -> None:
        self.client = client
        self.chooser = chooser
        self.poll_interval = poll_interval
        self.sleep = sleep
        self.log = log or logger

    def build(self, hosts: Mapping[str, Any], sizing: NodeSizing) -> DiskGroupReport:
        report = DiskGroupReport()
        tasks: List[ProvisioningTask] = []
        for name in sorted(hosts):
            host = hosts[name]
            if self.client.host_has_disk_group(host):
                self.log.info("主机 %s 已存在磁盘组，跳过", name)
                report.skipped.append(name)
                continue
            disks = self.client.list_eligible_disks(host)
            cache = select_disk_by_size(disks, sizing.cache_disk_gb, chooser=self.chooser, target=name)
            capacity = select_disk_by_size(
                disks,
                sizing.capacity_disk_gb,
                exclude=[cache.name],
                chooser=self.chooser,
                target=name,
            )
            self.log.info("主机 %s 提交磁盘组: 缓存盘 %s，容量盘 %s", name, cache.name, capacity.name)
            tasks.append(self.client.create_disk_group_async(host, cache, capacity))
            report.submitted.append(name)

        join_tasks(tasks, poll_interval=self.poll_interval, sleep=self.sleep, log=self.log)
        return report
