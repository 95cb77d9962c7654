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

"""阶段与虚拟机部署耗时统计。"""
from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterator, List, Optional

PHASE = "phase"
VM = "vm"


@dataclass
class TimingRecord:
    label: str
    category: str
    elapsed: float
    started_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "category": self.category,
            "elapsed": round(self.elapsed, 3),
            "started_at": self.started_at.isoformat(),
        }


def format_duration(seconds: Optional[float]) -> str:
    """将秒数转换为人类可读格式。"""

    if seconds is None or seconds <= 0:
        return "0s"

    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    parts: List[str] = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if secs or not parts:
        parts.append(f"{secs}s")
    return " ".join(parts)


@dataclass
class RunTimer:
    """记录每个阶段和每台虚拟机的耗时。"""

    clock: Callable[[], float] = time.monotonic
    records: List[TimingRecord] = field(default_factory=list)
    started: Optional[float] = None

    def start(self) -> None:
        if self.started is None:
            self.started = self.clock()

    @contextmanager
    def measure(self, label: str, *, category: str = PHASE) -> Iterator[None]:
        self.start()
        begin = self.clock()
        started_at = datetime.now(timezone.utc)
        try:
            yield
        finally:
            self.records.append(TimingRecord(label, category, self.clock() - begin, started_at))

    def record(self, label: str, elapsed: float, *, category: str = VM) -> None:
        self.records.append(TimingRecord(label, category, elapsed, datetime.now(timezone.utc)))

    def by_category(self, category: str) -> List[TimingRecord]:
        return [record for record in self.records if record.category == category]

    def total(self) -> float:
        if self.started is None:
            return 0.0
        return self.clock() - self.started

    def summary(self) -> Dict[str, Any]:
        return {
            "phases": [record.to_dict() for record in self.by_category(PHASE)],
            "vms": [record.to_dict() for record in self.by_category(VM)],
            "total_seconds": round(self.total(), 3),
        }
