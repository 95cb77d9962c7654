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

"""异步任务句柄与批量等待。"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from labvoyager.common.errors import ExternalOperationError

logger = logging.getLogger(__name__)

_SUCCESS_STATES = {"success"}
_ERROR_STATES = {"error"}


@dataclass
class TaskStatus:
    done: bool
    result: Any = None
    error: Optional[str] = None


class ProvisioningTask:
    """已提交的异步操作，调用方只关心完成与否。"""

    def __init__(self, label: str) -> None:
        self.label = label

    def poll(self) -> TaskStatus:  # pragma: no cover - interface
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.label}>"


class VimTask(ProvisioningTask):
    """包装 pyVmomi 的 ``vim.Task``。"""

    def __init__(self, label: str, task: Any) -> None:
        super().__init__(label)
        self.task = task

    def poll(self) -> TaskStatus:
        info = self.task.info
        state = str(info.state)
        if state in _SUCCESS_STATES:
            return TaskStatus(done=True, result=info.result)
        if state in _ERROR_STATES:
            error = info.error
            message = getattr(error, "msg", None) or str(error)
            return TaskStatus(done=True, error=message)
        return TaskStatus(done=False)


def join_tasks(
    tasks: Sequence[ProvisioningTask],
    *,
    poll_interval: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    log: Optional[logging.Logger | logging.LoggerAdapter] = None,
) -> List[Any]:
    """等待全部任务结束，按提交顺序返回结果。

    任一任务失败时仍会等待其余任务结束，然后汇总抛出
    :class:`ExternalOperationError`。
    """

    active_logger = log or logger
    pending: List[Tuple[int, ProvisioningTask]] = list(enumerate(tasks))
    results: List[Any] = [None] * len(pending)
    failures: List[str] = []

    while pending:
        still_pending: List[Tuple[int, ProvisioningTask]] = []
        for index, task in pending:
            status = task.poll()
            if not status.done:
                still_pending.append((index, task))
                continue
            if status.error:
                active_logger.error("任务 %s 失败: %s", task.label, status.error)
                failures.append(f"{task.label}: {status.error}")
            else:
                active_logger.debug("任务 %s 完成", task.label)
                results[index] = status.result
        pending = still_pending
        if pending:
            sleep(poll_interval)

    if failures:
        raise ExternalOperationError("; ".join(failures))
    return results


def wait_for_task(task: ProvisioningTask, **kwargs: Any) -> Any:
    """阻塞等待单个任务并返回结果。"""

    return join_tasks([task], **kwargs)[0]
