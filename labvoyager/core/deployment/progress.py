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

"""阶段进度记录。

每条阶段日志同时写入两处：``ctx.extra["progress_messages"]`` 中的进度条目，
以及基础记录器（通常是运行日志）。可在 ``ctx.extra["progress_log_sink"]``
放置回调，实时接收新条目。
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, MutableMapping, Optional

from .runtime_context import RunContext

PROGRESS_MESSAGES_KEY = "progress_messages"
PROGRESS_SINK_KEY = "progress_log_sink"

logger = logging.getLogger(__name__)


def _stage_name(stage: Any) -> Optional[str]:
    if stage is None:
        return None
    return str(getattr(stage, "value", stage))


def _level_name(level: Any) -> str:
    if isinstance(level, int):
        level = logging.getLevelName(level)
    return str(level or "info").lower()


def record_progress(
    ctx: Optional[RunContext],
    message: str,
    *,
    stage: Any = None,
    level: Any = "info",
    extra: Optional[Mapping[str, Any]] = None,
) -> None:
    """追加一条进度条目；``ctx`` 为空时忽略。"""

    if ctx is None:
        return
    entry: Dict[str, Any] = {
        "message": message,
        "stage": _stage_name(stage),
        "level": _level_name(level),
        "at": datetime.now(timezone.utc),
    }
    if extra:
        entry["extra"] = dict(extra)
    ctx.extra.setdefault(PROGRESS_MESSAGES_KEY, []).append(entry)

    sink = ctx.extra.get(PROGRESS_SINK_KEY)
    if callable(sink):
        sink(entry)


class ProgressLoggerAdapter(logging.LoggerAdapter):
    """阶段日志适配器，支持额外的 ``progress_extra`` 关键字参数。"""

    def __init__(self, logger: logging.Logger, ctx: Optional[RunContext], stage: Any, *, prefix: Optional[str] = None) -> None:
        self.stage = _stage_name(stage)
        super().__init__(logger, {"stage": self.stage} if self.stage else {})
        self.ctx = ctx
        self.prefix = prefix

    def log(self, level: int, msg: Any, *args: Any, progress_extra: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:  # type: ignore[override]
        text = str(msg) % args if args else str(msg)
        record_progress(self.ctx, text, stage=self.stage, level=level, extra=progress_extra)
        if not self.isEnabledFor(level):
            return

        if progress_extra:
            text = f"{text} | extra={dict(progress_extra)!r}"
            kwargs.setdefault("extra", {})["progress_extra"] = dict(progress_extra)
        if self.prefix:
            text = f"{self.prefix} {text}"
        text, kwargs = self.process(text, kwargs)
        self.logger.log(level, text, **kwargs)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def create_stage_progress_logger(
    ctx: Optional[RunContext],
    stage: Any,
    *,
    logger: Optional[logging.Logger] = None,
    prefix: Optional[str] = None,
) -> ProgressLoggerAdapter:
    return ProgressLoggerAdapter(logger or logging.getLogger(__name__), ctx, stage, prefix=prefix)


def stage_logger_for(ctx: RunContext, stage: Any) -> ProgressLoggerAdapter:
    """以运行日志为基础记录器创建阶段日志适配器，行首带 ``[阶段名]``。"""

    base = ctx.run_log.logger if ctx.run_log is not None else logger
    name = _stage_name(stage)
    return create_stage_progress_logger(ctx, name, logger=base, prefix=f"[{name}]")
