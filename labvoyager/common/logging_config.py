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

"""日志初始化模块与运行日志。"""
from __future__ import annotations
import itertools
import logging
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from .system_constants import LOG_DIR

DEFAULT_LOG_FILE = LOG_DIR / "labvoyager.log"

RUN_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
RUN_LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

_run_log_ids = itertools.count(1)


def setup_logging(level: str = "INFO") -> None:
    """初始化日志配置。

    Args:
        level: 日志级别字符串。
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"

    # 使用 force 以覆盖之前的基础配置，确保日志级别能够被更新。
    logging.basicConfig(level=log_level, format=fmt, datefmt=datefmt, force=True)

    root = logging.getLogger()
    root.setLevel(log_level)

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        DEFAULT_LOG_FILE,
        maxBytes=2 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(fmt, datefmt))
    root.addHandler(file_handler)

    logging.getLogger(__name__).debug("日志系统初始化完成，文件: %s", DEFAULT_LOG_FILE)


class RunLog:
    """单次部署的追加式运行日志。

    构造时绑定日志文件路径，所有行以 ISO-8601 UTC 时间戳开头，
    引擎只写不读。阶段日志适配器以 :attr:`logger` 为基础记录器，
    因而每条阶段输出都会落到该文件中。
    """

    def __init__(self, path: Path | str, *, level: int = logging.INFO) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = logging.getLogger(f"labvoyager.run.{next(_run_log_ids)}")
        self.logger.setLevel(logging.DEBUG)

        formatter = logging.Formatter(RUN_LOG_FORMAT, RUN_LOG_DATEFMT)
        formatter.converter = time.gmtime
        self._handler = logging.FileHandler(self.path, mode="a", encoding="utf-8")
        self._handler.setLevel(level)
        self._handler.setFormatter(formatter)
        self.logger.addHandler(self._handler)

    def info(self, message: str, *args) -> None:
        self.logger.info(message, *args)

    def warning(self, message: str, *args) -> None:
        self.logger.warning(message, *args)

    def error(self, message: str, *args) -> None:
        self.logger.error(message, *args)

    def write_output(self, source: str, line: str) -> None:
        """记录外部进程的一行输出。"""

        self.logger.info("[%s] %s", source, line.rstrip())

    def close(self) -> None:
        self.logger.removeHandler(self._handler)
        self._handler.close()

    def __enter__(self) -> "RunLog":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
