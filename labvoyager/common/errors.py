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

"""统一的错误类型。

所有阶段处理器只抛出 :class:`LabVoyagerError` 的子类，CLI 根据
``kind`` 映射退出码：配置/输入类错误为 1，运行期失败为 2，操作员取消为 3。
"""
from __future__ import annotations

import enum
from typing import Optional

from .system_constants import (
    EXIT_CONFIG_ERROR,
    EXIT_OPERATOR_ABORT,
    EXIT_RUNTIME_ERROR,
)


class ErrorKind(enum.Enum):
    configuration = "ConfigurationError"
    missing_dependency = "MissingDependency"
    resource_not_found = "ResourceNotFound"
    unsupported_media = "UnsupportedMedia"
    external_operation = "ExternalOperationFailure"
    operator_abort = "OperatorAbort"


_EXIT_CODES = {
    ErrorKind.configuration: EXIT_CONFIG_ERROR,
    ErrorKind.missing_dependency: EXIT_CONFIG_ERROR,
    ErrorKind.resource_not_found: EXIT_CONFIG_ERROR,
    ErrorKind.unsupported_media: EXIT_CONFIG_ERROR,
    ErrorKind.external_operation: EXIT_RUNTIME_ERROR,
    ErrorKind.operator_abort: EXIT_OPERATOR_ABORT,
}


class LabVoyagerError(RuntimeError):
    """带阶段与目标信息的基础异常。"""

    kind: ErrorKind = ErrorKind.external_operation

    def __init__(self, message: str, *, stage: Optional[str] = None, target: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.target = target

    @property
    def exit_code(self) -> int:
        return _EXIT_CODES[self.kind]

    def describe(self) -> str:
        parts = [f"[{self.kind.value}]"]
        if self.stage:
            parts.append(f"stage={self.stage}")
        if self.target:
            parts.append(f"target={self.target}")
        parts.append(self.message)
        return " ".join(parts)


class ConfigurationError(LabVoyagerError):
    """输入或配置不合法，在任何变更前被检测到。"""

    kind = ErrorKind.configuration


class MissingDependencyError(ConfigurationError):
    """请求的功能缺少必需的配套模块或文件。"""

    kind = ErrorKind.missing_dependency


class ResourceNotFoundError(LabVoyagerError):
    """外层环境中找不到指定名称的存储、网络或对象。"""

    kind = ErrorKind.resource_not_found


class UnsupportedMediaError(LabVoyagerError):
    """安装介质无法识别版本。"""

    kind = ErrorKind.unsupported_media


class ExternalOperationError(LabVoyagerError):
    """外部 API、任务或安装器执行失败。"""

    kind = ErrorKind.external_operation


class OperatorAbortError(LabVoyagerError):
    """操作员在确认环节拒绝继续。"""

    kind = ErrorKind.operator_abort
