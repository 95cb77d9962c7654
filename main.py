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

"""LabVoyager 交互入口：在同一进程中反复执行 CLI 子命令。"""
from __future__ import annotations

import os
import shlex
from typing import Callable, Dict, List


def _t(cn: str, en: str) -> str:
    return en if os.environ.get("LABVOYAGER_LANG", "").lower().startswith("en") else cn


def _read(prompt: str, *, on_eof: str = "") -> str:
    try:
        return input(prompt).strip()
    except EOFError:  # Ctrl+D
        return on_eof


def _invoke_cli(args: List[str]) -> int:
    """调用 typer 应用并返回退出码，不让 SystemExit 结束交互会话。"""

    from labvoyager.interfaces.cli.app import app as cli_app

    try:
        cli_app(prog_name="labvoyager", args=args)
    except SystemExit as exc:  # click 总以 SystemExit 结束
        code = exc.code if isinstance(exc.code, int) else 0
        if code:
            print(_t(f"命令以退出码 {code} 结束", f"Command exited with code {code}"))
        return code
    except Exception as exc:  # noqa: BLE001
        print(_t(f"执行命令失败: {exc}", f"Command failed: {exc}"))
        return 1
    return 0


def _cli_shell() -> None:
    print(_t("\n输入子命令，例如 run lab.yml --yes；help 查看帮助，exit 返回菜单。",
             "\nEnter a subcommand, e.g. run lab.yml --yes; help for usage, exit to go back."))
    while True:
        try:
            line = input("labvoyager> ").strip()
        except EOFError:
            break
        except KeyboardInterrupt:
            print()
            continue
        if line.lower() in {"exit", "quit", "q"}:
            break
        if not line:
            continue
        if line.lower() in {"help", "?"}:
            _invoke_cli(["--help"])
            continue
        try:
            args = shlex.split(line)
        except ValueError as exc:
            print(_t(f"无法解析命令: {exc}", f"Cannot parse command: {exc}"))
            continue
        _invoke_cli(args)


def _check_lab_file() -> None:
    path = _read(_t("实验室输入文件路径: ", "Lab file path: "))
    if path:
        _invoke_cli(["check", path])


def _list_stages() -> None:
    _invoke_cli(["stages-list"])


def main() -> None:
    actions: Dict[str, Callable[[], None]] = {
        "1": _cli_shell,
        "2": _check_lab_file,
        "3": _list_stages,
    }
    while True:
        print("\n=== LabVoyager ===")
        print("1) " + _t("命令行模式", "CLI shell"))
        print("2) " + _t("离线检查输入文件", "Check a lab file offline"))
        print("3) " + _t("列出部署阶段", "List stages"))
        print("0) " + _t("退出", "Exit"))
        choice = _read(_t("请选择: ", "Select: "), on_eof="0").lower()
        if choice in {"0", "q", "exit", "quit"}:
            print(_t("再见！", "Goodbye!"))
            return
        action = actions.get(choice)
        if action is None:
            print(_t("无效的选择，请重新输入。", "Invalid choice, please retry."))
            continue
        action()


if __name__ == "__main__":  # pragma: no cover
    main()
