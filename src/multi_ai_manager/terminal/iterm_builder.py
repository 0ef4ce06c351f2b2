"""iTerm2 会话构建器

生成一段 AppleScript，在一个新 Tab 内按布局规划分屏，一次 osascript 调用执行完毕。

AppleScript 的分屏返回新的 session 对象而不是稳定 ID，所以每个新区域
都存到一个脚本变量里（colN / colNPaneM），之后通过 tell 块引用：
- 第一列就是 current session，针对它的操作直接写在顶层
- 其它列的子分屏写在 tell colN ... end tell 中

iTerm2 总是把 pane 对半分，分屏百分比无法传递，这里只复用分屏顺序和区域结构。
"""

import logging
import shutil
import subprocess
from typing import Optional

from ..errors import ExternalToolMissing, LayoutBuildFailure
from ..layout import LayoutPlan
from ..models import Axis, Region, SessionHandle
from .adapter import Column, SessionBuilder, cd_command, launch_command

logger = logging.getLogger(__name__)

ROOT = "current session"
INDENT = "    "


def applescript_quote(text: str) -> str:
    """转为 AppleScript 字符串字面量"""
    escaped = (
        text.replace('\\', '\\\\')
        .replace('"', '\\"')
        .replace('\r\n', '\n')
        .replace('\n', '\\n')
        .replace('\r', '\\r')
        .replace('\t', '\\t')
    )
    return f'"{escaped}"'


def region_variable(region: Region) -> str:
    """区域对应的脚本变量名"""
    col, row = region
    if region == (0, 0):
        return ROOT
    if row == 0:
        return f"col{col + 1}"
    return f"col{col + 1}Pane{row + 1}"


class _ScriptWriter:
    """带缩进的脚本拼接"""

    def __init__(self, depth: int = 0):
        self.lines: list[str] = []
        self.depth = depth

    def add(self, line: str = "") -> None:
        self.lines.append(f"{INDENT * self.depth}{line}" if line else "")

    def scoped(self, address: str, body: list[str]) -> None:
        """在 address 作用域内执行 body（根 session 直接写在顶层）"""
        if address == ROOT:
            for line in body:
                self.add(line)
            return
        self.add(f"tell {address}")
        self.depth += 1
        for line in body:
            self.add(line)
        self.depth -= 1
        self.add("end tell")

    def text(self) -> str:
        return "\n".join(self.lines)


def render_script(
    plan: LayoutPlan,
    columns: list[Column],
    tab_title: str,
    initial_delay: float = 2,
    pane_delay: float = 1,
    prompts: Optional[dict[int, str]] = None,
    prompt_delay: float = 5,
) -> tuple[str, dict[Region, str]]:
    """生成 AppleScript

    Args:
        prompts: 列下标 -> 启动后写入该列主 pane 的文本
        prompt_delay: 所有命令写完后、写入 prompts 前的等待秒数

    Returns:
        (脚本文本, (列, 行) -> 变量名)
    """
    addresses: dict[Region, str] = {(0, 0): ROOT}
    body = _ScriptWriter(depth=3)

    body.add(f"-- {plan.column_count} 列 x {plan.rows_per_column} 行")
    for step in plan.steps:
        parent = addresses[step.parent_region]
        variable = region_variable(step.new_region)
        direction = "vertically" if step.axis is Axis.HORIZONTAL else "horizontally"
        body.scoped(parent, [f"set {variable} to (split {direction} with default profile)"])
        addresses[step.new_region] = variable

    body.add()
    body.add("-- 启动命令")
    for col, (tool, path) in enumerate(columns):
        for row in range(plan.rows_per_column):
            address = addresses[(col, row)]
            if row == 0:
                text = launch_command(path, tool.command)
                delay = initial_delay if col == 0 else pane_delay
            else:
                text = cd_command(path)
                delay = pane_delay
            body.add(f"-- {tool.name} ({col + 1}, {row + 1})")
            body.scoped(address, [f"delay {delay:g}", f"write text {applescript_quote(text)}"])

    if prompts:
        # 写入后再发一个空行提交
        body.add()
        body.add(f"delay {prompt_delay:g}")
        for col in sorted(prompts):
            tool, _ = columns[col]
            body.add(f"-- {tool.name} prompt")
            body.scoped(addresses[(col, 0)], [
                f"delay {pane_delay:g}",
                f"write text {applescript_quote(prompts[col])}",
                "delay 0.5",
                'write text ""',
            ])

    body.add()
    body.add(f"set name to {applescript_quote(tab_title)}")

    script = "\n".join([
        'tell application "iTerm"',
        f"{INDENT}tell current window",
        f"{INDENT * 2}create tab with default profile",
        f"{INDENT * 2}tell current session",
        body.text(),
        f"{INDENT * 2}end tell",
        f"{INDENT}end tell",
        "end tell",
    ])
    return script, addresses


class ItermSessionBuilder(SessionBuilder):
    """iTerm2 会话构建器

    Args:
        initial_delay: 第一个 pane 写入命令前的等待秒数
        pane_delay: 其它 pane 写入命令前的等待秒数
        executable: osascript 可执行文件
    """

    def __init__(self, initial_delay: float = 2, pane_delay: float = 1,
                 executable: str = "osascript"):
        self.initial_delay = initial_delay
        self.pane_delay = pane_delay
        self.executable = executable

    @property
    def name(self) -> str:
        return "iterm2"

    def is_available(self) -> tuple[bool, str]:
        if shutil.which(self.executable) is None:
            return False, "iTerm2 模式仅支持 macOS（未找到 osascript）"
        return True, "osascript 可用"

    def _run_script(self, script: str) -> subprocess.CompletedProcess:
        """执行 AppleScript"""
        cmd = [self.executable, '-e', script]
        try:
            return subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError:
            return subprocess.CompletedProcess(cmd, 127, '', 'osascript not found')

    def build(self, plan: LayoutPlan, columns: list[Column], branch_prefix: str,
              prompts: Optional[dict[int, str]] = None, prompt_delay: float = 5) -> SessionHandle:
        """构建 Tab，prompts 在同一段脚本里启动命令之后写入"""
        ok, msg = self.is_available()
        if not ok:
            raise ExternalToolMissing(self.executable, msg)
        if not columns:
            raise LayoutBuildFailure("没有可用于创建 Tab 的 worktree")
        if plan.column_count != len(columns):
            raise LayoutBuildFailure(
                f"布局列数 ({plan.column_count}) 与工具数 ({len(columns)}) 不一致"
            )

        script, addresses = render_script(
            plan, columns, branch_prefix,
            initial_delay=self.initial_delay, pane_delay=self.pane_delay,
            prompts=prompts, prompt_delay=prompt_delay,
        )
        logger.info(f"[iterm] 执行 AppleScript: {len(columns)} 列 x {plan.rows_per_column} 行")
        logger.debug(f"[iterm] 脚本:\n{script}")

        result = self._run_script(script)
        if result.returncode != 0:
            logger.error(f"[iterm] AppleScript 失败: {result.stderr.strip()}")
            raise LayoutBuildFailure("AppleScript 执行失败", result.stderr or "")

        return SessionHandle(backend=self.name, session_id=branch_prefix, addresses=addresses)
