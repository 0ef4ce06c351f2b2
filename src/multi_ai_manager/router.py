"""Pane 路由 - 识别运行中会话的 pane 角色并发送消息

send 是独立的一次调用，拿不到创建会话时的 SessionHandle，
只能从 tmux 实时状态重新推断角色：
- 网格窗口（默认名 apps）：pane 序号按列优先排列，
  index % 每列行数 == 0 为主 pane，AI 工具名从工作目录末尾的 slug 推出
- 其它窗口（多窗口模式）：窗口名就是工具名，index 0 为主 pane，其余为 shell

消息通过粘贴缓冲区发送（load-buffer + paste-buffer），
多行文本和特殊字符不会被 tmux 当作按键解释。
"""

import logging
import os
from typing import Iterable, Optional, Sequence

from .errors import ConfigError, ExternalToolMissing, MultiAiError
from .models import PaneInfo, RowRole, ToolSpec
from .tmux_control import ROWS_OPTION, TMUX_INSTALL_HINT, TmuxController

logger = logging.getLogger(__name__)

DEFAULT_ROWS_PER_COLUMN = 2

# 未配置 ultrathink 时的默认深度思考短语
DEFAULT_THINK_PHRASES = {
    'claude': "ultrathink",
    'amp': "Use oracle and think heavily",
}
FALLBACK_THINK_PHRASE = "Think deeply about this"


def tool_from_path(path: str, known_tools: Sequence[ToolSpec] = ()) -> str:
    """从 worktree 路径推断工具名

    路径形如 /path/to/project/feature-x-claude：
    优先匹配最长的已知 slug 后缀，否则取最后一个 '-' 之后的部分。
    """
    basename = os.path.basename(path.rstrip('/'))
    for tool in sorted(known_tools, key=lambda t: len(t.slug), reverse=True):
        suffix = f"-{tool.slug}"
        if basename.endswith(suffix) and len(basename) > len(suffix):
            return tool.name
    return basename.rsplit('-', 1)[-1] or "AI"


def classify_pane(
    window_name: str,
    pane_index: int,
    current_path: str,
    grid_window_name: str = "apps",
    rows_per_column: int = DEFAULT_ROWS_PER_COLUMN,
    known_tools: Sequence[ToolSpec] = (),
) -> tuple[RowRole, Optional[str]]:
    """判断 pane 角色

    Returns:
        (角色, 工具名)，shell pane 的工具名为 None
    """
    if window_name == grid_window_name:
        if pane_index % max(rows_per_column, 1) == 0:
            return RowRole.PRIMARY, tool_from_path(current_path, known_tools)
        return RowRole.UTILITY, None

    if pane_index == 0:
        return RowRole.PRIMARY, window_name
    return RowRole.UTILITY, None


class PaneRouter:
    """Pane 路由器

    Args:
        tmux: TmuxController
        grid_window_name: 网格模式窗口名
        known_tools: 已知工具（用于路径推断和深度思考短语）
    """

    def __init__(
        self,
        tmux: Optional[TmuxController] = None,
        grid_window_name: str = "apps",
        known_tools: Sequence[ToolSpec] = (),
    ):
        self.tmux = tmux or TmuxController()
        self.grid_window_name = grid_window_name
        self.known_tools = list(known_tools)

    # ========== 会话 ==========

    def list_sessions(self) -> list[str]:
        """列出所有 tmux 会话名"""
        if not self.tmux.is_available():
            raise ExternalToolMissing("tmux", TMUX_INSTALL_HINT)
        return [s.name for s in self.tmux.list_sessions()]

    def select_session(self, name: Optional[str] = None) -> str:
        """确定目标会话

        指定名称时必须精确匹配；未指定且只有一个会话时使用它。
        """
        sessions = self.list_sessions()
        if not sessions:
            raise ConfigError("没有运行中的 tmux 会话，请先执行 'mai add <branch-prefix>'")
        if name:
            if name in sessions:
                return name
            raise ConfigError(f"会话 '{name}' 不存在，可用会话: {', '.join(sessions)}")
        if len(sessions) == 1:
            return sessions[0]
        raise ConfigError(f"存在多个会话，请用 --session 指定: {', '.join(sessions)}")

    def rows_per_column(self, session: str) -> int:
        """读取构建时记录的每列行数，缺省为 2"""
        value = self.tmux.show_session_option(session, ROWS_OPTION)
        if value and value.isdigit() and int(value) > 0:
            return int(value)
        return DEFAULT_ROWS_PER_COLUMN

    # ========== pane ==========

    def parse_inventory(self, output: str, rows_per_column: int = DEFAULT_ROWS_PER_COLUMN) -> list[PaneInfo]:
        """解析 list-panes 输出（格式见 tmux_control.PANE_FORMAT）"""
        panes = []
        for line in output.splitlines():
            parts = line.split('|', 4)
            if len(parts) < 5 or not parts[2].isdigit():
                continue
            pane_id, window_name, index, command, path = parts
            role, tool = classify_pane(
                window_name, int(index), path,
                grid_window_name=self.grid_window_name,
                rows_per_column=rows_per_column,
                known_tools=self.known_tools,
            )
            panes.append(PaneInfo(
                pane_id=pane_id,
                window_name=window_name,
                pane_index=int(index),
                current_path=path,
                current_command=command,
                role=role,
                tool=tool,
            ))
        return panes

    def inventory(self, session: str) -> list[PaneInfo]:
        """获取会话内所有 pane 及其角色"""
        result = self.tmux.list_panes(session)
        if result.returncode != 0:
            raise MultiAiError(f"获取会话 '{session}' 的 pane 失败: {result.stderr.strip()}")
        return self.parse_inventory(result.stdout, self.rows_per_column(session))

    @staticmethod
    def resolve_targets(
        panes: Iterable[PaneInfo],
        role: RowRole = RowRole.PRIMARY,
        pane_ids: Optional[Iterable[str]] = None,
    ) -> list[PaneInfo]:
        """确定发送目标

        Args:
            panes: 所有 pane
            role: 未显式选择时，发送给该角色的所有 pane
            pane_ids: 显式选择的 pane ID（优先）
        """
        if pane_ids is not None:
            wanted = set(pane_ids)
            return [p for p in panes if p.pane_id in wanted]
        return [p for p in panes if p.role is role]

    # ========== 发送 ==========

    def think_phrase(self, tool_name: Optional[str]) -> str:
        for tool in self.known_tools:
            if tool.name == tool_name and tool.ultrathink:
                return tool.ultrathink
        return DEFAULT_THINK_PHRASES.get(tool_name or "", FALLBACK_THINK_PHRASE)

    def compose_message(self, text: str, pane: PaneInfo, deep_thinking: bool = False) -> str:
        """需要深度思考时，为 AI pane 追加对应短语"""
        if deep_thinking and pane.role is RowRole.PRIMARY:
            return f"{text}\n\n{self.think_phrase(pane.tool)}"
        return text

    def send_to_pane(self, pane_id: str, text: str, enter: bool = True) -> None:
        """通过粘贴缓冲区向 pane 发送文本"""
        buffer_name = f"mai-send-{pane_id.lstrip('%')}"
        for result, action in (
            (lambda: self.tmux.load_buffer(buffer_name, text), "载入缓冲区"),
            (lambda: self.tmux.paste_buffer(buffer_name, pane_id), "粘贴"),
        ):
            completed = result()
            if completed.returncode != 0:
                raise MultiAiError(f"向 {pane_id} {action}失败: {completed.stderr.strip()}")
        if enter:
            completed = self.tmux.send_keys(pane_id, 'Enter')
            if completed.returncode != 0:
                raise MultiAiError(f"向 {pane_id} 发送回车失败: {completed.stderr.strip()}")

    def deliver(
        self,
        panes: Sequence[PaneInfo],
        text: str,
        enter: bool = True,
        deep_thinking: bool = False,
    ) -> int:
        """向多个 pane 发送消息

        Returns:
            发送的 pane 数量
        """
        if not panes:
            raise ConfigError("没有可发送的目标 pane")
        for pane in panes:
            message = self.compose_message(text, pane, deep_thinking)
            logger.info(f"[路由] 发送到 {pane.pane_id} ({pane.label}), {len(message)} 字符")
            self.send_to_pane(pane.pane_id, message, enter=enter)
        return len(panes)
