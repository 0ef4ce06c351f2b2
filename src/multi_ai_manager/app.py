"""Textual 发送界面 - 选择会话与 pane，向 AI 工具或 shell 发送消息

布局：
┌──────────┬───────────────────────────────┐
│ 会话列表 │ pane 列表（[x] 勾选）          │
│          ├───────────────────────────────┤
│          │ 消息编辑区                    │
├──────────┴───────────────────────────────┤
│ 类型: Prompt | 目标: 全部 | 深度思考: 关  │
└──────────────────────────────────────────┘

界面状态保存在 SendState 中，与 Textual 无关，便于单独测试。
"""

import logging
from enum import Enum
from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Label, ListItem, ListView, Static, TextArea

from .errors import MultiAiError
from .models import PaneInfo, RowRole
from .router import PaneRouter

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """消息类型"""
    PROMPT = 'prompt'    # 发给 AI 工具
    COMMAND = 'command'  # 发给 shell

    @property
    def role(self) -> RowRole:
        return RowRole.PRIMARY if self is MessageType.PROMPT else RowRole.UTILITY


class TargetMode(str, Enum):
    """目标模式"""
    ALL = 'all'            # 当前类型的所有 pane
    SELECTED = 'selected'  # 手动勾选的 pane


class SendState:
    """发送界面状态

    Args:
        router: PaneRouter
        sessions: 可选会话名
    """

    def __init__(self, router: PaneRouter, sessions: list[str]):
        if not sessions:
            raise MultiAiError("没有运行中的 tmux 会话，请先执行 'mai add <branch-prefix>'")
        self.router = router
        self.sessions = list(sessions)
        self.session: str = self.sessions[0]
        self.panes: list[PaneInfo] = []
        self.selected: set[str] = set()
        self.message_type = MessageType.PROMPT
        self.target_mode = TargetMode.ALL
        self.deep_thinking = False

    def load_session(self, session: str) -> None:
        """切换会话并重新读取 pane，清空勾选"""
        self.apply_inventory(session, self.router.inventory(session))

    def apply_inventory(self, session: str, panes: list[PaneInfo]) -> None:
        """写入已读取的 pane 列表（在界面线程调用）"""
        self.session = session
        self.panes = list(panes)
        self.selected = set()

    def toggle_pane(self, pane_id: str) -> None:
        """勾选/取消勾选 pane，手动勾选后切换为 SELECTED 模式"""
        if pane_id in self.selected:
            self.selected.discard(pane_id)
        else:
            self.selected.add(pane_id)
        self.target_mode = TargetMode.SELECTED

    def use_all(self, message_type: MessageType) -> None:
        self.message_type = message_type
        self.target_mode = TargetMode.ALL

    def toggle_message_type(self) -> None:
        if self.message_type is MessageType.PROMPT:
            self.message_type = MessageType.COMMAND
        else:
            self.message_type = MessageType.PROMPT

    def toggle_target_mode(self) -> None:
        if self.target_mode is TargetMode.ALL:
            self.target_mode = TargetMode.SELECTED
        else:
            self.target_mode = TargetMode.ALL

    def toggle_deep_thinking(self) -> None:
        self.deep_thinking = not self.deep_thinking

    def targets(self) -> list[PaneInfo]:
        """当前设置下的发送目标"""
        if self.target_mode is TargetMode.SELECTED:
            return self.router.resolve_targets(self.panes, pane_ids=self.selected)
        return self.router.resolve_targets(self.panes, role=self.message_type.role)

    def send(self, text: str) -> int:
        """发送消息

        深度思考短语只在 Prompt 类型下追加。

        Returns:
            发送的 pane 数量
        """
        if not text.strip():
            raise MultiAiError("消息为空")
        deep = self.deep_thinking and self.message_type is MessageType.PROMPT
        return self.router.deliver(self.targets(), text, deep_thinking=deep)

    def status_text(self) -> str:
        type_label = "Prompt" if self.message_type is MessageType.PROMPT else "Command"
        target_label = "全部" if self.target_mode is TargetMode.ALL else f"已选 {len(self.selected)}"
        deep_label = "开" if self.deep_thinking else "关"
        return f"类型: {type_label} | 目标: {target_label} | 深度思考: {deep_label}"


class PaneItem(ListItem):
    """pane 列表项"""

    def __init__(self, pane: PaneInfo, checked: bool):
        super().__init__()
        self.pane = pane
        self.checked = checked

    def compose(self) -> ComposeResult:
        mark = "[green]\\[x][/]" if self.checked else "[dim]\\[ ][/]"
        color = "yellow" if self.pane.role is RowRole.PRIMARY else "blue"
        yield Static(
            f"{mark} [{color}]{self.pane.label}[/] "
            f"[dim]{self.pane.window_name}.{self.pane.pane_index} {self.pane.pane_id}[/]"
        )


class SessionItem(ListItem):
    """会话列表项"""

    def __init__(self, name: str):
        super().__init__()
        self.session_name = name

    def compose(self) -> ComposeResult:
        yield Static(self.session_name)


class SendApp(App):
    """消息发送界面

    Ctrl+S 发送后退出，返回值为发送的 pane 数量（取消时为 None）。
    """

    CSS = """
    Screen { background: $surface; }
    #sessions-panel { width: 28; border-right: solid $primary; padding: 0 1; }
    #main-panel { padding: 0 1; }
    .section-title { text-style: bold; color: $warning; padding: 1 0 0 0; }
    ListView { height: auto; max-height: 50%; margin: 0; padding: 0; background: transparent; }
    ListItem { padding: 0; height: 1; }
    ListItem > Static { padding: 0 1; }
    ListItem:hover { background: $surface-lighten-1; }
    ListItem.-highlight { background: $primary 30%; }
    #message { height: 1fr; margin: 0 0 1 0; }
    #status-line { dock: bottom; height: 1; background: $surface-darken-1; color: $text-muted; padding: 0 1; }
    """

    BINDINGS = [
        Binding("ctrl+s", "send", "发送", priority=True),
        Binding("ctrl+t", "toggle_type", "切换类型", priority=True),
        Binding("ctrl+o", "toggle_target", "切换目标", priority=True),
        Binding("ctrl+d", "toggle_deep", "深度思考", priority=True),
        Binding("ctrl+a", "all_ai", "全部 AI", priority=True),
        Binding("ctrl+b", "all_shell", "全部 shell", priority=True),
        Binding("escape", "quit", "取消", priority=True),
    ]

    def __init__(self, state: SendState):
        super().__init__()
        self.state = state

    def compose(self) -> ComposeResult:
        with Horizontal():
            with Vertical(id="sessions-panel"):
                yield Label("会话", classes="section-title")
                yield ListView(*[SessionItem(s) for s in self.state.sessions], id="sessions-list")
            with Vertical(id="main-panel"):
                yield Label("Pane（Enter 勾选）", classes="section-title")
                yield ListView(id="panes-list")
                yield Label("消息", classes="section-title")
                yield TextArea(id="message")
        yield Static("", id="status-line")

    def on_mount(self) -> None:
        self._load_session(self.state.session)
        self.query_one("#message", TextArea).focus()

    # ========== 刷新 ==========

    @work(thread=True, exclusive=True, group="tmux")
    def _load_session(self, session: str) -> None:
        # 工作线程只读取 tmux，状态在界面线程更新
        try:
            panes = self.state.router.inventory(session)
        except MultiAiError as e:
            self.call_from_thread(self.notify, str(e), severity="error")
            return
        self.call_from_thread(self._show_session, session, panes)

    def _show_session(self, session: str, panes: list[PaneInfo]) -> None:
        self.state.apply_inventory(session, panes)
        self.update_pane_list()

    def update_pane_list(self) -> None:
        panes_list = self.query_one("#panes-list", ListView)
        index = panes_list.index
        panes_list.clear()
        for pane in self.state.panes:
            panes_list.append(PaneItem(pane, pane.pane_id in self.state.selected))
        if index is not None and self.state.panes:
            panes_list.index = min(index, len(self.state.panes) - 1)
        self.update_status()

    def update_status(self) -> None:
        targets = len(self.state.targets())
        self.query_one("#status-line", Static).update(
            f"{self.state.session} | {self.state.status_text()} | {targets} 个目标"
        )

    # ========== 事件 ==========

    @on(ListView.Selected, "#sessions-list")
    def on_session_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, SessionItem):
            self._load_session(event.item.session_name)

    @on(ListView.Selected, "#panes-list")
    def on_pane_selected(self, event: ListView.Selected) -> None:
        if isinstance(event.item, PaneItem):
            self.state.toggle_pane(event.item.pane.pane_id)
            self.update_pane_list()

    def action_toggle_type(self) -> None:
        self.state.toggle_message_type()
        self.update_status()

    def action_toggle_target(self) -> None:
        self.state.toggle_target_mode()
        self.update_status()

    def action_toggle_deep(self) -> None:
        self.state.toggle_deep_thinking()
        self.update_status()

    def action_all_ai(self) -> None:
        self.state.use_all(MessageType.PROMPT)
        self.update_status()

    def action_all_shell(self) -> None:
        self.state.use_all(MessageType.COMMAND)
        self.update_status()

    def action_send(self) -> None:
        text = self.query_one("#message", TextArea).text
        self._send_async(text)

    @work(thread=True, exclusive=True, group="tmux")
    def _send_async(self, text: str) -> None:
        try:
            count = self.state.send(text)
        except MultiAiError as e:
            logger.warning(f"[发送] 失败: {e}")
            self.call_from_thread(self.notify, str(e), severity="error")
            return
        self.call_from_thread(self.exit, count)

    def action_quit(self) -> None:
        self.exit(None)


def run_send_app(router: PaneRouter, sessions: list[str]) -> Optional[int]:
    """运行发送界面

    Returns:
        发送的 pane 数量，取消时为 None
    """
    app = SendApp(SendState(router, sessions))
    return app.run()
