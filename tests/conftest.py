"""测试公共夹具"""

import subprocess

import pytest

from multi_ai_manager.tmux_control import TmuxController


class FakeTmux(TmuxController):
    """记录 tmux 参数并返回预设结果的控制器

    - new-session / new-window 返回 @1, @2 ...
    - display-message / split-window 返回 %0, %1 ...（共用计数器）
    - fail_on: 子命令 -> stderr，命中时返回退出码 1
    """

    def __init__(self, sessions=None, panes_output="", options=None, fail_on=None):
        super().__init__()
        self.calls: list[tuple] = []
        self.inputs: list = []
        self.sessions = list(sessions or [])
        self.panes_output = panes_output
        self.options = dict(options or {})
        self.fail_on = dict(fail_on or {})
        self._next_window = 1
        self._next_pane = 0

    def _ok(self, stdout=""):
        return subprocess.CompletedProcess(['tmux'], 0, stdout, '')

    def _run(self, *args, input=None, timeout=None):
        self.calls.append(args)
        self.inputs.append(input)
        command = args[0]

        if command in self.fail_on:
            return subprocess.CompletedProcess(['tmux'], 1, '', self.fail_on[command])
        if command == '-V':
            return self._ok("tmux 3.4\n")
        if command == 'has-session':
            name = args[-1].lstrip('=')
            return subprocess.CompletedProcess(['tmux'], 0 if name in self.sessions else 1, '', '')
        if command in ('new-session', 'new-window'):
            window = f"@{self._next_window}"
            self._next_window += 1
            return self._ok(f"{window}\n")
        if command in ('display-message', 'split-window'):
            pane = f"%{self._next_pane}"
            self._next_pane += 1
            return self._ok(f"{pane}\n")
        if command == 'list-sessions':
            lines = [f"{name}:0:1" for name in self.sessions]
            return self._ok("\n".join(lines) + "\n")
        if command == 'list-panes':
            return self._ok(self.panes_output)
        if command == 'show-options':
            value = self.options.get(args[-1])
            if value is None:
                return subprocess.CompletedProcess(['tmux'], 1, '', 'invalid option')
            return self._ok(f"{value}\n")
        return self._ok()

    def commands(self, name: str) -> list[tuple]:
        """某个子命令的所有调用参数"""
        return [call for call in self.calls if call[0] == name]


@pytest.fixture
def fake_tmux():
    return FakeTmux()


@pytest.fixture
def make_tmux():
    return FakeTmux
