"""Tmux 命令封装

所有 tmux 调用都经过 _run，返回 CompletedProcess，不因非零退出码抛异常，
由上层（会话构建器、pane 路由）决定如何处理失败。
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

TMUX_INSTALL_HINT = "请安装 tmux: sudo apt install tmux / brew install tmux"

# 会话选项：记录网格模式的每列行数，供 pane 路由识别角色
ROWS_OPTION = "@mai-rows-per-column"

PANE_FORMAT = "#{pane_id}|#{window_name}|#{pane_index}|#{pane_current_command}|#{pane_current_path}"


@dataclass
class TmuxSession:
    """Tmux 会话信息"""
    name: str
    attached: bool
    windows: int


def session_name_for(project_name: str, branch_prefix: str) -> str:
    """生成 tmux 会话名（tmux 不允许 '.' 和 ':'）"""
    name = f"{project_name}-{branch_prefix}"
    return name.replace('.', '_').replace(':', '_')


class TmuxController:
    """Tmux 控制器"""

    def __init__(self, executable: str = "tmux"):
        self.executable = executable

    def _run(self, *args, input: Optional[str] = None,
             timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        """执行 tmux 命令"""
        cmd = [self.executable] + list(args)
        logger.debug(f"[tmux] {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd, capture_output=True, text=True, input=input, timeout=timeout
            )
        except subprocess.TimeoutExpired:
            return subprocess.CompletedProcess(cmd, 1, '', 'timeout')
        except FileNotFoundError:
            return subprocess.CompletedProcess(cmd, 127, '', 'tmux not found')

    def is_available(self) -> bool:
        """检查 tmux 是否可用"""
        return self._run('-V').returncode == 0

    def version(self) -> Optional[str]:
        result = self._run('-V')
        if result.returncode == 0:
            return result.stdout.strip()
        return None

    # ========== 会话 / 窗口 ==========

    def session_exists(self, session: str) -> bool:
        """检查会话是否存在"""
        return self._run('has-session', '-t', f"={session}").returncode == 0

    def new_session(self, session: str, window_name: str, cwd: str,
                    width: Optional[int] = None,
                    height: Optional[int] = None) -> subprocess.CompletedProcess:
        """创建后台会话，输出首个窗口 ID"""
        args = ['new-session', '-d', '-s', session, '-n', window_name, '-c', cwd]
        if width and height:
            args.extend(['-x', str(width), '-y', str(height)])
        args.extend(['-P', '-F', '#{window_id}'])
        return self._run(*args)

    def new_window(self, session: str, window_name: str, cwd: str) -> subprocess.CompletedProcess:
        """在会话末尾创建窗口，输出窗口 ID"""
        return self._run(
            'new-window', '-t', f"{session}:", '-n', window_name, '-c', cwd,
            '-P', '-F', '#{window_id}',
        )

    def select_window(self, target: str) -> subprocess.CompletedProcess:
        return self._run('select-window', '-t', target)

    def kill_session(self, session: str) -> subprocess.CompletedProcess:
        """删除会话"""
        return self._run('kill-session', '-t', f"={session}")

    def attach_session(self, session: str) -> int:
        """附加到会话（在 tmux 内部则切换客户端），返回退出码"""
        if os.environ.get('TMUX'):
            return self._run('switch-client', '-t', session).returncode
        try:
            return subprocess.run([self.executable, 'attach-session', '-t', session]).returncode
        except FileNotFoundError:
            return 127

    def set_session_option(self, session: str, option: str, value: str) -> subprocess.CompletedProcess:
        return self._run('set-option', '-t', session, option, value)

    def show_session_option(self, session: str, option: str) -> Optional[str]:
        result = self._run('show-options', '-v', '-t', session, option)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    # ========== pane ==========

    def display_pane_id(self, target: str) -> subprocess.CompletedProcess:
        """查询目标（窗口/pane）当前 pane ID"""
        return self._run('display-message', '-p', '-t', target, '#{pane_id}')

    def select_pane(self, pane_id: str) -> subprocess.CompletedProcess:
        return self._run('select-pane', '-t', pane_id)

    def split_pane(self, pane_id: str, horizontal: bool, percent: int,
                   cwd: str) -> subprocess.CompletedProcess:
        """切分 pane，输出新 pane ID

        tmux 的 -h 是左右排列，-v 是上下排列；-p 为新 pane 所占百分比。
        """
        return self._run(
            'split-window', '-h' if horizontal else '-v',
            '-t', pane_id, '-p', str(percent), '-c', cwd,
            '-P', '-F', '#{pane_id}',
        )

    def send_literal(self, pane_id: str, text: str) -> subprocess.CompletedProcess:
        """按字面发送文本（不解释按键名）"""
        return self._run('send-keys', '-t', pane_id, '-l', text)

    def send_keys(self, pane_id: str, *keys: str) -> subprocess.CompletedProcess:
        return self._run('send-keys', '-t', pane_id, *keys)

    def load_buffer(self, buffer_name: str, text: str) -> subprocess.CompletedProcess:
        """从 stdin 载入粘贴缓冲区"""
        return self._run('load-buffer', '-b', buffer_name, '-', input=text)

    def paste_buffer(self, buffer_name: str, pane_id: str) -> subprocess.CompletedProcess:
        """粘贴缓冲区到 pane 并删除缓冲区"""
        return self._run('paste-buffer', '-d', '-p', '-b', buffer_name, '-t', pane_id)

    # ========== 查询 ==========

    def list_sessions(self) -> list[TmuxSession]:
        """列出所有会话"""
        result = self._run(
            'list-sessions',
            '-F', '#{session_name}:#{session_attached}:#{session_windows}'
        )
        if result.returncode != 0:
            return []

        sessions = []
        for line in result.stdout.strip().split('\n'):
            if not line:
                continue
            name, attached, windows = line.rsplit(':', 2)
            sessions.append(TmuxSession(
                name=name,
                attached=attached != '0',
                windows=int(windows) if windows.isdigit() else 0,
            ))
        return sessions

    def list_panes(self, session: str) -> subprocess.CompletedProcess:
        """列出会话内所有窗口的 pane（格式见 PANE_FORMAT）"""
        return self._run('list-panes', '-s', '-t', session, '-F', PANE_FORMAT)


def check_tmux() -> tuple[bool, str]:
    """检查 tmux 是否可用"""
    version = TmuxController().version()
    if version:
        return True, version
    return False, f"未找到 tmux，{TMUX_INSTALL_HINT}"
