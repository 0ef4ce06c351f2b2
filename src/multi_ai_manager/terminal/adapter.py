"""会话构建器抽象接口

定义布局执行的统一接口，tmux 与 iTerm2 两种后端各自实现。
"""

import shlex
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from ..layout import LayoutPlan
from ..models import SessionHandle, ToolSpec

# (工具, worktree 路径)，按列顺序
Column = tuple[ToolSpec, Union[str, Path]]


def launch_command(path: Union[str, Path], command: str) -> str:
    """主 pane 的启动命令：cd <path> && <command>"""
    return f"cd {shlex.quote(str(path))} && {command}"


def cd_command(path: Union[str, Path]) -> str:
    """shell pane 的切换目录命令"""
    return f"cd {shlex.quote(str(path))}"


class SessionBuilder(ABC):
    """会话构建器

    所有构建器必须实现此接口。构建过程严格串行：
    每次分屏或发送都依赖上一步得到的 pane 地址。
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """后端名称（如 'tmux', 'iterm2'）"""
        pass

    @abstractmethod
    def is_available(self) -> tuple[bool, str]:
        """检查后端是否可用

        Returns:
            (是否可用, 错误信息或版本信息)
        """
        pass

    @abstractmethod
    def build(self, plan: LayoutPlan, columns: list[Column], branch_prefix: str) -> SessionHandle:
        """按布局规划创建会话

        Args:
            plan: 布局规划（列数必须与 columns 一致）
            columns: 每列的 (工具, worktree 路径)
            branch_prefix: 分支前缀（用作标题）

        Returns:
            SessionHandle，包含 (列, 行) -> pane 地址

        Raises:
            ExternalToolMissing: 后端不可用
            LayoutBuildFailure: 构建中途失败（不清理已创建的 pane）
        """
        pass
