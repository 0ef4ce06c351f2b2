"""布局模式解析与构建器选择"""

import logging
import sys
from typing import Optional

from ..models import LayoutMode
from ..tmux_control import TmuxController
from .adapter import SessionBuilder
from .iterm_builder import ItermSessionBuilder
from .tmux_builder import TmuxSessionBuilder

logger = logging.getLogger(__name__)


def system_default_mode() -> LayoutMode:
    """系统默认模式：macOS 用 iTerm2，其它平台用 tmux 单窗口网格"""
    if sys.platform == 'darwin':
        return LayoutMode.ITERM2
    return LayoutMode.TMUX_SINGLE_WINDOW


def resolve_mode(
    override: Optional[LayoutMode] = None,
    legacy_tmux: bool = False,
    configured: Optional[LayoutMode] = None,
) -> LayoutMode:
    """确定布局模式

    优先级：命令行 --mode > 旧参数 --tmux（多窗口）> 配置文件 > 系统默认
    """
    if override is not None:
        mode = override
    elif legacy_tmux:
        mode = LayoutMode.TMUX_MULTI_WINDOW
    elif configured is not None:
        mode = configured
    else:
        mode = system_default_mode()
    logger.info(f"[模式] 使用布局模式: {mode.value}")
    return mode


def get_builder(
    mode: LayoutMode,
    session_name: str,
    tmux: Optional[TmuxController] = None,
    grid_window_name: str = "apps",
    settle_delay: float = 0.5,
) -> SessionBuilder:
    """获取会话构建器

    Args:
        mode: 布局模式
        session_name: tmux 会话名（iTerm2 模式忽略）
        tmux: TmuxController，None 表示新建
        grid_window_name: 网格模式窗口名
        settle_delay: tmux 启动命令前的等待秒数
    """
    if mode is LayoutMode.ITERM2:
        return ItermSessionBuilder()
    return TmuxSessionBuilder(
        tmux or TmuxController(),
        mode,
        session_name,
        grid_window_name=grid_window_name,
        settle_delay=settle_delay,
    )
