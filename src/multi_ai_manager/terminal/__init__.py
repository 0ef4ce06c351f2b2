"""会话构建器模块

把与后端无关的布局规划落到具体终端上，支持 tmux 与 iTerm2。

使用示例：
    from multi_ai_manager.layout import plan
    from multi_ai_manager.terminal import get_builder

    builder = get_builder(LayoutMode.TMUX_SINGLE_WINDOW, "myproj-feature")
    handle = builder.build(plan(len(columns), 2), columns, "feature")
    print(handle.addresses[(0, 0)])   # 第一列主 pane 的 ID
"""

from .adapter import (
    SessionBuilder,
    Column,
    launch_command,
    cd_command,
)
from .detector import (
    get_builder,
    resolve_mode,
    system_default_mode,
)
from .tmux_builder import TmuxSessionBuilder
from .iterm_builder import ItermSessionBuilder, applescript_quote, render_script

__all__ = [
    # 抽象接口
    'SessionBuilder',
    'Column',
    'launch_command',
    'cd_command',
    # 具体构建器
    'TmuxSessionBuilder',
    'ItermSessionBuilder',
    'applescript_quote',
    'render_script',
    # 工厂函数
    'get_builder',
    'resolve_mode',
    'system_default_mode',
]
