"""
Multi AI Manager - 多 AI 编程工具并行开发环境

为每个 AI 工具创建独立的 git worktree，并在终端里分屏同时运行：
- iTerm2（macOS）：一个 Tab 内按列分屏
- tmux 单窗口：一个窗口内的网格
- tmux 多窗口：每个工具一个窗口

架构：
- worktree：并发调用 gwt 创建/删除 worktree
- layout：与后端无关的等分分屏规划
- terminal：tmux / iTerm2 会话构建器
- router：识别运行中会话的 pane 角色并发送消息
"""

__version__ = "0.4.0"
__author__ = "User"

# 数据模型
from .models import ToolSpec, WorktreeTask, OrchestrationResult, LayoutMode, RowRole

# 布局规划
from .layout import LayoutPlan, plan, split_fractions

# worktree 编排
from .worktree import WorktreeManager, WorktreeOrchestrator

# 会话构建
from .terminal import SessionBuilder, TmuxSessionBuilder, ItermSessionBuilder, get_builder

# tmux
from .tmux_control import TmuxController

# pane 路由
from .router import PaneRouter

__all__ = [
    # 数据模型
    "ToolSpec",
    "WorktreeTask",
    "OrchestrationResult",
    "LayoutMode",
    "RowRole",
    # 布局
    "LayoutPlan",
    "plan",
    "split_fractions",
    # worktree
    "WorktreeManager",
    "WorktreeOrchestrator",
    # 会话构建
    "SessionBuilder",
    "TmuxSessionBuilder",
    "ItermSessionBuilder",
    "get_builder",
    # tmux
    "TmuxController",
    # 路由
    "PaneRouter",
]
