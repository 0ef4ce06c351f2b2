"""tmux 会话构建器

两种布局：
- 多窗口（tmux-multi-window）：每个工具一个窗口，窗口内左右两个 pane，
  左侧运行 AI 工具，右侧为 shell。固定两行，不受 rows_per_column 影响。
- 单窗口网格（tmux-single-window）：一个窗口，每个 (列, 行) 一个 pane。

tmux 的 pane 序号在每次分屏后都会重排，这里只信任创建时立即取得的
pane ID（%N），并用 addresses 显式记录区域与 pane 的对应关系。
"""

import logging
import shutil
import time
from typing import Optional

from ..errors import ExternalToolMissing, LayoutBuildFailure
from ..layout import LayoutPlan
from ..models import Axis, LayoutMode, Region, SessionHandle
from ..tmux_control import ROWS_OPTION, TMUX_INSTALL_HINT, TmuxController
from .adapter import Column, SessionBuilder, launch_command

logger = logging.getLogger(__name__)


class TmuxSessionBuilder(SessionBuilder):
    """tmux 会话构建器

    Args:
        tmux: TmuxController
        mode: TMUX_MULTI_WINDOW 或 TMUX_SINGLE_WINDOW
        session_name: 会话名
        grid_window_name: 网格模式的窗口名
        settle_delay: 发送启动命令前等待 shell 初始化的秒数（经验值，不保证就绪）
    """

    def __init__(
        self,
        tmux: TmuxController,
        mode: LayoutMode,
        session_name: str,
        grid_window_name: str = "apps",
        settle_delay: float = 0.5,
    ):
        if not mode.is_tmux:
            raise ValueError(f"不是 tmux 布局模式: {mode.value}")
        self.tmux = tmux
        self.mode = mode
        self.session_name = session_name
        self.grid_window_name = grid_window_name
        self.settle_delay = settle_delay
        self.addresses: dict[Region, str] = {}

    @property
    def name(self) -> str:
        return "tmux"

    def is_available(self) -> tuple[bool, str]:
        version = self.tmux.version()
        if version:
            return True, f"tmux 可用 ({version})"
        return False, f"未找到 tmux，{TMUX_INSTALL_HINT}"

    def _check(self, result, action: str) -> str:
        """非零退出码转为 LayoutBuildFailure，返回 stdout"""
        if result.returncode != 0:
            logger.error(f"[tmux] {action}失败: {result.stderr.strip()}")
            raise LayoutBuildFailure(f"tmux {action}失败", result.stderr or "")
        return result.stdout.strip()

    def _preflight(self, plan: LayoutPlan, columns: list[Column]) -> None:
        if not self.tmux.is_available():
            raise ExternalToolMissing("tmux", TMUX_INSTALL_HINT)
        if not columns:
            raise LayoutBuildFailure("没有可用于创建会话的 worktree")
        if plan.column_count != len(columns):
            raise LayoutBuildFailure(
                f"布局列数 ({plan.column_count}) 与工具数 ({len(columns)}) 不一致"
            )
        if self.tmux.session_exists(self.session_name):
            raise LayoutBuildFailure(f"会话 '{self.session_name}' 已存在")

    def build(self, plan: LayoutPlan, columns: list[Column], branch_prefix: str) -> SessionHandle:
        self._preflight(plan, columns)
        self.addresses = {}

        if self.mode is LayoutMode.TMUX_SINGLE_WINDOW:
            self._build_grid(plan, columns)
        else:
            self._build_windows(columns)

        logger.info(
            f"[tmux] 会话已创建: {self.session_name} ({self.mode.value}), "
            f"panes={len(self.addresses)}"
        )
        return SessionHandle(
            backend=self.name,
            session_id=self.session_name,
            addresses=dict(self.addresses),
        )

    # ========== 多窗口 ==========

    def _build_windows(self, columns: list[Column]) -> None:
        first_window: Optional[str] = None
        for col, (tool, path) in enumerate(columns):
            if col == 0:
                window_id = self._check(
                    self.tmux.new_session(self.session_name, tool.name, str(path)),
                    "创建会话",
                )
                first_window = window_id
            else:
                window_id = self._check(
                    self.tmux.new_window(self.session_name, tool.name, str(path)),
                    "创建窗口",
                )

            # 窗口刚创建时直接查询原始 pane，不假设固定序号
            primary = self._check(self.tmux.display_pane_id(window_id), "查询 pane")
            utility = self._check(
                self.tmux.split_pane(primary, horizontal=True, percent=50, cwd=str(path)),
                "分屏",
            )
            self.addresses[(col, 0)] = primary
            self.addresses[(col, 1)] = utility

        self._launch(columns)
        if first_window:
            self._check(self.tmux.select_window(first_window), "选择窗口")

    # ========== 单窗口网格 ==========

    def _build_grid(self, plan: LayoutPlan, columns: list[Column]) -> None:
        size = shutil.get_terminal_size()
        _, first_path = columns[0]
        window_id = self._check(
            self.tmux.new_session(
                self.session_name, self.grid_window_name, str(first_path),
                width=size.columns, height=size.lines,
            ),
            "创建会话",
        )
        self.addresses[(0, 0)] = self._check(self.tmux.display_pane_id(window_id), "查询 pane")

        # 列：每次都重新选中最左侧剩余 pane 再切分
        for step in plan.column_steps:
            parent = self.addresses[step.parent_region]
            self._check(self.tmux.select_pane(parent), "选择 pane")
            self._split(step.axis, parent, step.fraction_percent, step.new_region, columns)

        # 行：每列顶部 pane 依次切分
        for col in range(plan.column_count):
            for step in plan.row_steps(col):
                parent = self.addresses[step.parent_region]
                self._check(self.tmux.select_pane(parent), "选择 pane")
                self._split(step.axis, parent, step.fraction_percent, step.new_region, columns)

        self._check(
            self.tmux.set_session_option(self.session_name, ROWS_OPTION, str(plan.rows_per_column)),
            "设置会话选项",
        )
        self._launch(columns)
        self._check(self.tmux.select_pane(self.addresses[(0, 0)]), "选择 pane")

    def _split(self, axis: Axis, parent: str, percent: int, region: Region,
               columns: list[Column]) -> None:
        _, path = columns[region[0]]
        pane_id = self._check(
            self.tmux.split_pane(
                parent, horizontal=axis is Axis.HORIZONTAL, percent=percent, cwd=str(path)
            ),
            "分屏",
        )
        logger.debug(f"[tmux] {parent} -> {pane_id} 区域 {region} ({percent}%)")
        self.addresses[region] = pane_id

    # ========== 启动 ==========

    def _launch(self, columns: list[Column]) -> None:
        """向每列顶部 pane 发送启动命令"""
        if self.settle_delay > 0:
            time.sleep(self.settle_delay)
        for col, (tool, path) in enumerate(columns):
            pane_id = self.addresses[(col, 0)]
            self._check(self.tmux.send_literal(pane_id, launch_command(path, tool.command)), "发送命令")
            self._check(self.tmux.send_keys(pane_id, 'Enter'), "发送回车")
