"""数据模型定义"""

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

_SLUG_INVALID = re.compile(r'[^a-z0-9]+')


def make_slug(text: str) -> str:
    """把命令转换为可用于 git 分支名的标识

    例如 "claude --dangerously-skip-permissions" -> "claude-dangerously-skip-permissions"
    """
    return _SLUG_INVALID.sub('-', text.lower()).strip('-')


@dataclass(frozen=True)
class ToolSpec:
    """AI 工具描述

    Attributes:
        name: 显示名称（tmux 多窗口模式下也是窗口名）
        command: 启动命令
        slug: 分支后缀，为空时由 command 推导
        ultrathink: 深度思考短语（send 时追加），None 表示使用默认值
    """
    name: str
    command: str
    slug: str = ""
    ultrathink: Optional[str] = None

    def __post_init__(self):
        if not self.slug:
            object.__setattr__(self, 'slug', make_slug(self.command) or make_slug(self.name))

    def to_dict(self) -> dict:
        data = {'name': self.name, 'command': self.command, 'slug': self.slug}
        if self.ultrathink:
            data['ultrathink'] = self.ultrathink
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'ToolSpec':
        return cls(
            name=data['name'],
            command=data.get('command') or data['name'],
            slug=data.get('slug') or "",
            ultrathink=data.get('ultrathink'),
        )


@dataclass(frozen=True)
class WorktreeTask:
    """单个 worktree 任务"""
    tool: ToolSpec
    branch_name: str
    target_path: Path


@dataclass
class OrchestrationResult:
    """批量 worktree 操作结果

    successes 保持输入顺序（不是完成顺序）。
    """
    successes: list[tuple[ToolSpec, Path]] = field(default_factory=list)
    failures: list[tuple[ToolSpec, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)


class LayoutMode(str, Enum):
    """终端布局模式"""
    ITERM2 = 'iterm2'
    TMUX_MULTI_WINDOW = 'tmux-multi-window'
    TMUX_SINGLE_WINDOW = 'tmux-single-window'

    @classmethod
    def parse(cls, value: str) -> 'LayoutMode':
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ', '.join(m.value for m in cls)
            raise ValueError(f"未知布局模式: {value}（可选: {choices}）") from None

    @property
    def is_tmux(self) -> bool:
        return self is not LayoutMode.ITERM2


class RowRole(str, Enum):
    """pane 角色"""
    PRIMARY = 'primary'  # 运行 AI 工具
    UTILITY = 'utility'  # 普通 shell


class Axis(str, Enum):
    """分屏轴向

    HORIZONTAL 切分列（左右排列），VERTICAL 切分一列内的行（上下排列）。
    """
    HORIZONTAL = 'horizontal'
    VERTICAL = 'vertical'


# 区域坐标：(列, 行)
Region = tuple[int, int]


@dataclass(frozen=True)
class SplitStep:
    """一次分屏操作

    Attributes:
        axis: 分屏轴向
        parent_region: 被切分的区域（始终是剩余区域）
        fraction_percent: 新区域占被切分区域的百分比
        new_region: 新区域坐标
    """
    axis: Axis
    parent_region: Region
    fraction_percent: int
    new_region: Region


@dataclass(frozen=True)
class ColumnPlan:
    """一列的行角色"""
    rows: tuple[RowRole, ...]


@dataclass
class SessionHandle:
    """构建完成的会话

    Attributes:
        backend: 'tmux' 或 'iterm2'
        session_id: tmux 会话名 / iTerm2 Tab 标题
        addresses: (列, 行) -> pane 地址（tmux pane ID 或 AppleScript 变量名）
    """
    backend: str
    session_id: str
    addresses: dict[Region, str] = field(default_factory=dict)


@dataclass
class PaneInfo:
    """运行中的 tmux pane（路由用）"""
    pane_id: str
    window_name: str
    pane_index: int
    current_path: str
    current_command: str = ""
    role: RowRole = RowRole.UTILITY
    tool: Optional[str] = None

    @property
    def label(self) -> str:
        if self.role is RowRole.PRIMARY:
            return f"{self.tool or 'AI'} (AI)"
        return "Shell"
