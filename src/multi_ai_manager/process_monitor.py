"""进程监控模块 - 统计 worktree 内运行中的 AI 工具进程"""

import os
import psutil
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional

SCRIPT_RUNTIMES = ('node', 'bun', 'deno')


@dataclass
class ProcessInfo:
    """进程信息"""
    pid: int
    name: str
    cmdline: list[str]
    cwd: str
    create_time: datetime
    status: str


def _is_within(path: str, root: str) -> bool:
    if not path:
        return False
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class ProcessMonitor:
    """进程监控器

    按名称或命令行匹配 AI 工具进程，可按工作目录过滤。
    """

    # 默认匹配的工具名
    MONITORED_PATTERNS = [
        'claude',
        'gemini',
        'codex',
        'amp',
    ]

    def __init__(self, patterns: Optional[Iterable[str]] = None):
        """初始化监控器

        Args:
            patterns: 要匹配的进程名称模式列表
        """
        self.patterns = list(patterns) if patterns else list(self.MONITORED_PATTERNS)

    def _matches(self, name: str, cmdline: list[str], patterns: list[str]) -> bool:
        # 只看可执行文件名，避免 "grep claude" 之类误判
        exe = os.path.basename(cmdline[0]).lower() if cmdline else ""
        for p in patterns:
            p_lower = p.lower()
            if p_lower in name or p_lower == exe:
                return True
            # node 脚本形式的 CLI：node /usr/lib/.../bin/claude
            if exe in SCRIPT_RUNTIMES and len(cmdline) > 1 \
                    and os.path.basename(cmdline[1]).lower() == p_lower:
                return True
        return False

    def find_processes(self, pattern: Optional[str] = None) -> Iterator[ProcessInfo]:
        """查找匹配的进程

        Args:
            pattern: 进程名称模式，None 表示使用所有默认模式

        Yields:
            匹配的进程信息
        """
        patterns = [pattern] if pattern else self.patterns

        for proc in psutil.process_iter(['pid', 'name', 'cmdline', 'cwd', 'create_time', 'status']):
            try:
                info = proc.info
                name = (info.get('name') or '').lower()
                cmdline = info.get('cmdline') or []

                if not self._matches(name, cmdline, patterns):
                    continue

                create_time = info.get('create_time')
                if create_time:
                    create_time = datetime.fromtimestamp(create_time)
                else:
                    create_time = datetime.now()

                yield ProcessInfo(
                    pid=info['pid'],
                    name=info.get('name') or 'unknown',
                    cmdline=cmdline,
                    cwd=info.get('cwd') or '',
                    create_time=create_time,
                    status=info.get('status') or 'unknown',
                )

            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue

    def find_processes_in(self, root: str) -> list[ProcessInfo]:
        """查找工作目录位于 root 之下的进程"""
        return [p for p in self.find_processes() if _is_within(p.cwd, root)]

    def count_by_root(self, roots: Iterable[str]) -> dict[str, int]:
        """统计每个目录下运行中的进程数（只遍历一次进程表）"""
        roots = list(roots)
        counts = {root: 0 for root in roots}
        for proc in self.find_processes():
            for root in roots:
                if _is_within(proc.cwd, root):
                    counts[root] += 1
                    break
        return counts
