"""Worktree 管理 - 并发创建/删除每个工具独立的 git worktree

底层调用 gwt（git-worktree-cli）：
- gwt add <branch>            创建 worktree
- gwt remove <branch> --force 删除 worktree

批量操作每个任务一个线程，全部完成后统一汇总结果；
某个任务失败不影响其它任务，已创建的 worktree 默认不回滚。
"""

import logging
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import ExternalToolMissing, OrchestrationError, WorktreeError
from .models import OrchestrationResult, ToolSpec, WorktreeTask

logger = logging.getLogger(__name__)

GWT_INSTALL_HINT = "请安装 gwt: https://github.com/mikko-kohtala/git-worktree-cli"

GWT_CONFIG_FILES = ('git-worktree-config.jsonc', 'git-worktree-config.yaml')

STDERR_TAIL_LINES = 20

Echo = Callable[[str], None]
AfterCreate = Callable[[WorktreeTask, Path], None]


class WorktreeManager:
    """gwt 命令封装

    Args:
        project_path: 项目目录（gwt 在此目录执行）
        worktrees_path: worktree 根目录，默认与项目目录相同
        executable: gwt 可执行文件名
    """

    def __init__(
        self,
        project_path: Path,
        worktrees_path: Optional[Path] = None,
        executable: str = "gwt",
    ):
        self.project_path = Path(project_path)
        self.worktrees_path = Path(worktrees_path) if worktrees_path else self.project_path
        self.executable = executable

    def has_cli(self) -> bool:
        """检查 gwt 是否可用"""
        try:
            result = subprocess.run(
                [self.executable, '--version'], capture_output=True, text=True
            )
        except OSError:
            return False
        return result.returncode == 0

    def is_gwt_project(self) -> bool:
        """检查项目是否已用 gwt 初始化"""
        for base in (self.project_path, self.project_path / 'main'):
            if any((base / name).exists() for name in GWT_CONFIG_FILES):
                return True
        try:
            result = subprocess.run(
                [self.executable, 'list'],
                cwd=self.project_path, capture_output=True, text=True,
            )
        except OSError:
            return False
        return result.returncode == 0

    def worktree_path(self, branch_name: str) -> Path:
        return self.worktrees_path / branch_name

    def reset_to(self, path: Path, ref: str) -> None:
        """把 worktree 内容重置到指定引用（git reset --hard）

        Raises:
            WorktreeError: git 执行失败
        """
        cmd = ['git', 'reset', '--hard', ref]
        logger.info(f"[worktree] 执行: {' '.join(cmd)} (cwd={path})")
        try:
            result = subprocess.run(cmd, cwd=path, capture_output=True, text=True)
        except OSError as e:
            raise WorktreeError(f"执行 git 失败: {e}", command=cmd) from e

        if result.returncode != 0:
            detail = result.stderr.strip() or "未知错误"
            logger.error(f"[worktree] 重置失败: {path} -> {detail}")
            raise WorktreeError(
                f"重置到 {ref} 失败: {detail}",
                command=cmd,
                returncode=result.returncode,
                stderr=result.stderr,
            )

    def add_worktree(self, branch_name: str, echo: Optional[Echo] = print) -> Path:
        """创建 worktree

        Returns:
            worktree 路径

        Raises:
            WorktreeError: gwt 执行失败
        """
        self._stream(['add', branch_name], echo, "创建 worktree 失败")
        return self.worktree_path(branch_name)

    def remove_worktree(self, branch_name: str, echo: Optional[Echo] = print) -> None:
        """删除 worktree，目录已不存在时视为成功"""
        target = self.worktree_path(branch_name)
        if not target.exists():
            logger.info(f"[worktree] 目录不存在，跳过删除: {target}")
            return
        self._stream(['remove', branch_name, '--force'], echo, "删除 worktree 失败")

    def _stream(self, args: list[str], echo: Optional[Echo], failure: str) -> None:
        """执行 gwt 并逐行转发 stdout"""
        cmd = [self.executable] + args
        logger.info(f"[worktree] 执行: {' '.join(cmd)} (cwd={self.project_path})")
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.project_path,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            raise WorktreeError(f"执行 {self.executable} 失败: {e}", command=cmd) from e

        # stderr 由单独线程读完，stdout 同时逐行转发
        stderr_parts: list[str] = []
        reader = threading.Thread(
            target=lambda: stderr_parts.append(proc.stderr.read()),
            name="gwt-stderr",
            daemon=True,
        )
        reader.start()
        for line in proc.stdout:
            if echo:
                echo(f"    {line.rstrip()}")
        proc.wait()
        reader.join()
        stderr = "".join(stderr_parts)

        if proc.returncode != 0:
            # 错误信息只保留末尾几行，完整内容在 WorktreeError.stderr
            detail = "\n".join(stderr.strip().splitlines()[-STDERR_TAIL_LINES:]) or "未知错误"
            logger.error(f"[worktree] {failure}: {' '.join(cmd)} -> {detail}")
            raise WorktreeError(
                f"{failure}: {detail}",
                command=cmd,
                returncode=proc.returncode,
                stderr=stderr,
            )


class _ResultSink:
    """线程安全的结果收集器，按输入下标排序输出"""

    def __init__(self):
        self._lock = threading.Lock()
        self._outcomes: dict[int, tuple[ToolSpec, Optional[Path], Optional[str]]] = {}

    def record(self, index: int, tool: ToolSpec, path: Optional[Path] = None,
               error: Optional[str] = None) -> None:
        with self._lock:
            self._outcomes[index] = (tool, path, error)

    def result(self) -> OrchestrationResult:
        result = OrchestrationResult()
        with self._lock:
            for index in sorted(self._outcomes):
                tool, path, error = self._outcomes[index]
                if error is None:
                    result.successes.append((tool, path))
                else:
                    result.failures.append((tool, error))
        return result


class WorktreeOrchestrator:
    """并发 worktree 编排器

    Args:
        manager: WorktreeManager
        echo: 输出回调（子进程输出按完成顺序交错打印）
        rollback_on_partial_failure: 部分失败时是否删除已创建的 worktree
    """

    def __init__(
        self,
        manager: WorktreeManager,
        echo: Optional[Echo] = print,
        rollback_on_partial_failure: bool = False,
    ):
        self.manager = manager
        self.echo = echo
        self.rollback_on_partial_failure = rollback_on_partial_failure

    def build_tasks(self, tools: list[ToolSpec], branch_prefix: str) -> list[WorktreeTask]:
        """为每个工具生成任务，分支名为 {prefix}-{slug}"""
        tasks = []
        for tool in tools:
            branch_name = f"{branch_prefix}-{tool.slug}"
            tasks.append(WorktreeTask(
                tool=tool,
                branch_name=branch_name,
                target_path=self.manager.worktree_path(branch_name),
            ))
        return tasks

    def _say(self, text: str) -> None:
        if self.echo:
            self.echo(text)

    def _ensure_cli(self) -> None:
        if not self.manager.has_cli():
            raise ExternalToolMissing(self.manager.executable, GWT_INSTALL_HINT)

    def _fan_out(self, tasks: list[WorktreeTask], work: Callable[[WorktreeTask], Path]) -> OrchestrationResult:
        """每个任务一个线程执行，等待全部完成后汇总"""
        sink = _ResultSink()
        if not tasks:
            return sink.result()

        def run(index: int, task: WorktreeTask) -> None:
            try:
                path = work(task)
            except Exception as e:
                # 任务失败只记录，不影响其它线程
                logger.error(f"[worktree] {task.tool.name} 失败: {e}")
                sink.record(index, task.tool, error=str(e))
            else:
                sink.record(index, task.tool, path=path)

        with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="worktree") as pool:
            for index, task in enumerate(tasks):
                pool.submit(run, index, task)
        return sink.result()

    def collect_create(self, tasks: list[WorktreeTask],
                       after_create: Optional[AfterCreate] = None) -> OrchestrationResult:
        """并发创建，返回汇总结果（任务失败不抛异常）

        after_create 在同一工作线程内紧接着创建执行，抛出异常时该任务记为失败。
        """

        def work(task: WorktreeTask) -> Path:
            self._say(f"  正在为 {task.tool.command} 创建 worktree（分支 '{task.branch_name}'）...")
            path = self.manager.add_worktree(task.branch_name, echo=self.echo)
            if after_create:
                after_create(task, path)
            self._say(f"  ✅ {task.tool.command}: {path}")
            return path

        return self._fan_out(tasks, work)

    def collect_remove(self, tasks: list[WorktreeTask]) -> OrchestrationResult:
        """并发删除，返回汇总结果（目录不存在视为成功）"""

        def work(task: WorktreeTask) -> Path:
            self._say(f"  正在删除 worktree '{task.branch_name}'...")
            self.manager.remove_worktree(task.branch_name, echo=self.echo)
            self._say(f"  ✅ 已删除: {task.branch_name}")
            return task.target_path

        return self._fan_out(tasks, work)

    def create_all(self, tasks: list[WorktreeTask],
                   after_create: Optional[AfterCreate] = None) -> OrchestrationResult:
        """并发创建所有 worktree

        Args:
            tasks: 任务列表
            after_create: 每个 worktree 创建后的附加步骤，如重置到审查分支

        Raises:
            ExternalToolMissing: gwt 不可用（在任何任务开始前检查）
            OrchestrationError: 至少一个任务失败（所有任务都已结束）
        """
        self._ensure_cli()
        result = self.collect_create(tasks, after_create)
        if result.failures:
            if self.rollback_on_partial_failure and result.successes:
                self._rollback(tasks, result)
            raise OrchestrationError(result, action="create")
        return result

    def remove_all(self, tasks: list[WorktreeTask]) -> OrchestrationResult:
        """并发删除所有 worktree

        Raises:
            ExternalToolMissing: gwt 不可用
            OrchestrationError: 至少一个任务失败
        """
        self._ensure_cli()
        result = self.collect_remove(tasks)
        if result.failures:
            raise OrchestrationError(result, action="remove")
        return result

    def _rollback(self, tasks: list[WorktreeTask], result: OrchestrationResult) -> None:
        created = {tool for tool, _ in result.successes}
        rollback_tasks = [task for task in tasks if task.tool in created]
        self._say(f"⚠️  回滚 {len(rollback_tasks)} 个已创建的 worktree...")
        rollback = self.collect_remove(rollback_tasks)
        for tool, error_text in rollback.failures:
            logger.warning(f"[worktree] 回滚失败: {tool.name}: {error_text}")
            self._say(f"  ⚠️  回滚失败 {tool.name}: {error_text}")


# ========== worktree 目录发现 ==========

def collect_worktree_entries(base: Path) -> list[str]:
    """递归收集 worktree 目录名（相对 base）

    含 .git 的目录视为 worktree；中间目录（如分支 feat/x 的 feat/）继续向下遍历。
    """
    entries: list[str] = []

    def walk(directory: Path, prefix: str) -> None:
        try:
            children = sorted(directory.iterdir())
        except OSError:
            return
        for child in children:
            if not child.is_dir():
                continue
            relative = f"{prefix}/{child.name}" if prefix else child.name
            if (child / '.git').exists():
                entries.append(relative)
            else:
                walk(child, relative)

    walk(Path(base), "")
    return entries


def discover_worktree_branches(base: Path, branch_prefix: str) -> list[str]:
    """查找属于某前缀的 worktree（包括与前缀同名的独立 worktree）"""
    prefix_dash = f"{branch_prefix}-"
    return sorted(
        name for name in collect_worktree_entries(base)
        if name.startswith(prefix_dash) or name == branch_prefix
    )


def discover_all_prefixes(base: Path, known_slugs: Iterable[str]) -> list[tuple[str, list[str]]]:
    """按分支前缀分组所有 worktree

    较长的 slug 优先匹配（避免 "claude" 抢先匹配 "claude-plan-yolo"）。

    Returns:
        [(前缀, [worktree 目录名...]), ...]，按前缀排序
    """
    slugs = sorted(set(known_slugs), key=len, reverse=True)
    groups: dict[str, list[str]] = {}

    for name in collect_worktree_entries(base):
        if name == 'main':
            continue
        prefix = name
        for slug in slugs:
            suffix = f"-{slug}"
            if name.endswith(suffix) and len(name) > len(suffix):
                prefix = name[: -len(suffix)]
                break
        groups.setdefault(prefix, []).append(name)

    return [(prefix, sorted(names)) for prefix, names in sorted(groups.items())]
