"""启动器 - 把 worktree 编排、布局规划和会话构建串成完整命令

以 4 个工具、每列 2 行为例（tmux 单窗口网格）：
┌──────────┬──────────┬──────────┬──────────┐
│ claude   │ gemini   │ codex    │ amp      │
│ (AI)     │ (AI)     │ (AI)     │ (AI)     │
├──────────┼──────────┼──────────┼──────────┤
│ shell    │ shell    │ shell    │ shell    │
└──────────┴──────────┴──────────┴──────────┘

工作流程：
1. 查找项目配置，确定项目目录与 worktree 根目录
2. 并发创建 {前缀}-{slug} worktree（部分失败时汇总报错）
3. 按工具数与每列行数生成布局规划
4. 由对应后端构建会话，tmux 模式下附加到会话
"""

import logging
import re
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .config import ConfigLocation, ProjectConfig, find_config, load_project_config
from .errors import ConfigError, ExternalToolMissing, LayoutBuildFailure, MultiAiError
from .git import resolve_branch_ref
from .layout import plan
from .models import LayoutMode, PaneInfo, RowRole, SessionHandle, ToolSpec, WorktreeTask
from .process_monitor import ProcessMonitor
from .router import PaneRouter
from .terminal import Column, get_builder, resolve_mode
from .tmux_control import TMUX_INSTALL_HINT, TmuxController, session_name_for
from .worktree import (
    GWT_INSTALL_HINT,
    WorktreeManager,
    WorktreeOrchestrator,
    collect_worktree_entries,
    discover_all_prefixes,
    discover_worktree_branches,
)

logger = logging.getLogger(__name__)


@dataclass
class ProjectContext:
    """当前项目的配置与路径"""
    location: ConfigLocation
    config: ProjectConfig

    @property
    def project_path(self) -> Path:
        return self.location.project_path

    @property
    def worktrees_path(self) -> Path:
        return self.config.worktrees_path or self.project_path

    @property
    def project_name(self) -> str:
        return self.project_path.name

    def session_name(self, branch_prefix: str) -> str:
        return session_name_for(self.project_name, branch_prefix)

    def manager(self) -> WorktreeManager:
        return WorktreeManager(self.project_path, self.worktrees_path)

    def orchestrator(self) -> WorktreeOrchestrator:
        return WorktreeOrchestrator(
            self.manager(),
            rollback_on_partial_failure=self.config.rollback_on_partial_failure,
        )


def load_context(start: Optional[Path] = None) -> ProjectContext:
    """查找并加载项目配置"""
    location = find_config(start)
    return ProjectContext(location=location, config=load_project_config(location.config_path))


def format_relative_time(seconds: float) -> str:
    """相对时间：just now / 5m ago / 3h ago / 2d ago / 1w ago"""
    seconds = max(int(seconds), 0)
    if seconds < 60:
        return "just now"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    if seconds < 86400:
        return f"{seconds // 3600}h ago"
    if seconds < 604800:
        return f"{seconds // 86400}d ago"
    return f"{seconds // 604800}w ago"


# ========== 会话构建 ==========

def _builder_for(context: ProjectContext, mode: LayoutMode, session_name: str,
                 tmux: Optional[TmuxController]):
    return get_builder(
        mode,
        session_name,
        tmux=tmux,
        grid_window_name=context.config.grid_window_name,
        settle_delay=context.config.settle_delay,
    )


def preflight(
    context: ProjectContext,
    mode: LayoutMode,
    session_name: str,
    manager: WorktreeManager,
    tmux: Optional[TmuxController] = None,
) -> None:
    """创建 worktree 之前检查终端后端、会话名与 gwt

    任何一项不满足都直接报错，此时还没有创建任何 worktree。

    Raises:
        ExternalToolMissing: tmux / osascript / gwt 不可用
        LayoutBuildFailure: 同名 tmux 会话已存在
        ConfigError: 项目未用 gwt 初始化
    """
    tmux = tmux or TmuxController()
    ok, msg = _builder_for(context, mode, session_name, tmux).is_available()
    if not ok:
        logger.error(f"[检查] 终端后端不可用: {msg}")
        if mode.is_tmux:
            raise ExternalToolMissing("tmux", TMUX_INSTALL_HINT)
        raise ExternalToolMissing("osascript", msg)

    if mode.is_tmux and tmux.session_exists(session_name):
        raise LayoutBuildFailure(f"会话 '{session_name}' 已存在")

    if not manager.has_cli():
        raise ExternalToolMissing(manager.executable, GWT_INSTALL_HINT)
    if not manager.is_gwt_project():
        raise ConfigError(f"项目未用 gwt 初始化: {manager.project_path}（请先执行 'gwt init'）")


def build_session(
    context: ProjectContext,
    branch_prefix: str,
    columns: list[Column],
    mode: LayoutMode,
    tmux: Optional[TmuxController] = None,
    attach: bool = True,
    prompts: Optional[dict[int, str]] = None,
    prompt_delay: float = 0,
) -> SessionHandle:
    """为已有 worktree 构建终端会话

    Args:
        context: 项目上下文
        branch_prefix: 分支前缀（会话名与 iTerm2 Tab 标题）
        columns: [(工具, worktree 路径), ...]
        mode: 布局模式
        tmux: TmuxController，None 表示新建
        attach: tmux 模式下构建完成后是否附加
        prompts: 列下标 -> 工具启动后发送的文本
        prompt_delay: 发送 prompts 前等待工具启动的秒数
    """
    # 多窗口模式固定两行（AI + shell）
    rows = 2 if mode is LayoutMode.TMUX_MULTI_WINDOW else context.config.rows_per_column
    layout = plan(len(columns), rows)

    session_name = context.session_name(branch_prefix)
    tmux = tmux or TmuxController()
    builder = _builder_for(context, mode, session_name, tmux)

    print(f"🖥  使用 {mode.value} 创建 {len(columns)} 列 x {rows} 行布局...")
    if mode.is_tmux:
        handle = builder.build(layout, columns, branch_prefix)
        if prompts:
            _deliver_prompts(context, tmux, handle, columns, prompts, prompt_delay)
    else:
        # iTerm2 的 pane 只能在同一段脚本里寻址
        handle = builder.build(layout, columns, branch_prefix, prompts=prompts, prompt_delay=prompt_delay)

    if mode.is_tmux:
        print(f"✅ tmux 会话已创建: {handle.session_id}")
        if attach and sys.stdin.isatty():
            tmux.attach_session(handle.session_id)
        else:
            print(f"   附加会话: tmux attach -t {handle.session_id}")
    else:
        print(f"✅ iTerm2 Tab 已创建: {branch_prefix}")
    return handle


def _deliver_prompts(
    context: ProjectContext,
    tmux: TmuxController,
    handle: SessionHandle,
    columns: list[Column],
    prompts: dict[int, str],
    delay: float,
) -> None:
    """等待工具启动后，把 prompt 粘贴到每列的 AI pane"""
    if delay > 0:
        print(f"⏳ 等待 {delay:g} 秒后发送 prompt...")
        time.sleep(delay)
    router = make_router(context, tmux)
    for col in sorted(prompts):
        tool, path = columns[col]
        pane = PaneInfo(
            pane_id=handle.addresses[(col, 0)],
            window_name=tool.name,
            pane_index=0,
            current_path=str(path),
            role=RowRole.PRIMARY,
            tool=tool.name,
        )
        router.deliver([pane], prompts[col])
    print(f"✅ 已向 {len(prompts)} 个工具发送 prompt")


# ========== add / continue ==========

def create_environment(
    branch_prefix: str,
    mode_override: Optional[LayoutMode] = None,
    legacy_tmux: bool = False,
    start: Optional[Path] = None,
    attach: bool = True,
) -> SessionHandle:
    """创建 worktree 并构建会话（mai add）"""
    context = load_context(start)
    mode = resolve_mode(mode_override, legacy_tmux, context.config.mode)
    tools = context.config.tools
    orchestrator = context.orchestrator()
    tmux = TmuxController()
    preflight(context, mode, context.session_name(branch_prefix), orchestrator.manager, tmux)

    print(f"🌱 为 {len(tools)} 个工具创建 worktree（前缀 '{branch_prefix}'）...")
    tasks = orchestrator.build_tasks(tools, branch_prefix)
    result = orchestrator.create_all(tasks)
    print(f"✅ {len(result.successes)} 个 worktree 已创建")

    return build_session(context, branch_prefix, result.successes, mode, tmux=tmux, attach=attach)


def continue_environment(
    branch_prefix: str,
    mode_override: Optional[LayoutMode] = None,
    legacy_tmux: bool = False,
    start: Optional[Path] = None,
    attach: bool = True,
) -> SessionHandle:
    """为已有 worktree 重建会话（mai continue）

    只使用目录存在的工具；会话已存在时直接附加。
    """
    context = load_context(start)
    mode = resolve_mode(mode_override, legacy_tmux, context.config.mode)
    manager = context.manager()

    columns: list[Column] = []
    for tool in context.config.tools:
        path = manager.worktree_path(f"{branch_prefix}-{tool.slug}")
        if path.is_dir():
            columns.append((tool, path))
        else:
            print(f"⚠️  跳过 {tool.name}: worktree 不存在 ({path})")

    if not columns:
        raise ConfigError(f"前缀 '{branch_prefix}' 下没有可用的 worktree，请先执行 'mai add {branch_prefix}'")

    if mode.is_tmux:
        tmux = TmuxController()
        session_name = context.session_name(branch_prefix)
        if tmux.session_exists(session_name):
            print(f"✅ 会话已存在: {session_name}")
            if attach and sys.stdin.isatty():
                tmux.attach_session(session_name)
            return SessionHandle(backend="tmux", session_id=session_name)

    return build_session(context, branch_prefix, columns, mode, attach=attach)


# ========== remove ==========

def _removal_tasks(context: ProjectContext, orchestrator: WorktreeOrchestrator,
                   branch_prefix: str) -> list[WorktreeTask]:
    """前缀下要删除的 worktree

    配置中每个工具的 {前缀}-{slug}，加上磁盘上的审查汇总列 {前缀}-meta-{slug}。
    其它以同一前缀开头的目录（如 {前缀}-review-01-*）属于别的环境，不删除。
    """
    tools = context.config.tools
    tasks = [
        task for task in orchestrator.build_tasks(tools, branch_prefix)
        if task.target_path.exists()
    ]
    meta_names = {f"{branch_prefix}-meta-{tool.slug}" for tool in tools}
    known = {task.branch_name for task in tasks}
    for name in discover_worktree_branches(context.worktrees_path, branch_prefix):
        if name not in meta_names or name in known:
            continue
        slug = name[len(branch_prefix) + 1:]
        tasks.append(WorktreeTask(
            tool=ToolSpec(name=slug, command=slug, slug=slug),
            branch_name=name,
            target_path=orchestrator.manager.worktree_path(name),
        ))
    return tasks


def remove_environment(
    branch_prefix: str,
    force: bool = False,
    start: Optional[Path] = None,
    confirm: Callable[[str], str] = input,
) -> bool:
    """删除会话与 worktree（mai remove）

    Returns:
        是否执行了删除（用户取消时为 False）

    Raises:
        OrchestrationError: 部分 worktree 删除失败
    """
    context = load_context(start)
    orchestrator = context.orchestrator()
    tasks = _removal_tasks(context, orchestrator, branch_prefix)
    session_name = context.session_name(branch_prefix)
    tmux = TmuxController()
    has_session = tmux.is_available() and tmux.session_exists(session_name)

    if not tasks and not has_session:
        print(f"⚠️  前缀 '{branch_prefix}' 下没有 worktree 或会话")
        return False

    print(f"将删除前缀 '{branch_prefix}' 的环境:")
    if has_session:
        print(f"  - tmux 会话: {session_name}")
    for task in tasks:
        print(f"  - worktree: {task.target_path}")

    if not force:
        answer = confirm("确认删除？[y/N] ").strip().lower()
        if answer not in ('y', 'yes'):
            print("已取消")
            return False

    if has_session:
        result = tmux.kill_session(session_name)
        if result.returncode == 0:
            print(f"✅ 已关闭会话: {session_name}")
        else:
            # 会话删除失败不阻止 worktree 删除
            logger.warning(f"[删除] 关闭会话失败: {result.stderr.strip()}")
            print(f"⚠️  关闭会话失败: {result.stderr.strip()}")

    if tasks:
        result = orchestrator.remove_all(tasks)
        print(f"✅ 已删除 {len(result.successes)} 个 worktree")
    return True


# ========== review ==========

DEFAULT_REVIEW_PROMPT = (
    "Review changes in this branch against the base branch. "
    "Once done with the review, write findings to REVIEW.md"
)

# 工具启动到可以接收输入的等待秒数（经验值）
REVIEW_PROMPT_DELAY = 5


def next_review_prefix(worktrees_path: Path, branch: str) -> str:
    """审查前缀 {分支}-review-NN，NN 为已有最大编号 + 1"""
    pattern = re.compile(rf"^{re.escape(branch)}-review-(\d+)(?:-|$)")
    highest = 0
    for name in collect_worktree_entries(worktrees_path):
        match = pattern.match(name)
        if match:
            highest = max(highest, int(match.group(1)))
    return f"{branch}-review-{highest + 1:02d}"


def meta_review_prompt(locations: list[tuple[str, Path]]) -> str:
    """汇总工具的 prompt，列出各审查工具的 REVIEW.md 位置"""
    listing = "\n".join(f"- {name}: {path}" for name, path in locations)
    return (
        "Your task is to review the code reviews made by other AI tools. "
        "You will find the review markdown files from these locations:\n"
        f"{listing}\n\n"
        "Please wait for the REVIEW.md files to appear, then read all of the reviews, "
        "and create a comprehensive summary of the review results. "
        "You can investigate the repo and review results if needed. Use sub-agents if needed.\n\n"
        "Once you are done, create REVIEW_SUMMARY.md with your consolidated findings."
    )


def _select_tools(tools: list[ToolSpec], names: Optional[list[str]]) -> list[ToolSpec]:
    if not names:
        return list(tools)
    by_name = {tool.name: tool for tool in tools}
    missing = [name for name in names if name not in by_name]
    if missing:
        known = ', '.join(by_name)
        raise ConfigError(f"未知工具: {', '.join(missing)}（已配置: {known}）")
    return [by_name[name] for name in names]


def review_environment(
    branch: str,
    tool_names: Optional[list[str]] = None,
    meta: Optional[str] = None,
    prompt: str = DEFAULT_REVIEW_PROMPT,
    send_prompts: bool = True,
    mode_override: Optional[LayoutMode] = None,
    start: Optional[Path] = None,
    attach: bool = True,
    prompt_delay: float = REVIEW_PROMPT_DELAY,
) -> SessionHandle:
    """为分支创建多工具并行审查环境（mai review）

    每个审查工具一个 worktree，创建后 reset 到被审查分支（只存在于远程时用 origin/<分支>）。
    指定 meta 时追加一列汇总工具，它等待各工具写出 REVIEW.md 后生成 REVIEW_SUMMARY.md。

    Args:
        branch: 被审查的分支
        tool_names: 审查工具名，None 表示配置中的全部工具
        meta: 汇总工具名
        prompt: 发给审查工具的 prompt
        send_prompts: 是否自动发送 prompt
        prompt_delay: 会话建好后等待工具启动的秒数
    """
    context = load_context(start)
    mode = resolve_mode(mode_override, False, context.config.mode)
    reviewers = _select_tools(context.config.tools, tool_names)
    if not reviewers:
        raise ConfigError("没有可用的审查工具")

    meta_tool: Optional[ToolSpec] = None
    if meta:
        base = _select_tools(context.config.tools, [meta])[0]
        meta_tool = ToolSpec(
            name=f"meta-{base.name}",
            command=base.command,
            slug=f"meta-{base.slug}",
            ultrathink=base.ultrathink,
        )

    ref = resolve_branch_ref(context.project_path, branch)
    if ref is None:
        raise ConfigError(f"分支 '{branch}' 不存在（本地与 origin 均未找到）")

    prefix = next_review_prefix(context.worktrees_path, branch)
    orchestrator = context.orchestrator()
    tmux = TmuxController()
    preflight(context, mode, context.session_name(prefix), orchestrator.manager, tmux)

    tools = reviewers + ([meta_tool] if meta_tool else [])
    print(f"🔍 审查分支 '{branch}'（{ref}），前缀 '{prefix}'，{len(tools)} 个工具...")

    def reset(task: WorktreeTask, path: Path) -> None:
        orchestrator.manager.reset_to(path, ref)

    result = orchestrator.create_all(orchestrator.build_tasks(tools, prefix), after_create=reset)
    print(f"✅ {len(result.successes)} 个审查 worktree 已创建")

    prompts: dict[int, str] = {}
    if send_prompts:
        locations = [
            (tool.name, path / "REVIEW.md") for tool, path in result.successes if tool != meta_tool
        ]
        for col, (tool, _) in enumerate(result.successes):
            prompts[col] = meta_review_prompt(locations) if tool == meta_tool else prompt
    else:
        print("⚠️  不自动发送 prompt，请在各 pane 中手动输入")

    return build_session(
        context, prefix, result.successes, mode,
        tmux=tmux, attach=attach, prompts=prompts, prompt_delay=prompt_delay,
    )


# ========== list ==========

@dataclass
class EnvironmentSummary:
    """一个分支前缀下的环境"""
    prefix: str
    worktrees: list[str]
    modified: float
    running: int = 0


def list_environments(
    start: Optional[Path] = None,
    known_tools: Optional[list[ToolSpec]] = None,
    monitor: Optional[ProcessMonitor] = None,
) -> list[EnvironmentSummary]:
    """按前缀分组列出 worktree，最近修改的在前"""
    context = load_context(start)
    tools = known_tools if known_tools is not None else context.config.tools
    base = context.worktrees_path
    groups = discover_all_prefixes(base, [t.slug for t in tools])

    monitor = monitor or ProcessMonitor([t.command.split()[0] for t in tools])
    roots = [str(base / name) for _, names in groups for name in names]
    counts = monitor.count_by_root(roots) if roots else {}

    summaries = []
    for prefix, names in groups:
        mtimes = [(base / name).stat().st_mtime for name in names if (base / name).exists()]
        summaries.append(EnvironmentSummary(
            prefix=prefix,
            worktrees=names,
            modified=max(mtimes) if mtimes else 0.0,
            running=sum(counts.get(str(base / name), 0) for name in names),
        ))
    summaries.sort(key=lambda s: s.modified, reverse=True)
    return summaries


def print_environments(summaries: list[EnvironmentSummary], now: Optional[float] = None) -> None:
    if not summaries:
        print("没有找到 worktree")
        return
    now = now if now is not None else time.time()
    for summary in summaries:
        age = format_relative_time(now - summary.modified)
        running = f", {summary.running} 个进程运行中" if summary.running else ""
        print(f"📁 {summary.prefix}  ({len(summary.worktrees)} 个 worktree, {age}{running})")
        for name in summary.worktrees:
            print(f"    {name}")


# ========== send ==========

def make_router(context: Optional[ProjectContext] = None, tmux: Optional[TmuxController] = None) -> PaneRouter:
    if context is None:
        return PaneRouter(tmux=tmux)
    return PaneRouter(
        tmux=tmux,
        grid_window_name=context.config.grid_window_name,
        known_tools=context.config.tools,
    )


def send_message(
    message: str,
    session: Optional[str] = None,
    pane_ids: Optional[list[str]] = None,
    shell: bool = False,
    ultrathink: bool = False,
    enter: bool = True,
    router: Optional[PaneRouter] = None,
) -> int:
    """非交互发送（mai send -m）

    Returns:
        发送的 pane 数量
    """
    if not message.strip():
        raise MultiAiError("消息为空")
    router = router or make_router(_optional_context())
    target = router.select_session(session)
    panes = router.inventory(target)
    role = RowRole.UTILITY if shell else RowRole.PRIMARY
    targets = router.resolve_targets(panes, role=role, pane_ids=pane_ids)
    if not targets:
        raise ConfigError(f"会话 '{target}' 中没有匹配的 pane")
    count = router.deliver(targets, message, enter=enter, deep_thinking=ultrathink and not shell)
    print(f"✅ 已发送到 {count} 个 pane（会话 {target}）")
    return count


def _optional_context() -> Optional[ProjectContext]:
    """send 可以在项目外执行，找不到配置时使用默认路由参数"""
    try:
        return load_context()
    except ConfigError as e:
        logger.info(f"[发送] 未加载项目配置: {e}")
        return None


def run_interactive_send(session: Optional[str] = None) -> Optional[int]:
    """交互发送（mai send，不带 -m）"""
    from .app import run_send_app

    router = make_router(_optional_context())
    sessions = router.list_sessions()
    if session:
        sessions = [s for s in sessions if session in s]
        if not sessions:
            raise ConfigError(f"会话 '{session}' 不存在")
    count = run_send_app(router, sessions)
    if count:
        print(f"✅ 已发送到 {count} 个 pane")
    return count

