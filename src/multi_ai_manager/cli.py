"""命令行入口 - 多 AI 工具并行开发环境"""

import argparse
import logging
import shutil
import sys
from pathlib import Path

from .config import (
    CONFIG_DIR,
    PROJECT_CONFIG_NAME,
    TOOLS_CONFIG_PATH,
    ProjectConfig,
    dump_project_config,
    global_config_path,
    load_tools,
    save_default_tools,
    save_project_config,
)
from .errors import MultiAiError
from .layout import apply_fractions, plan as make_plan, split_fractions
from .models import LayoutMode
from .tmux_control import check_tmux
from .worktree import GWT_INSTALL_HINT, WorktreeManager

LOG_DIR = CONFIG_DIR / 'logs'
LOG_FILE = LOG_DIR / 'mai.log'

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False) -> None:
    """日志写入 ~/.config/multi-ai-manager/logs/mai.log，--debug 时同时输出到 stderr"""
    handlers: list[logging.Handler] = []
    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(LOG_FILE, encoding='utf-8'))
    except OSError as e:
        print(f"⚠️  无法写入日志文件 {LOG_FILE}: {e}", file=sys.stderr)
    if debug:
        handlers.append(logging.StreamHandler(sys.stderr))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s [%(levelname)s] %(message)s',
        handlers=handlers,
        force=True,
    )


def _mode(value: str) -> LayoutMode:
    try:
        return LayoutMode.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mai',
        description='Multi AI Manager - 为多个 AI 编程工具创建独立 worktree 并分屏运行',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
布局（tmux 单窗口网格，4 个工具，每列 2 行）:
  ┌──────────┬──────────┬──────────┬──────────┐
  │ claude   │ gemini   │ codex    │ amp      │
  ├──────────┼──────────┼──────────┼──────────┤
  │ shell    │ shell    │ shell    │ shell    │
  └──────────┴──────────┴──────────┴──────────┘

布局模式:
  iterm2              macOS 默认，一个 iTerm2 Tab
  tmux-single-window  其它平台默认，一个窗口内的网格
  tmux-multi-window   每个工具一个窗口（AI + shell）

使用方式:
  mai init                       # 生成项目配置
  mai add feature-x              # 创建 worktree 并分屏
  mai continue feature-x         # 为已有 worktree 重建会话
  mai send -m "run the tests"    # 向所有 AI pane 发送消息
  mai review feature-x --meta claude  # 多个工具并行审查分支
  mai remove feature-x           # 删除会话与 worktree
        """
    )
    parser.add_argument('--version', '-v', action='store_true', help='显示版本')
    parser.add_argument('--debug', action='store_true', help='日志同时输出到终端')

    sub = parser.add_subparsers(dest='command')

    p = sub.add_parser('init', help='生成项目配置 multi-ai-config.yaml')
    p.add_argument('--tools', help='逗号分隔的工具名（默认使用工具注册表中的全部）')
    p.add_argument('--mode', type=_mode, help='布局模式')
    p.add_argument('--rows', type=int, default=2, help='每列 pane 数（默认 2）')
    p.add_argument('--global', dest='global_config', action='store_true',
                   help='写入 ~/.config/multi-ai-manager/projects/<远程地址>.yaml')
    p.add_argument('--force', '-f', action='store_true', help='覆盖已有配置')

    for name, aliases, help_text in (
        ('add', [], '创建 worktree 并构建会话'),
        ('continue', ['resume'], '为已有 worktree 重建会话'),
    ):
        p = sub.add_parser(name, aliases=aliases, help=help_text)
        p.add_argument('prefix', help='分支前缀')
        p.add_argument('--mode', type=_mode, help='布局模式（覆盖配置）')
        p.add_argument('--tmux', action='store_true', help='等同于 --mode tmux-multi-window')
        p.add_argument('--no-attach', action='store_true', help='tmux 模式下不附加会话')

    p = sub.add_parser('remove', help='删除会话与 worktree')
    p.add_argument('prefix', help='分支前缀')
    p.add_argument('--force', '-f', action='store_true', help='不确认直接删除')

    p = sub.add_parser('review', help='为分支创建多工具并行代码审查')
    p.add_argument('branch', help='被审查的分支（本地或 origin 上的）')
    p.add_argument('--tools', help='逗号分隔的审查工具名（默认配置中的全部工具）')
    p.add_argument('--meta', help='汇总工具名，读取各工具的 REVIEW.md 并写出 REVIEW_SUMMARY.md')
    p.add_argument('--prompt', help='发给审查工具的 prompt')
    p.add_argument('--no-send', action='store_true', help='不自动发送 prompt')
    p.add_argument('--mode', type=_mode, help='布局模式（覆盖配置）')
    p.add_argument('--no-attach', action='store_true', help='tmux 模式下不附加会话')

    sub.add_parser('list', help='按前缀列出 worktree')

    p = sub.add_parser('send', help='向会话中的 pane 发送消息')
    p.add_argument('--session', '-s', help='目标会话（只有一个会话时可省略）')
    p.add_argument('--message', '-m', help='消息内容（省略时打开交互界面）')
    p.add_argument('--pane', '-p', action='append', dest='panes', help='目标 pane ID，可重复')
    p.add_argument('--shell', action='store_true', help='发送给 shell pane 而不是 AI pane')
    p.add_argument('--ultrathink', action='store_true', help='追加深度思考短语')
    p.add_argument('--no-enter', action='store_true', help='只粘贴不回车')

    p = sub.add_parser('plan', help='预览等分分屏的百分比')
    p.add_argument('columns', type=int, help='列数')
    p.add_argument('rows', type=int, help='每列行数')

    sub.add_parser('check', help='检查环境')
    sub.add_parser('config', help='显示当前项目配置')

    p = sub.add_parser('apps', help='列出工具注册表')
    p.add_argument('--init', action='store_true', help='生成默认工具注册表')

    return parser


def main(argv=None) -> int:
    """主入口"""
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.debug)

    if args.version:
        from . import __version__
        print(f"Multi AI Manager v{__version__}")
        return 0

    if not args.command:
        parser.print_help()
        return 0

    handler = COMMANDS[args.command]
    try:
        return handler(args) or 0
    except MultiAiError as e:
        logger.error(f"[命令] {args.command} 失败: {e}")
        print(f"❌ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n已中断", file=sys.stderr)
        return 130


# ========== 子命令 ==========

def cmd_init(args) -> int:
    registry = load_tools()
    if args.tools:
        wanted = [name.strip() for name in args.tools.split(',') if name.strip()]
        by_name = {tool.name: tool for tool in registry}
        unknown = [name for name in wanted if name not in by_name]
        if unknown:
            print(f"❌ 工具注册表中没有: {', '.join(unknown)}（见 mai apps）", file=sys.stderr)
            return 1
        tools = [by_name[name] for name in wanted]
    else:
        tools = registry

    if args.rows < 1:
        print("❌ --rows 必须 >= 1", file=sys.stderr)
        return 1

    if args.global_config:
        path = global_config_path(Path.cwd())
        if path is None:
            print("❌ 当前目录没有 origin 远程地址，无法生成全局配置", file=sys.stderr)
            return 1
    else:
        path = Path.cwd() / PROJECT_CONFIG_NAME

    if path.exists() and not args.force:
        print(f"⚠️  配置已存在: {path}（使用 --force 覆盖）")
        return 1

    save_project_config(ProjectConfig(tools=tools, rows_per_column=args.rows, mode=args.mode), path)
    print(f"✅ 已生成配置: {path}")
    print(f"   工具: {', '.join(t.name for t in tools)}")
    return 0


def cmd_add(args) -> int:
    from .launcher import create_environment
    create_environment(args.prefix, args.mode, args.tmux, attach=not args.no_attach)
    return 0


def cmd_continue(args) -> int:
    from .launcher import continue_environment
    continue_environment(args.prefix, args.mode, args.tmux, attach=not args.no_attach)
    return 0


def cmd_remove(args) -> int:
    from .launcher import remove_environment
    remove_environment(args.prefix, force=args.force)
    return 0


def cmd_review(args) -> int:
    from .launcher import DEFAULT_REVIEW_PROMPT, review_environment
    tools = [name.strip() for name in args.tools.split(',') if name.strip()] if args.tools else None
    review_environment(
        args.branch,
        tool_names=tools,
        meta=args.meta,
        prompt=args.prompt or DEFAULT_REVIEW_PROMPT,
        send_prompts=not args.no_send,
        mode_override=args.mode,
        attach=not args.no_attach,
    )
    return 0


def cmd_list(args) -> int:
    from .launcher import list_environments, print_environments
    print_environments(list_environments())
    return 0


def cmd_send(args) -> int:
    from .launcher import run_interactive_send, send_message
    if args.message is None:
        if not sys.stdout.isatty():
            print("❌ 交互模式需要在终端中运行，或使用 -m 指定消息", file=sys.stderr)
            return 1
        run_interactive_send(args.session)
        return 0
    send_message(
        args.message,
        session=args.session,
        pane_ids=args.panes,
        shell=args.shell,
        ultrathink=args.ultrathink,
        enter=not args.no_enter,
    )
    return 0


def cmd_plan(args) -> int:
    try:
        layout = make_plan(args.columns, args.rows)
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1
    for label, count in (("列", layout.column_count), ("行", layout.rows_per_column)):
        fractions = split_fractions(count)
        sizes = ", ".join(f"{part * 100:.1f}%" for part in apply_fractions(fractions))
        print(f"{label}: {count} 份, 分屏百分比 {fractions or '无需分屏'}, 实际占比 [{sizes}]")

    print(f"\n分屏步骤（共 {len(layout.steps)} 次）:")
    for i, step in enumerate(layout.steps, 1):
        print(f"  {i:2d}. {step.axis.value:<10} {step.parent_region} -> {step.new_region} ({step.fraction_percent}%)")
    return 0


def cmd_check(args) -> int:
    return check_environment()


def cmd_config(args) -> int:
    from .launcher import load_context
    context = load_context()
    print(f"配置文件: {context.location.config_path}")
    print(f"项目目录: {context.project_path}")
    print(f"worktree 目录: {context.worktrees_path}")
    print()
    print(dump_project_config(context.config), end='')
    return 0


def cmd_apps(args) -> int:
    if args.init:
        if TOOLS_CONFIG_PATH.exists():
            print(f"⚠️  工具注册表已存在: {TOOLS_CONFIG_PATH}")
            return 1
        path = save_default_tools()
        print(f"✅ 已生成工具注册表: {path}")
        return 0

    source = TOOLS_CONFIG_PATH if TOOLS_CONFIG_PATH.exists() else "内置默认值"
    print(f"工具注册表（{source}）:")
    for tool in load_tools():
        extra = f"  [深度思考: {tool.ultrathink}]" if tool.ultrathink else ""
        print(f"  {tool.name:<10} {tool.command:<30} slug={tool.slug}{extra}")
    return 0


COMMANDS = {
    'init': cmd_init,
    'add': cmd_add,
    'continue': cmd_continue,
    'resume': cmd_continue,
    'remove': cmd_remove,
    'review': cmd_review,
    'list': cmd_list,
    'send': cmd_send,
    'plan': cmd_plan,
    'check': cmd_check,
    'config': cmd_config,
    'apps': cmd_apps,
}


def check_environment():
    """检查环境"""
    print("检查环境...\n")
    all_ok = True

    # 检查 tmux
    ok, msg = check_tmux()
    if ok:
        print(f"✅ tmux: {msg}")
    else:
        print(f"❌ tmux: {msg}")
        all_ok = False

    # 检查 gwt
    if WorktreeManager(Path.cwd()).has_cli():
        print("✅ gwt: 可用")
    else:
        print(f"❌ gwt: {GWT_INSTALL_HINT}")
        all_ok = False

    # 检查 git
    if shutil.which('git'):
        print("✅ git: 可用")
    else:
        print("❌ git: 未安装")
        all_ok = False

    # iTerm2 只在 macOS 上可用，缺失不算失败
    if shutil.which('osascript'):
        print("✅ osascript: 可用（iTerm2 模式）")
    else:
        print("⚠️  osascript: 不可用（iTerm2 模式仅支持 macOS）")

    # 检查 Textual
    try:
        import textual
        print(f"✅ Textual: {textual.__version__}")
    except ImportError:
        print("❌ Textual: 未安装")
        all_ok = False

    print()
    if all_ok:
        print("✓ 所有检查通过")
    else:
        print("✗ 部分检查失败，请查看上方信息")

    return 0 if all_ok else 1


if __name__ == '__main__':
    sys.exit(main())
