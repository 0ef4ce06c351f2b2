"""配置管理模块

两类配置：
- 项目配置 multi-ai-config.yaml：本项目要启动哪些工具、布局参数
- 全局工具注册表 ~/.config/multi-ai-manager/tools.yaml：init 与 apps 命令使用
"""

import yaml
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import ConfigError
from .git import generate_config_filename, get_remote_origin_url
from .models import LayoutMode, ToolSpec

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / '.config' / 'multi-ai-manager'
TOOLS_CONFIG_PATH = CONFIG_DIR / 'tools.yaml'
PROJECTS_DIR = CONFIG_DIR / 'projects'

PROJECT_CONFIG_NAME = 'multi-ai-config.yaml'


@dataclass
class ProjectConfig:
    """项目配置

    Attributes:
        tools: 要启动的 AI 工具（顺序即列顺序）
        rows_per_column: 每列 pane 数（网格与 iTerm2 模式）
        mode: 布局模式，None 表示使用系统默认
        worktrees_path: worktree 根目录，None 表示项目目录
        grid_window_name: 网格模式窗口名
        settle_delay: 发送启动命令前等待的秒数
        rollback_on_partial_failure: 部分 worktree 创建失败时是否删除已成功的
    """
    tools: List[ToolSpec] = field(default_factory=list)
    rows_per_column: int = 2
    mode: Optional[LayoutMode] = None
    worktrees_path: Optional[Path] = None
    grid_window_name: str = "apps"
    settle_delay: float = 0.5
    rollback_on_partial_failure: bool = False


@dataclass
class ConfigLocation:
    """配置文件位置

    Attributes:
        config_path: 配置文件路径
        project_path: 项目目录（gwt 命令的工作目录）
    """
    config_path: Path
    project_path: Path


# 默认工具注册表
DEFAULT_TOOLS = [
    ToolSpec(name="claude", command="claude", ultrathink="ultrathink"),
    ToolSpec(name="gemini", command="gemini"),
    ToolSpec(name="codex", command="codex"),
    ToolSpec(name="amp", command="amp", ultrathink="Use oracle and think heavily"),
]


def _parse_tools(items, source: Path) -> List[ToolSpec]:
    if not isinstance(items, list):
        raise ConfigError(f"{source}: tools 必须是列表")
    tools = []
    for i, item in enumerate(items):
        if not isinstance(item, dict) or 'name' not in item or 'command' not in item:
            raise ConfigError(f"{source}: tools[{i}] 需要 name 和 command 字段")
        tools.append(ToolSpec.from_dict(item))
    return tools


def _read_yaml(path: Path) -> dict:
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"读取配置失败 {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: 顶层必须是映射")
    return data


# ========== 项目配置 ==========

def load_project_config(config_path: Path) -> ProjectConfig:
    """加载项目配置

    与全局配置不同，项目配置格式错误直接报错：用错误的工具列表创建 worktree 代价更高。

    Raises:
        ConfigError: 文件不存在或格式错误
    """
    if not config_path.exists():
        raise ConfigError(f"配置文件不存在: {config_path}")

    data = _read_yaml(config_path)
    tools = _parse_tools(data.get('tools', []), config_path)
    if not tools:
        raise ConfigError(f"{config_path}: 至少需要配置一个工具")

    rows = data.get('rows_per_column', 2)
    if not isinstance(rows, int) or isinstance(rows, bool) or rows < 1:
        raise ConfigError(f"{config_path}: rows_per_column 必须是正整数")

    mode = None
    if data.get('mode'):
        try:
            mode = LayoutMode.parse(str(data['mode']))
        except ValueError as e:
            raise ConfigError(f"{config_path}: {e}") from e

    worktrees_path = data.get('worktrees_path')
    if worktrees_path:
        worktrees_path = Path(worktrees_path).expanduser()
        if not worktrees_path.is_absolute():
            worktrees_path = config_path.parent / worktrees_path

    config = ProjectConfig(
        tools=tools,
        rows_per_column=rows,
        mode=mode,
        worktrees_path=worktrees_path or None,
        grid_window_name=str(data.get('grid_window_name', 'apps')),
        settle_delay=float(data.get('settle_delay', 0.5)),
        rollback_on_partial_failure=bool(data.get('rollback_on_partial_failure', False)),
    )
    logger.info(f"[配置] 已加载: {config_path} ({len(tools)} 个工具)")
    return config


def global_config_path(project_path: Path) -> Optional[Path]:
    """按 origin 地址计算全局项目配置路径"""
    remote = get_remote_origin_url(project_path)
    if not remote:
        return None
    return PROJECTS_DIR / f"{generate_config_filename(remote)}.yaml"


def find_config(start: Optional[Path] = None) -> ConfigLocation:
    """查找项目配置

    查找顺序：
    1. ./multi-ai-config.yaml
    2. ./main/multi-ai-config.yaml（项目目录为 main 的上级）
    3. ~/.config/multi-ai-manager/projects/<远程地址>.yaml

    Raises:
        ConfigError: 均未找到
    """
    start = (start or Path.cwd()).resolve()

    local = start / PROJECT_CONFIG_NAME
    if local.exists():
        return ConfigLocation(config_path=local, project_path=start)

    in_main = start / 'main' / PROJECT_CONFIG_NAME
    if in_main.exists():
        return ConfigLocation(config_path=in_main, project_path=start)

    for candidate in (start, start / 'main'):
        if not candidate.is_dir():
            continue
        path = global_config_path(candidate)
        if path and path.exists():
            return ConfigLocation(config_path=path, project_path=start)

    raise ConfigError(
        f"未找到 {PROJECT_CONFIG_NAME}（当前目录、main/ 或全局配置），请先执行 'mai init'"
    )


def dump_project_config(config: ProjectConfig) -> str:
    data = {
        'tools': [tool.to_dict() for tool in config.tools],
        'rows_per_column': config.rows_per_column,
    }
    if config.mode is not None:
        data['mode'] = config.mode.value
    if config.worktrees_path is not None:
        data['worktrees_path'] = str(config.worktrees_path)
    if config.grid_window_name != 'apps':
        data['grid_window_name'] = config.grid_window_name
    if config.settle_delay != 0.5:
        data['settle_delay'] = config.settle_delay
    if config.rollback_on_partial_failure:
        data['rollback_on_partial_failure'] = True
    return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, sort_keys=False)


def save_project_config(config: ProjectConfig, config_path: Path) -> None:
    """保存项目配置"""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        f.write("# multi-ai-manager 项目配置\n")
        f.write(dump_project_config(config))
    logger.info(f"[配置] 已保存: {config_path}")


# ========== 全局工具注册表 ==========

def load_tools(config_path: Path = None) -> List[ToolSpec]:
    """加载全局工具注册表

    Args:
        config_path: 配置文件路径，默认 ~/.config/multi-ai-manager/tools.yaml

    Returns:
        ToolSpec 列表，文件不存在时返回内置默认值
    """
    path = config_path or TOOLS_CONFIG_PATH
    if not path.exists():
        logger.info(f"[配置] 工具注册表不存在，使用默认值: {path}")
        return list(DEFAULT_TOOLS)

    data = _read_yaml(path)
    tools = _parse_tools(data.get('tools', []), path)
    logger.info(f"[配置] 已加载工具注册表: {path} ({len(tools)} 个)")
    return tools or list(DEFAULT_TOOLS)


def save_default_tools(config_path: Path = None) -> Path:
    """保存默认工具注册表

    Args:
        config_path: 配置文件路径

    Returns:
        写入的路径
    """
    path = config_path or TOOLS_CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    default_yaml = """# multi-ai-manager 工具注册表
# mai init 从这里挑选要写入项目配置的工具

tools:
  - name: claude
    command: claude
    ultrathink: ultrathink      # --ultrathink 时追加的短语

  - name: gemini
    command: gemini

  - name: codex
    command: codex

  - name: amp
    command: amp
    ultrathink: Use oracle and think heavily
"""

    with open(path, 'w', encoding='utf-8') as f:
        f.write(default_yaml)

    logger.info(f"[配置] 已生成默认工具注册表: {path}")
    return path
