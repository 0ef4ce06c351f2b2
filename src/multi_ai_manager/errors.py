"""异常定义

所有对外暴露的错误都继承自 MultiAiError，CLI 层统一捕获并打印。
"""

from typing import Optional, Sequence


class MultiAiError(Exception):
    """基础异常"""


class ConfigError(MultiAiError):
    """配置缺失或无效"""


class ExternalToolMissing(MultiAiError):
    """依赖的外部可执行文件不存在

    Attributes:
        tool: 可执行文件名（如 tmux、gwt、osascript）
        hint: 安装提示
    """

    def __init__(self, tool: str, hint: str = ""):
        self.tool = tool
        self.hint = hint
        message = f"未找到 {tool}"
        if hint:
            message = f"{message}，{hint}"
        super().__init__(message)


class CommandError(MultiAiError):
    """外部命令返回非零退出码

    Attributes:
        command: 执行的命令
        returncode: 退出码
        stderr: 标准错误输出
    """

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: int = 1,
        stderr: str = "",
    ):
        self.command = list(command or [])
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class WorktreeError(CommandError):
    """单个 worktree 创建/删除失败"""


class LayoutBuildFailure(MultiAiError):
    """会话布局构建失败（分屏失败、会话已存在等）

    已创建的 pane 不会自动清理。
    """

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr.strip()
        if self.stderr:
            message = f"{message}: {self.stderr}"
        super().__init__(message)


class OrchestrationError(MultiAiError):
    """批量 worktree 操作中至少一个任务失败

    Attributes:
        result: 完整的 OrchestrationResult（成功项保留，未回滚）
        action: 操作名称（create / remove）
    """

    def __init__(self, result, action: str = "create"):
        self.result = result
        self.action = action
        verb = "创建" if action == "create" else "删除"
        lines = [f"{len(result.failures)} 个 worktree {verb}失败:"]
        for tool, error_text in result.failures:
            lines.append(f"  - {tool.name}: {error_text.strip()}")
        super().__init__("\n".join(lines))
