"""iTerm2 AppleScript 生成测试"""

import subprocess

import pytest

from multi_ai_manager.errors import ExternalToolMissing, LayoutBuildFailure
from multi_ai_manager.layout import plan
from multi_ai_manager.models import ToolSpec
from multi_ai_manager.terminal import ItermSessionBuilder, applescript_quote, render_script
from multi_ai_manager.terminal.iterm_builder import ROOT, region_variable

CLAUDE = ToolSpec(name="claude", command="claude")
CODEX = ToolSpec(name="codex", command="codex --yolo")


def columns(*tools):
    return [(tool, f"/work/proj/fx-{tool.slug}") for tool in tools]


def stripped(script):
    return [line.strip() for line in script.splitlines()]


class FakeItermBuilder(ItermSessionBuilder):
    """不执行 osascript 的构建器"""

    def __init__(self, returncode=0, stderr="", available=True):
        super().__init__()
        self.returncode = returncode
        self.stderr = stderr
        self.available = available
        self.scripts = []

    def is_available(self):
        return self.available, "osascript"

    def _run_script(self, script):
        self.scripts.append(script)
        return subprocess.CompletedProcess(['osascript'], self.returncode, '', self.stderr)


class TestQuote:
    """AppleScript 字符串转义测试"""

    def test_plain(self):
        assert applescript_quote("claude") == '"claude"'

    def test_quotes_and_backslashes(self):
        assert applescript_quote('say "hi" \\ bye') == '"say \\"hi\\" \\\\ bye"'

    def test_newlines(self):
        assert applescript_quote("a\nb") == '"a\\nb"'


class TestRegionVariable:
    """区域变量名测试"""

    def test_names(self):
        assert region_variable((0, 0)) == ROOT
        assert region_variable((2, 0)) == "col3"
        assert region_variable((0, 1)) == "col1Pane2"
        assert region_variable((1, 2)) == "col2Pane3"


class TestRenderScript:
    """脚本生成测试"""

    def test_two_by_two_structure(self):
        script, addresses = render_script(plan(2, 2), columns(CLAUDE, CODEX), "fx")
        lines = stripped(script)

        assert sum("split vertically" in line for line in lines) == 1
        assert sum("split horizontally" in line for line in lines) == 2
        assert sum(line.startswith("write text") for line in lines) == 4
        assert addresses == {(0, 0): ROOT, (1, 0): "col2", (0, 1): "col1Pane2", (1, 1): "col2Pane2"}

    def test_first_column_not_wrapped(self):
        script, _ = render_script(plan(2, 2), columns(CLAUDE, CODEX), "fx")
        lines = stripped(script)

        assert "set col2 to (split vertically with default profile)" in lines
        assert "set col1Pane2 to (split horizontally with default profile)" in lines
        assert "tell current session" in lines
        assert lines.count("tell col1") == 0

    def test_other_columns_use_tell_blocks(self):
        script, _ = render_script(plan(2, 2), columns(CLAUDE, CODEX), "fx")
        lines = stripped(script)

        index = lines.index("set col2Pane2 to (split horizontally with default profile)")
        assert lines[index - 1] == "tell col2"
        assert lines[index + 1] == "end tell"
        assert lines.count("tell col2") == 2

    def test_tell_blocks_balanced(self):
        script, _ = render_script(plan(3, 3), columns(CLAUDE, CODEX, CLAUDE), "fx")
        lines = stripped(script)
        opened = sum(line.startswith("tell ") for line in lines)
        closed = lines.count("end tell")
        assert opened == closed

    def test_commands_and_delays(self):
        script, _ = render_script(plan(2, 2), columns(CLAUDE, CODEX), "fx", initial_delay=3, pane_delay=0.5)
        lines = stripped(script)

        assert 'write text "cd /work/proj/fx-claude && claude"' in lines
        assert 'write text "cd /work/proj/fx-codex-yolo && codex --yolo"' in lines
        assert 'write text "cd /work/proj/fx-codex-yolo"' in lines
        first_write = next(i for i, line in enumerate(lines) if line.startswith("write text"))
        assert lines[first_write - 1] == "delay 3"
        assert "delay 0.5" in lines

    def test_wrapped_in_new_tab(self):
        script, _ = render_script(plan(1, 1), columns(CLAUDE), 'fx "quoted"')
        lines = stripped(script)
        assert lines[0] == 'tell application "iTerm"'
        assert "create tab with default profile" in lines
        assert 'set name to "fx \\"quoted\\""' in lines
        assert lines[-3:] == ["end tell", "end tell", "end tell"]

    def test_prompts_written_after_commands(self):
        script, _ = render_script(
            plan(2, 2), columns(CLAUDE, CODEX), "fx",
            prompts={0: "Review this branch", 1: "Review this branch"}, prompt_delay=5,
        )
        lines = stripped(script)

        last_launch = lines.index('write text "cd /work/proj/fx-codex-yolo"')
        wait = lines.index("delay 5")
        assert wait > last_launch
        assert lines.count('write text "Review this branch"') == 2
        assert lines.count('write text ""') == 2
        # 第二列的 prompt 写在 tell col2 块里
        second = len(lines) - 1 - lines[::-1].index('write text "Review this branch"')
        assert "tell col2" in lines[second - 3:second]

    def test_no_prompts_no_extra_writes(self):
        script, _ = render_script(plan(1, 1), columns(CLAUDE), "fx", prompts={})
        assert 'write text ""' not in stripped(script)


class TestItermSessionBuilder:
    """构建器测试"""

    def test_build_runs_script_once(self):
        builder = FakeItermBuilder()
        handle = builder.build(plan(2, 2), columns(CLAUDE, CODEX), "fx")

        assert len(builder.scripts) == 1
        assert handle.backend == "iterm2"
        assert handle.session_id == "fx"
        assert handle.addresses[(0, 0)] == ROOT
        assert handle.addresses[(1, 0)] == "col2"

    def test_prompts_in_same_script(self):
        builder = FakeItermBuilder()
        builder.build(plan(2, 1), columns(CLAUDE, CODEX), "fx", prompts={1: "review"})

        assert len(builder.scripts) == 1
        assert 'write text "review"' in stripped(builder.scripts[0])

    def test_failure_raises_with_stderr(self):
        builder = FakeItermBuilder(returncode=1, stderr="execution error: iTerm got an error")
        with pytest.raises(LayoutBuildFailure, match="iTerm got an error"):
            builder.build(plan(1, 2), columns(CLAUDE), "fx")

    def test_unavailable(self):
        builder = FakeItermBuilder(available=False)
        with pytest.raises(ExternalToolMissing):
            builder.build(plan(1, 2), columns(CLAUDE), "fx")
        assert builder.scripts == []

    def test_column_mismatch(self):
        with pytest.raises(LayoutBuildFailure):
            FakeItermBuilder().build(plan(2, 2), columns(CLAUDE), "fx")
