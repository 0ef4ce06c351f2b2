"""模型测试"""

import pytest
from dataclasses import FrozenInstanceError
from pathlib import Path

from multi_ai_manager.models import (
    LayoutMode,
    OrchestrationResult,
    PaneInfo,
    RowRole,
    ToolSpec,
    make_slug,
)


class TestToolSpec:
    """ToolSpec 模型测试"""

    def test_slug_from_command(self):
        tool = ToolSpec(name="claude", command="claude --dangerously-skip-permissions")
        assert tool.slug == "claude-dangerously-skip-permissions"

    def test_explicit_slug_kept(self):
        tool = ToolSpec(name="claude", command="claude --yolo", slug="claude")
        assert tool.slug == "claude"

    def test_slug_collapses_symbols(self):
        assert make_slug("codex --config model_reasoning_effort='high'") == \
            "codex-config-model-reasoning-effort-high"
        assert make_slug("  Amp!!  ") == "amp"

    def test_from_dict_defaults(self):
        tool = ToolSpec.from_dict({"name": "gemini", "command": "gemini --yolo"})
        assert tool.slug == "gemini-yolo"
        assert tool.ultrathink is None

    def test_to_dict(self):
        tool = ToolSpec(name="amp", command="amp", ultrathink="Use oracle")
        data = tool.to_dict()
        assert data == {"name": "amp", "command": "amp", "slug": "amp", "ultrathink": "Use oracle"}

    def test_frozen(self):
        tool = ToolSpec(name="claude", command="claude")
        with pytest.raises(FrozenInstanceError):
            tool.name = "other"


class TestOrchestrationResult:
    """OrchestrationResult 测试"""

    def test_ok_and_total(self):
        claude = ToolSpec(name="claude", command="claude")
        codex = ToolSpec(name="codex", command="codex")
        result = OrchestrationResult(
            successes=[(claude, Path("/tmp/x-claude"))],
            failures=[(codex, "boom")],
        )
        assert not result.ok
        assert result.total == 2

    def test_empty_is_ok(self):
        assert OrchestrationResult().ok


class TestLayoutMode:
    """LayoutMode 测试"""

    def test_parse(self):
        assert LayoutMode.parse("iterm2") is LayoutMode.ITERM2
        assert LayoutMode.parse(" TMUX-Single-Window ") is LayoutMode.TMUX_SINGLE_WINDOW

    def test_parse_unknown(self):
        with pytest.raises(ValueError, match="未知布局模式"):
            LayoutMode.parse("kitty")

    def test_is_tmux(self):
        assert not LayoutMode.ITERM2.is_tmux
        assert LayoutMode.TMUX_MULTI_WINDOW.is_tmux


class TestPaneInfo:
    """PaneInfo 测试"""

    def test_label(self):
        ai = PaneInfo("%0", "apps", 0, "/p/x-claude", role=RowRole.PRIMARY, tool="claude")
        shell = PaneInfo("%1", "apps", 1, "/p/x-claude")
        assert ai.label == "claude (AI)"
        assert shell.label == "Shell"
