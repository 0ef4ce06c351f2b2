"""pane 路由测试"""

import pytest

from multi_ai_manager.errors import ConfigError, ExternalToolMissing, MultiAiError
from multi_ai_manager.models import PaneInfo, RowRole, ToolSpec
from multi_ai_manager.router import PaneRouter, classify_pane, tool_from_path
from multi_ai_manager.tmux_control import ROWS_OPTION

TOOLS = [
    ToolSpec(name="claude", command="claude"),
    ToolSpec(name="gemini", command="gemini --yolo"),
    ToolSpec(name="amp", command="amp", ultrathink="Use oracle"),
]

GRID_PANES = (
    "%0|apps|0|claude|/w/proj/fx-claude\n"
    "%2|apps|1|zsh|/w/proj/fx-claude\n"
    "%1|apps|2|node|/w/proj/fx-gemini-yolo\n"
    "%3|apps|3|zsh|/w/proj/fx-gemini-yolo\n"
)

WINDOW_PANES = (
    "%0|claude|0|claude|/w/proj/fx-claude\n"
    "%1|claude|1|zsh|/w/proj/fx-claude\n"
    "%2|gemini|0|node|/w/proj/fx-gemini-yolo\n"
    "%3|gemini|1|zsh|/w/proj/fx-gemini-yolo\n"
)


class TestClassify:
    """角色识别测试"""

    def test_grid_parity(self):
        roles = [classify_pane("apps", i, "/w/fx-claude")[0] for i in range(4)]
        assert roles == [RowRole.PRIMARY, RowRole.UTILITY, RowRole.PRIMARY, RowRole.UTILITY]

    def test_grid_three_rows(self):
        roles = [classify_pane("apps", i, "/w/fx-claude", rows_per_column=3)[0] for i in range(6)]
        assert roles == [RowRole.PRIMARY, RowRole.UTILITY, RowRole.UTILITY] * 2

    def test_grid_tool_from_path(self):
        assert classify_pane("apps", 0, "/w/fx-claude") == (RowRole.PRIMARY, "claude")
        assert classify_pane("apps", 1, "/w/fx-claude") == (RowRole.UTILITY, None)

    def test_window_mode(self):
        assert classify_pane("codex", 0, "/w/fx-codex") == (RowRole.PRIMARY, "codex")
        assert classify_pane("codex", 1, "/w/fx-codex") == (RowRole.UTILITY, None)

    def test_custom_grid_name(self):
        assert classify_pane("grid", 2, "/w/fx-amp", grid_window_name="grid") == (RowRole.PRIMARY, "amp")


class TestToolFromPath:
    """工具名推断测试"""

    def test_last_segment(self):
        assert tool_from_path("/w/proj/feature-x-claude") == "claude"

    def test_known_slug_with_dash(self):
        assert tool_from_path("/w/proj/fx-gemini-yolo", TOOLS) == "gemini"

    def test_trailing_slash(self):
        assert tool_from_path("/w/proj/fx-amp/", TOOLS) == "amp"


class TestInventory:
    """pane 清单测试"""

    def test_grid(self, make_tmux):
        tmux = make_tmux(sessions=["proj-fx"], panes_output=GRID_PANES, options={ROWS_OPTION: "2"})
        panes = PaneRouter(tmux, known_tools=TOOLS).inventory("proj-fx")

        assert [(p.pane_id, p.role, p.tool) for p in panes] == [
            ("%0", RowRole.PRIMARY, "claude"),
            ("%2", RowRole.UTILITY, None),
            ("%1", RowRole.PRIMARY, "gemini"),
            ("%3", RowRole.UTILITY, None),
        ]
        assert panes[2].current_command == "node"

    def test_rows_option_missing_defaults_to_two(self, make_tmux):
        tmux = make_tmux(panes_output=GRID_PANES)
        router = PaneRouter(tmux)
        assert router.rows_per_column("proj-fx") == 2
        roles = [p.role for p in router.inventory("proj-fx")]
        assert roles == [RowRole.PRIMARY, RowRole.UTILITY] * 2

    def test_rows_option_used(self, make_tmux):
        tmux = make_tmux(panes_output=GRID_PANES, options={ROWS_OPTION: "4"})
        roles = [p.role for p in PaneRouter(tmux).inventory("proj-fx")]
        assert roles == [RowRole.PRIMARY, RowRole.UTILITY, RowRole.UTILITY, RowRole.UTILITY]

    def test_window_mode(self, make_tmux):
        tmux = make_tmux(panes_output=WINDOW_PANES)
        panes = PaneRouter(tmux, known_tools=TOOLS).inventory("proj-fx")
        assert [(p.role, p.tool) for p in panes] == [
            (RowRole.PRIMARY, "claude"),
            (RowRole.UTILITY, None),
            (RowRole.PRIMARY, "gemini"),
            (RowRole.UTILITY, None),
        ]

    def test_skips_malformed_lines(self):
        router = PaneRouter(tmux=None)
        panes = router.parse_inventory("garbage\n%0|apps|x|zsh|/w\n%1|apps|0|zsh|/w/a|b\n")
        assert [p.pane_id for p in panes] == ["%1"]
        assert panes[0].current_path == "/w/a|b"

    def test_list_panes_failure(self, make_tmux):
        tmux = make_tmux(fail_on={'list-panes': "can't find session"})
        with pytest.raises(MultiAiError, match="can't find session"):
            PaneRouter(tmux).inventory("proj-fx")


class TestSelectSession:
    """会话选择测试"""

    def test_single_session(self, make_tmux):
        assert PaneRouter(make_tmux(sessions=["proj-fx"])).select_session() == "proj-fx"

    def test_named(self, make_tmux):
        router = PaneRouter(make_tmux(sessions=["a", "b"]))
        assert router.select_session("b") == "b"

    def test_ambiguous(self, make_tmux):
        with pytest.raises(ConfigError, match="a, b"):
            PaneRouter(make_tmux(sessions=["a", "b"])).select_session()

    def test_unknown(self, make_tmux):
        with pytest.raises(ConfigError, match="'c'"):
            PaneRouter(make_tmux(sessions=["a", "b"])).select_session("c")

    def test_none(self, make_tmux):
        with pytest.raises(ConfigError):
            PaneRouter(make_tmux()).select_session()

    def test_tmux_missing(self, make_tmux):
        with pytest.raises(ExternalToolMissing):
            PaneRouter(make_tmux(fail_on={'-V': 'missing'})).list_sessions()


def ai_pane(pane_id, tool):
    return PaneInfo(pane_id, "apps", 0, f"/w/fx-{tool}", role=RowRole.PRIMARY, tool=tool)


def shell_pane(pane_id):
    return PaneInfo(pane_id, "apps", 1, "/w/fx-claude", role=RowRole.UTILITY)


class TestTargets:
    """目标选择测试"""

    def test_by_role(self):
        panes = [ai_pane("%0", "claude"), shell_pane("%1"), ai_pane("%2", "amp")]
        assert [p.pane_id for p in PaneRouter.resolve_targets(panes)] == ["%0", "%2"]
        assert [p.pane_id for p in PaneRouter.resolve_targets(panes, RowRole.UTILITY)] == ["%1"]

    def test_explicit_ids_override_role(self):
        panes = [ai_pane("%0", "claude"), shell_pane("%1"), ai_pane("%2", "amp")]
        targets = PaneRouter.resolve_targets(panes, RowRole.PRIMARY, pane_ids=["%1", "%2"])
        assert [p.pane_id for p in targets] == ["%1", "%2"]


class TestCompose:
    """深度思考短语测试"""

    def test_default_phrases(self):
        router = PaneRouter(tmux=None)
        assert router.compose_message("hi", ai_pane("%0", "claude"), True) == "hi\n\nultrathink"
        assert router.compose_message("hi", ai_pane("%0", "amp"), True) == "hi\n\nUse oracle and think heavily"
        assert router.compose_message("hi", ai_pane("%0", "codex"), True) == "hi\n\nThink deeply about this"

    def test_configured_phrase(self):
        router = PaneRouter(tmux=None, known_tools=TOOLS)
        assert router.compose_message("hi", ai_pane("%0", "amp"), True) == "hi\n\nUse oracle"

    def test_shell_and_disabled(self):
        router = PaneRouter(tmux=None)
        assert router.compose_message("ls", shell_pane("%1"), True) == "ls"
        assert router.compose_message("hi", ai_pane("%0", "claude"), False) == "hi"


class TestDeliver:
    """发送测试"""

    def test_paste_buffer_then_enter(self, fake_tmux):
        router = PaneRouter(fake_tmux)
        count = router.deliver([ai_pane("%3", "claude")], "line 1\nline 2")

        assert count == 1
        assert fake_tmux.calls == [
            ('load-buffer', '-b', 'mai-send-3', '-'),
            ('paste-buffer', '-d', '-p', '-b', 'mai-send-3', '-t', '%3'),
            ('send-keys', '-t', '%3', 'Enter'),
        ]
        assert fake_tmux.inputs[0] == "line 1\nline 2"

    def test_no_enter(self, fake_tmux):
        PaneRouter(fake_tmux).deliver([shell_pane("%1")], "ls", enter=False)
        assert fake_tmux.commands('send-keys') == []

    def test_deep_thinking_per_pane(self, fake_tmux):
        PaneRouter(fake_tmux).deliver(
            [ai_pane("%0", "claude"), ai_pane("%1", "amp")], "review", deep_thinking=True,
        )
        loads = [text for call, text in zip(fake_tmux.calls, fake_tmux.inputs) if call[0] == 'load-buffer']
        assert loads == ["review\n\nultrathink", "review\n\nUse oracle and think heavily"]

    def test_empty_targets(self, fake_tmux):
        with pytest.raises(ConfigError):
            PaneRouter(fake_tmux).deliver([], "hi")

    def test_paste_failure(self, make_tmux):
        tmux = make_tmux(fail_on={'paste-buffer': "can't find pane: %9"})
        with pytest.raises(MultiAiError, match="%9"):
            PaneRouter(tmux).deliver([ai_pane("%9", "claude")], "hi")
