"""命令行测试"""

import logging

import pytest
import yaml

from multi_ai_manager import cli, launcher
from multi_ai_manager import config as config_module
from multi_ai_manager.cli import setup_logging
from multi_ai_manager.errors import ConfigError
from multi_ai_manager.models import LayoutMode


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """日志与工具注册表都指向临时目录"""
    tools_path = tmp_path / "home" / "tools.yaml"
    monkeypatch.setattr(cli, "setup_logging", lambda debug=False: None)
    monkeypatch.setattr(cli, "TOOLS_CONFIG_PATH", tools_path)
    monkeypatch.setattr(config_module, "TOOLS_CONFIG_PATH", tools_path)
    monkeypatch.setattr(config_module, "get_remote_origin_url", lambda path: None)
    work = tmp_path / "work"
    work.mkdir()
    monkeypatch.chdir(work)
    return work


class TestBasics:
    """基本命令测试"""

    def test_version(self, capsys):
        assert cli.main(['--version']) == 0
        assert "Multi AI Manager v" in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "mai add feature-x" in capsys.readouterr().out

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            cli.main(['add', 'fx', '--mode', 'kitty'])

    def test_resume_alias(self, monkeypatch):
        seen = []
        monkeypatch.setattr(launcher, "continue_environment",
                            lambda prefix, mode, legacy, attach: seen.append((prefix, attach)))
        assert cli.main(['resume', 'fx', '--no-attach']) == 0
        assert seen == [('fx', False)]


class TestPlan:
    """mai plan 测试"""

    def test_three_by_two(self, capsys):
        assert cli.main(['plan', '3', '2']) == 0
        out = capsys.readouterr().out
        assert "[33, 50]" in out
        assert "[50]" in out
        assert "共 5 次" in out

    def test_single_pane(self, capsys):
        assert cli.main(['plan', '1', '1']) == 0
        assert "无需分屏" in capsys.readouterr().out

    def test_invalid(self, capsys):
        assert cli.main(['plan', '0', '2']) == 1
        assert "❌" in capsys.readouterr().err


class TestInit:
    """mai init 测试"""

    def test_default_tools(self, isolated, capsys):
        assert cli.main(['init']) == 0
        data = yaml.safe_load((isolated / "multi-ai-config.yaml").read_text(encoding='utf-8'))
        assert [t['name'] for t in data['tools']] == ["claude", "gemini", "codex", "amp"]
        assert "已生成配置" in capsys.readouterr().out

    def test_selected_tools_and_options(self, isolated):
        assert cli.main(['init', '--tools', 'amp, claude', '--rows', '3', '--mode', 'tmux-single-window']) == 0
        data = yaml.safe_load((isolated / "multi-ai-config.yaml").read_text(encoding='utf-8'))
        assert [t['name'] for t in data['tools']] == ["amp", "claude"]
        assert data['rows_per_column'] == 3
        assert data['mode'] == "tmux-single-window"

    def test_unknown_tool(self, isolated, capsys):
        assert cli.main(['init', '--tools', 'claude,cursor']) == 1
        assert "cursor" in capsys.readouterr().err
        assert not (isolated / "multi-ai-config.yaml").exists()

    def test_existing_needs_force(self, isolated):
        path = isolated / "multi-ai-config.yaml"
        path.write_text("tools: []\n", encoding='utf-8')
        assert cli.main(['init']) == 1
        assert path.read_text(encoding='utf-8') == "tools: []\n"
        assert cli.main(['init', '--force']) == 0
        assert "claude" in path.read_text(encoding='utf-8')

    def test_global_without_remote(self, capsys):
        assert cli.main(['init', '--global']) == 1
        assert "origin" in capsys.readouterr().err


class TestConfigCommands:
    """mai config / mai apps 测试"""

    def test_config_shows_paths(self, isolated, capsys):
        cli.main(['init', '--tools', 'codex'])
        capsys.readouterr()
        assert cli.main(['config']) == 0
        out = capsys.readouterr().out
        assert "multi-ai-config.yaml" in out
        assert "codex" in out

    def test_config_missing(self, capsys):
        assert cli.main(['config']) == 1
        assert "mai init" in capsys.readouterr().err

    def test_apps_defaults(self, capsys):
        assert cli.main(['apps']) == 0
        out = capsys.readouterr().out
        assert "内置默认值" in out
        assert "ultrathink" in out

    def test_apps_init(self, isolated, capsys):
        assert cli.main(['apps', '--init']) == 0
        assert config_module.TOOLS_CONFIG_PATH.exists()
        assert cli.main(['apps', '--init']) == 1


class TestErrors:
    """错误处理测试"""

    def test_multi_ai_error_returns_one(self, monkeypatch, capsys):
        def fail(*args, **kwargs):
            raise ConfigError("会话 'x' 不存在")

        monkeypatch.setattr(launcher, "send_message", fail)
        assert cli.main(['send', '-m', 'hi', '-s', 'x']) == 1
        assert "❌ 会话 'x' 不存在" in capsys.readouterr().err

    def test_send_arguments(self, monkeypatch):
        seen = {}

        def fake_send(message, **kwargs):
            seen.update(kwargs, message=message)
            return 1

        monkeypatch.setattr(launcher, "send_message", fake_send)
        assert cli.main(['send', '-m', 'ls', '-p', '%1', '-p', '%3', '--shell', '--no-enter']) == 0
        assert seen == {
            'message': 'ls',
            'session': None,
            'pane_ids': ['%1', '%3'],
            'shell': True,
            'ultrathink': False,
            'enter': False,
        }

    def test_review_arguments(self, monkeypatch):
        seen = {}

        def fake_review(branch, **kwargs):
            seen.update(kwargs, branch=branch)

        monkeypatch.setattr(launcher, "review_environment", fake_review)
        argv = ['review', 'feat/x', '--tools', 'claude, amp', '--meta', 'claude',
                '--no-send', '--mode', 'tmux-multi-window', '--no-attach']
        assert cli.main(argv) == 0
        assert seen == {
            'branch': 'feat/x',
            'tool_names': ['claude', 'amp'],
            'meta': 'claude',
            'prompt': launcher.DEFAULT_REVIEW_PROMPT,
            'send_prompts': False,
            'mode_override': LayoutMode.TMUX_MULTI_WINDOW,
            'attach': False,
        }

    def test_review_unknown_branch(self, monkeypatch, capsys):
        def fail(branch, **kwargs):
            raise ConfigError(f"分支 '{branch}' 不存在")

        monkeypatch.setattr(launcher, "review_environment", fail)
        assert cli.main(['review', 'nope']) == 1
        assert "❌ 分支 'nope' 不存在" in capsys.readouterr().err

    def test_keyboard_interrupt(self, monkeypatch):
        def interrupt(*args, **kwargs):
            raise KeyboardInterrupt

        monkeypatch.setattr(launcher, "list_environments", interrupt)
        assert cli.main(['list']) == 130


def test_setup_logging_writes_file(tmp_path, monkeypatch):
    monkeypatch.setattr(cli, "LOG_DIR", tmp_path / "logs")
    monkeypatch.setattr(cli, "LOG_FILE", tmp_path / "logs" / "mai.log")
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        setup_logging(debug=True)
        logging.getLogger("multi_ai_manager.test").info("[测试] hello")
        for handler in root.handlers:
            handler.flush()
        assert "[测试] hello" in (tmp_path / "logs" / "mai.log").read_text(encoding='utf-8')
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers, level = saved
        root.setLevel(level)
