"""进程监控测试（psutil.process_iter 为假实现）"""

import psutil
import pytest

from multi_ai_manager import process_monitor
from multi_ai_manager.process_monitor import ProcessMonitor


class FakeProc:
    def __init__(self, pid, name, cmdline, cwd, create_time=1_700_000_000.0, status='sleeping'):
        self.info = {
            'pid': pid,
            'name': name,
            'cmdline': cmdline,
            'cwd': cwd,
            'create_time': create_time,
            'status': status,
        }


class VanishedProc:
    @property
    def info(self):
        raise psutil.NoSuchProcess(99)


PROCS = [
    FakeProc(1, 'claude', ['claude'], '/w/fx-claude'),
    FakeProc(2, 'node', ['node', '/usr/lib/node_modules/bin/gemini'], '/w/fx-gemini/src'),
    FakeProc(3, 'grep', ['grep', 'claude'], '/w/fx-claude'),
    FakeProc(4, 'codex', ['/usr/local/bin/codex', '--yolo'], '/w/bug-codex'),
    FakeProc(5, 'zsh', ['-zsh'], '/w/fx-claude'),
    VanishedProc(),
]


@pytest.fixture(autouse=True)
def processes(monkeypatch):
    monkeypatch.setattr(process_monitor.psutil, "process_iter", lambda attrs=None: iter(PROCS))


class TestProcessMonitor:
    """进程匹配测试"""

    def test_find_default_patterns(self):
        pids = [p.pid for p in ProcessMonitor().find_processes()]
        assert pids == [1, 2, 4]

    def test_single_pattern(self):
        assert [p.pid for p in ProcessMonitor().find_processes('codex')] == [4]

    def test_custom_patterns(self):
        assert [p.pid for p in ProcessMonitor(['gemini']).find_processes()] == [2]

    def test_find_in_root(self):
        monitor = ProcessMonitor()
        assert [p.pid for p in monitor.find_processes_in('/w/fx-gemini')] == [2]
        assert monitor.find_processes_in('/w/fx') == []

    def test_count_by_root(self):
        counts = ProcessMonitor().count_by_root(['/w/fx-claude', '/w/fx-gemini', '/w/fx-amp'])
        assert counts == {'/w/fx-claude': 1, '/w/fx-gemini': 1, '/w/fx-amp': 0}
