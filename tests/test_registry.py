"""PidRegistry tests."""

from __future__ import annotations

import signal
import threading
from unittest import mock

import pytest

from cmdline_runner import registry as registry_module
from cmdline_runner.registry import PidRegistry, default_registry


class TestRegistration:
    def test_register_unregister(self, registry: PidRegistry):
        registry.register(100)
        registry.register(50)

        assert registry.pids() == [50, 100]
        assert 100 in registry
        assert registry.unregister(100) is True
        assert registry.unregister(100) is False
        assert len(registry) == 1

    def test_duplicate_raises(self, registry: PidRegistry):
        registry.register(100)

        with pytest.raises(ValueError):
            registry.register(100)

    def test_threaded_registration(self, registry: PidRegistry):
        def worker(base: int) -> None:
            for i in range(200):
                registry.register(base + i)
                registry.unregister(base + i)

        threads = [threading.Thread(target=worker, args=(n * 1000,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(registry) == 0

    def test_default_registry_singleton(self):
        assert default_registry() is default_registry()


class TestKillAll:
    def test_empty(self, registry: PidRegistry):
        assert registry.kill_all() == 0

    def test_posix_default_sigterm(self, registry: PidRegistry, monkeypatch):
        monkeypatch.setattr(registry_module, "IS_WINDOWS", False)
        registry.register(111)
        registry.register(222)

        with mock.patch("os.kill") as mock_kill:
            delivered = registry.kill_all()

        assert delivered == 2
        mock_kill.assert_any_call(111, signal.SIGTERM)
        mock_kill.assert_any_call(222, signal.SIGTERM)

    def test_posix_custom_signal(self, registry: PidRegistry, monkeypatch):
        monkeypatch.setattr(registry_module, "IS_WINDOWS", False)
        registry.register(111)

        with mock.patch("os.kill") as mock_kill:
            registry.kill_all(signal.SIGINT)

        mock_kill.assert_called_once_with(111, signal.SIGINT)

    def test_failures_are_counted_not_raised(self, registry: PidRegistry, monkeypatch):
        monkeypatch.setattr(registry_module, "IS_WINDOWS", False)
        registry.register(111)
        registry.register(222)

        def fake_kill(pid, sig):
            if pid == 111:
                raise ProcessLookupError(pid)

        with mock.patch("os.kill", side_effect=fake_kill):
            delivered = registry.kill_all()

        assert delivered == 1
        # kill_all does not unregister
        assert len(registry) == 2

    def test_windows_taskkill(self, registry: PidRegistry, monkeypatch):
        monkeypatch.setattr(registry_module, "IS_WINDOWS", True)
        registry.register(333)

        with mock.patch("subprocess.Popen") as mock_popen:
            delivered = registry.kill_all()

        assert delivered == 1
        args = mock_popen.call_args[0][0]
        assert args == ["taskkill", "/F", "/T", "/PID", "333"]
