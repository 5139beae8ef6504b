"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from cmdline_runner.progress import ProgressStatus  # noqa: E402
from cmdline_runner.registry import PidRegistry  # noqa: E402

# 测试用假命令
FAKE_CMD_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_cmd.py"


class RecordingSink:
    """记录所有调用的 ProgressSink，用于断言。"""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.properties: dict[str, str] = {}
        self.statuses: list[ProgressStatus] = []
        self.printed: list[str] = []
        self.updates = 0

    def set_property(self, key: str, value: str) -> None:
        self.calls.append(("set_property", (key, value)))
        self.properties[key] = value

    def set_status(self, status: ProgressStatus) -> None:
        self.calls.append(("set_status", status))
        self.statuses.append(status)

    def update(self) -> None:
        self.calls.append(("update", None))
        self.updates += 1

    def println(self, text: str) -> None:
        self.calls.append(("println", text))
        self.printed.append(text)


@pytest.fixture
def registry() -> PidRegistry:
    """每个测试独立的 PID 注册表。"""
    return PidRegistry()


@pytest.fixture
def sink() -> RecordingSink:
    """记录调用的进度显示。"""
    return RecordingSink()


@pytest.fixture
def fake_cmd() -> list[str]:
    """运行假命令的 argv 前缀。"""
    return [sys.executable, str(FAKE_CMD_PATH)]
