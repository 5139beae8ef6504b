"""CMDR 环境变量配置管理。

环境变量:
    CMDR_SHOW_STDERR_ON_ERROR: 命令失败时是否在进度显示上输出完整日志
        - true/1/yes = 输出 (默认)
        - false/0/no = 不输出
        - 只影响 CmdLineRunner 的默认值，可被 show_stderr_on_error() 覆盖

    CMDR_DRAIN_TIMEOUT: 取消后等待输出流关闭的时间（秒）
        - 默认 2.0 秒
        - 超时后仍未关闭的流读取任务会被取消（孙进程可能仍持有管道）

    CMDR_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)

    CMDR_SIGINT_MODE: SIGINT (Ctrl+C) 处理模式（SignalManager 使用）
        - cancel = 将信号转发给子进程（无子进程则退出）(默认)
        - exit = 直接退出
        - cancel_then_exit = 先转发给子进程，第二次才退出

    CMDR_SIGINT_DOUBLE_TAP_WINDOW: 双击退出窗口时间（秒）
        - 默认 1.0 秒
        - 在此时间窗口内第二次 Ctrl+C 将强制退出
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "SigintMode"]


class SigintMode(Enum):
    """SIGINT 处理模式。

    - CANCEL: 只把信号转发给子进程，不退出（如果没有子进程则退出）
    - EXIT: 直接退出（传统行为）
    - CANCEL_THEN_EXIT: 先转发给子进程，第二次 SIGINT 才退出
    """

    CANCEL = "cancel"
    EXIT = "exit"
    CANCEL_THEN_EXIT = "cancel_then_exit"

    @classmethod
    def from_string(cls, value: str) -> "SigintMode":
        """从字符串解析模式。

        Args:
            value: 模式字符串 (cancel/exit/cancel_then_exit)

        Returns:
            对应的 SigintMode 枚举值，无效值返回 CANCEL
        """
        value = value.lower().strip()
        for mode in cls:
            if mode.value == value:
                return mode
        return cls.CANCEL  # 默认值


DEFAULT_DRAIN_TIMEOUT = 2.0
DEFAULT_DOUBLE_TAP_WINDOW = 1.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_float(value: str | None, default: float, low: float, high: float) -> float:
    """解析浮点数环境变量，并限制在 [low, high] 范围内。"""
    if not value:
        return default
    try:
        return max(low, min(float(value), high))
    except ValueError:
        return default


@dataclass
class Config:
    """CMDR 配置。

    Attributes:
        show_stderr_on_error: 失败时是否输出完整日志（runner 默认值）
        drain_timeout: 取消后等待输出流关闭的时间（秒）
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
        sigint_mode: SIGINT 处理模式
        sigint_double_tap_window: 双击退出窗口时间（秒）
    """

    show_stderr_on_error: bool = True
    drain_timeout: float = DEFAULT_DRAIN_TIMEOUT
    log_debug: bool = False
    log_file: str | None = None
    sigint_mode: SigintMode = SigintMode.CANCEL
    sigint_double_tap_window: float = DEFAULT_DOUBLE_TAP_WINDOW

    def __repr__(self) -> str:
        return (
            f"Config(show_stderr_on_error={self.show_stderr_on_error}, "
            f"drain_timeout={self.drain_timeout}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"sigint_mode={self.sigint_mode.value}, "
            f"sigint_double_tap_window={self.sigint_double_tap_window})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "cmdline-runner"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"cmdr_debug_{timestamp}.log"

    return str(log_file.resolve())


def _parse_sigint_mode(value: str | None) -> SigintMode:
    """解析 SIGINT 模式环境变量。"""
    if not value:
        return SigintMode.CANCEL
    return SigintMode.from_string(value)


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CMDR_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        show_stderr_on_error=_parse_bool(
            os.environ.get("CMDR_SHOW_STDERR_ON_ERROR"), default=True
        ),
        drain_timeout=_parse_float(
            os.environ.get("CMDR_DRAIN_TIMEOUT"), DEFAULT_DRAIN_TIMEOUT, 0.1, 60.0
        ),
        log_debug=log_debug,
        log_file=log_file,
        sigint_mode=_parse_sigint_mode(os.environ.get("CMDR_SIGINT_MODE")),
        sigint_double_tap_window=_parse_float(
            os.environ.get("CMDR_SIGINT_DOUBLE_TAP_WINDOW"),
            DEFAULT_DOUBLE_TAP_WINDOW,
            0.1,
            10.0,  # 限制在 0.1-10 秒范围
        ),
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
