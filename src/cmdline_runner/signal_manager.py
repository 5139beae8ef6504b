"""父进程信号转发。

子进程默认运行在独立的会话/进程组中（RunConfig.pass_signals=False），
终端的 Ctrl+C 只会送到父进程。SignalManager 把父进程收到的信号
通过 PidRegistry.kill_all() 转发给所有正在运行的子进程：

- SIGINT: 按 CMDR_SIGINT_MODE 转发或退出，窗口内连按两次强制结束
- SIGTERM: 转发 SIGTERM 并请求退出

用 with_pass_signals() 启动的子进程本身就在父进程的进程组里，
会直接收到终端信号，再转发一次不会有额外影响（kill_all 只是重复送达）。
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import Callable, Optional

from .config import SigintMode, get_config
from .registry import PidRegistry, default_registry

__all__ = ["SignalManager", "SigintMode"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"

# Windows 没有 SIGKILL；kill_all 在 Windows 上总是 taskkill /F
FORCE_SIGNAL = signal.SIGTERM if IS_WINDOWS else signal.SIGKILL


class SignalManager:
    """把 SIGINT/SIGTERM 转发给 PidRegistry 中的子进程。

    Example:
        ```python
        async def main():
            async with SignalManager() as signals:
                await CmdLineRunner("make").arg("all").execute()
                if signals.is_shutdown_requested:
                    return
        ```

    Attributes:
        registry: 接收转发信号的子进程注册表
        sigint_mode: SIGINT 处理模式
        double_tap_window: 两次 SIGINT 被视为"连按"的时间窗口（秒）
    """

    def __init__(
        self,
        registry: Optional[PidRegistry] = None,
        sigint_mode: Optional[SigintMode] = None,
        double_tap_window: Optional[float] = None,
        on_shutdown: Optional[Callable[[], None]] = None,
    ) -> None:
        config = get_config()
        self.registry = registry if registry is not None else default_registry()
        self.sigint_mode = config.sigint_mode if sigint_mode is None else sigint_mode
        self.double_tap_window = (
            config.sigint_double_tap_window if double_tap_window is None else double_tap_window
        )
        self._on_shutdown = on_shutdown

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._installed: list[signal.Signals] = []
        self._previous_handler = None
        # 上一次把 SIGINT 当作退出请求的时间，用于判断连按
        self._armed_at: Optional[float] = None
        self._shutdown_requested = False
        self._force_exit = False

    @property
    def is_shutdown_requested(self) -> bool:
        return self._shutdown_requested

    @property
    def is_force_exit(self) -> bool:
        """第二次 SIGINT 已经用 FORCE_SIGNAL 结束了所有子进程。"""
        return self._force_exit

    async def start(self) -> None:
        """在当前事件循环上安装信号处理器。"""
        if self._installed:
            logger.warning("SignalManager already started")
            return

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()

        if IS_WINDOWS:
            loop = self._loop
            self._previous_handler = signal.signal(
                signal.SIGINT,
                lambda sig, frame: loop.call_soon_threadsafe(self.handle, signal.SIGINT),
            )
            self._installed = [signal.SIGINT]
        else:
            for sig in (signal.SIGINT, signal.SIGTERM):
                self._loop.add_signal_handler(sig, self.handle, sig)
            self._installed = [signal.SIGINT, signal.SIGTERM]

        logger.debug(
            f"Forwarding {', '.join(s.name for s in self._installed)} to children "
            f"(mode={self.sigint_mode.value})"
        )

    async def stop(self) -> None:
        """移除信号处理器。"""
        installed, self._installed = self._installed, []
        for sig in installed:
            try:
                if IS_WINDOWS:
                    signal.signal(sig, self._previous_handler)
                elif self._loop is not None:
                    self._loop.remove_signal_handler(sig)
            except (OSError, RuntimeError, ValueError) as e:
                logger.debug(f"Failed to remove {sig.name} handler: {e}")

    async def __aenter__(self) -> "SignalManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def wait_for_shutdown(self) -> None:
        if self._shutdown_event is not None:
            await self._shutdown_event.wait()

    def handle(self, sig: int) -> None:
        """处理一个父进程收到的信号。"""
        if sig == signal.SIGTERM:
            logger.info("SIGTERM received")
            self.request_graceful_shutdown()
        elif sig == signal.SIGINT:
            self._interrupt()

    def request_graceful_shutdown(self) -> None:
        """向所有子进程发送 SIGTERM 并请求退出。"""
        self._forward(signal.SIGTERM)
        self._finish()

    def _interrupt(self) -> None:
        now = time.monotonic()
        if self._armed_at is not None and now - self._armed_at < self.double_tap_window:
            logger.warning("Second SIGINT within window, killing children")
            self._force_exit = True
            self._forward(FORCE_SIGNAL)
            self._finish()
            return

        if self.sigint_mode is SigintMode.EXIT or len(self.registry) == 0:
            logger.info(f"SIGINT received (mode={self.sigint_mode.value}), shutting down")
            self._armed_at = now
            self._finish()
            return

        self._forward(signal.SIGINT)
        if self.sigint_mode is SigintMode.CANCEL_THEN_EXIT:
            # 只做标记，连按才真正退出
            self._armed_at = now
            self._shutdown_requested = True
            logger.info(f"Press Ctrl+C again within {self.double_tap_window}s to exit")

    def _forward(self, sig: int) -> int:
        if len(self.registry) == 0:
            return 0
        delivered = self.registry.kill_all(sig)
        logger.info(f"Forwarded {signal.Signals(sig).name} to {delivered} child(ren)")
        return delivered

    def _finish(self) -> None:
        self._shutdown_requested = True
        if self._on_shutdown is not None:
            try:
                self._on_shutdown()
            except Exception as e:
                logger.warning(f"Shutdown callback failed: {e}")
        if self._shutdown_event is not None and self._loop is not None:
            self._loop.call_soon_threadsafe(self._shutdown_event.set)
