"""宿主进程终止钩子模块。

将宿主进程收到的终止请求转发给子进程：
- SIGINT: 宿主被中断时，通知每个已登记的子进程（通常转发 SIGINT）
- 进程退出 (atexit): 宿主退出时，通知每个已登记的子进程（通常转发 SIGTERM）

每次 spawn 通过 register() 显式登记一对回调，并拿到一个 HookRegistration，
子进程结束时调用 remove() 注销。每个回调对同一个触发源最多执行一次。
没有任何登记时，SIGINT 处理器和 atexit 钩子都会被移除，恢复宿主的默认行为。
"""

from __future__ import annotations

import asyncio
import atexit
import itertools
import logging
import signal
import sys
import threading
from typing import Callable, Dict, Optional

__all__ = ["HostTerminationHooks", "HookRegistration", "get_host_hooks"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class HookRegistration:
    """一次 register() 的注销句柄。

    remove() 是幂等的，可以在任意结果路径上安全调用。
    """

    def __init__(self, hooks: HostTerminationHooks, hook_id: int) -> None:
        self._hooks = hooks
        self.hook_id = hook_id
        self.removed = False

    def remove(self) -> None:
        """注销这一对回调。"""
        if self.removed:
            return
        self.removed = True
        self._hooks._remove(self.hook_id)


class HostTerminationHooks:
    """宿主终止钩子注册表。

    Example:
        ```python
        hooks = get_host_hooks()
        registration = hooks.register(
            on_interrupt=lambda: handle.kill(signal.SIGINT),
            on_exit=lambda: handle.kill(),
        )
        try:
            await handle.outcome
        finally:
            registration.remove()
        ```

    线程安全：所有操作由调用方保证在同一个事件循环中调用。
    """

    def __init__(self) -> None:
        """初始化钩子注册表。"""
        self._interrupt_callbacks: Dict[int, Callable[[], None]] = {}
        self._exit_callbacks: Dict[int, Callable[[], None]] = {}
        self._ids = itertools.count(1)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sigint_installed: bool = False
        self._original_sigint_handler: Optional[signal.Handlers] = None
        self._atexit_installed: bool = False

    @property
    def active_count(self) -> int:
        """仍有未触发回调的登记数量。"""
        return len(set(self._interrupt_callbacks) | set(self._exit_callbacks))

    @property
    def sigint_installed(self) -> bool:
        return self._sigint_installed

    @property
    def atexit_installed(self) -> bool:
        return self._atexit_installed

    def register(
        self,
        on_interrupt: Callable[[], None],
        on_exit: Callable[[], None],
    ) -> HookRegistration:
        """登记一对终止回调。

        Args:
            on_interrupt: 宿主收到 SIGINT 时调用（最多一次）
            on_exit: 宿主退出时调用（最多一次）

        Returns:
            注销句柄
        """
        hook_id = next(self._ids)
        self._interrupt_callbacks[hook_id] = on_interrupt
        self._exit_callbacks[hook_id] = on_exit
        self._install_sigint()
        self._install_atexit()
        logger.debug(f"Termination hooks registered (id={hook_id}, active={self.active_count})")
        return HookRegistration(self, hook_id)

    def _remove(self, hook_id: int) -> None:
        self._interrupt_callbacks.pop(hook_id, None)
        self._exit_callbacks.pop(hook_id, None)
        logger.debug(f"Termination hooks removed (id={hook_id}, active={self.active_count})")
        self._sync_installation()

    def _sync_installation(self) -> None:
        if not self._interrupt_callbacks:
            self._uninstall_sigint()
        if not self._exit_callbacks:
            self._uninstall_atexit()

    def _install_sigint(self) -> None:
        """安装 SIGINT 处理器。

        POSIX 上优先使用 loop.add_signal_handler；没有运行中的事件循环
        或在 Windows 上时使用 signal.signal()（只能在主线程中设置）。
        """
        if self._sigint_installed:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None and not IS_WINDOWS:
            try:
                loop.add_signal_handler(signal.SIGINT, self._handle_interrupt)
                self._loop = loop
                self._sigint_installed = True
                logger.debug("SIGINT handler installed on event loop")
                return
            except (NotImplementedError, RuntimeError, ValueError) as e:
                logger.debug(f"add_signal_handler failed, falling back to signal.signal: {e}")

        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, SIGINT will not be forwarded")
            return

        def _on_sigint(signum, frame) -> None:
            if loop is not None and not loop.is_closed():
                loop.call_soon_threadsafe(self._handle_interrupt)
            else:
                self._handle_interrupt()

        self._original_sigint_handler = signal.signal(signal.SIGINT, _on_sigint)
        self._loop = None
        self._sigint_installed = True
        logger.debug("SIGINT handler installed with signal.signal")

    def _uninstall_sigint(self) -> None:
        if not self._sigint_installed:
            return
        self._sigint_installed = False

        if self._loop is not None:
            try:
                if not self._loop.is_closed():
                    self._loop.remove_signal_handler(signal.SIGINT)
            except Exception as e:
                logger.debug(f"Error removing SIGINT handler: {e}")
            self._loop = None
        elif self._original_sigint_handler is not None:
            try:
                signal.signal(signal.SIGINT, self._original_sigint_handler)
            except Exception as e:
                logger.debug(f"Error restoring SIGINT handler: {e}")
            self._original_sigint_handler = None

        logger.debug("SIGINT handler removed")

    def _install_atexit(self) -> None:
        if self._atexit_installed:
            return
        atexit.register(self._handle_exit)
        self._atexit_installed = True

    def _uninstall_atexit(self) -> None:
        if not self._atexit_installed:
            return
        atexit.unregister(self._handle_exit)
        self._atexit_installed = False

    def _handle_interrupt(self) -> None:
        """处理 SIGINT：调用并清空所有中断回调。"""
        callbacks = list(self._interrupt_callbacks.values())
        self._interrupt_callbacks.clear()
        logger.info(f"SIGINT received, forwarding to {len(callbacks)} child process(es)")
        self._run_callbacks(callbacks)
        self._sync_installation()

    def _handle_exit(self) -> None:
        """处理宿主退出：调用并清空所有退出回调。"""
        callbacks = list(self._exit_callbacks.values())
        self._exit_callbacks.clear()
        logger.debug(f"Host exiting, terminating {len(callbacks)} child process(es)")
        self._run_callbacks(callbacks)
        self._sync_installation()

    @staticmethod
    def _run_callbacks(callbacks: list[Callable[[], None]]) -> None:
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Error in termination hook: {e}")


# 全局钩子实例（延迟创建）
_host_hooks: HostTerminationHooks | None = None


def get_host_hooks() -> HostTerminationHooks:
    """获取进程级钩子注册表。"""
    global _host_hooks
    if _host_hooks is None:
        _host_hooks = HostTerminationHooks()
    return _host_hooks
