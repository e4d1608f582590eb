"""spawn 模块异常类。

异常分类：
- MissingStdioError: 期望存在的子进程管道缺失（前置条件失败，不可恢复）
- SpawnFailure: 子进程已运行，但以非零退出码或信号结束
- BufferingNotEnabledError: 未启用缓冲时请求 flush

进程创建失败（如命令不存在）不包装，原始 OSError 作为 Errored 结果返回。
"""

from __future__ import annotations

from typing import Callable, Optional, Sequence

from .types import OutputStream

__all__ = [
    "SpawnError",
    "MissingStdioError",
    "SpawnFailure",
    "BufferingNotEnabledError",
]


class SpawnError(Exception):
    """spawn 模块基础异常。"""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MissingStdioError(SpawnError):
    """子进程缺少期望的 stdio 管道。

    Attributes:
        stream: 缺失的管道名称 (stdin/stdout/stderr)
    """

    def __init__(self, stream: str) -> None:
        self.stream = stream
        super().__init__(f"Expected child to have {stream}")


class BufferingNotEnabledError(SpawnError):
    """在 inherit 输出模式下请求 flush。"""

    def __init__(self) -> None:
        super().__init__("Switch to 'buffered' output mode to flush buffers")


class SpawnFailure(SpawnError):
    """子进程执行失败。

    持有对缓冲区 flush 能力的借用（不拥有缓冲区），
    以便调用方决定是否回放子进程的输出。

    Attributes:
        command: 启动的命令
        args: 命令参数
        code: 退出码（被信号终止时为 None）
        signal: 终止信号名称，例如 "SIGTERM"（正常退出时为 None）
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        code: Optional[int],
        signal: Optional[str],
        flush: Callable[[OutputStream], None],
    ) -> None:
        self.command = command
        self.args = list(args)
        self.code = code
        self.signal = signal
        self._flush = flush
        message = f"Running '{command}' failed"
        if code is not None:
            message += f" (code = {code})"
        if signal is not None:
            message += f" (signal = {signal})"
        super().__init__(message)

    def flush_output(self, stream: OutputStream = OutputStream.BOTH) -> None:
        """回放缓冲的输出，保持跨流的到达顺序。

        Args:
            stream: 只 flush 某一个流（丢弃其他流的块），默认两者都 flush

        Raises:
            BufferingNotEnabledError: 输出模式不是 buffered
        """
        self._flush(OutputStream(stream))
