"""spawn 相关类型定义。

定义输出模式、flush 目标、进程状态以及进程结果（outcome）等类型。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional, Union

if TYPE_CHECKING:
    from .errors import SpawnFailure

__all__ = [
    "OutputMode",
    "OutputStream",
    "ProcessState",
    "Succeeded",
    "Failed",
    "Errored",
    "ProcessOutcome",
    "SUCCESS_CODE",
]

# 子进程成功退出码
SUCCESS_CODE = 0


class OutputMode(str, Enum):
    """子进程输出模式。

    - INHERIT: 直接透传到目标 sink（立即打印）
    - BUFFERED: 按到达顺序缓冲，失败时可以 flush 或丢弃
    """

    INHERIT = "inherit"
    BUFFERED = "buffered"

    @classmethod
    def _missing_(cls, value: object) -> Optional["OutputMode"]:
        # "immediate" 是 INHERIT 的别名，大小写与首尾空白不敏感
        if not isinstance(value, str):
            return None
        value = value.lower().strip()
        if value == "immediate":
            return cls.INHERIT
        for mode in cls:
            if mode.value == value:
                return mode
        return None

    @classmethod
    def from_string(cls, value: str) -> "OutputMode":
        """从字符串解析模式。

        Args:
            value: 模式字符串 (inherit/immediate/buffered)

        Returns:
            对应的 OutputMode 枚举值，无效值返回 INHERIT
        """
        try:
            return cls(value)
        except ValueError:
            return cls.INHERIT  # 默认值


class OutputStream(str, Enum):
    """flush 的目标输出流。"""

    STDOUT = "stdout"
    STDERR = "stderr"
    BOTH = "both"


class ProcessState(str, Enum):
    """子进程生命周期状态。

    RUNNING 为初始状态，其余均为终止状态。
    """

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ERRORED = "errored"


@dataclass(frozen=True)
class Succeeded:
    """子进程以成功退出码结束，且没有信号。"""

    state = ProcessState.SUCCEEDED


@dataclass(frozen=True)
class Failed:
    """子进程以非零退出码或信号结束。

    Attributes:
        failure: 携带命令、参数、退出码、信号以及 flush 能力的异常
    """

    failure: SpawnFailure

    state = ProcessState.FAILED

    @property
    def code(self) -> Optional[int]:
        return self.failure.code

    @property
    def signal(self) -> Optional[str]:
        return self.failure.signal


@dataclass(frozen=True)
class Errored:
    """子进程未能启动。

    Attributes:
        cause: 进程创建时抛出的原始异常
    """

    cause: BaseException

    state = ProcessState.ERRORED


ProcessOutcome = Union[Succeeded, Failed, Errored]
