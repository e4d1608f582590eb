"""buffered-spawn - 带缓冲输出的子进程启动器。

子进程的 stdout/stderr 可以直接透传，也可以按到达顺序缓冲，
在失败时回放（flush）或丢弃。

环境变量 (仅命令行入口使用):
    BSP_OUTPUT_MODE: 输出模式 inherit/buffered (默认 inherit)
    BSP_OUTPUT_PREFIX: 每行输出前缀 (默认无)

用法:
    handle = spawn("npm", ["test"], output_mode=OutputMode.BUFFERED)
    try:
        await handle
    except SpawnFailure as failure:
        failure.flush_output()
"""

__version__ = "0.1.0"

from .errors import BufferingNotEnabledError, MissingStdioError, SpawnError, SpawnFailure
from .runtime import (
    ByteSink,
    CollectingSink,
    LinePrefixer,
    MultiBufferedTransform,
    PrefixingSink,
    SpawnHandle,
    StreamSink,
    spawn,
)
from .types import Errored, Failed, OutputMode, OutputStream, ProcessState, Succeeded

__all__ = [
    "__version__",
    "BufferingNotEnabledError",
    "ByteSink",
    "CollectingSink",
    "Errored",
    "Failed",
    "LinePrefixer",
    "MissingStdioError",
    "MultiBufferedTransform",
    "OutputMode",
    "OutputStream",
    "PrefixingSink",
    "ProcessState",
    "SpawnError",
    "SpawnFailure",
    "SpawnHandle",
    "StreamSink",
    "Succeeded",
    "spawn",
]
