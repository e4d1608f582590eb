"""buffered-spawn 命令行入口。

运行单个子进程，失败时打印错误信息并按需回放缓冲的输出。

用法:
    buffered-spawn [--buffered | --inherit] [--prefix P] [--timeout S]
                   [--flush {stdout,stderr,both,none}] [--shell] -- COMMAND [ARGS...]

退出码:
    - 子进程成功: 0
    - 子进程失败: 子进程退出码；被信号终止时为 128 + 信号编号
    - 子进程无法启动: 127
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Sequence

from . import __version__
from .config import Config, get_config
from .errors import SpawnFailure
from .runtime import spawn
from .types import Errored, Failed, OutputMode, OutputStream

__all__ = ["build_parser", "run_command", "main"]

logger = logging.getLogger(__name__)

EXIT_CANNOT_START = 127
EXIT_SIGNAL_BASE = 128


def build_parser(config: Config) -> argparse.ArgumentParser:
    """构建命令行参数解析器，默认值来自环境变量配置。"""
    parser = argparse.ArgumentParser(
        prog="buffered-spawn",
        description="Run a command with inherited or buffered output",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--buffered",
        dest="output_mode",
        action="store_const",
        const=OutputMode.BUFFERED,
        help="Hold output until the command fails",
    )
    mode.add_argument(
        "--inherit",
        dest="output_mode",
        action="store_const",
        const=OutputMode.INHERIT,
        help="Print output right away",
    )
    parser.set_defaults(output_mode=config.output_mode)
    parser.add_argument("--prefix", default=config.output_prefix, help="Prefix for every output line")
    parser.add_argument("--timeout", type=float, default=config.timeout, help="Seconds before the command is killed")
    parser.add_argument(
        "--flush",
        choices=[s.value for s in OutputStream] + ["none"],
        default=OutputStream.BOTH.value,
        help="Buffered stream(s) to replay on failure",
    )
    parser.add_argument("--shell", action="store_true", help="Run the command through the shell")
    parser.add_argument("command", help="Command to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Command arguments")
    return parser


def _exit_code_for(failure: SpawnFailure) -> int:
    if failure.code is not None:
        return failure.code
    if failure.signal is not None:
        try:
            return EXIT_SIGNAL_BASE + signal.Signals[failure.signal].value
        except KeyError:
            pass
    return 1


async def run_command(options: argparse.Namespace, config: Config) -> int:
    """运行子进程并返回命令行退出码。"""
    args = list(options.args)

    handle = spawn(
        options.command,
        args,
        output_mode=options.output_mode,
        output_prefix=options.prefix,
        timeout=options.timeout,
        kill_signal=config.kill_signal,
        shell=options.shell,
    )
    outcome = await handle.outcome

    if isinstance(outcome, Errored):
        logger.error(f"Could not start '{options.command}': {outcome.cause}")
        return EXIT_CANNOT_START

    if isinstance(outcome, Failed):
        failure = outcome.failure
        print(failure.message, file=sys.stderr)
        if options.output_mode is OutputMode.BUFFERED and options.flush != "none":
            failure.flush_output(OutputStream(options.flush))
        return _exit_code_for(failure)

    return 0


def _configure_logging(config: Config) -> None:
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 buffered_spawn 命名空间启用详细日志
    logging.getLogger("buffered_spawn").setLevel(log_level)


def main(argv: Sequence[str] | None = None) -> None:
    """主入口点。"""
    config = get_config()
    _configure_logging(config)

    options = build_parser(config).parse_args(argv)
    logger.debug(f"Starting buffered-spawn: {config}")

    sys.exit(asyncio.run(run_command(options, config)))


if __name__ == "__main__":
    main()
