"""BSP 环境变量配置管理。

环境变量:
    BSP_OUTPUT_MODE: 子进程输出模式
        - inherit = 直接透传到终端 (默认)，也接受 immediate
        - buffered = 缓冲输出，失败时回放

    BSP_OUTPUT_PREFIX: 每行输出前缀
        - 未设置 = 不加前缀
        - 例: "[build] "

    BSP_TIMEOUT: 子进程超时时间（秒）
        - 未设置/无效 = 不超时
        - 最小 0.1 秒

    BSP_KILL_SIGNAL: 超时时发送的信号
        - 默认 SIGTERM
        - 例: "SIGKILL" 或 "kill"

    BSP_LOG_DEBUG: 日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import signal
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from .types import OutputMode

__all__ = ["Config", "load_config", "get_config", "reload_config"]


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_output_mode(value: str | None) -> OutputMode:
    """解析输出模式环境变量。"""
    if not value:
        return OutputMode.INHERIT
    return OutputMode.from_string(value)


def _parse_timeout(value: str | None) -> float | None:
    """解析超时环境变量。"""
    if not value:
        return None
    try:
        timeout = float(value)
    except ValueError:
        return None
    return max(0.1, timeout)


def _parse_kill_signal(value: str | None) -> signal.Signals:
    """解析信号名称，支持省略 SIG 前缀，无效值返回 SIGTERM。"""
    if not value or not value.strip():
        return signal.SIGTERM
    name = value.strip().upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name]
    except KeyError:
        return signal.SIGTERM


@dataclass
class Config:
    """BSP 配置。

    Attributes:
        output_mode: 子进程输出模式
        output_prefix: 每行输出前缀（None 表示不加前缀）
        timeout: 子进程超时时间（秒，None 表示不超时）
        kill_signal: 超时时发送的信号
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    output_mode: OutputMode = OutputMode.INHERIT
    output_prefix: str | None = None
    timeout: float | None = None
    kill_signal: signal.Signals = signal.SIGTERM
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(output_mode={self.output_mode.value}, "
            f"output_prefix={self.output_prefix!r}, "
            f"timeout={self.timeout}, "
            f"kill_signal={self.kill_signal.name}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "buffered-spawn"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"bsp_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("BSP_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        output_mode=_parse_output_mode(os.environ.get("BSP_OUTPUT_MODE")),
        output_prefix=os.environ.get("BSP_OUTPUT_PREFIX") or None,
        timeout=_parse_timeout(os.environ.get("BSP_TIMEOUT")),
        kill_signal=_parse_kill_signal(os.environ.get("BSP_KILL_SIGNAL")),
        log_debug=log_debug,
        log_file=log_file,
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
