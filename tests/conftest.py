"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用子进程脚本
INSTRUMENTED_SCRIPT = PROJECT_ROOT / "tests" / "fixtures" / "instrumented_script.py"


@pytest.fixture
def script_argv() -> list[str]:
    """运行测试子进程的参数（不含命令本身）。"""
    return [str(INSTRUMENTED_SCRIPT)]


@pytest.fixture
def python() -> str:
    """当前解释器路径，作为测试子进程的命令。"""
    return sys.executable


@pytest.fixture
def script_env():
    """构造测试子进程的环境变量。"""

    def _make(**values: str) -> dict[str, str]:
        env = dict(os.environ)
        for key in ("CONSOLE_LOG", "CONSOLE_ERROR", "EXIT_CODE", "SLEEP_SECONDS", "TOUCH_PATH_ON_EXIT"):
            env.pop(key, None)
        env.update(values)
        return env

    return _make
