#!/usr/bin/env python3
"""Instrumented child process for spawn tests.

Behaviour is driven by environment variables:

    CONSOLE_LOG: Line printed to stdout
    CONSOLE_ERROR: Line printed to stderr
    EXIT_CODE: Exit code (default 0)
    SLEEP_SECONDS: Sleep before exiting
    TOUCH_PATH_ON_EXIT: File written on exit ("code=N") or on SIGINT/SIGTERM
        (the signal name); the signal is then re-raised so the parent still
        sees the child die by that signal
"""

from __future__ import annotations

import os
import signal
import sys
import time
from pathlib import Path


def _install_touch_handlers(path: Path) -> None:
    def handler(signum: int, frame) -> None:
        path.write_text(signal.Signals(signum).name)
        signal.signal(signum, signal.SIG_DFL)
        os.kill(os.getpid(), signum)

    signal.signal(signal.SIGINT, handler)
    signal.signal(signal.SIGTERM, handler)


def main() -> int:
    touch_path = os.environ.get("TOUCH_PATH_ON_EXIT")
    if touch_path is not None:
        _install_touch_handlers(Path(touch_path))

    if "CONSOLE_LOG" in os.environ:
        print(os.environ["CONSOLE_LOG"], flush=True)

    if "CONSOLE_ERROR" in os.environ:
        print(os.environ["CONSOLE_ERROR"], file=sys.stderr, flush=True)

    exit_code = int(os.environ.get("EXIT_CODE", "0"))

    if "SLEEP_SECONDS" in os.environ:
        time.sleep(float(os.environ["SLEEP_SECONDS"]))

    if touch_path is not None:
        Path(touch_path).write_text(f"code={exit_code}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
