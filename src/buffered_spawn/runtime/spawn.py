"""Spawn a child process with inherited or buffered output.

buffered-spawn runtime module v0.1.0

This module provides:
- Output delivery policies: inherit (print right away) or buffered (held in
  arrival order, replayed or dropped once the outcome is known)
- Optional per-line prefixing of stdout/stderr
- Forwarding of host SIGINT / host exit to the child, exactly once
- Classification of the child's termination into a typed outcome

Key design points:
- spawn() returns synchronously; the child is created by a task on the
  running event loop, so kill() is valid immediately
- stdout and stderr are read concurrently in an anyio task group
- The outcome resolves once the child exited and both pipes reached EOF, so
  everything the child wrote is buffered before anyone can flush it
- Host termination hooks are released on every outcome path
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from collections.abc import Mapping
from typing import Any, Optional, Sequence, Union

import anyio

from ..errors import BufferingNotEnabledError, MissingStdioError, SpawnFailure
from ..signal_hooks import HookRegistration, get_host_hooks
from ..types import (
    SUCCESS_CODE,
    Errored,
    Failed,
    OutputMode,
    OutputStream,
    ProcessOutcome,
    ProcessState,
    Succeeded,
)
from .multi_buffer import MultiBufferedTransform
from .prefixing import PrefixingSink
from .sinks import ByteSink, as_sink

__all__ = [
    "SpawnHandle",
    "spawn",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

READ_CHUNK_SIZE = 4096

# Seconds to wait for a signalled child before escalating to SIGKILL
REAP_TIMEOUT = 5.0

SignalLike = Union[signal.Signals, int, str]


def _to_signal(value: SignalLike) -> signal.Signals:
    if isinstance(value, str):
        return signal.Signals[value.upper()]
    return signal.Signals(value)


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


def _unwrap_group(exc: BaseException) -> BaseException:
    """Return the only error of a single-member exception group."""
    while isinstance(exc, BaseExceptionGroup) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    return exc


class SpawnHandle:
    """A launched child process.

    Await the handle to get ``None`` on success or have the failure raised,
    or await ``handle.outcome`` for the typed result.

    Example:
        handle = spawn("make", ["test"], output_mode=OutputMode.BUFFERED)
        try:
            await handle
        except SpawnFailure as failure:
            print(failure.message)
            failure.flush_output()

    Attributes:
        command: Launched command
        args: Command arguments
        outcome: Future resolving to Succeeded, Failed or Errored
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        *,
        output_mode: OutputMode,
        output_prefix: Optional[str],
        stdout: ByteSink,
        stderr: ByteSink,
        stdin_bytes: Optional[bytes],
        timeout: Optional[float],
        kill_signal: signal.Signals,
        shell: bool,
        options: Mapping[str, Any],
    ) -> None:
        self.command = command
        self.args = list(args)
        self.output_mode = output_mode
        self.output_prefix = output_prefix
        self.stdin_bytes = stdin_bytes
        self.timeout = timeout
        self.kill_signal = kill_signal
        self.shell = shell
        self.options = dict(options)
        self._stdout = stdout
        self._stderr = stderr

        self._loop = asyncio.get_running_loop()
        self.outcome: asyncio.Future[ProcessOutcome] = self._loop.create_future()
        self._process: Optional[asyncio.subprocess.Process] = None
        self._pending_signal: Optional[signal.Signals] = None
        self._transform: Optional[MultiBufferedTransform] = None
        self._registration: Optional[HookRegistration] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def state(self) -> ProcessState:
        if not self.outcome.done():
            return ProcessState.RUNNING
        if self.outcome.cancelled() or self.outcome.exception() is not None:
            return ProcessState.ERRORED
        return self.outcome.result().state

    def __await__(self):
        return self._wait().__await__()

    async def _wait(self) -> None:
        outcome = await self.outcome
        if isinstance(outcome, Failed):
            raise outcome.failure
        if isinstance(outcome, Errored):
            raise outcome.cause

    def kill(self, sig: SignalLike = signal.SIGTERM) -> None:
        """Request termination of the child.

        Before the child is created the request is remembered and delivered
        as soon as it starts. Once the outcome is known this is a no-op.

        Args:
            sig: Signal to send (default SIGTERM)
        """
        if self.outcome.done():
            return
        sig = _to_signal(sig)
        if self._process is None:
            self._pending_signal = sig
            return
        self._send_signal(sig)

    def _send_signal(self, sig: signal.Signals) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            if IS_WINDOWS:
                process.terminate()
            else:
                os.kill(process.pid, sig)
            logger.debug(f"Sent {sig.name} to pid={process.pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={process.pid}")
        except OSError as e:
            logger.warning(f"Error sending {sig.name} to pid={process.pid}: {e}")

    def _forward(self, sig: signal.Signals) -> None:
        logger.info(f"Forwarding {sig.name} to '{self.command}'")
        self.kill(sig)

    def _on_timeout(self) -> None:
        logger.debug(
            f"'{self.command}' timed out after {self.timeout}s, "
            f"sending {self.kill_signal.name}"
        )
        self.kill(self.kill_signal)

    def _start(self) -> None:
        self._registration = get_host_hooks().register(
            on_interrupt=lambda: self._forward(signal.SIGINT),
            on_exit=lambda: self._forward(signal.SIGTERM),
        )
        self._task = self._loop.create_task(self._run(), name=f"spawn-{self.command}")

    def _build_subprocess_kwargs(self) -> dict[str, Any]:
        kwargs = dict(self.options)
        if kwargs.get("env") is not None:
            kwargs["env"] = dict(kwargs["env"])
        kwargs["stdin"] = (
            asyncio.subprocess.PIPE
            if self.stdin_bytes is not None
            else asyncio.subprocess.DEVNULL
        )
        kwargs["stdout"] = asyncio.subprocess.PIPE
        kwargs["stderr"] = asyncio.subprocess.PIPE
        return kwargs

    async def _create_process(self) -> asyncio.subprocess.Process:
        kwargs = self._build_subprocess_kwargs()
        if self.shell:
            # Arguments are joined verbatim so shell operators keep working
            cmdline = " ".join([self.command, *self.args])
            return await asyncio.create_subprocess_shell(cmdline, **kwargs)
        return await asyncio.create_subprocess_exec(self.command, *self.args, **kwargs)

    def _connect_outputs(
        self, process: asyncio.subprocess.Process
    ) -> tuple[ByteSink, ByteSink]:
        """Build the output pipeline and return the sinks the pipes feed."""
        if process.stdout is None:
            raise MissingStdioError("stdout")
        if process.stderr is None:
            raise MissingStdioError("stderr")

        stdout: ByteSink = self._stdout
        stderr: ByteSink = self._stderr
        if self.output_prefix is not None:
            stdout = PrefixingSink(self.output_prefix, stdout)
            stderr = PrefixingSink(self.output_prefix, stderr)

        if self.output_mode is OutputMode.INHERIT:
            return stdout, stderr

        transform = MultiBufferedTransform(
            (OutputStream.STDOUT.value, OutputStream.STDERR.value), end=False
        )
        self._transform = transform
        stdout_channel, stderr_channel = transform.channels
        stdout_channel.output.pipe(stdout)
        stderr_channel.output.pipe(stderr)
        return stdout_channel.input, stderr_channel.input

    async def _run(self) -> None:
        process: Optional[asyncio.subprocess.Process] = None
        try:
            try:
                process = await self._create_process()
            except OSError as e:
                logger.debug(f"Failed to start '{self.command}': {e}")
                self._resolve(Errored(e))
                return

            self._process = process
            logger.debug(
                f"Started subprocess pid={process.pid} "
                f"command={self.command} mode={self.output_mode.value}"
            )

            if self._pending_signal is not None:
                sig, self._pending_signal = self._pending_signal, None
                self._send_signal(sig)
            if self.timeout is not None and self.timeout > 0:
                self._timeout_handle = self._loop.call_later(self.timeout, self._on_timeout)

            stdout, stderr = self._connect_outputs(process)

            async with anyio.create_task_group() as tg:
                tg.start_soon(self._write_stdin, process)
                tg.start_soon(self._pump, process.stdout, stdout)
                tg.start_soon(self._pump, process.stderr, stderr)
                tg.start_soon(self._wait_exit, process)

            self._resolve(self._classify(process.returncode))

        except asyncio.CancelledError:
            if process is not None:
                if process.returncode is None:
                    self._send_signal(signal.SIGKILL if not IS_WINDOWS else signal.SIGTERM)
                await self._safe_reap(process)
            if not self.outcome.done():
                self.outcome.cancel()
            raise

        except Exception as e:
            error = _unwrap_group(e)
            logger.debug(f"Spawning '{self.command}' failed unexpectedly: {error!r}")
            if process is not None:
                if process.returncode is None:
                    self._send_signal(self.kill_signal)
                await self._safe_reap(process)
            if not self.outcome.done():
                self.outcome.set_exception(error)

        finally:
            self._release()

    async def _write_stdin(self, process: asyncio.subprocess.Process) -> None:
        if self.stdin_bytes is None:
            return
        if process.stdin is None:
            raise MissingStdioError("stdin")
        try:
            process.stdin.write(self.stdin_bytes)
            await process.stdin.drain()
            process.stdin.close()
            await process.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Child closed stdin early pid={process.pid}: {e}")

    async def _pump(self, stream: asyncio.StreamReader, sink: ByteSink) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            sink.write(chunk)
        sink.end()

    async def _wait_exit(self, process: asyncio.subprocess.Process) -> None:
        await process.wait()
        logger.debug(
            f"Subprocess exited pid={process.pid} returncode={process.returncode}"
        )
        # The child is gone: never re-signal it from a host hook or a timer
        self._release()

    async def _safe_reap(self, process: asyncio.subprocess.Process) -> None:
        """Wait for a signalled child, shielded from cancellation."""
        try:
            await asyncio.shield(self._reap(process))
        except asyncio.CancelledError:
            # If shield itself is cancelled, still reap
            await self._reap(process)

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        try:
            await asyncio.wait_for(process.wait(), timeout=REAP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(
                f"Subprocess pid={process.pid} ignored its signal, killing it"
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        logger.debug(
            f"Subprocess reaped pid={process.pid} returncode={process.returncode}"
        )

    def _release(self) -> None:
        if self._registration is not None:
            self._registration.remove()
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def _classify(self, returncode: Optional[int]) -> ProcessOutcome:
        code: Optional[int]
        signal_name: Optional[str]
        if returncode is not None and returncode < 0:
            code, signal_name = None, _signal_name(-returncode)
        else:
            code, signal_name = returncode, None

        if code == SUCCESS_CODE and signal_name is None:
            if self._transform is not None:
                # Nothing can request this output any more
                self._transform.clear()
                self._transform.destroy()
            return Succeeded()

        return Failed(
            SpawnFailure(self.command, self.args, code, signal_name, self._flush_output)
        )

    def _resolve(self, outcome: ProcessOutcome) -> None:
        if self.outcome.done():
            return
        logger.debug(f"'{self.command}' resolved as {outcome.state.value}")
        self.outcome.set_result(outcome)

    def _flush_output(self, stream: OutputStream) -> None:
        transform = self._transform
        if transform is None:
            raise BufferingNotEnabledError()
        if stream is OutputStream.BOTH:
            transform.flush()
        else:
            transform.flush(transform.channel(stream.value))
        transform.destroy()


def spawn(
    command: str,
    args: Sequence[str] = (),
    *,
    output_mode: Union[OutputMode, str] = OutputMode.INHERIT,
    output_prefix: Optional[str] = None,
    stdout: Any = None,
    stderr: Any = None,
    stdin_bytes: Optional[bytes] = None,
    timeout: Optional[float] = None,
    kill_signal: SignalLike = signal.SIGTERM,
    shell: bool = False,
    **options: Any,
) -> SpawnHandle:
    """Spawn a child process, routing its output by ``output_mode``.

    Must be called from a running event loop.

    Args:
        command: Executable (or shell command when ``shell=True``)
        args: Command arguments
        output_mode: INHERIT (or "immediate") prints right away; BUFFERED
            holds output until a failure's ``flush_output()`` replays it
        output_prefix: Text injected before every output line
        stdout: Sink or file object for stdout (default: host stdout)
        stderr: Sink or file object for stderr (default: host stderr)
        stdin_bytes: Bytes written to the child's stdin, which is then closed
        timeout: Seconds before ``kill_signal`` is sent to the child
        kill_signal: Signal used on timeout
        shell: Run ``command`` and ``args`` joined by spaces through the shell
        **options: Passed to asyncio.create_subprocess_exec/_shell
            (cwd, env, start_new_session, ...)

    Returns:
        Handle to await and kill
    """
    handle = SpawnHandle(
        command,
        args,
        output_mode=OutputMode(output_mode),
        output_prefix=output_prefix,
        stdout=as_sink(stdout if stdout is not None else sys.stdout),
        stderr=as_sink(stderr if stderr is not None else sys.stderr),
        stdin_bytes=stdin_bytes,
        timeout=timeout,
        kill_signal=_to_signal(kill_signal),
        shell=shell,
        options=options,
    )
    handle._start()
    return handle
