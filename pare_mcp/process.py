"""
Process execution with bounded output and guaranteed timeout cleanup.

Security features:
- Direct exec, never through a shell
- Own session / process group, so the whole tree can be signalled
- Output capped as it arrives (memory stays bounded for chatty tools)
- Timeout: SIGTERM, grace period, SIGKILL, then reap before returning
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import errno
from functools import partial
import logging
import os
import selectors
import signal as sigmod
import subprocess
import threading
import time

import psutil

from pare_mcp.config import DEFAULT_MAX_OUTPUT_BYTES, DEFAULT_TIMEOUT_MS
from pare_mcp.errors import InvalidInput
from pare_mcp.sanitize import strip_ansi
from pare_mcp.validation import INPUT_LIMITS, check_args, check_string, check_timeout

logger = logging.getLogger("pare-mcp.process")

TERMINATE_GRACE_SEC = 2.0
TRUNCATION_MARKER = "[output truncated: {omitted} bytes omitted]"

# Conventional shell exit codes for spawn failures
EXIT_NOT_FOUND = 127
EXIT_NOT_EXECUTABLE = 126
EXIT_SPAWN_FAILED = -1
EXIT_TIMED_OUT = -1

_READ_CHUNK = 64 * 1024
_IS_WINDOWS = os.name == "nt"


@dataclass(frozen=True)
class ExecutionRequest:
    """One validated invocation. Build with ExecutionRequest.create()."""

    command: str
    args: tuple[str, ...] = ()
    cwd: str | None = None
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    env: Mapping[str, str] | None = None
    stdin: str | None = None

    @classmethod
    def create(
        cls,
        command: str,
        args: Sequence[str] = (),
        cwd: str | os.PathLike[str] | None = None,
        timeout_ms: int | None = None,
        max_output_bytes: int | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> ExecutionRequest:
        """
        Build a request, enforcing input limits.

        Raises:
            InvalidInput: If any field is empty, oversized or malformed
        """
        if not isinstance(command, str) or not command.strip():
            raise InvalidInput("Empty command")
        check_string(command, "command", "SHORT_STRING_MAX")

        cwd_str = None
        if cwd is not None:
            cwd_str = os.fspath(cwd)
            check_string(cwd_str, "cwd", "PATH_MAX")

        if timeout_ms is None:
            timeout_ms = DEFAULT_TIMEOUT_MS
        if max_output_bytes is None:
            max_output_bytes = DEFAULT_MAX_OUTPUT_BYTES
        if isinstance(max_output_bytes, bool) or not isinstance(max_output_bytes, int) or max_output_bytes <= 0:
            raise InvalidInput(f"max_output_bytes must be a positive integer, got {max_output_bytes!r}")

        env_copy = None
        if env is not None:
            if len(env) > INPUT_LIMITS["ARRAY_MAX"]:
                raise InvalidInput(f"env exceeds {INPUT_LIMITS['ARRAY_MAX']} entries")
            env_copy = {}
            for key, value in env.items():
                if not isinstance(key, str) or not isinstance(value, str):
                    raise InvalidInput("env keys and values must be strings")
                if not key or "=" in key:
                    raise InvalidInput(f'Invalid env variable name "{key}"')
                check_string(key, "env", "SHORT_STRING_MAX")
                check_string(value, "env")
                env_copy[key] = value

        if stdin is not None:
            check_string(stdin, "stdin")

        return cls(
            command=command,
            args=check_args(args),
            cwd=cwd_str,
            timeout_ms=check_timeout(timeout_ms),
            max_output_bytes=max_output_bytes,
            env=env_copy,
            stdin=stdin,
        )

    @property
    def argv(self) -> list[str]:
        return [self.command, *self.args]


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    truncated: bool = False
    signal: str | None = None
    error: str | None = None  # spawn failure text

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and self.error is None


class BoundedBuffer:
    """Byte sink that keeps at most `limit` bytes and counts the rest."""

    def __init__(self, limit: int):
        self.limit = limit
        self._chunks: list[bytes] = []
        self._size = 0
        self.omitted = 0

    def write(self, data: bytes) -> None:
        room = self.limit - self._size
        if room > 0:
            kept = data[:room]
            self._chunks.append(kept)
            self._size += len(kept)
            self.omitted += len(data) - len(kept)
        else:
            self.omitted += len(data)

    @property
    def truncated(self) -> bool:
        return self.omitted > 0

    def getvalue(self) -> str:
        text = strip_ansi(b"".join(self._chunks).decode("utf-8", errors="replace"))
        if self.omitted:
            if text and not text.endswith("\n"):
                text += "\n"
            text += TRUNCATION_MARKER.format(omitted=self.omitted)
        return text


def _spawn_failure(exc: OSError, request: ExecutionRequest) -> tuple[int, str]:
    """Map a Popen failure to (exit code, message)."""
    # Popen reports chdir failures with the cwd as filename
    if request.cwd is not None and exc.filename == request.cwd:
        return EXIT_SPAWN_FAILED, f"Working directory is not usable: {request.cwd} ({exc.strerror})"
    if isinstance(exc, FileNotFoundError):
        return EXIT_NOT_FOUND, f"Command not found: {request.command}"
    if isinstance(exc, PermissionError) or exc.errno == errno.ENOEXEC:
        return EXIT_NOT_EXECUTABLE, f"Permission denied: {request.command} is not executable"
    return EXIT_SPAWN_FAILED, f"Failed to start {request.command}: {exc}"


def _feed_stdin(stream, data: str) -> None:
    try:
        stream.write(data.encode("utf-8"))
    except BrokenPipeError:
        # Child exited or closed stdin before reading everything
        logger.debug("stdin closed by child before all input was written")
    finally:
        try:
            stream.close()
        except BrokenPipeError:
            logger.debug("stdin already closed by child")


def _drain(stream, buffer: BoundedBuffer) -> None:
    for chunk in iter(partial(stream.read1, _READ_CHUNK), b""):
        buffer.write(chunk)


def _signal_name(signum: int) -> str:
    try:
        return sigmod.Signals(signum).name
    except ValueError:
        # Real-time signals between SIGRTMIN and SIGRTMAX have no enum member
        return f"SIG{signum}"


def _live(procs: list[psutil.Process]) -> list[psutil.Process]:
    """Processes still running. Zombies count as gone."""
    live = []
    for p in procs:
        try:
            if p.is_running() and p.status() != psutil.STATUS_ZOMBIE:
                live.append(p)
        except psutil.NoSuchProcess:
            continue
    return live


def _wait_gone(procs: list[psutil.Process], timeout: float) -> list[psutil.Process]:
    """Wait until every process is gone or the timeout passes. Returns survivors."""
    deadline = time.monotonic() + timeout
    live = _live(procs)
    while live:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        psutil.wait_procs(live, timeout=min(remaining, 0.05))
        live = _live(live)
    return live


def _group_members(pgid: int, exclude: int) -> list[psutil.Process]:
    """Live processes in a process group, including ones reparented away from our child."""
    if _IS_WINDOWS:
        return []
    members = []
    for p in psutil.process_iter(["status"]):
        if p.pid == exclude or p.info["status"] == psutil.STATUS_ZOMBIE:
            continue
        try:
            if os.getpgid(p.pid) == pgid:
                members.append(p)
        except (ProcessLookupError, PermissionError):
            continue
    return members


class ProcessExecutor:
    """Runs ExecutionRequests. Holds no per-call state, so one instance can be shared."""

    def __init__(self, grace_sec: float = TERMINATE_GRACE_SEC):
        self.grace_sec = grace_sec

    def run(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Run a command to completion or timeout.

        Never raises for process failures: spawn errors, non-zero exits and
        timeouts all come back as an ExecutionResult with success=False.
        """
        env = None
        if request.env:
            env = {**os.environ, **request.env}

        popen_kwargs = {}
        if _IS_WINDOWS:
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                request.argv,
                stdin=subprocess.PIPE if request.stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=request.cwd,
                env=env,
                **popen_kwargs,
            )
        except OSError as e:
            exit_code, message = _spawn_failure(e, request)
            logger.info(f"Spawn failed for {request.command}: {message}")
            return ExecutionResult(
                exit_code=exit_code,
                stdout="",
                stderr=message,
                duration_ms=int((time.monotonic() - start) * 1000),
                error=message,
            )

        logger.debug(f"Started pid={proc.pid}: {request.argv}")
        deadline = start + request.timeout_ms / 1000
        stdout_buf = BoundedBuffer(request.max_output_bytes)
        stderr_buf = BoundedBuffer(request.max_output_bytes)

        feeder = None
        if request.stdin is not None:
            feeder = threading.Thread(target=_feed_stdin, args=(proc.stdin, request.stdin), daemon=True)
            feeder.start()

        sent_signal = None
        try:
            if _IS_WINDOWS:
                timed_out = self._collect_threads(proc, stdout_buf, stderr_buf, deadline)
            else:
                timed_out = self._collect_selectors(proc, stdout_buf, stderr_buf, deadline)
            if not timed_out:
                timed_out = not self._wait_until(proc, deadline)
            if timed_out:
                sent_signal = self._terminate_tree(proc)
        finally:
            for stream in (proc.stdout, proc.stderr):
                stream.close()
            if feeder is not None:
                feeder.join(timeout=self.grace_sec)

        duration_ms = int((time.monotonic() - start) * 1000)

        if timed_out:
            logger.warning(
                f"Timed out after {request.timeout_ms}ms: {request.command} "
                f"(pid={proc.pid}, {sent_signal})"
            )
            exit_code = EXIT_TIMED_OUT
            signal_name = sent_signal
        else:
            exit_code = proc.returncode
            signal_name = None
            # Killed by a signal we did not send
            if exit_code < 0 and not _IS_WINDOWS:
                signal_name = _signal_name(-exit_code)
                exit_code = 128 - exit_code

        return ExecutionResult(
            exit_code=exit_code,
            stdout=stdout_buf.getvalue(),
            stderr=stderr_buf.getvalue(),
            duration_ms=duration_ms,
            timed_out=timed_out,
            truncated=stdout_buf.truncated or stderr_buf.truncated,
            signal=signal_name,
        )

    async def run_async(self, request: ExecutionRequest) -> ExecutionResult:
        """Run on a worker thread so the event loop stays responsive."""
        return await asyncio.to_thread(self.run, request)

    @staticmethod
    def _wait_until(proc: subprocess.Popen, deadline: float) -> bool:
        """Wait for exit until the deadline. Returns False if still running."""
        try:
            proc.wait(timeout=max(deadline - time.monotonic(), 0))
            return True
        except subprocess.TimeoutExpired:
            return False

    @staticmethod
    def _collect_selectors(
        proc: subprocess.Popen,
        stdout_buf: BoundedBuffer,
        stderr_buf: BoundedBuffer,
        deadline: float,
    ) -> bool:
        """
        Read both pipes until EOF or deadline.

        Uses selectors.DefaultSelector (epoll on Linux, kqueue on BSD/macOS)
        with os.read so a quiet stream never blocks the other one.

        Returns:
            True if the deadline passed before both pipes closed
        """
        sel = selectors.DefaultSelector()
        try:
            sel.register(proc.stdout.fileno(), selectors.EVENT_READ, stdout_buf)
            sel.register(proc.stderr.fileno(), selectors.EVENT_READ, stderr_buf)

            while sel.get_map():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return True
                for key, _ in sel.select(timeout=remaining):
                    chunk = os.read(key.fd, _READ_CHUNK)
                    if chunk:
                        key.data.write(chunk)
                    else:
                        sel.unregister(key.fd)
        finally:
            sel.close()
        return False

    @staticmethod
    def _collect_threads(
        proc: subprocess.Popen,
        stdout_buf: BoundedBuffer,
        stderr_buf: BoundedBuffer,
        deadline: float,
    ) -> bool:
        """Pipe pumps for platforms where pipes cannot be selected (Windows)."""
        pumps = [
            threading.Thread(target=_drain, args=(proc.stdout, stdout_buf), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, stderr_buf), daemon=True),
        ]
        for pump in pumps:
            pump.start()
        for pump in pumps:
            pump.join(timeout=max(deadline - time.monotonic(), 0))
            if pump.is_alive():
                return True
        return False

    def _terminate_tree(self, proc: subprocess.Popen) -> str:
        """
        Terminate the child and all its descendants, confirming they are gone.

        Returns:
            Name of the last signal sent
        """
        try:
            descendants = psutil.Process(proc.pid).children(recursive=True)
        except psutil.NoSuchProcess:
            # Child already exited; its descendants were reparented
            descendants = []
        tracked = {p.pid: p for p in descendants}
        for p in _group_members(proc.pid, exclude=proc.pid):
            tracked.setdefault(p.pid, p)

        self._signal_tree(proc, list(tracked.values()), kill=False)
        last_signal = "SIGTERM"

        grace_deadline = time.monotonic() + self.grace_sec
        exited = self._wait_until(proc, grace_deadline)
        survivors = _wait_gone(list(tracked.values()), max(grace_deadline - time.monotonic(), 0))
        seen = {p.pid for p in survivors}
        survivors += [p for p in _group_members(proc.pid, exclude=proc.pid) if p.pid not in seen]

        if not exited or survivors:
            self._signal_tree(proc, survivors, kill=True)
            last_signal = "SIGKILL"
        elif not _IS_WINDOWS:
            # Sweep anything that joined the group during the grace period
            self._kill_group(proc.pid, sigmod.SIGKILL)

        # Reap; after SIGKILL this cannot block indefinitely
        proc.wait()

        remaining = _wait_gone(survivors + _group_members(proc.pid, exclude=proc.pid), self.grace_sec)
        if remaining:
            logger.error(f"Process group {proc.pid} still has live members: {[p.pid for p in remaining]}")
        return last_signal

    @staticmethod
    def _kill_group(pgid: int, sig: int) -> None:
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            logger.debug(f"Process group {pgid} already gone")

    @staticmethod
    def _signal_tree(proc: subprocess.Popen, descendants: list[psutil.Process], kill: bool) -> None:
        if _IS_WINDOWS:
            if proc.poll() is None:
                if kill:
                    proc.kill()
                else:
                    proc.terminate()
        else:
            # Session leader: pgid == pid
            ProcessExecutor._kill_group(proc.pid, sigmod.SIGKILL if kill else sigmod.SIGTERM)
        for child in descendants:
            try:
                if kill:
                    child.kill()
                else:
                    child.terminate()
            except psutil.NoSuchProcess:
                continue
