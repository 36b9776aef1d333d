"""
Per-call execution pipeline.

validate command -> check flag params -> confine paths -> execute -> sanitize

Policy violations are raised before anything is spawned. Everything that
happens after spawn comes back as a response dict with success=False.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import os
from typing import Any

from pare_mcp.config import ResolvedConfig
from pare_mcp.process import ExecutionRequest, ExecutionResult, ProcessExecutor
from pare_mcp.roots import RootConfinement
from pare_mcp.sanitize import OutputSanitizer
from pare_mcp.validation import CommandValidator, check_flag_params, check_string

logger = logging.getLogger("pare-mcp.process")


class CommandRunner:
    """Runs commands for one server under that server's resolved policy."""

    def __init__(self, server: str, config: ResolvedConfig, executor: ProcessExecutor | None = None):
        self.server = server
        self.config = config
        self.policy = config.policy_for(server)
        self.validator = CommandValidator.from_policy(self.policy)
        self.confinement = RootConfinement.from_policy(self.policy)
        self.sanitizer = OutputSanitizer.from_policy(self.policy)
        self.executor = executor or ProcessExecutor()

    def prepare(
        self,
        command: str,
        args: Sequence[str] = (),
        cwd: str | os.PathLike[str] | None = None,
        timeout_ms: int | None = None,
        *,
        flag_params: Mapping[str, str | Sequence[str] | None] | None = None,
        path_params: Mapping[str, str] | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
        max_output_bytes: int | None = None,
    ) -> ExecutionRequest:
        """
        Apply every policy check and build the request.

        Args:
            command: Executable name (or path, unless strict-path mode is on)
            args: Argument vector, passed through untouched
            cwd: Working directory (defaults to the server's cwd)
            timeout_ms: Timeout (defaults to PARE_DEFAULT_TIMEOUT_MS)
            flag_params: Named data values that must not look like flags
            path_params: Named path values that must stay inside allowed roots

        Raises:
            PolicyViolation: If any check fails
        """
        self.validator.validate(command)

        if flag_params:
            check_flag_params(flag_params)

        if cwd is not None:
            check_string(os.fspath(cwd), "cwd", "PATH_MAX")
        work_dir = self.confinement.check(cwd if cwd is not None else os.getcwd(), "cwd")

        for param, value in (path_params or {}).items():
            check_string(value, param, "PATH_MAX")
            self.confinement.check(value, param, base=work_dir.value)

        settings = self.config.settings
        return ExecutionRequest.create(
            command,
            args,
            cwd=work_dir.value,
            timeout_ms=timeout_ms if timeout_ms is not None else settings.default_timeout_ms,
            max_output_bytes=max_output_bytes if max_output_bytes is not None else settings.max_output_bytes,
            env=env,
            stdin=stdin,
        )

    def to_response(self, result: ExecutionResult) -> dict[str, Any]:
        """Pre-compaction response with stderr and error text sanitized."""
        response: dict[str, Any] = {
            "success": result.success,
            "exitCode": result.exit_code,
            "stdout": result.stdout,
            "stderr": self.sanitizer.sanitize(result.stderr),
            "duration": result.duration_ms,
            "timedOut": result.timed_out,
        }
        if result.signal:
            response["signal"] = result.signal
        if result.truncated:
            response["truncated"] = True
        if result.error:
            response["error"] = self.sanitizer.sanitize(result.error)
        return response

    def run(self, command: str, args: Sequence[str] = (), cwd=None, timeout_ms: int | None = None, **kwargs) -> dict[str, Any]:
        """Check, execute and sanitize. See prepare() for arguments."""
        request = self.prepare(command, args, cwd, timeout_ms, **kwargs)
        result = self.executor.run(request)
        self._log(request, result)
        return self.to_response(result)

    async def run_async(
        self, command: str, args: Sequence[str] = (), cwd=None, timeout_ms: int | None = None, **kwargs
    ) -> dict[str, Any]:
        request = self.prepare(command, args, cwd, timeout_ms, **kwargs)
        result = await self.executor.run_async(request)
        self._log(request, result)
        return self.to_response(result)

    def _log(self, request: ExecutionRequest, result: ExecutionResult) -> None:
        logger.info(
            f"{self.server}: {request.command} exit={result.exit_code} "
            f"duration={result.duration_ms}ms timed_out={result.timed_out}"
        )
