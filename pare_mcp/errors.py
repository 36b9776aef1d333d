"""
Error taxonomy and failure classification.

Three families, each handled at a different point:
- ConfigurationError: raised once at startup, never per call
- PolicyViolation: raised before anything is spawned, returned to the caller
  as a structured error
- Execution failures (spawn errors, non-zero exits, timeouts) are not
  exceptions at all; they come back as results with success=False
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

# Categories an agent can match on without parsing free text
ERROR_CATEGORIES = (
    "command-not-found",
    "permission-denied",
    "timeout",
    "invalid-input",
    "not-found",
    "network-error",
    "authentication-error",
    "conflict",
    "configuration-error",
    "already-exists",
    "command-failed",
)


class PareError(Exception):
    """Base class for every error raised by this package."""

    category = "command-failed"


class ConfigurationError(PareError):
    """Raised at startup for unknown profiles or malformed env lists."""

    category = "configuration-error"


class PolicyViolation(PareError):
    """Raised when a request is rejected before any process is spawned."""

    category = "invalid-input"

    def __init__(self, message: str, *, subject: str | None = None):
        super().__init__(message)
        self.subject = subject


class CommandNotAllowed(PolicyViolation):
    """Command basename is not in the allowlist, or is path-qualified in strict mode."""


class PathOutsideAllowedRoots(PolicyViolation):
    """Working directory or path parameter escapes every allowed root."""


class FlagInjectionRejected(PolicyViolation):
    """A data parameter would be read as a CLI flag."""


class InvalidInput(PolicyViolation):
    """Request exceeds input limits or is otherwise malformed."""


# ---------------------------------------------------------------------------
# Pattern matching on diagnostics
# ---------------------------------------------------------------------------


def _contains_any(text: str, needles: tuple[str, ...]) -> bool:
    lower = text.lower()
    return any(n in lower for n in needles)


def is_command_not_found(text: str) -> bool:
    return _contains_any(
        text,
        (
            "command not found",
            "not recognized",
            "enoent",
            "no such file or directory",
        ),
    )


def is_permission_denied(text: str) -> bool:
    return _contains_any(
        text,
        (
            "permission denied",
            "eacces",
            "eperm",
            "access denied",
            "operation not permitted",
        ),
    )


def is_timeout(text: str) -> bool:
    return _contains_any(text, ("timed out", "timeout"))


def is_network_error(text: str) -> bool:
    return _contains_any(
        text,
        (
            "connection refused",
            "econnrefused",
            "etimedout",
            "econnreset",
            "enetunreach",
            "could not resolve host",
            "network is unreachable",
            "dns resolution failed",
        ),
    )


def is_auth_error(text: str) -> bool:
    lower = text.lower()
    if " 401 " in lower or " 401:" in lower or " 403 " in lower or " 403:" in lower:
        return True
    return _contains_any(
        lower,
        (
            "authentication",
            "authenticated",
            "credential",
            "unauthorized",
            "permission denied (publickey",
            "login required",
        ),
    )


def is_conflict(text: str) -> bool:
    return _contains_any(text, ("conflict", "lock file", "locked"))


def is_not_found(text: str) -> bool:
    lower = text.lower()
    if " 404 " in lower or " 404:" in lower:
        return True
    return _contains_any(
        lower,
        ("not found", "does not exist", "no such", "unknown revision", "pathspec"),
    )


def is_already_exists(text: str) -> bool:
    return _contains_any(text, ("already exists", "already exist"))


def is_configuration_error(text: str) -> bool:
    return _contains_any(
        text,
        (
            "missing config",
            "configuration error",
            "config file not found",
            "invalid configuration",
            "no configuration",
            "could not read config",
        ),
    )


def classify_text(text: str, exit_code: int) -> str:
    """
    Pick the most specific category for failure text.

    Order matters: "permission denied (publickey)" is an auth error, and
    conflict messages often mention paths that were "not found".
    """
    if exit_code == 124 or is_timeout(text):
        return "timeout"
    if is_command_not_found(text):
        return "command-not-found"
    if is_auth_error(text):
        return "authentication-error"
    if is_permission_denied(text):
        return "permission-denied"
    if is_network_error(text):
        return "network-error"
    if is_already_exists(text):
        return "already-exists"
    if is_configuration_error(text):
        return "configuration-error"
    if is_conflict(text):
        return "conflict"
    if is_not_found(text):
        return "not-found"
    return "command-failed"


_SUGGESTIONS = {
    "command-not-found": 'Ensure "{cmd}" is installed and available in your PATH.',
    "permission-denied": "Check file/directory permissions or run with elevated privileges.",
    "timeout": "The command took too long. Retry with a longer timeout or a smaller scope.",
    "invalid-input": "Check the input parameters and try again.",
    "not-found": "Verify the resource (file, branch, ref, etc.) exists.",
    "network-error": "Check your network connection and try again.",
    "authentication-error": "Verify your credentials or tokens are valid and not expired.",
    "conflict": "Resolve the conflict or release the lock and retry.",
    "configuration-error": "Check that all required config files exist and are valid.",
    "already-exists": "The resource already exists. Use a different name or remove it first.",
    "command-failed": 'Inspect the error message from "{cmd}" for more details.',
}


def suggest_recovery(category: str, command: str = "") -> str:
    return _SUGGESTIONS.get(category, _SUGGESTIONS["command-failed"]).format(cmd=command)


def classify_error(result: Any, command: str) -> dict[str, Any]:
    """
    Classify a failed ExecutionResult into a structured error.

    Args:
        result: Anything with exit_code, stdout, stderr (and optionally error)
        command: Human-readable label, e.g. "git tag"

    Returns:
        Dict with isError, category, message, command, exitCode, suggestion
    """
    text = getattr(result, "error", None) or result.stderr or result.stdout
    if getattr(result, "timed_out", False):
        category = "timeout"
    else:
        category = classify_text(text, result.exit_code)

    return {
        "isError": True,
        "category": category,
        "message": text.strip() or f"{command} failed with exit code {result.exit_code}",
        "command": command,
        "exitCode": result.exit_code,
        "suggestion": suggest_recovery(category, command),
    }


def policy_error(exc: PareError, command: str | None = None) -> dict[str, Any]:
    """Render a rejected request in the same shape as classify_error."""
    error: dict[str, Any] = {
        "isError": True,
        "category": exc.category,
        "message": str(exc),
        "suggestion": suggest_recovery(exc.category, command or ""),
    }
    if command:
        error["command"] = command
    return error


def format_error(error: dict[str, Any]) -> str:
    """Human-readable rendering of a structured error."""
    lines = [f"Error [{error['category']}]: {error['message']}"]
    if error.get("command"):
        lines.append(f"Command: {error['command']}")
    if error.get("exitCode") is not None:
        lines.append(f"Exit code: {error['exitCode']}")
    if error.get("suggestion"):
        lines.append(f"Suggestion: {error['suggestion']}")
    return "\n".join(lines)


def classify_response(response: dict[str, Any], command: str) -> dict[str, Any]:
    """classify_error for a runner response dict (full or compact shape)."""
    view = SimpleNamespace(
        exit_code=response.get("exitCode", -1),
        stdout=response.get("stdout", ""),
        stderr=response.get("stderr", ""),
        error=response.get("error"),
        timed_out=response.get("timedOut", False),
    )
    return classify_error(view, command)
