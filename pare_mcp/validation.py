"""
Command and argument validation.

Security features:
- Basename allowlist (only approved binaries can run)
- Strict-path mode (no path-qualified commands at all)
- Flag injection guard for data parameters
- Input size limits
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
import logging
import os
import re

from pare_mcp.errors import CommandNotAllowed, FlagInjectionRejected, InvalidInput

logger = logging.getLogger("pare-mcp.security")

INPUT_LIMITS = {
    "STRING_MAX": 65_536,
    "ARRAY_MAX": 1_000,
    "PATH_MAX": 4_096,
    "MESSAGE_MAX": 72_000,
    "SHORT_STRING_MAX": 255,
}

TIMEOUT_MAX_MS = 600_000

# Launcher extensions ignored when matching on Windows
_WINDOWS_EXTENSIONS = re.compile(r"\.(cmd|exe|bat|sh)$", re.IGNORECASE)
_SEPARATORS = re.compile(r"[\\/]")


def _is_windows() -> bool:
    return os.name == "nt"


def command_basename(command: str, windows: bool | None = None) -> str:
    """Final path segment of a command, normalized for comparison."""
    if windows is None:
        windows = _is_windows()
    base = _SEPARATORS.split(command)[-1]
    if windows:
        base = _WINDOWS_EXTENSIONS.sub("", base).lower()
    return base


@dataclass(frozen=True)
class CommandSpec:
    """A validated command string. Build with CommandSpec.parse()."""

    command: str
    basename: str

    @classmethod
    def parse(cls, command: str, windows: bool | None = None) -> CommandSpec:
        if not isinstance(command, str) or not command.strip():
            raise InvalidInput("Empty command")
        if "\x00" in command:
            raise InvalidInput("Command contains null bytes", subject=command)
        if len(command) > INPUT_LIMITS["SHORT_STRING_MAX"]:
            raise InvalidInput(
                f"Command exceeds {INPUT_LIMITS['SHORT_STRING_MAX']} characters",
                subject=command[:40],
            )
        basename = command_basename(command, windows)
        if not basename:
            raise InvalidInput(f'Command "{command}" has no executable name', subject=command)
        return cls(command=command, basename=basename)

    @property
    def is_path_qualified(self) -> bool:
        return bool(_SEPARATORS.search(self.command))


@dataclass(frozen=True)
class CommandCheck:
    """Outcome of a successful command validation."""

    spec: CommandSpec
    warning: str | None = None


class CommandValidator:
    """Decides whether a command may run under a policy."""

    def __init__(
        self,
        allowed_commands: Iterable[str] | None,
        strict_path: bool = False,
        windows: bool | None = None,
    ):
        self.windows = windows if windows is not None else _is_windows()
        self.strict_path = strict_path
        # None = unrestricted
        self.allowed_commands = (
            frozenset(self._normalize(c) for c in allowed_commands)
            if allowed_commands is not None
            else None
        )

    @classmethod
    def from_policy(cls, policy, windows: bool | None = None) -> CommandValidator:
        return cls(policy.allowed_commands, strict_path=policy.strict_path, windows=windows)

    def _normalize(self, name: str) -> str:
        if self.windows:
            return _WINDOWS_EXTENSIONS.sub("", name).lower()
        return name

    def validate(self, command: str) -> CommandCheck:
        """
        Validate a command against the policy.

        Returns:
            CommandCheck with the parsed spec and an optional warning

        Raises:
            InvalidInput: If the command is empty or oversized
            CommandNotAllowed: If the basename is not allowlisted, or the
                command is path-qualified while strict-path mode is on
        """
        spec = CommandSpec.parse(command, self.windows)

        if spec.is_path_qualified and self.strict_path:
            logger.warning(f"Rejected path-qualified command in strict mode: {command}")
            raise CommandNotAllowed(
                "Path-qualified commands are not allowed in strict path mode. "
                f'Use a bare command name (e.g., "{spec.basename}" not "{command}") '
                "that resolves via PATH.",
                subject=command,
            )

        if self.allowed_commands is not None and spec.basename not in self.allowed_commands:
            allowed = ", ".join(sorted(self.allowed_commands))
            raise CommandNotAllowed(
                f'Command "{command}" is not allowed by ALLOWED_COMMANDS policy. '
                f"Allowed: {allowed}",
                subject=command,
            )

        warning = None
        if spec.is_path_qualified:
            warning = (
                f'Command uses a full path ("{command}"). Only the basename '
                f'"{spec.basename}" was checked against the allowlist.'
            )
            logger.warning(warning)

        return CommandCheck(spec=spec, warning=warning)


def assert_no_flag_injection(value: str, param: str) -> None:
    """
    Reject a data value that the wrapped CLI would parse as a flag.

    Leading whitespace is ignored so " --force" cannot slip through.

    Raises:
        FlagInjectionRejected: If the value starts with "-"
    """
    if value.lstrip().startswith("-"):
        raise FlagInjectionRejected(
            f'Invalid {param}: "{value}". Values must not start with "-" '
            "(they would be interpreted as command-line flags).",
            subject=value,
        )


def check_flag_params(params: Mapping[str, str | Sequence[str] | None]) -> None:
    """Run the flag injection guard over named parameters (and list elements)."""
    for param, value in params.items():
        if value is None:
            continue
        if isinstance(value, str):
            assert_no_flag_injection(value, param)
        else:
            for item in value:
                assert_no_flag_injection(item, param)


def check_string(value: str, param: str, limit: str = "STRING_MAX") -> None:
    """Enforce one of the INPUT_LIMITS on a string."""
    if len(value) > INPUT_LIMITS[limit]:
        raise InvalidInput(
            f"{param} exceeds {INPUT_LIMITS[limit]} characters", subject=value[:40]
        )
    if "\x00" in value:
        raise InvalidInput(f"{param} contains null bytes", subject=value[:40])


def check_args(args: Sequence[str], param: str = "args") -> tuple[str, ...]:
    """Enforce array and element limits on an argument vector."""
    if isinstance(args, str):
        raise InvalidInput(f"{param} must be a list of strings, not a string")
    if len(args) > INPUT_LIMITS["ARRAY_MAX"]:
        raise InvalidInput(f"{param} exceeds {INPUT_LIMITS['ARRAY_MAX']} entries")
    for arg in args:
        if not isinstance(arg, str):
            raise InvalidInput(f"{param} entries must be strings, got {type(arg).__name__}")
        check_string(arg, param)
    return tuple(args)


def check_timeout(timeout_ms: int) -> int:
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, int):
        raise InvalidInput(f"timeout must be an integer number of milliseconds, got {timeout_ms!r}")
    if not 1 <= timeout_ms <= TIMEOUT_MAX_MS:
        raise InvalidInput(f"timeout must be between 1 and {TIMEOUT_MAX_MS} ms, got {timeout_ms}")
    return timeout_ms
