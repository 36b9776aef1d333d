"""
Redaction of filesystem paths in text returned to callers.

Only outbound text (stderr, error messages) passes through here. Nothing
sent to the wrapped CLI is ever rewritten.
"""

from __future__ import annotations

import re

# CSI sequences (colors, cursor movement) and OSC sequences (titles, links)
_ANSI = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]")

# Not preceded by a character that would make this the middle of a longer path
_PATH_START = r"(?<![\w.~/\\-])"

_HOME_PATTERNS = (
    (re.compile(_PATH_START + r"/home/[^/\s]+/"), "~/"),
    (re.compile(_PATH_START + r"/Users/[^/\s]+/"), "~/"),
    (re.compile(_PATH_START + r"/root/"), "~/"),
    (re.compile(r"(?<![A-Za-z0-9])[A-Za-z]:\\Users\\[^\\\s]+\\", re.IGNORECASE), "~\\\\"),
)

_SYSTEM_PREFIXES = ("etc", "var", "opt", "usr", "tmp", "srv", "snap", "nix")
_SEGMENT = r"[^\s/:'\"`]+"
_UNIX_SYSTEM_PATH = re.compile(
    _PATH_START + r"/(?:" + "|".join(_SYSTEM_PREFIXES) + r")(?:/" + _SEGMENT + r")*/(" + _SEGMENT + r")"
)
_WIN_SEGMENT = r"[^\\\s:*?\"<>|]+"
_WINDOWS_DRIVE_PATH = re.compile(
    r"(?<![A-Za-z0-9])[A-Za-z]:\\(?:" + _WIN_SEGMENT + r"\\)*(" + _WIN_SEGMENT + r")"
)

REDACTED = "<redacted-path>"


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences."""
    return _ANSI.sub("", text)


class OutputSanitizer:
    """Rewrites home directories to ~ and, in broad mode, redacts system paths."""

    def __init__(self, broad: bool = False, home_dir: str | None = None):
        self.broad = broad
        self.home_dir = home_dir
        self._home_pattern = None
        home = (home_dir or "").rstrip("/\\")
        # A bare "/" home would redact every absolute path
        if home and home not in ("/",) and not re.fullmatch(r"[A-Za-z]:", home):
            sep = "\\" if "\\" in home else "/"
            self._home_pattern = (
                re.compile(_PATH_START + re.escape(home) + re.escape(sep)),
                "~" + sep,
            )

    @classmethod
    def from_policy(cls, policy) -> OutputSanitizer:
        return cls(broad=policy.sanitize_all_paths, home_dir=policy.home_dir)

    def sanitize(self, text: str) -> str:
        if not text:
            return text

        if self._home_pattern is not None:
            pattern, replacement = self._home_pattern
            text = pattern.sub(lambda _m: replacement, text)
        for pattern, replacement in _HOME_PATTERNS:
            text = pattern.sub(replacement, text)

        if self.broad:
            text = _UNIX_SYSTEM_PATH.sub(lambda m: f"{REDACTED}/{m.group(1)}", text)
            text = _WINDOWS_DRIVE_PATH.sub(lambda m: f"{REDACTED}\\{m.group(1)}", text)

        return text

    __call__ = sanitize
