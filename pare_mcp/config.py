"""
Policy and tool-filter configuration, resolved from environment variables.

Everything here is a pure function of an environment snapshot. The process
environment is read exactly once, by load_config(), at server startup; the
resulting objects are frozen and threaded through every component.

Precedence:
    Tool filter:   PARE_TOOLS > PARE_PROFILE > PARE_{SERVER}_TOOLS > all enabled
    Restrictions:  PARE_{SETTING} replaces PARE_{SERVER}_{SETTING} > unrestricted
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import logging
import os
import re

from pare_mcp.errors import ConfigurationError, InvalidInput
from pare_mcp.profiles import profile_names, profile_tools
from pare_mcp.roots import CanonicalPath, expand_home

logger = logging.getLogger("pare-mcp.config")

ENV_PREFIX = "PARE_"
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_MAX_OUTPUT_BYTES = 1024 * 1024
LOG_LEVELS = ("debug", "info", "warning", "error")
LOG_FORMATS = ("text", "json")

_PER_SERVER_TOOLS = re.compile(r"^PARE_(?P<key>[A-Z0-9_]+)_TOOLS$")
_NAME_FORBIDDEN = re.compile(r"[\s:\x00]")
_COMMAND_FORBIDDEN = re.compile(r"[\s:/\\\x00]")


@dataclass(frozen=True)
class PolicyConfig:
    """Execution restrictions for one server (or the global scope)."""

    allowed_commands: frozenset[str] | None = None  # None = unrestricted
    allowed_roots: tuple[CanonicalPath, ...] | None = None  # None = unrestricted
    strict_path: bool = False
    sanitize_all_paths: bool = False
    server: str | None = None
    home_dir: str | None = None


@dataclass(frozen=True)
class ToolFilterConfig:
    """Which (server, tool) pairs are visible. Evaluated by the registry."""

    explicit_tools: frozenset[str] | None = None
    profile: str | None = None
    profile_tools: frozenset[str] | None = None
    # (env key, tool names), sorted by env key
    per_server_tools: tuple[tuple[str, frozenset[str]], ...] = ()

    def tools_for(self, server: str) -> frozenset[str] | None:
        """Per-server list for a server, or None when that server has none."""
        key = server_env_key(server)
        for env_key, tools in self.per_server_tools:
            if env_key == key:
                return tools
        return None


@dataclass(frozen=True)
class ServerSettings:
    """Process-wide runtime settings."""

    log_level: str = "info"
    log_format: str = "text"
    default_timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES


@dataclass(frozen=True)
class ResolvedConfig:
    """Everything a server needs, resolved once at startup."""

    global_policy: PolicyConfig
    tool_filter: ToolFilterConfig
    settings: ServerSettings = field(default_factory=ServerSettings)
    policies: tuple[tuple[str, PolicyConfig], ...] = ()

    def policy_for(self, server: str) -> PolicyConfig:
        for name, policy in self.policies:
            if name == server:
                return policy
        raise ConfigurationError(
            f'No policy resolved for server "{server}". Resolved: {", ".join(self.servers) or "none"}'
        )

    @property
    def servers(self) -> list[str]:
        return [name for name, _ in self.policies]


def server_env_key(server: str) -> str:
    """Server name as it appears in env keys: "my-server" -> "MY_SERVER"."""
    return server.upper().replace("-", "_")


def _parse_list(raw: str | None) -> list[str] | None:
    """
    Parse a comma-separated value into trimmed, non-empty, de-duplicated entries.

    Returns None when the raw value is absent or blank.
    """
    if raw is None or not raw.strip():
        return None
    seen: dict[str, None] = {}
    for item in raw.split(","):
        item = item.strip()
        if item:
            seen.setdefault(item, None)
    return list(seen)


def _parse_bool(raw: str | None) -> bool:
    return raw is not None and raw.strip().lower() == "true"


def _parse_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def _read_policy_var(env: Mapping[str, str], server: str | None, setting: str) -> tuple[str, str | None]:
    """
    Read a restriction with global/per-server precedence.

    A non-blank global value replaces the per-server one entirely.

    Returns:
        (env var name the value came from, raw value or None)
    """
    global_name = f"{ENV_PREFIX}{setting}"
    if _parse_list(env.get(global_name)) is not None:
        return global_name, env[global_name]
    if server is not None:
        server_name = f"{ENV_PREFIX}{server_env_key(server)}_{setting}"
        return server_name, env.get(server_name)
    return global_name, None


def home_from_env(env: Mapping[str, str]) -> str | None:
    home = env.get("HOME") or env.get("USERPROFILE")
    return home or None


def _parse_commands(name: str, raw: str | None) -> frozenset[str] | None:
    entries = _parse_list(raw)
    if entries is None:
        return None
    for entry in entries:
        if _COMMAND_FORBIDDEN.search(entry):
            raise ConfigurationError(
                f'{name}: "{entry}" is not a bare command name '
                "(no paths, whitespace or colons)"
            )
    return frozenset(entries)


def _parse_roots(name: str, raw: str | None, home: str | None) -> tuple[CanonicalPath, ...] | None:
    entries = _parse_list(raw)
    if entries is None:
        return None
    roots: dict[CanonicalPath, None] = {}
    for entry in entries:
        if "\x00" in entry:
            raise ConfigurationError(f"{name}: root contains null bytes")
        expanded = expand_home(entry, home)
        if not os.path.isabs(expanded):
            raise ConfigurationError(f'{name}: root "{entry}" must be an absolute path')
        try:
            roots.setdefault(CanonicalPath.of(expanded), None)
        except InvalidInput as e:
            raise ConfigurationError(f"{name}: {e}") from None
    return tuple(roots)


def resolve_policy(env: Mapping[str, str], server: str | None = None) -> PolicyConfig:
    """
    Resolve the execution policy for one server (or the global scope).

    Args:
        env: Environment snapshot
        server: Server name (e.g. "git", "my-server"); None for global only

    Raises:
        ConfigurationError: For malformed lists
    """
    home = home_from_env(env)

    cmd_var, cmd_raw = _read_policy_var(env, server, "ALLOWED_COMMANDS")
    roots_var, roots_raw = _read_policy_var(env, server, "ALLOWED_ROOTS")

    strict_path = False
    if server is not None:
        strict_path = _parse_bool(env.get(f"{ENV_PREFIX}{server_env_key(server)}_STRICT_PATH"))

    return PolicyConfig(
        allowed_commands=_parse_commands(cmd_var, cmd_raw),
        allowed_roots=_parse_roots(roots_var, roots_raw, home),
        strict_path=strict_path,
        sanitize_all_paths=_parse_bool(env.get(f"{ENV_PREFIX}SANITIZE_ALL_PATHS")),
        server=server,
        home_dir=home,
    )


def resolve_tool_filter(env: Mapping[str, str]) -> ToolFilterConfig:
    """
    Resolve tool visibility settings.

    PARE_TOOLS, when present at all (even empty), is the only level consulted.

    Raises:
        ConfigurationError: For unknown profiles or malformed entries
    """
    explicit: frozenset[str] | None = None
    raw_tools = env.get(f"{ENV_PREFIX}TOOLS")
    if raw_tools is not None:
        entries = _parse_list(raw_tools) or []
        for entry in entries:
            server, sep, tool = entry.partition(":")
            if not sep or not server or not tool or ":" in tool or _NAME_FORBIDDEN.search(server + tool):
                raise ConfigurationError(
                    f'PARE_TOOLS: "{entry}" is not of the form server:tool'
                )
        explicit = frozenset(entries)

    profile: str | None = None
    tools_for_profile: frozenset[str] | None = None
    raw_profile = env.get(f"{ENV_PREFIX}PROFILE")
    if raw_profile is not None and raw_profile.strip():
        profile = raw_profile.strip().lower()
        try:
            tools_for_profile = profile_tools(profile)
        except KeyError:
            raise ConfigurationError(
                f'Unknown profile "{raw_profile.strip()}". '
                f"Valid profiles: {', '.join(profile_names())}"
            ) from None

    per_server: dict[str, frozenset[str]] = {}
    for name in env:
        match = _PER_SERVER_TOOLS.match(name)
        if not match:
            continue
        entries = _parse_list(env[name]) or []
        for entry in entries:
            if _NAME_FORBIDDEN.search(entry):
                raise ConfigurationError(f'{name}: "{entry}" is not a valid tool name')
        per_server[match.group("key")] = frozenset(entries)

    return ToolFilterConfig(
        explicit_tools=explicit,
        profile=profile,
        profile_tools=tools_for_profile,
        per_server_tools=tuple(sorted(per_server.items())),
    )


def resolve_settings(env: Mapping[str, str]) -> ServerSettings:
    log_level = (env.get(f"{ENV_PREFIX}LOG_LEVEL") or "info").strip().lower()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(f"PARE_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")
    log_format = (env.get(f"{ENV_PREFIX}LOG_FORMAT") or "text").strip().lower()
    if log_format not in LOG_FORMATS:
        raise ConfigurationError(f"PARE_LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}")

    return ServerSettings(
        log_level=log_level,
        log_format=log_format,
        default_timeout_ms=_parse_int(env, f"{ENV_PREFIX}DEFAULT_TIMEOUT_MS", DEFAULT_TIMEOUT_MS),
        max_output_bytes=_parse_int(env, f"{ENV_PREFIX}MAX_OUTPUT_BYTES", DEFAULT_MAX_OUTPUT_BYTES),
    )


def resolve_config(env: Mapping[str, str], servers: Iterable[str] = ()) -> ResolvedConfig:
    """
    Resolve the full configuration from an environment snapshot.

    Identical snapshots always produce equal results.

    Raises:
        ConfigurationError: On the first invalid setting found
    """
    snapshot = dict(env)
    names = sorted(set(servers))
    return ResolvedConfig(
        global_policy=resolve_policy(snapshot),
        tool_filter=resolve_tool_filter(snapshot),
        settings=resolve_settings(snapshot),
        policies=tuple((name, resolve_policy(snapshot, name)) for name in names),
    )


def load_config(servers: Iterable[str] = (), env: Mapping[str, str] | None = None) -> ResolvedConfig:
    """
    Load configuration from the process environment (or an explicit mapping).

    Call once at startup; nothing re-reads the environment afterwards.
    """
    cfg = resolve_config(os.environ if env is None else env, servers)

    for name, policy in cfg.policies:
        logger.info(
            f"Policy for {name}: commands="
            f"{'unrestricted' if policy.allowed_commands is None else sorted(policy.allowed_commands)}, "
            f"roots={'unrestricted' if policy.allowed_roots is None else [str(r) for r in policy.allowed_roots]}, "
            f"strict_path={policy.strict_path}"
        )
    if cfg.tool_filter.explicit_tools is not None:
        logger.info(f"Tool filter: PARE_TOOLS ({len(cfg.tool_filter.explicit_tools)} tools)")
    elif cfg.tool_filter.profile is not None:
        logger.info(f"Tool filter: profile {cfg.tool_filter.profile}")

    return cfg
