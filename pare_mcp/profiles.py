"""
Preset tool profiles selected with PARE_PROFILE.

Each profile is a static set of "server:tool" entries tuned to a workflow.
"full" maps to None: no profile filtering at all.
"""

from __future__ import annotations

_GIT_CORE = (
    "git:status",
    "git:log",
    "git:diff",
    "git:branch",
    "git:show",
    "git:add",
    "git:commit",
    "git:push",
    "git:pull",
    "git:checkout",
    "git:merge",
)

# Shared by the language profiles
_GIT_DEV = _GIT_CORE + (
    "git:log-graph",
    "git:rebase",
    "git:stash",
    "git:stash-list",
    "git:reset",
    "git:restore",
)

_GITHUB_DEV = (
    "github:pr-view",
    "github:pr-list",
    "github:pr-create",
    "github:pr-merge",
    "github:pr-checks",
    "github:issue-view",
    "github:issue-list",
    "github:issue-create",
    "github:run-view",
    "github:run-list",
)

_SEARCH = ("search:search", "search:find", "search:count")

_HTTP = ("http:get", "http:post", "http:request", "http:head")

PROFILES: dict[str, tuple[str, ...] | None] = {
    "minimal": (
        "git:status",
        "git:log",
        "git:diff",
        "git:add",
        "git:commit",
        "git:push",
        "git:pull",
        "git:checkout",
        "git:branch",
        "test:run",
        "build:build",
        "build:tsc",
        "search:search",
        "search:find",
        "github:pr-view",
        "github:pr-list",
        "github:pr-create",
        "process:run",
    ),
    "web": _GIT_DEV
    + _GITHUB_DEV
    + (
        "github:pr-comment",
        "github:pr-review",
        "github:pr-update",
        "github:pr-diff",
        "github:issue-close",
        "github:issue-comment",
        "npm:install",
        "npm:audit",
        "npm:outdated",
        "npm:list",
        "npm:run",
        "npm:test",
        "npm:info",
        "npm:search",
        "npm:nvm",
        "build:tsc",
        "build:build",
        "build:esbuild",
        "build:vite-build",
        "build:webpack",
        "build:turbo",
        "build:nx",
        "test:run",
        "test:coverage",
        "test:playwright",
        "lint:lint",
        "lint:format-check",
        "lint:prettier-format",
        "lint:biome-check",
        "lint:biome-format",
        "lint:oxlint",
        "lint:stylelint",
        "search:jq",
        "process:run",
    )
    + _SEARCH
    + _HTTP,
    "python": _GIT_DEV
    + _GITHUB_DEV
    + (
        "python:pip-install",
        "python:pip-list",
        "python:pip-show",
        "python:mypy",
        "python:ruff-check",
        "python:ruff-format",
        "python:pip-audit",
        "python:pytest",
        "python:uv-install",
        "python:uv-run",
        "python:black",
        "python:poetry",
        "python:pyenv",
        "python:conda",
        "test:run",
        "test:coverage",
        "make:run",
        "make:list",
        "process:run",
    )
    + _SEARCH,
    "devops": _GIT_CORE
    + _GITHUB_DEV
    + (
        "git:tag",
        "git:remote",
        "github:run-rerun",
        "github:release-create",
        "github:release-list",
        "docker:ps",
        "docker:build",
        "docker:logs",
        "docker:images",
        "docker:run",
        "docker:exec",
        "docker:compose-up",
        "docker:compose-down",
        "docker:pull",
        "docker:inspect",
        "docker:network-ls",
        "docker:volume-ls",
        "docker:compose-ps",
        "docker:compose-logs",
        "docker:compose-build",
        "docker:stats",
        "k8s:get",
        "k8s:describe",
        "k8s:logs",
        "k8s:apply",
        "k8s:helm",
        "security:trivy",
        "security:semgrep",
        "security:gitleaks",
        "make:run",
        "make:list",
        "lint:shellcheck",
        "lint:hadolint",
        "search:search",
        "search:find",
        "process:run",
    )
    + _HTTP,
    "rust": _GIT_DEV
    + _GITHUB_DEV
    + (
        "cargo:build",
        "cargo:test",
        "cargo:clippy",
        "cargo:run",
        "cargo:add",
        "cargo:remove",
        "cargo:fmt",
        "cargo:doc",
        "cargo:check",
        "cargo:update",
        "cargo:tree",
        "cargo:audit",
        "test:run",
        "test:coverage",
        "process:run",
    )
    + _SEARCH,
    "go": _GIT_DEV
    + _GITHUB_DEV
    + (
        "go:build",
        "go:test",
        "go:vet",
        "go:run",
        "go:mod-tidy",
        "go:fmt",
        "go:generate",
        "go:env",
        "go:list",
        "go:get",
        "go:golangci-lint",
        "test:run",
        "test:coverage",
        "process:run",
    )
    + _SEARCH,
    "full": None,
}


def profile_names() -> list[str]:
    return list(PROFILES)


def profile_tools(name: str) -> frozenset[str] | None:
    """
    Look up a profile by name (case-insensitive, trimmed).

    Returns:
        The profile's "server:tool" set, or None for "full"

    Raises:
        KeyError: If the profile is unknown
    """
    tools = PROFILES[name.strip().lower()]
    return frozenset(tools) if tools is not None else None
