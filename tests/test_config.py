"""Tests for environment-driven policy and tool-filter resolution."""

import os

import pytest

from pare_mcp.config import (
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_TIMEOUT_MS,
    ServerSettings,
    load_config,
    resolve_config,
    resolve_policy,
    resolve_settings,
    resolve_tool_filter,
    server_env_key,
)
from pare_mcp.errors import ConfigurationError
from pare_mcp.roots import CanonicalPath


class TestServerEnvKey:
    def test_upper_cases_and_replaces_hyphens(self):
        assert server_env_key("my-server") == "MY_SERVER"
        assert server_env_key("git") == "GIT"


class TestAllowedCommands:
    def test_unset_is_unrestricted(self):
        assert resolve_policy({}, "git").allowed_commands is None

    def test_per_server_list(self):
        policy = resolve_policy({"PARE_GIT_ALLOWED_COMMANDS": "git, gh ,,"}, "git")
        assert policy.allowed_commands == frozenset({"git", "gh"})

    def test_global_replaces_per_server(self):
        env = {
            "PARE_ALLOWED_COMMANDS": "npm",
            "PARE_GIT_ALLOWED_COMMANDS": "git",
        }
        assert resolve_policy(env, "git").allowed_commands == frozenset({"npm"})

    def test_blank_global_falls_through_to_per_server(self):
        env = {"PARE_ALLOWED_COMMANDS": "  ", "PARE_GIT_ALLOWED_COMMANDS": "git"}
        assert resolve_policy(env, "git").allowed_commands == frozenset({"git"})

    def test_hyphenated_server_name(self):
        env = {"PARE_MY_SERVER_ALLOWED_COMMANDS": "make"}
        assert resolve_policy(env, "my-server").allowed_commands == frozenset({"make"})

    def test_other_servers_list_does_not_apply(self):
        env = {"PARE_GIT_ALLOWED_COMMANDS": "git"}
        assert resolve_policy(env, "npm").allowed_commands is None

    @pytest.mark.parametrize("entry", ["/usr/bin/git", "git status", "a:b", "bin\\git"])
    def test_malformed_command_rejected(self, entry):
        with pytest.raises(ConfigurationError):
            resolve_policy({"PARE_GIT_ALLOWED_COMMANDS": entry}, "git")


class TestAllowedRoots:
    def test_roots_are_canonicalized(self, tmp_path):
        real = tmp_path / "real"
        real.mkdir()
        link = tmp_path / "link"
        link.symlink_to(real)

        policy = resolve_policy({"PARE_GIT_ALLOWED_ROOTS": f"{link},{real}/"}, "git")
        assert policy.allowed_roots == (CanonicalPath(os.path.realpath(real)),)

    def test_tilde_uses_snapshot_home(self, tmp_path):
        home = tmp_path / "someone"
        home.mkdir()
        policy = resolve_policy({"HOME": str(home), "PARE_ALLOWED_ROOTS": "~/work"}, "git")
        assert policy.allowed_roots == (CanonicalPath(os.path.realpath(home / "work")),)
        assert policy.home_dir == str(home)

    def test_relative_root_rejected(self):
        with pytest.raises(ConfigurationError, match="absolute"):
            resolve_policy({"PARE_ALLOWED_ROOTS": "projects"}, "git")

    def test_nul_byte_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_policy({"PARE_ALLOWED_ROOTS": "/tmp/a\x00b"}, "git")


class TestBooleans:
    @pytest.mark.parametrize("value,expected", [("true", True), (" TRUE ", True), ("1", False), ("yes", False), ("", False)])
    def test_strict_path_only_true(self, value, expected):
        assert resolve_policy({"PARE_BUILD_STRICT_PATH": value}, "build").strict_path is expected

    def test_strict_path_is_per_server(self):
        assert resolve_policy({"PARE_BUILD_STRICT_PATH": "true"}, "git").strict_path is False
        assert resolve_policy({"PARE_GIT_STRICT_PATH": "true"}, "git").strict_path is True

    def test_sanitize_all_paths(self):
        assert resolve_policy({"PARE_SANITIZE_ALL_PATHS": "true"}, "git").sanitize_all_paths is True
        assert resolve_policy({"PARE_SANITIZE_ALL_PATHS": "false"}, "git").sanitize_all_paths is False


class TestToolFilter:
    def test_nothing_set(self):
        filt = resolve_tool_filter({})
        assert filt.explicit_tools is None
        assert filt.profile_tools is None
        assert filt.per_server_tools == ()

    def test_explicit_tools(self):
        filt = resolve_tool_filter({"PARE_TOOLS": "git:status, npm:install"})
        assert filt.explicit_tools == frozenset({"git:status", "npm:install"})

    def test_empty_pare_tools_is_present(self):
        assert resolve_tool_filter({"PARE_TOOLS": ""}).explicit_tools == frozenset()

    @pytest.mark.parametrize("entry", ["status", "git:", ":status", "git:a:b", "git:st atus"])
    def test_malformed_pare_tools_entry(self, entry):
        with pytest.raises(ConfigurationError, match="server:tool"):
            resolve_tool_filter({"PARE_TOOLS": entry})

    def test_profile_resolved(self):
        filt = resolve_tool_filter({"PARE_PROFILE": " Minimal "})
        assert filt.profile == "minimal"
        assert "git:status" in filt.profile_tools

    def test_full_profile_has_no_tool_set(self):
        filt = resolve_tool_filter({"PARE_PROFILE": "full"})
        assert filt.profile == "full"
        assert filt.profile_tools is None

    def test_unknown_profile(self):
        with pytest.raises(ConfigurationError, match="Unknown profile"):
            resolve_tool_filter({"PARE_PROFILE": "everything"})

    def test_per_server_lists(self):
        filt = resolve_tool_filter({"PARE_GIT_TOOLS": "status,log", "PARE_MY_SERVER_TOOLS": ""})
        assert filt.tools_for("git") == frozenset({"status", "log"})
        assert filt.tools_for("my-server") == frozenset()
        assert filt.tools_for("npm") is None

    def test_per_server_tool_with_colon_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_tool_filter({"PARE_GIT_TOOLS": "git:status"})


class TestSettings:
    def test_defaults(self):
        assert resolve_settings({}) == ServerSettings()
        assert ServerSettings().default_timeout_ms == DEFAULT_TIMEOUT_MS == 60_000
        assert ServerSettings().max_output_bytes == DEFAULT_MAX_OUTPUT_BYTES

    def test_overrides(self):
        settings = resolve_settings(
            {
                "PARE_LOG_LEVEL": "DEBUG",
                "PARE_LOG_FORMAT": "json",
                "PARE_DEFAULT_TIMEOUT_MS": "5000",
                "PARE_MAX_OUTPUT_BYTES": "1024",
            }
        )
        assert settings == ServerSettings("debug", "json", 5000, 1024)

    @pytest.mark.parametrize(
        "env",
        [
            {"PARE_LOG_LEVEL": "loud"},
            {"PARE_LOG_FORMAT": "xml"},
            {"PARE_DEFAULT_TIMEOUT_MS": "soon"},
            {"PARE_MAX_OUTPUT_BYTES": "0"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            resolve_settings(env)


class TestResolveConfig:
    def test_idempotent(self, tmp_path):
        env = {
            "HOME": str(tmp_path),
            "PARE_TOOLS": "git:status,git:log",
            "PARE_ALLOWED_ROOTS": f"{tmp_path},/",
            "PARE_GIT_ALLOWED_COMMANDS": "git",
        }
        first = resolve_config(env, ["npm", "git"])
        second = resolve_config(dict(env), ["git", "npm"])
        assert first == second
        assert first.servers == ["git", "npm"]

    def test_policy_for(self):
        cfg = resolve_config({"PARE_GIT_ALLOWED_COMMANDS": "git"}, ["git"])
        assert cfg.policy_for("git").allowed_commands == frozenset({"git"})
        assert cfg.global_policy.allowed_commands is None
        with pytest.raises(ConfigurationError, match=r'"npm"\. Resolved: git'):
            cfg.policy_for("npm")

    def test_snapshot_is_not_live(self):
        env = {"PARE_GIT_ALLOWED_COMMANDS": "git"}
        cfg = resolve_config(env, ["git"])
        env["PARE_GIT_ALLOWED_COMMANDS"] = "rm"
        assert cfg.policy_for("git").allowed_commands == frozenset({"git"})

    def test_load_config_reads_process_env(self, monkeypatch):
        monkeypatch.setenv("PARE_PROCESS_ALLOWED_COMMANDS", "echo")
        cfg = load_config(["process"])
        assert cfg.policy_for("process").allowed_commands == frozenset({"echo"})

    def test_load_config_with_explicit_env(self, monkeypatch):
        monkeypatch.setenv("PARE_PROCESS_ALLOWED_COMMANDS", "echo")
        cfg = load_config(["process"], env={})
        assert cfg.policy_for("process").allowed_commands is None
