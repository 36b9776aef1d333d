"""Tests for command allowlisting, strict-path mode and flag injection."""

import logging

import pytest

from pare_mcp.config import resolve_policy
from pare_mcp.errors import CommandNotAllowed, FlagInjectionRejected, InvalidInput
from pare_mcp.validation import (
    INPUT_LIMITS,
    TIMEOUT_MAX_MS,
    CommandSpec,
    CommandValidator,
    assert_no_flag_injection,
    check_args,
    check_flag_params,
    check_string,
    check_timeout,
    command_basename,
)


class TestCommandBasename:
    def test_posix(self):
        assert command_basename("/usr/bin/git", windows=False) == "git"
        assert command_basename("git", windows=False) == "git"
        assert command_basename("Git.EXE", windows=False) == "Git.EXE"

    def test_windows_strips_extension_and_case(self):
        assert command_basename("C:\\Program Files\\nodejs\\NPM.CMD", windows=True) == "npm"
        assert command_basename("tool.sh", windows=True) == "tool"
        assert command_basename("script.py", windows=True) == "script.py"


class TestCommandSpec:
    def test_parse(self):
        spec = CommandSpec.parse("/usr/bin/git", windows=False)
        assert spec.basename == "git"
        assert spec.is_path_qualified

    def test_bare_command_not_path_qualified(self):
        assert not CommandSpec.parse("git", windows=False).is_path_qualified

    @pytest.mark.parametrize("command", ["", "   ", "git\x00", "a" * 256, "/usr/bin/"])
    def test_rejects_malformed(self, command):
        with pytest.raises(InvalidInput):
            CommandSpec.parse(command, windows=False)


class TestCommandValidator:
    def test_unrestricted_allows_anything(self):
        check = CommandValidator(None, windows=False).validate("rm")
        assert check.spec.basename == "rm"
        assert check.warning is None

    def test_allowlisted_basename(self):
        validator = CommandValidator(["git"], windows=False)
        assert validator.validate("git").warning is None

    def test_full_path_accepted_by_basename_with_warning(self, caplog):
        validator = CommandValidator.from_policy(
            resolve_policy({"PARE_GIT_ALLOWED_COMMANDS": "git"}, "git"), windows=False
        )
        with caplog.at_level(logging.WARNING, logger="pare-mcp.security"):
            check = validator.validate("/usr/bin/git")
        assert check.spec.basename == "git"
        assert "full path" in check.warning
        assert "full path" in caplog.text

    def test_not_allowlisted(self):
        validator = CommandValidator(["git", "gh"], windows=False)
        with pytest.raises(CommandNotAllowed, match="Allowed: gh, git"):
            validator.validate("rm")

    def test_basename_match_is_case_sensitive_on_posix(self):
        with pytest.raises(CommandNotAllowed):
            CommandValidator(["git"], windows=False).validate("GIT")

    def test_windows_matching(self):
        validator = CommandValidator(["npm"], windows=True)
        validator.validate("C:\\nodejs\\npm.cmd")
        validator.validate("NPM.exe")

    def test_strict_path_rejects_path_qualified(self):
        policy = resolve_policy({"PARE_BUILD_ALLOWED_COMMANDS": "npm", "PARE_BUILD_STRICT_PATH": "true"}, "build")
        validator = CommandValidator.from_policy(policy, windows=False)
        with pytest.raises(CommandNotAllowed, match="strict path mode"):
            validator.validate("/tmp/evil/npm")
        assert validator.validate("npm").warning is None

    def test_strict_path_applies_when_unrestricted(self):
        validator = CommandValidator(None, strict_path=True, windows=False)
        with pytest.raises(CommandNotAllowed):
            validator.validate("./run.sh")


class TestFlagInjection:
    @pytest.mark.parametrize("value", ["--force", "-rf", "  --upload-pack=evil", "\t-x"])
    def test_rejects_flags(self, value):
        with pytest.raises(FlagInjectionRejected, match="branch"):
            assert_no_flag_injection(value, "branch")

    @pytest.mark.parametrize("value", ["main", "", "feature/-x", "a-b"])
    def test_accepts_data(self, value):
        assert_no_flag_injection(value, "branch")

    def test_check_flag_params_covers_lists(self):
        check_flag_params({"branch": "main", "files": ["a.txt", "b.txt"], "ref": None})
        with pytest.raises(FlagInjectionRejected, match="files"):
            check_flag_params({"files": ["a.txt", "--output=/etc/passwd"]})


class TestInputLimits:
    def test_limits(self):
        assert INPUT_LIMITS == {
            "STRING_MAX": 65_536,
            "ARRAY_MAX": 1_000,
            "PATH_MAX": 4_096,
            "MESSAGE_MAX": 72_000,
            "SHORT_STRING_MAX": 255,
        }

    def test_check_string(self):
        check_string("x" * 4096, "cwd", "PATH_MAX")
        with pytest.raises(InvalidInput, match="cwd exceeds 4096"):
            check_string("x" * 4097, "cwd", "PATH_MAX")
        with pytest.raises(InvalidInput, match="null"):
            check_string("a\x00", "value")

    def test_check_args(self):
        assert check_args(["-la", "."]) == ("-la", ".")
        with pytest.raises(InvalidInput):
            check_args("-la")
        with pytest.raises(InvalidInput):
            check_args(["x"] * 1001)
        with pytest.raises(InvalidInput):
            check_args([1])

    def test_check_timeout(self):
        assert check_timeout(1) == 1
        assert check_timeout(TIMEOUT_MAX_MS) == TIMEOUT_MAX_MS
        for bad in (0, TIMEOUT_MAX_MS + 1, 1.5, True, "100"):
            with pytest.raises(InvalidInput):
                check_timeout(bad)
