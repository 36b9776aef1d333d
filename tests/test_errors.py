"""Tests for error categories and failure classification."""

import pytest

from pare_mcp.errors import (
    ERROR_CATEGORIES,
    CommandNotAllowed,
    ConfigurationError,
    FlagInjectionRejected,
    InvalidInput,
    PathOutsideAllowedRoots,
    PolicyViolation,
    classify_error,
    classify_response,
    classify_text,
    format_error,
    policy_error,
    suggest_recovery,
)
from pare_mcp.process import ExecutionResult


class TestHierarchy:
    @pytest.mark.parametrize("cls", [CommandNotAllowed, PathOutsideAllowedRoots, FlagInjectionRejected, InvalidInput])
    def test_policy_violations(self, cls):
        exc = cls("nope", subject="x")
        assert isinstance(exc, PolicyViolation)
        assert exc.category == "invalid-input"
        assert exc.subject == "x"

    def test_configuration_error_category(self):
        assert ConfigurationError("bad").category == "configuration-error"


class TestClassifyText:
    @pytest.mark.parametrize(
        "text,exit_code,expected",
        [
            ("", 124, "timeout"),
            ("operation timed out", 1, "timeout"),
            ("sh: foo: command not found", 127, "command-not-found"),
            ("git@github.com: Permission denied (publickey).", 128, "authentication-error"),
            ("open: Permission denied", 1, "permission-denied"),
            ("fatal: unable to access: Could not resolve host: github.com", 128, "network-error"),
            ("fatal: a branch named 'x' already exists", 128, "already-exists"),
            ("Invalid configuration in tsconfig.json", 1, "configuration-error"),
            ("CONFLICT (content): Merge conflict in a.txt", 1, "conflict"),
            ("fatal: pathspec 'x' did not match any files", 1, "not-found"),
            ("HTTP 404 Not Found", 1, "not-found"),
            ("something odd happened", 2, "command-failed"),
        ],
    )
    def test_categories(self, text, exit_code, expected):
        assert classify_text(text, exit_code) == expected

    def test_every_category_has_suggestion(self):
        for category in ERROR_CATEGORIES:
            assert suggest_recovery(category, "git")

    def test_suggestion_mentions_command(self):
        assert '"git"' in suggest_recovery("command-not-found", "git")


class TestClassifyError:
    def test_prefers_stderr(self):
        result = ExecutionResult(1, "stdout text", "fatal: not a git repository", 3)
        error = classify_error(result, "git status")
        assert error == {
            "isError": True,
            "category": "command-failed",
            "message": "fatal: not a git repository",
            "command": "git status",
            "exitCode": 1,
            "suggestion": 'Inspect the error message from "git status" for more details.',
        }

    def test_falls_back_to_stdout(self):
        result = ExecutionResult(1, "error: lock file exists", "", 3)
        assert classify_error(result, "npm")["category"] == "conflict"

    def test_spawn_error_text_wins(self):
        result = ExecutionResult(127, "", "", 0, error="Command not found: rg")
        assert classify_error(result, "rg")["category"] == "command-not-found"

    def test_timed_out(self):
        result = ExecutionResult(-1, "", "", 50, timed_out=True, signal="SIGTERM")
        error = classify_error(result, "sleep")
        assert error["category"] == "timeout"
        assert error["message"] == "sleep failed with exit code -1"

    def test_classify_response(self):
        error = classify_response({"exitCode": 1, "success": False, "timedOut": False}, "make")
        assert error["category"] == "command-failed"
        assert error["exitCode"] == 1


def test_policy_error():
    error = policy_error(CommandNotAllowed('Command "rm" is not allowed'), "rm")
    assert error["isError"] is True
    assert error["category"] == "invalid-input"
    assert error["command"] == "rm"
    assert "exitCode" not in error


def test_format_error():
    text = format_error(
        {"category": "timeout", "message": "took too long", "command": "sleep", "exitCode": -1, "suggestion": "retry"}
    )
    assert text.splitlines() == [
        "Error [timeout]: took too long",
        "Command: sleep",
        "Exit code: -1",
        "Suggestion: retry",
    ]
