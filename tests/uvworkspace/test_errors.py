"""Tests for uvworkspace.errors and uvworkspace.problem_details."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from packaging.version import Version

from uvworkspace.errors import (
    ErrorCode,
    InvalidEnvironmentError,
    ManifestError,
    ManifestNotFoundError,
    MemberNotFoundError,
    RequestedPythonIncompatibilityError,
    SettingsError,
    WorkspaceToolError,
)
from uvworkspace.errors.codes import BASE_TYPE_URI, get_type_uri
from uvworkspace.problem_details import (
    ProblemDetailsParams,
    ProblemDetailsValidationError,
    build_problem_details,
    coerce_json_value,
    render_problem,
    validate_problem_details,
)


class TestErrorCodes:
    """Tests for the error code registry."""

    def test_codes_are_kebab_case(self) -> None:
        """Every code is lower-case kebab text."""
        for code in ErrorCode:
            assert code.value == code.value.lower()
            assert "_" not in code.value

    def test_type_uri(self) -> None:
        """Type URIs append the code to the base URI."""
        assert get_type_uri(ErrorCode.MEMBER_NOT_FOUND) == f"{BASE_TYPE_URI}/member-not-found"


class TestWorkspaceToolError:
    """Tests for the exception hierarchy."""

    def test_defaults_to_runtime_error(self) -> None:
        """The base error carries a generic runtime code."""
        error = WorkspaceToolError("boom")
        assert error.code is ErrorCode.RUNTIME_ERROR
        assert error.http_status == 500
        assert error.log_level == logging.ERROR
        assert str(error) == "boom"

    def test_manifest_not_found(self, tmp_path: Path) -> None:
        """Missing manifests report a 404 with the path as context."""
        error = ManifestNotFoundError(tmp_path / "pyproject.toml")
        assert error.code is ErrorCode.MANIFEST_NOT_FOUND
        assert error.message.startswith("No `pyproject.toml` found at:")
        assert error.context == {"path": str(tmp_path / "pyproject.toml")}

    def test_manifest_error_keeps_validation_errors(self) -> None:
        """Validation errors end up in the problem extensions."""
        errors: list[dict[str, object]] = [{"loc": "project.name", "msg": "Field required"}]
        cause = ValueError("bad")
        error = ManifestError(
            "Invalid manifest", path="pkg/pyproject.toml", errors=errors, cause=cause
        )
        problem = error.to_problem_details(instance="urn:uvws:test")
        assert error.__cause__ is cause
        assert problem["status"] == 422
        assert problem["extensions"]["validation_errors"] == errors

    def test_member_not_found_lists_available(self) -> None:
        """Unknown members are a warning-level 404."""
        error = MemberNotFoundError("nope", available=["a", "b"])
        assert error.log_level == logging.WARNING
        assert error.context["available"] == ["a", "b"]
        assert "`nope`" in error.message

    def test_incompatible_interpreter_message(self) -> None:
        """The message names the interpreter and the requirement."""
        error = RequestedPythonIncompatibilityError(Version("3.8"), ">=3.10")
        assert error.message == (
            "The requested Python interpreter (3.8) is incompatible with the "
            "project Python requirement: `>=3.10`"
        )
        assert error.http_status == 409

    def test_invalid_environment(self, tmp_path: Path) -> None:
        """Invalid environments name the venv and the reason."""
        error = InvalidEnvironmentError(tmp_path / ".venv", "missing version")
        assert error.code is ErrorCode.ENVIRONMENT_INVALID
        assert error.message.endswith(": missing version")

    def test_settings_error_is_critical(self) -> None:
        """Configuration failures log at CRITICAL."""
        error = SettingsError("bad settings", errors=[{"loc": "log_level", "msg": "nope"}])
        assert error.log_level == logging.CRITICAL
        assert error.context["validation_errors"] == [{"loc": "log_level", "msg": "nope"}]


class TestToProblemDetails:
    """Tests for converting exceptions to Problem Details."""

    def test_defaults(self) -> None:
        """Instance and title default to the URN and class name."""
        problem = MemberNotFoundError("nope", available=[]).to_problem_details()
        assert problem["type"] == get_type_uri(ErrorCode.MEMBER_NOT_FOUND)
        assert problem["title"] == "MemberNotFoundError"
        assert problem["instance"] == "urn:uvws:error"
        assert problem["code"] == "member-not-found"

    def test_overrides(self) -> None:
        """Explicit instance and title win."""
        problem = WorkspaceToolError("boom").to_problem_details(
            instance="urn:uvws:check:1234", title="Check failed"
        )
        assert problem["instance"] == "urn:uvws:check:1234"
        assert problem["title"] == "Check failed"
        assert "extensions" not in problem

    def test_payload_validates(self, tmp_path: Path) -> None:
        """Payloads built from exceptions pass schema validation."""
        problem = ManifestNotFoundError(tmp_path).to_problem_details()
        validate_problem_details(problem)


class TestBuildProblemDetails:
    """Tests for build_problem_details."""

    def test_accepts_params(self) -> None:
        """A params object builds the same payload as keywords."""
        params = ProblemDetailsParams(
            problem_type=f"{BASE_TYPE_URI}/runtime-error",
            title="Runtime error",
            status=500,
            detail="boom",
            instance="urn:uvws:test",
        )
        assert build_problem_details(params) == build_problem_details(
            problem_type=f"{BASE_TYPE_URI}/runtime-error",
            title="Runtime error",
            status=500,
            detail="boom",
            instance="urn:uvws:test",
        )

    def test_rejects_params_and_fields(self) -> None:
        """Mixing both call styles is a TypeError."""
        params = ProblemDetailsParams(
            problem_type="about:blank", title="t", status=400, detail="d", instance="urn:x"
        )
        with pytest.raises(TypeError):
            build_problem_details(params, title="other")

    def test_rejects_out_of_range_status(self) -> None:
        """Statuses outside 100-599 fail validation."""
        with pytest.raises(ProblemDetailsValidationError) as excinfo:
            build_problem_details(
                problem_type="about:blank",
                title="Bad status",
                status=42,
                detail="d",
                instance="urn:x",
            )
        assert excinfo.value.validation_errors
        assert str(excinfo.value).startswith("Problem Details validation failed:")

    def test_rejects_non_kebab_code(self) -> None:
        """Codes must be kebab-case."""
        with pytest.raises(ProblemDetailsValidationError):
            build_problem_details(
                problem_type="about:blank",
                title="Bad code",
                status=400,
                detail="d",
                instance="urn:x",
                code="Not_Kebab",
            )

    def test_extensions_are_coerced(self, tmp_path: Path) -> None:
        """Paths and sets in extensions become JSON values."""
        problem = build_problem_details(
            problem_type="about:blank",
            title="Coerced",
            status=400,
            detail="d",
            instance="urn:x",
            extensions={"path": tmp_path, "names": {"b", "a"}},
        )
        assert problem["extensions"] == {"path": str(tmp_path), "names": ["a", "b"]}
        assert json.loads(render_problem(problem))["extensions"]["names"] == ["a", "b"]


class TestCoerceJsonValue:
    """Tests for coerce_json_value."""

    def test_nested(self) -> None:
        """Nested containers are converted recursively."""
        value = {"a": (1, Path("x")), 2: {"b": None}}
        assert coerce_json_value(value) == {"a": [1, "x"], "2": {"b": None}}

    def test_enums_render_as_strings(self) -> None:
        """Enum members become their string value."""
        assert coerce_json_value(ErrorCode.SOURCE_INVALID) == "source-invalid"
