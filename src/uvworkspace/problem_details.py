"""RFC 9457 Problem Details helpers with schema validation.

This module provides typed helpers for building RFC 9457 Problem Details payloads
with JSON Schema 2020-12 validation. All payloads validate against the bundled
schema at ``uvworkspace/schema/problem_details.json``.

Examples
--------
>>> from uvworkspace.problem_details import build_problem_details, render_problem
>>> problem = build_problem_details(
...     problem_type="https://uvworkspace.dev/problems/manifest-invalid",
...     title="Invalid manifest",
...     status=422,
...     detail="Missing [project] table",
...     instance="urn:uvws:manifest:packages/a/pyproject.toml",
... )
>>> assert "manifest-invalid" in render_problem(problem)
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TypedDict, cast

from jsonschema import Draft202012Validator, SchemaError

__all__ = [
    "JsonPrimitive",
    "JsonValue",
    "ProblemDetails",
    "ProblemDetailsParams",
    "ProblemDetailsValidationError",
    "build_problem_details",
    "coerce_json_value",
    "render_problem",
    "validate_problem_details",
]

type JsonPrimitive = str | int | float | bool | None
type JsonValue = JsonPrimitive | list[JsonValue] | dict[str, JsonValue]

SCHEMA_DIR = Path(__file__).parent / "schema"
_SCHEMA_PATH = SCHEMA_DIR / "problem_details.json"


class ProblemDetails(TypedDict, total=False):
    """TypedDict for RFC 9457 Problem Details payloads."""

    type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str
    extensions: dict[str, JsonValue]


@dataclass(slots=True, frozen=True)
class ProblemDetailsParams:
    """Parameters used to construct a Problem Details payload."""

    problem_type: str
    title: str
    status: int
    detail: str
    instance: str
    code: str | None = None
    extensions: Mapping[str, object] | None = None


class ProblemDetailsValidationError(Exception):
    """Raised when a Problem Details payload fails schema validation.

    Parameters
    ----------
    message : str
        Human-readable error message describing the validation failure.
    validation_errors : list[str] | None, optional
        Specific constraint violations reported by the validator.
    """

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.validation_errors = validation_errors or []


_VALIDATOR_CACHE: dict[str, Draft202012Validator] = {}


def _validator() -> Draft202012Validator:
    """Return the cached validator for the Problem Details schema.

    Returns
    -------
    Draft202012Validator
        Validator bound to the bundled schema.

    Raises
    ------
    ProblemDetailsValidationError
        If the schema file is missing, unreadable, or not a valid 2020-12 schema.
    """
    cached = _VALIDATOR_CACHE.get("problem_details")
    if cached is not None:
        return cached
    try:
        schema = json.loads(_SCHEMA_PATH.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        msg = f"Failed to load Problem Details schema: {exc}"
        raise ProblemDetailsValidationError(msg) from exc
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as exc:
        msg = f"Invalid Problem Details schema: {exc}"
        raise ProblemDetailsValidationError(msg) from exc
    validator = Draft202012Validator(schema)
    _VALIDATOR_CACHE["problem_details"] = validator
    return validator


def validate_problem_details(payload: Mapping[str, object]) -> None:
    """Validate a Problem Details payload against the bundled schema.

    Parameters
    ----------
    payload : Mapping[str, object]
        Problem Details payload to validate.

    Raises
    ------
    ProblemDetailsValidationError
        If the payload violates the schema. ``validation_errors`` lists every
        violation with its JSON path.
    """
    errors: list[str] = []
    for error in _validator().iter_errors(payload):
        location = ".".join(str(part) for part in error.absolute_path)
        errors.append(f"{error.message} at path: {location}" if location else error.message)
    if errors:
        msg = f"Problem Details validation failed: {'; '.join(errors)}"
        raise ProblemDetailsValidationError(msg, validation_errors=errors)


def coerce_json_value(value: object) -> JsonValue:
    """Return ``value`` converted to a JSON-compatible structure.

    Paths, enums and other objects are rendered with ``str``; mappings and
    non-string sequences are converted recursively.

    Parameters
    ----------
    value : object
        Arbitrary value.

    Returns
    -------
    JsonValue
        JSON-compatible representation.
    """
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(key): coerce_json_value(item) for key, item in value.items()}
    if isinstance(value, (Sequence, set, frozenset)) and not isinstance(value, (bytes, bytearray)):
        items = sorted(value, key=str) if isinstance(value, (set, frozenset)) else value
        return [coerce_json_value(item) for item in items]
    return str(value)


def build_problem_details(
    params: ProblemDetailsParams | None = None,
    /,
    **fields: object,
) -> ProblemDetails:
    """Build an RFC 9457 Problem Details payload.

    Accepts either a :class:`ProblemDetailsParams` instance or the same fields
    as keyword arguments.

    Parameters
    ----------
    params : ProblemDetailsParams | None, optional
        Structured parameters. When omitted, ``fields`` are used.
    **fields : object
        Keyword form of :class:`ProblemDetailsParams`.

    Returns
    -------
    ProblemDetails
        Payload validated against the bundled schema.

    Raises
    ------
    TypeError
        If both ``params`` and keyword fields are provided.

    Examples
    --------
    >>> problem = build_problem_details(
    ...     problem_type="https://uvworkspace.dev/problems/member-not-found",
    ...     title="Member not found",
    ...     status=404,
    ...     detail="No member named 'foo'",
    ...     instance="urn:uvws:targets:foo",
    ... )
    >>> problem["status"]
    404
    """
    if params is not None and fields:
        msg = "build_problem_details() accepts either params or keyword fields, not both"
        raise TypeError(msg)
    resolved = params if params is not None else ProblemDetailsParams(**fields)  # type: ignore[arg-type]
    payload: dict[str, object] = {
        "type": resolved.problem_type,
        "title": resolved.title,
        "status": resolved.status,
        "detail": resolved.detail,
        "instance": resolved.instance,
    }
    if resolved.code is not None:
        payload["code"] = resolved.code
    if resolved.extensions:
        payload["extensions"] = coerce_json_value(dict(resolved.extensions))

    validate_problem_details(payload)
    return cast("ProblemDetails", payload)


def render_problem(problem: ProblemDetails | Mapping[str, object]) -> str:
    """Render Problem Details as a minified JSON string.

    Parameters
    ----------
    problem : ProblemDetails | Mapping[str, object]
        Problem Details payload to serialize.

    Returns
    -------
    str
        JSON-encoded payload without a trailing newline.
    """
    return json.dumps(problem, default=str, ensure_ascii=False)
