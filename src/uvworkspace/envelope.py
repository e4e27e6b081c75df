"""Typed CLI envelope models and helpers.

Every ``uvws`` command produces an envelope describing its outcome: the
status, the files it touched, the errors it found and, on failure, an RFC 9457
Problem Details payload. Envelopes are ``msgspec`` structs and are validated
against ``schema/cli_envelope.json`` before they are written.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Literal, cast

import msgspec
from jsonschema import Draft202012Validator
from msgspec import UNSET, Struct, UnsetType, structs

from uvworkspace.problem_details import SCHEMA_DIR

if TYPE_CHECKING:
    from uvworkspace.problem_details import ProblemDetails

__all__ = [
    "CLI_ENVELOPE_SCHEMA_ID",
    "CLI_ENVELOPE_SCHEMA_VERSION",
    "CliEnvelope",
    "CliEnvelopeBuilder",
    "CliErrorEntry",
    "CliErrorStatus",
    "CliFileResult",
    "CliFileStatus",
    "CliStatus",
    "EnvelopeValidationError",
    "render_cli_envelope",
    "validate_cli_envelope",
    "write_cli_envelope",
]

type CliStatus = Literal["success", "violation", "config", "error"]
type CliFileStatus = Literal["success", "skipped", "error", "violation"]
type CliErrorStatus = Literal["error", "violation", "config"]

CLI_ENVELOPE_SCHEMA = SCHEMA_DIR / "cli_envelope.json"
CLI_ENVELOPE_SCHEMA_VERSION = "1.0.0"
CLI_ENVELOPE_SCHEMA_ID = "https://uvworkspace.dev/schema/cli-envelope.json"


class EnvelopeValidationError(Exception):
    """Raised when an envelope does not conform to the CLI envelope schema."""

    def __init__(self, message: str, validation_errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.validation_errors = validation_errors or []


class CliFileResult(Struct, kw_only=True):
    """Individual file result emitted by a command."""

    path: str
    status: CliFileStatus
    message: str | UnsetType = UNSET
    problem: dict[str, object] | UnsetType = UNSET


class CliErrorEntry(Struct, kw_only=True):
    """Error-level entry attached to CLI envelopes."""

    status: CliErrorStatus
    message: str
    file: str | UnsetType = UNSET
    problem: dict[str, object] | UnsetType = UNSET


def _default_generated_at() -> str:
    return datetime.now(tz=UTC).isoformat()


class CliEnvelope(Struct, kw_only=True):
    """Typed representation of ``schema/cli_envelope.json``."""

    schema_version: str = msgspec.field(default=CLI_ENVELOPE_SCHEMA_VERSION, name="schemaVersion")
    schema_id: str = msgspec.field(default=CLI_ENVELOPE_SCHEMA_ID, name="schemaId")
    generated_at: str = msgspec.field(default_factory=_default_generated_at, name="generatedAt")
    status: CliStatus = "success"
    command: str = ""
    subcommand: str = ""
    duration_seconds: float = msgspec.field(default=0.0, name="durationSeconds")
    files: list[CliFileResult] = msgspec.field(default_factory=list)
    errors: list[CliErrorEntry] = msgspec.field(default_factory=list)
    result: object | UnsetType = UNSET
    problem: dict[str, object] | UnsetType = UNSET


def _replace_envelope(envelope: CliEnvelope, **updates: object) -> CliEnvelope:
    return cast("CliEnvelope", structs.replace(envelope, **updates))


@lru_cache(maxsize=1)
def _validator() -> Draft202012Validator:
    schema = json.loads(CLI_ENVELOPE_SCHEMA.read_text(encoding="utf-8"))
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema)


def validate_cli_envelope(envelope: CliEnvelope) -> None:
    """Validate ``envelope`` against the CLI envelope schema.

    Raises
    ------
    EnvelopeValidationError
        If the envelope violates the schema.
    """
    payload = msgspec.to_builtins(envelope)
    errors = sorted(_validator().iter_errors(payload), key=lambda error: list(error.path))
    if errors:
        messages = [
            f"{'/'.join(str(part) for part in error.path) or '<root>'}: {error.message}"
            for error in errors
        ]
        msg = f"CLI envelope failed schema validation: {messages[0]}"
        raise EnvelopeValidationError(msg, messages)


def render_cli_envelope(envelope: CliEnvelope, *, indent: int = 2) -> str:
    """Return a JSON string for ``envelope``."""
    payload: dict[str, object] = msgspec.to_builtins(envelope)
    return json.dumps(payload, indent=indent)


def write_cli_envelope(envelope: CliEnvelope, directory: Path) -> Path:
    """Write ``envelope`` to ``<directory>/<command>-<subcommand>.json``."""
    directory.mkdir(parents=True, exist_ok=True)
    stem = "-".join(part for part in (envelope.command, envelope.subcommand) if part) or "root"
    path = directory / f"{stem}.json"
    path.write_text(render_cli_envelope(envelope) + "\n", encoding="utf-8")
    return path


_SET_BUILDER_ATTR = object.__setattr__


@dataclass(slots=True, frozen=True)
class CliEnvelopeBuilder:
    """Fluent builder for assembling CLI envelopes."""

    envelope: CliEnvelope

    @classmethod
    def create(cls, *, command: str, status: CliStatus, subcommand: str = "") -> CliEnvelopeBuilder:
        """Instantiate a builder for ``command`` with the provided status."""
        return cls(CliEnvelope(command=command, status=status, subcommand=subcommand))

    def _swap(self, *, update: CliEnvelope) -> CliEnvelopeBuilder:
        _SET_BUILDER_ATTR(self, "envelope", update)
        return self

    def set_status(self, status: CliStatus) -> CliEnvelopeBuilder:
        return self._swap(update=_replace_envelope(self.envelope, status=status))

    def add_file(
        self,
        *,
        path: str,
        status: CliFileStatus,
        message: str | None = None,
        problem: ProblemDetails | None = None,
    ) -> CliEnvelopeBuilder:
        """Append a file-level result entry.

        Parameters
        ----------
        path : str
            File the entry refers to.
        status : CliFileStatus
            Outcome for the file.
        message : str | None, optional
            Human-readable explanation.
        problem : ProblemDetails | None, optional
            Problem Details payload for failures.

        Returns
        -------
        CliEnvelopeBuilder
            The builder, for chaining.
        """
        entry = CliFileResult(
            path=path,
            status=status,
            message=message if message is not None else UNSET,
            problem=dict(problem) if problem is not None else UNSET,
        )
        files = [*self.envelope.files, entry]
        return self._swap(update=_replace_envelope(self.envelope, files=files))

    def add_error(
        self,
        *,
        status: CliErrorStatus,
        message: str,
        file: str | None = None,
        problem: ProblemDetails | None = None,
    ) -> CliEnvelopeBuilder:
        """Record an error, optionally attributed to a file."""
        entry = CliErrorEntry(
            status=status,
            message=message,
            file=file if file is not None else UNSET,
            problem=dict(problem) if problem is not None else UNSET,
        )
        errors = [*self.envelope.errors, entry]
        return self._swap(update=_replace_envelope(self.envelope, errors=errors))

    def set_result(self, result: object) -> CliEnvelopeBuilder:
        """Attach the command's JSON-compatible result payload."""
        return self._swap(update=_replace_envelope(self.envelope, result=result))

    def set_problem(self, problem: ProblemDetails | None) -> CliEnvelopeBuilder:
        """Attach (or clear) the top-level Problem Details payload."""
        replacement: dict[str, object] | UnsetType = dict(problem) if problem is not None else UNSET
        return self._swap(update=_replace_envelope(self.envelope, problem=replacement))

    def finish(self, *, duration_seconds: float | None = None) -> CliEnvelope:
        """Finalize the envelope, validating it before returning.

        Raises
        ------
        EnvelopeValidationError
            If the assembled envelope violates the schema.
        """
        envelope = self.envelope
        if duration_seconds is not None:
            envelope = _replace_envelope(envelope, duration_seconds=float(duration_seconds))
        validate_cli_envelope(envelope)
        return envelope
