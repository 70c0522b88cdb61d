"""Command Validation and Execution Results.

Security Impact:
    - Results carry human-readable messages plus structured error lists, so
      callers can correct input without inspecting internals
    - Exceptions are attached for diagnostics but never re-raised

Architecture:
    - Mutable dataclasses filled in by the command pipeline
    - Every validation error is recorded together with its ErrorCode
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Iterable, List, Optional, Union
from uuid import UUID

from src.domain.enums import ErrorCode


@dataclass
class CommandValidationResult:
    """Errors and warnings gathered while validating a command.

    A result is valid iff it holds zero errors; warnings never change that.

    Attributes:
        errors: Error messages, in the order they were found
        warnings: Non-blocking warnings
        error_codes: ErrorCode of each error (parallel to `errors`)
    """

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error_codes: List[ErrorCode] = field(default_factory=list)

    @classmethod
    def success(cls) -> 'CommandValidationResult':
        return cls()

    @classmethod
    def failure(cls, *errors: str, code: ErrorCode = ErrorCode.INVARIANT_VIOLATION) -> 'CommandValidationResult':
        result = cls()
        for error in errors:
            result.add_error(error, code)
        return result

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    @property
    def error_code(self) -> Optional[ErrorCode]:
        """Code of the first error, if any."""
        return self.error_codes[0] if self.error_codes else None

    def add_error(self, message: str, code: ErrorCode = ErrorCode.INVARIANT_VIOLATION) -> 'CommandValidationResult':
        self.errors.append(message)
        self.error_codes.append(code)
        return self

    def add_errors(self, messages: Iterable[str], code: ErrorCode = ErrorCode.INVARIANT_VIOLATION) -> 'CommandValidationResult':
        for message in messages:
            self.add_error(message, code)
        return self

    def add_warning(self, message: str) -> 'CommandValidationResult':
        if message not in self.warnings:
            self.warnings.append(message)
        return self

    def merge(self, other: 'CommandValidationResult') -> 'CommandValidationResult':
        for message, code in zip(other.errors, other.error_codes):
            self.add_error(message, code)
        for warning in other.warnings:
            self.add_warning(warning)
        return self

    def get_display_message(self) -> str:
        if self.is_valid:
            if self.warnings:
                return "Validation passed with warnings: " + "; ".join(self.warnings)
            return "Validation passed."
        return "Validation failed: " + "; ".join(self.errors)


@dataclass
class CommandResult:
    """Uniform success/failure envelope returned by every command.

    Attributes:
        success: True if the command completed
        message: Human-readable outcome
        data: Optional payload (entity, dict of ids, rendered text, ...)
        error_message: First error, for failures
        exception: Underlying exception for caught faults
        validation_errors: Structured list of violated rules
        warnings: Non-blocking warnings raised during validation
        error_code: Taxonomy code of the failure
        command_id: Id of the command instance that produced the result
        command_name: Name of that command
        executed_at: When the result was produced
        execution_time: Wall-clock duration of the pipeline
    """

    success: bool
    message: str = ""
    data: Any = None
    error_message: Optional[str] = None
    exception: Optional[BaseException] = None
    validation_errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error_code: Optional[ErrorCode] = None
    command_id: Optional[UUID] = None
    command_name: Optional[str] = None
    executed_at: datetime = field(default_factory=datetime.now)
    execution_time: Optional[timedelta] = None

    @classmethod
    def ok(cls, message: str = "Command executed successfully.", data: Any = None) -> 'CommandResult':
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(
        cls,
        error_message: str,
        exception: Optional[BaseException] = None,
        error_code: Optional[ErrorCode] = None
    ) -> 'CommandResult':
        if error_code is None:
            error_code = ErrorCode.UNEXPECTED if exception is not None else ErrorCode.INVARIANT_VIOLATION
        return cls(
            success=False,
            message="Command execution failed.",
            error_message=error_message,
            exception=exception,
            error_code=error_code,
        )

    @classmethod
    def validation_failed(
        cls,
        validation: Union[CommandValidationResult, List[str]],
        error_code: Optional[ErrorCode] = None
    ) -> 'CommandResult':
        if isinstance(validation, CommandValidationResult):
            errors = list(validation.errors)
            warnings = list(validation.warnings)
            error_code = error_code or validation.error_code
        else:
            errors = list(validation)
            warnings = []
        return cls(
            success=False,
            message="Command validation failed.",
            error_message=errors[0] if errors else None,
            validation_errors=errors,
            warnings=warnings,
            error_code=error_code or ErrorCode.INVARIANT_VIOLATION,
        )

    @classmethod
    def unauthorized(cls, message: str = "You are not authorized to perform this action.") -> 'CommandResult':
        return cls(
            success=False,
            message="Command not authorized.",
            error_message=message,
            validation_errors=[message],
            error_code=ErrorCode.PERMISSION_DENIED,
        )

    def add_warning(self, warning: str) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)

    def add_warnings(self, warnings: Iterable[str]) -> None:
        for warning in warnings:
            self.add_warning(warning)

    def get(self, key: str, default: Any = None) -> Any:
        """Read a key from a dict payload."""
        if isinstance(self.data, dict):
            return self.data.get(key, default)
        return default

    def get_display_message(self) -> str:
        if self.success:
            if self.warnings:
                return f"{self.message} (Warnings: {'; '.join(self.warnings)})"
            return self.message
        if self.validation_errors:
            return "Validation failed: " + "; ".join(self.validation_errors)
        return self.error_message or self.message


@dataclass
class BatchCommandResult:
    """Outcome of CommandInvoker.execute_batch.

    Attributes:
        results: One result per command that was attempted
        rolled_back: True if earlier successes were compensated after a failure
    """

    results: List[CommandResult] = field(default_factory=list)
    rolled_back: bool = False

    @property
    def all_succeeded(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    def get_summary(self) -> str:
        summary = f"Batch execution: {self.success_count} succeeded, {self.failure_count} failed"
        if self.rolled_back:
            summary += " (rolled back)"
        return summary
