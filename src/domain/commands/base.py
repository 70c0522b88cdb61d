"""Command Base Class.

This module defines the command pipeline every operation runs through:

    Created -> Validated -> Authorized -> Executed -> {UndoCaptured | Terminal}

1. Structural validation: required parameters, id formats, referenced entities.
   Any failure here is terminal; business rules are not evaluated.
2. Business-rule validation: enum membership, cross-field consistency and
   document state. Soft violations are warnings and never block execution.
3. Authorization: the required permission (and any command-specific role rule)
   is checked against the session.
4. Execution: the single state change or query, returning a CommandResult.
5. Undo capture: reversible commands record the minimal identifiers needed to
   compensate later.

Security Impact:
    - Commands never let exceptions escape: faults become failed results
    - Authorization is checked on every execution and every undo
    - Execution logs carry ids and command names, never clinical content

Architecture:
    - Template Method: subclasses override the hooks, not `execute`
    - Undo is compensating, not transactional: undoing an "add" deactivates
      the entry instead of restoring a byte-identical document
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple
from uuid import UUID, uuid4

from src.domain.enums import ErrorCode, Permission, UserRole
from src.domain.ports import ClinicalDocumentationError
from src.domain.commands.parameter_keys import DOCUMENT_ID
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import CommandResult, CommandValidationResult
from src.domain.session import SessionContext
from src.infrastructure.logging_config import CommandLogAdapter


@dataclass(frozen=True)
class UndoState:
    """Identifiers captured after a reversible command succeeds.

    Attributes:
        document_id: Document the command changed
        entry_id: Entry the command created, if any
    """

    document_id: UUID
    entry_id: Optional[UUID] = None


class AbstractCommand(ABC):
    """Base class for all commands.

    Subclasses declare `required_parameters`, `required_permission` and
    `can_undo`, and implement `execute_core`. Reversible commands also implement
    `capture_undo_state` and `undo_core`.

    Example Usage:
        ```python
        command = AddDiagnosisCommand(document_store, profiles)
        result = command.execute(CommandParameters({...}), session)
        if result.success and command.can_undo:
            command.undo(session)
        ```
    """

    required_parameters: Tuple[str, ...] = ()
    required_permission: Optional[Permission] = None
    allowed_roles: Optional[Tuple[UserRole, ...]] = None
    can_undo: bool = False
    description: str = ""

    def __init__(self):
        self.command_id: UUID = uuid4()
        self._undo_state: Optional[UndoState] = None
        self._last_parameters: Optional[CommandParameters] = None
        self.log = CommandLogAdapter(
            logging.getLogger(type(self).__module__),
            command_name=self.command_name,
            command_id=self.command_id,
        )

    @property
    def command_name(self) -> str:
        name = type(self).__name__
        return name[:-len("Command")] if name.endswith("Command") else name

    @property
    def command_key(self) -> str:
        return self.command_name.lower()

    @property
    def undo_state(self) -> Optional[UndoState]:
        return self._undo_state

    @property
    def last_parameters(self) -> Optional[CommandParameters]:
        return self._last_parameters

    def get_required_permission(self) -> Optional[Permission]:
        return self.required_permission

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, parameters: CommandParameters, session: Optional[SessionContext] = None) -> CommandValidationResult:
        """Run structural validation, then business rules if structure is sound."""
        result = CommandValidationResult.success()
        result.add_errors(
            parameters.get_missing_required(*self.required_parameters),
            ErrorCode.MISSING_PARAMETER
        )
        if not result.is_valid:
            return result

        result.merge(self.validate_structure(parameters, session))
        if not result.is_valid:
            return result

        result.merge(self.validate_business_rules(parameters, session))
        return result

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        """Id formats and referenced-entity existence."""
        return CommandValidationResult.success()

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        """Enum membership, cross-field consistency, document state."""
        return CommandValidationResult.success()

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, session: Optional[SessionContext]) -> CommandValidationResult:
        """Check the session against the required permission and allowed roles."""
        result = CommandValidationResult.success()
        permission = self.get_required_permission()
        if permission is None and self.allowed_roles is None:
            return result

        if session is None:
            return result.add_error(
                f"Authentication required to execute {self.command_name}",
                ErrorCode.PERMISSION_DENIED
            )
        if session.is_expired():
            return result.add_error("Session has expired. Please log in again.", ErrorCode.PERMISSION_DENIED)
        if permission is not None and not session.has_permission(permission):
            return result.add_error(
                f"Permission denied: {permission.value} is required to execute {self.command_name}",
                ErrorCode.PERMISSION_DENIED
            )
        if self.allowed_roles is not None and session.role not in self.allowed_roles:
            allowed = " or ".join(role.value for role in self.allowed_roles)
            return result.add_error(
                f"Only a {allowed} can execute {self.command_name}",
                ErrorCode.PERMISSION_DENIED
            )
        return result

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, parameters: CommandParameters, session: Optional[SessionContext] = None) -> CommandResult:
        """Run the full pipeline. Never raises."""
        started = datetime.now()
        parameters = parameters.clone()
        self._last_parameters = parameters
        log = self._context_log(session, document_id=parameters.get(DOCUMENT_ID, UUID))

        try:
            validation = self.validate(parameters, session)
            if not validation.is_valid:
                log.warning(
                    f"Command {self.command_name} failed validation: "
                    f"{len(validation.errors)} error(s), first code {validation.error_code}"
                )
                result = CommandResult.validation_failed(validation)
            else:
                authorization = self.authorize(session)
                if not authorization.is_valid:
                    log.warning(f"Command {self.command_name} denied: {authorization.error_code}")
                    result = CommandResult.unauthorized(authorization.errors[0])
                else:
                    user = f"{session.username} ({session.role.value})" if session else "anonymous"
                    log.info(f"Executing command {self.command_name} by {user}")
                    result = self.execute_core(parameters, session)
                    if result.success and self.can_undo:
                        self._undo_state = self.capture_undo_state(parameters, session, result)
                    if session is not None:
                        session.update_activity()
                    result.add_warnings(validation.warnings)
        except ClinicalDocumentationError as e:
            log.error(f"Command {self.command_name} rejected by domain: {e}")
            result = CommandResult.fail(f"Command execution failed: {e}", e, e.error_code)
        except Exception as e:
            log.error(f"Command {self.command_name} raised an unexpected error", exc_info=True)
            result = CommandResult.fail(f"Command execution failed: {e}", e, ErrorCode.UNEXPECTED)

        result.command_id = self.command_id
        result.command_name = self.command_name
        result.execution_time = datetime.now() - started
        return result

    @abstractmethod
    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        """Perform the command's single state change or query."""
        raise NotImplementedError

    def _context_log(self, session: Optional[SessionContext], document_id: Optional[UUID] = None) -> CommandLogAdapter:
        """The command's log adapter, bound to the calling session and target document."""
        if session is None:
            return self.log.bind(document_id=document_id)
        return self.log.bind(session_id=session.session_id, user_id=session.user_id, document_id=document_id)

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def capture_undo_state(
        self,
        parameters: CommandParameters,
        session: Optional[SessionContext],
        result: CommandResult
    ) -> Optional[UndoState]:
        """Record the identifiers needed to compensate a successful execution."""
        return None

    def undo_core(self, state: UndoState, session: Optional[SessionContext]) -> CommandResult:
        return CommandResult.fail(f"{self.command_name} does not support undo")

    def undo(self, session: Optional[SessionContext] = None) -> CommandResult:
        """Compensate the last successful execution of this command. Never raises."""
        if not self.can_undo:
            result = CommandResult.fail(f"{self.command_name} does not support undo")
        elif self._undo_state is None:
            result = CommandResult.fail(f"No previous state available to undo {self.command_name}")
        else:
            authorization = self.authorize(session)
            if not authorization.is_valid:
                result = CommandResult.unauthorized(authorization.errors[0])
            else:
                log = self._context_log(session, document_id=self._undo_state.document_id)
                try:
                    result = self.undo_core(self._undo_state, session)
                except ClinicalDocumentationError as e:
                    log.warning(f"Undo of {self.command_name} rejected by domain: {e}")
                    result = CommandResult.fail(f"Undo failed: {e}", e, e.error_code)
                except Exception as e:
                    log.error(f"Undo of {self.command_name} failed", exc_info=True)
                    result = CommandResult.fail(f"Undo failed: {e}", e)
                if result.success:
                    log.info(f"Undid command {self.command_name}")
                    self._undo_state = None

        result.command_id = self.command_id
        result.command_name = self.command_name
        return result
