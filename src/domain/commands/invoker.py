"""Command Invoker.

Runs commands, keeps an execution history and the undo/redo stacks, and
executes batches with reverse-order compensation when one of them fails.

Architecture:
    - Thin host-side coordinator: all validation, authorization and execution
      logic lives in the commands themselves
    - Only successful, reversible commands are pushed on the undo stack
    - Redo re-executes the command with its original parameters, so redoing an
      "add" records a new entry rather than reactivating the old one
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from src.domain.commands.base import AbstractCommand
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import BatchCommandResult, CommandResult
from src.domain.session import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


@dataclass
class CommandExecutionRecord:
    """One line of the invoker's execution history."""

    command_id: UUID
    command_name: str
    executed_at: datetime = field(default_factory=datetime.now)
    executed_by: Optional[UUID] = None
    success: bool = False
    message: str = ""
    execution_time: Optional[timedelta] = None


class CommandInvoker:
    """Executes commands and manages undo/redo history.

    Parameters:
        history_limit: Maximum number of history records and undoable commands kept

    Example Usage:
        ```python
        invoker = CommandInvoker()
        result = invoker.execute(factory.create("AddDiagnosis"), params, session)
        if invoker.can_undo:
            invoker.undo(session)
        ```
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self.history_limit = history_limit
        self._undo_stack: List[AbstractCommand] = []
        self._redo_stack: List[AbstractCommand] = []
        self._history: List[CommandExecutionRecord] = []

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def execute(
        self,
        command: AbstractCommand,
        parameters: CommandParameters,
        session: Optional[SessionContext] = None
    ) -> CommandResult:
        """Run a command through its pipeline and record the outcome."""
        result = command.execute(parameters, session)
        self._record(command.command_id, command.command_name, session, result)

        if result.success and command.can_undo:
            self._undo_stack.append(command)
            if len(self._undo_stack) > self.history_limit:
                self._undo_stack.pop(0)
            self._redo_stack.clear()
        return result

    def undo(self, session: Optional[SessionContext] = None) -> CommandResult:
        """Compensate the most recent undoable command."""
        if not self._undo_stack:
            return CommandResult.fail("Nothing to undo")

        command = self._undo_stack.pop()
        result = command.undo(session)
        self._record(command.command_id, f"UNDO: {command.command_name}", session, result)

        if result.success:
            self._redo_stack.append(command)
        else:
            self._undo_stack.append(command)
        return result

    def redo(self, session: Optional[SessionContext] = None) -> CommandResult:
        """Re-execute the most recently undone command with its original parameters."""
        if not self._redo_stack:
            return CommandResult.fail("Nothing to redo")

        command = self._redo_stack.pop()
        parameters = command.last_parameters or CommandParameters()
        result = command.execute(parameters, session)
        self._record(command.command_id, f"REDO: {command.command_name}", session, result)

        if result.success:
            self._undo_stack.append(command)
        else:
            self._redo_stack.append(command)
        return result

    def execute_batch(
        self,
        commands: Sequence[Tuple[AbstractCommand, CommandParameters]],
        session: Optional[SessionContext] = None,
        stop_on_first_failure: bool = True
    ) -> BatchCommandResult:
        """Execute several commands in order.

        When `stop_on_first_failure` is set, the first failure stops the batch and
        every command that already succeeded is undone in reverse order.
        """
        batch = BatchCommandResult()
        succeeded: List[AbstractCommand] = []

        for command, parameters in commands:
            result = self.execute(command, parameters, session)
            batch.results.append(result)
            if result.success:
                succeeded.append(command)
                continue
            if stop_on_first_failure:
                logger.warning(
                    f"Batch stopped at {command.command_name}; compensating {len(succeeded)} command(s)"
                )
                self._compensate(succeeded, session)
                batch.rolled_back = True
                break

        logger.info(batch.get_summary())
        return batch

    def _compensate(self, commands: List[AbstractCommand], session: Optional[SessionContext]) -> None:
        for command in reversed(commands):
            if not command.can_undo:
                logger.warning(f"Cannot compensate {command.command_name}: command is not reversible")
                continue
            result = command.undo(session)
            self._record(command.command_id, f"UNDO: {command.command_name}", session, result)
            if command in self._undo_stack:
                self._undo_stack.remove(command)
            if not result.success:
                logger.error(f"Compensation of {command.command_name} failed: {result.error_message}")

    def get_undoable_commands(self) -> List[AbstractCommand]:
        """Undoable commands, most recent first."""
        return list(reversed(self._undo_stack))

    def get_redoable_commands(self) -> List[AbstractCommand]:
        return list(reversed(self._redo_stack))

    def get_history(self, limit: Optional[int] = None) -> List[CommandExecutionRecord]:
        """History records, most recent first."""
        history = list(reversed(self._history))
        return history[:limit] if limit is not None else history

    def clear_history(self) -> None:
        self._history.clear()
        self._undo_stack.clear()
        self._redo_stack.clear()

    def _record(
        self,
        command_id: UUID,
        command_name: str,
        session: Optional[SessionContext],
        result: CommandResult
    ) -> None:
        self._history.append(CommandExecutionRecord(
            command_id=command_id,
            command_name=command_name,
            executed_by=session.user_id if session else None,
            success=result.success,
            message=result.get_display_message(),
            execution_time=result.execution_time,
        ))
        if len(self._history) > self.history_limit:
            del self._history[:len(self._history) - self.history_limit]
