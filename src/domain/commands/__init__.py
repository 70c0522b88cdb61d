"""Command pipeline: parameters, results, base command, factory and invoker.

Every operation on clinical documents runs as a command through the same
pipeline (validate, authorize, execute, capture undo state).
"""

from src.domain.commands.base import AbstractCommand, UndoState
from src.domain.commands.factory import CommandFactory
from src.domain.commands.invoker import CommandExecutionRecord, CommandInvoker
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import (
    BatchCommandResult,
    CommandResult,
    CommandValidationResult,
)

__all__ = [
    'AbstractCommand',
    'BatchCommandResult',
    'CommandExecutionRecord',
    'CommandFactory',
    'CommandInvoker',
    'CommandParameters',
    'CommandResult',
    'CommandValidationResult',
    'UndoState',
]
