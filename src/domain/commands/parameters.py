"""Command Parameter Bag.

An ordered, case-insensitive key/value container used to pass inputs to commands,
with typed accessors that coerce loosely typed input (strings from a CLI, JSON
values) into the types commands work with.

Architecture:
    - Optional accessors never raise; they return the default when a value is
      absent or cannot be converted
    - `get_required` raises MissingParameterError and is only used after
      validation has guaranteed presence
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple
from uuid import UUID

from src.domain.enums import ClinicalEnum
from src.domain.ports import MissingParameterError
from src.domain.utils import to_datetime, to_uuid

_TRUE_STRINGS = {"true", "yes", "y", "1", "on"}
_FALSE_STRINGS = {"false", "no", "n", "0", "off"}

_MISSING = object()


def _convert(value: Any, expected_type: Optional[type]) -> Any:
    """Convert a raw value to `expected_type`, returning _MISSING on failure."""
    if value is None or expected_type is None:
        return value

    if isinstance(expected_type, type) and issubclass(expected_type, Enum):
        if isinstance(value, expected_type):
            return value
        if issubclass(expected_type, ClinicalEnum):
            parsed = expected_type.parse(value)
        else:
            try:
                parsed = expected_type(value)
            except ValueError:
                parsed = None
        return _MISSING if parsed is None else parsed

    if expected_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        if isinstance(value, str):
            text = value.strip().lower()
            if text in _TRUE_STRINGS:
                return True
            if text in _FALSE_STRINGS:
                return False
        return _MISSING

    if expected_type is int:
        if isinstance(value, bool):
            return _MISSING
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return _MISSING
        return _MISSING

    if expected_type is float:
        if isinstance(value, bool):
            return _MISSING
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value.strip())
            except ValueError:
                return _MISSING
        return _MISSING

    if expected_type is UUID:
        converted = to_uuid(value)
        return _MISSING if converted is None else converted

    if expected_type is datetime:
        converted = to_datetime(value)
        return _MISSING if converted is None else converted

    if expected_type is date:
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        converted = to_datetime(value)
        return _MISSING if converted is None else converted.date()

    if expected_type is str:
        return value if isinstance(value, str) else str(value)

    if expected_type is list:
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return _MISSING

    if expected_type is dict:
        if isinstance(value, dict):
            return dict(value)
        if isinstance(value, str):
            parsed = {}
            for pair in value.replace(";", ",").split(","):
                if not pair.strip():
                    continue
                if "=" not in pair:
                    return _MISSING
                name, reading = pair.split("=", 1)
                parsed[name.strip()] = reading.strip()
            return parsed
        return _MISSING

    return value if isinstance(value, expected_type) else _MISSING


class CommandParameters:
    """Ordered, case-insensitive parameter bag for commands.

    Example Usage:
        ```python
        params = CommandParameters({"document_id": doc.id})
        params.set("diagnosis_type", "final").set("is_primary", "true")
        params.get("diagnosis_type", DiagnosisType)  # DiagnosisType.FINAL
        params.get("is_primary", bool)               # True
        params.get_missing_required("document_id", "diagnosis_description")
        # ["Missing required parameter: diagnosis_description"]
        ```
    """

    def __init__(self, values: Optional[Dict[str, Any]] = None, **kwargs: Any):
        self._values: Dict[str, Any] = {}
        for key, value in (values or {}).items():
            self.set(key, value)
        for key, value in kwargs.items():
            self.set(key, value)

    @staticmethod
    def _normalize_key(key: str) -> str:
        return key.strip().lower()

    def set(self, key: str, value: Any) -> 'CommandParameters':
        """Set a parameter; returns self for chaining."""
        self._values[self._normalize_key(key)] = value
        return self

    def get(self, key: str, expected_type: Optional[type] = None, default: Any = None) -> Any:
        """Return the value converted to `expected_type`, or `default`.

        Never raises for absent or unconvertible values.
        """
        raw = self._values.get(self._normalize_key(key))
        if raw is None:
            return default
        converted = _convert(raw, expected_type)
        if converted is _MISSING:
            return default
        return converted

    def get_required(self, key: str, expected_type: Optional[type] = None) -> Any:
        """Return a value that validation has already guaranteed.

        Raises:
            MissingParameterError: If the value is absent, null or unconvertible
        """
        raw = self._values.get(self._normalize_key(key))
        if raw is None:
            raise MissingParameterError(key)
        converted = _convert(raw, expected_type)
        if converted is _MISSING:
            raise MissingParameterError(key)
        return converted

    def get_list(self, key: str, item_type: Optional[type] = None) -> Optional[List[Any]]:
        """Return a list parameter with each item converted to `item_type`.

        Returns None if absent or if any item fails conversion.
        """
        items = self.get(key, list)
        if items is None:
            return None
        converted = [_convert(item, item_type) for item in items]
        if any(item is _MISSING or item is None for item in converted):
            return None
        return converted

    def is_convertible(self, key: str, expected_type: type) -> bool:
        """Check that a present value converts to `expected_type`."""
        raw = self._values.get(self._normalize_key(key))
        return raw is not None and _convert(raw, expected_type) is not _MISSING

    def has(self, key: str) -> bool:
        return self._normalize_key(key) in self._values

    def has_value(self, key: str) -> bool:
        """True if the key is present with a non-null, non-blank value."""
        value = self._values.get(self._normalize_key(key))
        if value is None:
            return False
        if isinstance(value, str):
            return bool(value.strip())
        return True

    def remove(self, key: str) -> bool:
        return self._values.pop(self._normalize_key(key), _MISSING) is not _MISSING

    def clear(self) -> None:
        self._values.clear()

    def clone(self) -> 'CommandParameters':
        """Copy the bag; list and dict values are copied one level deep."""
        copy = CommandParameters()
        for key, value in self._values.items():
            if isinstance(value, (list, dict)):
                value = value.copy()
            copy._values[key] = value
        return copy

    def merge(self, other: 'CommandParameters', overwrite: bool = True) -> 'CommandParameters':
        for key, value in other.items():
            if overwrite or key not in self._values:
                self._values[key] = value
        return self

    def validate_required(self, *keys: str) -> bool:
        return not self.get_missing_required(*keys)

    def get_missing_required(self, *keys: str) -> List[str]:
        """Return one ready-to-surface error string per missing key."""
        return [
            f"Missing required parameter: {key}"
            for key in keys
            if not self.has_value(key)
        ]

    def keys(self) -> List[str]:
        return list(self._values.keys())

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(list(self._values.items()))

    def to_dict(self) -> Dict[str, Any]:
        return dict(self._values)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"CommandParameters({', '.join(self._values.keys())})"
