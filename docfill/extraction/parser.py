"""Strict parsing of oracle text into a validated field map.

Wrapping noise (whitespace, byte-order mark, code fences) is stripped;
everything else must be a single JSON object. There is no partial parse.

Value policy:
    * strings, numbers and booleans are kept unchanged
    * ``null`` values are omitted
    * nested objects and arrays are flattened to their compact JSON string
The policy is idempotent: parsing ``FieldMap.to_json()`` gives back an
equal map.
"""

import json
import math
import re
from collections.abc import Iterator, Mapping
from typing import Any

from docfill.errors import InvalidFieldMap
from docfill.utils.logger import get_logger

logger = get_logger(__name__)

Scalar = str | int | float | bool

_FENCE_OPEN = re.compile(r"\A```[A-Za-z0-9_-]*[ \t]*\n?")
_FENCE_CLOSE = re.compile(r"\n?```\Z")


class FieldMap(Mapping[str, Scalar]):
    """Read-only mapping from field key to scalar value.

    Args:
        data: Key/value pairs. Keys must be non-empty strings and values
            scalars.
    """

    def __init__(self, data: Mapping[str, Scalar] | None = None) -> None:
        self._data: dict[str, Scalar] = dict(data or {})

    def __getitem__(self, key: str) -> Scalar:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"FieldMap({self._data!r})"

    def text(self, key: str) -> str:
        """Return the string form written onto the target for ``key``."""
        return value_to_text(self._data[key])

    def to_json(self) -> str:
        """Serialize the map as a JSON object."""
        return json.dumps(self._data, ensure_ascii=False)


def value_to_text(value: Scalar) -> str:
    """Render a scalar the way it appears in JSON, without string quotes."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def strip_wrapping(raw_text: str) -> str:
    """Remove whitespace, a byte-order mark, and code-fence delimiters.

    Args:
        raw_text: Raw oracle answer.

    Returns:
        The unwrapped payload.
    """
    text = raw_text.lstrip("\ufeff").strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text, count=1)
        text = _FENCE_CLOSE.sub("", text.rstrip(), count=1)
    return text.strip()


def _reject_duplicates(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, value in pairs:
        if key in result:
            raise InvalidFieldMap(f"Duplicate field key '{key}'")
        result[key] = value
    return result


def _reject_constant(name: str) -> Any:
    raise InvalidFieldMap(f"Non-finite number '{name}' is not a valid value")


def load_json_object(raw_text: str, what: str = "field map") -> dict[str, Any]:
    """Strip wrapping noise and strictly decode a JSON object.

    Args:
        raw_text: Raw oracle answer.
        what: Payload name used in error messages.

    Returns:
        The decoded object.

    Raises:
        InvalidFieldMap: If the payload is not a JSON object or repeats a key.
    """
    payload = strip_wrapping(raw_text)
    try:
        data = json.loads(
            payload,
            object_pairs_hook=_reject_duplicates,
            parse_constant=_reject_constant,
        )
    except json.JSONDecodeError as exc:
        raise InvalidFieldMap(f"Failed to parse {what} JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise InvalidFieldMap(f"Expected a JSON object for {what}, got {type(data).__name__}")
    return data


def _normalize_value(value: Any) -> Scalar | None:
    if value is None:
        return None
    # Literals such as 1e400 overflow to inf without passing parse_constant.
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidFieldMap(f"Number {value} is out of range")
    if isinstance(value, str | int | float | bool):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class MappingParser:
    """Parses the extraction oracle's raw text into a ``FieldMap``."""

    def parse(self, raw_text: str) -> FieldMap:
        """Parse raw oracle text into a validated field map.

        Args:
            raw_text: Raw extraction answer, possibly wrapped in code fences.

        Returns:
            Non-empty field map.

        Raises:
            InvalidFieldMap: If the text is not a non-empty JSON object of
                non-empty keys.
        """
        data = load_json_object(raw_text)

        fields: dict[str, Scalar] = {}
        for key, value in data.items():
            if not key.strip():
                raise InvalidFieldMap("Field keys must be non-empty")
            normalized = _normalize_value(value)
            if normalized is None:
                logger.debug("Omitting null value for field '%s'", key)
                continue
            if normalized is not value:
                logger.debug("Flattened nested value for field '%s'", key)
            fields[key] = normalized

        if not fields:
            raise InvalidFieldMap("Field map contains no values")

        logger.info("Parsed field map with %d fields", len(fields))
        return FieldMap(fields)
