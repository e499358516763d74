"""Argument coercion for loosely typed model tool calls.

Models frequently send ``"3"`` for an integer or ``"true"`` for a boolean.
:func:`coerce_arguments` normalizes such values against the action's
declared parameters and then validates the result with ``jsonschema``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from jsonschema import Draft202012Validator

from .errors import InvalidParameterError, MissingParameterError
from .types import ActionDescriptor, ParameterSchema, ParameterType

__all__ = ["coerce_arguments", "parse_raw_arguments"]

LOGGER = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"true", "yes", "y", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "n", "off", "0"})


def parse_raw_arguments(raw: Any) -> Mapping[str, Any]:
    """Decode the raw argument payload of a tool call.

    Accepts a mapping, a JSON object string, or nothing at all.
    """

    if raw is None:
        return {}
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return {}
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidParameterError(message=f"Arguments are not valid JSON: {exc.msg}") from exc
        if isinstance(decoded, Mapping):
            return decoded
    raise InvalidParameterError(message="Arguments must be a JSON object")


def coerce_arguments(descriptor: ActionDescriptor, arguments: Any) -> dict[str, Any]:
    """Return ``arguments`` coerced to the types ``descriptor`` declares.

    Unknown keys are dropped. Optional parameters that are absent receive
    their declared default when one exists.

    Raises:
        MissingParameterError: A required argument is absent, null or blank.
        InvalidParameterError: An argument cannot be converted or violates
            the parameter schema.
    """

    supplied = parse_raw_arguments(arguments)
    unknown = set(supplied) - {param.name for param in descriptor.parameters}
    if unknown:
        LOGGER.debug("Ignoring unknown argument(s) for %s: %s", descriptor.name, sorted(unknown))

    coerced: dict[str, Any] = {}
    for param in descriptor.parameters:
        value = supplied.get(param.name)
        if value is None:
            if param.required:
                raise MissingParameterError(
                    message=f"Missing required argument '{param.name}'",
                    parameter=param.name,
                )
            if param.default is not None:
                coerced[param.name] = param.default
            continue
        coerced[param.name] = _coerce_value(param, value)

    _validate(descriptor, coerced)
    return coerced


def _coerce_value(param: ParameterSchema, value: Any) -> Any:
    kind = param.type
    if kind is ParameterType.STRING:
        return _coerce_string(param, value)
    if kind is ParameterType.INTEGER:
        return _coerce_integer(param, value)
    if kind is ParameterType.NUMBER:
        return _coerce_number(param, value)
    if kind is ParameterType.BOOLEAN:
        return _coerce_boolean(param, value)
    if kind is ParameterType.ARRAY:
        return _coerce_container(param, value, list)
    if kind is ParameterType.OBJECT:
        return _coerce_container(param, value, dict)
    return value


def _invalid(param: ParameterSchema, value: Any, expected: str) -> InvalidParameterError:
    return InvalidParameterError(
        message=f"Argument '{param.name}' must be {expected}, got {type(value).__name__}",
        parameter=param.name,
    )


def _coerce_string(param: ParameterSchema, value: Any) -> str:
    if isinstance(value, str):
        text = value
    elif isinstance(value, (bool, int, float)):
        text = str(value).lower() if isinstance(value, bool) else str(value)
    else:
        raise _invalid(param, value, "a string")
    if param.required and not param.allow_empty and not text.strip():
        raise MissingParameterError(
            message=f"Argument '{param.name}' must not be empty",
            parameter=param.name,
        )
    return text


def _coerce_integer(param: ParameterSchema, value: Any) -> int:
    if isinstance(value, bool):
        raise _invalid(param, value, "an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise _invalid(param, value, "an integer") from None
        if number.is_integer():
            return int(number)
    raise _invalid(param, value, "an integer")


def _coerce_number(param: ParameterSchema, value: Any) -> int | float:
    if isinstance(value, bool):
        raise _invalid(param, value, "a number")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise _invalid(param, value, "a number") from None
    raise _invalid(param, value, "a number")


def _coerce_boolean(param: ParameterSchema, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise _invalid(param, value, "a boolean")


def _coerce_container(param: ParameterSchema, value: Any, kind: type) -> Any:
    expected = "an array" if kind is list else "an object"
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            raise _invalid(param, value, expected) from None
    if kind is list and isinstance(value, (list, tuple)):
        return list(value)
    if kind is dict and isinstance(value, Mapping):
        return dict(value)
    raise _invalid(param, value, expected)


def _validate(descriptor: ActionDescriptor, arguments: Mapping[str, Any]) -> None:
    validator = Draft202012Validator(descriptor.to_json_schema())
    errors = sorted(validator.iter_errors(arguments), key=lambda issue: [str(part) for part in issue.absolute_path])
    if not errors:
        return
    issue = errors[0]
    parameter = str(issue.absolute_path[0]) if issue.absolute_path else None
    message = issue.message if parameter is None else f"Argument '{parameter}': {issue.message}"
    raise InvalidParameterError(message=message, parameter=parameter)
