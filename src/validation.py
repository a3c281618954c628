"""
Declared Config Validation - JSON Schema checks and duration parsing.

Provides functions to validate declared resource specs against the JSON
Schema each reconciler publishes, and to parse Go-style duration strings
("90s", "1h30m") used for cluster TTL and wait durations.
"""

import logging
import re
from datetime import timedelta
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

logger = logging.getLogger(__name__)

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_UNITS = "ns|us|µs|μs|ms|s|m|h"
DURATION_PATTERN = re.compile(rf"^[+-]?(?:(?:\d+(?:\.\d*)?|\.\d+)(?:{_UNITS}))+$")
_DURATION_COMPONENT = re.compile(rf"(\d+(?:\.\d*)?|\.\d+)({_UNITS})")


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string such as "300ms", "1.5h" or "2h45m".

    A bare "0" is accepted; any other number needs a unit.

    Raises:
        ValueError: If the string is not a valid duration.
    """
    if value in ("0", "+0", "-0"):
        return timedelta(0)
    if not value or not DURATION_PATTERN.match(value):
        raise ValueError(f"time: invalid duration {value!r}")

    sign = -1 if value.startswith("-") else 1
    seconds = sum(
        float(number) * _UNIT_SECONDS[unit]
        for number, unit in _DURATION_COMPONENT.findall(value.lstrip("+-"))
    )
    return timedelta(seconds=sign * seconds)


def validate_openapi_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a schema is a valid JSON Schema (Draft 7).

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
        return True, None
    except Exception as e:
        return False, f"Invalid schema: {str(e)}"


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a declared resource spec against a JSON Schema.

    Args:
        spec: The declared resource specification to validate
        schema: The JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
        errors = sorted(
            validator.iter_errors(spec),
            key=lambda e: [str(p) for p in e.absolute_path],
        )

        if not errors:
            return True, None

        error_messages = []
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or "(root)"
            error_messages.append(f"{path}: {error.message}")

        return False, "; ".join(error_messages)

    except ValidationError as e:
        return False, f"Validation error: {str(e)}"
    except Exception as e:
        logger.error(f"Unexpected error during validation: {e}")
        return False, f"Validation failed: {str(e)}"
