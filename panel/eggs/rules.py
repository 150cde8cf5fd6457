"""Validation of server variable values against egg variable rule strings.

Rule strings are pipe delimited, e.g. ``required|string|max:20``. Supported
rules: required, nullable, string, numeric, integer, boolean, min, max,
between, in and regex. Unknown rules are ignored.
"""

import re
from typing import Optional

_INTEGER = re.compile(r"-?\d+")
_BOOLEAN_VALUES = {"0", "1", "true", "false"}


def parse_rules(rules: str) -> list[tuple[str, Optional[str]]]:
    """Split a rule string into (rule, argument) pairs.

    A regex rule consumes the remainder of the string since its pattern may
    itself contain pipes.
    """
    parsed: list[tuple[str, Optional[str]]] = []
    parts = rules.split("|") if rules else []
    for index, part in enumerate(parts):
        if part.startswith("regex:"):
            parsed.append(("regex", "|".join(parts[index:])[len("regex:") :]))
            break
        name, _, argument = part.partition(":")
        if name.strip():
            parsed.append((name.strip(), argument or None))
    return parsed


def _compile_pattern(argument: str) -> re.Pattern:
    # Patterns are written PHP style: /pattern/flags
    if len(argument) >= 2 and argument[0] == "/" and argument.rfind("/") > 0:
        end = argument.rfind("/")
        pattern, modifiers = argument[1:end], argument[end + 1 :]
        flags = re.IGNORECASE if "i" in modifiers else 0
        return re.compile(pattern, flags)
    return re.compile(argument)


def _is_numeric(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def validate_variable(name: str, value: Optional[str], rules: str) -> Optional[str]:
    """Check a variable value against its rules.

    Returns:
        The first violation message, or None when the value is acceptable
    """
    parsed = parse_rules(rules)
    names = {rule for rule, _ in parsed}

    if value is None or value == "":
        if "required" in names:
            return f"The {name} field is required."
        return None

    numeric = "numeric" in names or "integer" in names

    def size() -> float:
        return float(value) if numeric else len(value)

    unit = "" if numeric else " characters"

    for rule, argument in parsed:
        if rule == "numeric" and not _is_numeric(value):
            return f"The {name} must be a number."
        if rule == "integer" and not _INTEGER.fullmatch(value):
            return f"The {name} must be an integer."
        if rule == "boolean" and value.lower() not in _BOOLEAN_VALUES:
            return f"The {name} field must be true or false."
        if rule in ("min", "max", "between") and argument is not None:
            if numeric and not _is_numeric(value):
                return f"The {name} must be a number."
            bounds = [float(bound) for bound in argument.split(",")]
            if rule == "min" and size() < bounds[0]:
                return f"The {name} must be at least {argument}{unit}."
            if rule == "max" and size() > bounds[0]:
                return f"The {name} may not be greater than {argument}{unit}."
            if rule == "between" and not bounds[0] <= size() <= bounds[-1]:
                low, _, high = argument.partition(",")
                return f"The {name} must be between {low} and {high}{unit}."
        if rule == "in" and argument is not None:
            if value not in argument.split(","):
                return f"The selected {name} is invalid."
        if rule == "regex" and argument is not None:
            if not _compile_pattern(argument).search(value):
                return f"The {name} format is invalid."

    return None
