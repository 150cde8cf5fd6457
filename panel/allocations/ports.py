"""Parsing of user supplied port lists such as ``27015, 27017-27019``."""

import re
from dataclasses import dataclass
from typing import Iterable

MIN_PORT = 0
MAX_PORT = 2**16 - 1

_LITERAL = re.compile(r"\d+")
_RANGE = re.compile(r"(-?\d+)-(-?\d+)")


@dataclass(frozen=True)
class PortSet:
    """Normalized ports plus whether the input needs to be redisplayed."""

    ports: list[int]
    modified: bool

    def tokens(self) -> list[str]:
        return [str(port) for port in self.ports]


def normalize_ports(tokens: Iterable[str]) -> PortSet:
    """Expand, deduplicate and sort port tokens.

    Literal tokens must be fully numeric. ``start-end`` tokens are clamped to
    the valid port range and expanded inclusively; a start greater than the
    end expands to nothing. Anything else is dropped.

    Args:
        tokens: Port literals and ranges in the order the user entered them

    Returns:
        PortSet whose ``modified`` flag is set when any token was dropped or
        expanded, or when duplicates or ordering had to be fixed.
    """
    ports: list[int] = []
    modified = False

    for token in tokens:
        token = str(token).strip()

        if "-" not in token:
            if _LITERAL.fullmatch(token) and int(token) <= MAX_PORT:
                ports.append(int(token))
            else:
                modified = True
            continue

        # Ranges are always shown back to the user in expanded form
        modified = True
        match = _RANGE.fullmatch(token)
        if match is None:
            continue

        start = max(int(match.group(1)), MIN_PORT)
        end = min(int(match.group(2)), MAX_PORT)
        ports.extend(range(start, end + 1))

    unique = list(dict.fromkeys(ports))
    if len(unique) < len(ports):
        modified = True

    ordered = sorted(unique)
    if ordered != unique:
        modified = True

    return PortSet(ports=ordered, modified=modified)
