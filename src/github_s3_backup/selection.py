from __future__ import annotations

import re
from typing import List, Set

from .errors import ParseError

_SINGLE = re.compile(r"^\d+$")
_RANGE = re.compile(r"^(\d+)\s*-\s*(\d+)$")


def parse_selection(text: str, max_index: int) -> List[int]:
    """Parse ``"1,3-5,7"`` into sorted, de-duplicated 1-based indices.

    Each comma-separated token is ``N`` or ``A-B`` with
    ``1 <= A <= B <= max_index``. Any bad token rejects the whole input.
    """
    if max_index < 1:
        raise ParseError("Nothing to select")

    bounds = f"[1, {max_index}]"
    tokens = [token.strip() for token in text.split(",")]
    if not text.strip():
        raise ParseError(f"Empty selection; enter numbers or ranges within {bounds}")

    selected: Set[int] = set()
    for token in tokens:
        if _SINGLE.match(token):
            value = int(token)
            if not 1 <= value <= max_index:
                raise ParseError(f"'{token}' is out of range; valid indices are {bounds}")
            selected.add(value)
            continue

        match = _RANGE.match(token)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            if not 1 <= start <= end <= max_index:
                raise ParseError(f"Range '{token}' is invalid; ranges must satisfy 1 <= A <= B <= {max_index}")
            selected.update(range(start, end + 1))
            continue

        raise ParseError(f"'{token}' is not a number or range; valid indices are {bounds}")

    return sorted(selected)
