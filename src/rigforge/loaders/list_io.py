"""Integer list parser (joint hierarchies, handle lists)."""

import re
from pathlib import Path

_TOKEN = re.compile(r"-?\d+|\S")


def parse_index_list(text: str, offset: int = 0, sort: bool = False) -> list[int]:
    """Parse a whitespace/comma separated integer list.

    Syntax:

    - lines starting with ``#`` are comments;
    - ``a:b`` expands to the inclusive range ``a, a+1, ..., b``;
    - ``,`` separates entries (optional, whitespace works too).

    Parameters
    ----------
    text : str
        The list file contents.
    offset : int
        Subtracted from every entry (1 turns a 1-based list 0-based).
    sort : bool
        Sort the entries ascending after loading.

    Raises
    ------
    ValueError
        On any token that is not an integer, ``:`` or ``,``, or on a
        dangling range (``a:`` with no end).
    """
    entries: list[int] = []
    last: int | None = None
    in_range = False

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        for token in _TOKEN.findall(line):
            if token == ":":
                if last is None:
                    raise ValueError(f"Range without a start in line: {line!r}")
                in_range = True
            elif token == ",":
                in_range = False
            elif token.lstrip("-").isdigit():
                k = int(token)
                if in_range:
                    entries.extend(i - offset for i in range(last + 1, k))
                    in_range = False
                entries.append(k - offset)
                last = k
            else:
                raise ValueError(f"Unexpected symbol {token!r} in line: {line!r}")

    if in_range:
        raise ValueError("List ends inside a range")
    if sort:
        entries.sort()
    return entries


def load_index_list(path, offset: int = 0, sort: bool = False) -> list[int]:
    """Load an integer list file from disk (see :func:`parse_index_list`)."""
    return parse_index_list(Path(path).read_text(), offset=offset, sort=sort)
