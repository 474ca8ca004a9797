"""
Text helpers shared by header validation and consolidation.

normalize_key() is the comparison form of a header or cell value: it is used
to decide whether two files describe the same columns, never for display.
natural_sort_key() orders cell values the way a spreadsheet user expects,
with embedded numbers compared by value ("9" before "10").
"""
import re
import unicodedata
from typing import Tuple

_COMBINING_MARKS = re.compile("[\u0300-\u036f]")
_NATURAL_CHUNKS = re.compile(r"(?P<symbols>[\W_]+)|(?P<digits>[0-9]+)|(?P<letters>[^\W_0-9]+)")

# Collation order of common punctuation and symbols; whitespace sorts before all
# of them, anything unlisted after them by code point
_SYMBOL_ORDER = "_-,;:!?.'\"()[]{}@*/\\&#%`^+<=>|~$"


def strip_accents(value: str) -> str:
    """Decompose to NFD and drop the combining diacritical marks."""
    return _COMBINING_MARKS.sub("", unicodedata.normalize("NFD", value))


def normalize_key(value: str) -> str:
    """
    Normalize a header or cell value for comparison.

    Args:
        value: Text as read from the spreadsheet

    Returns:
        The text without accents, lower-cased and trimmed
    """
    return strip_accents(value).lower().strip()


def is_blank(cells) -> bool:
    """True when every cell of the row is empty."""
    return all(cell == "" for cell in cells)


def _symbol_weight(char: str) -> int:
    if char.isspace():
        return 0
    position = _SYMBOL_ORDER.find(char)
    if position >= 0:
        return position + 1
    return len(_SYMBOL_ORDER) + 1 + ord(char)


def natural_sort_key(value: str) -> Tuple:
    """
    Build a sort key comparing digit runs numerically.

    Values are split into runs of whitespace/punctuation, digits and letters,
    ranked in that order as a locale collation does: "-5" sorts before "3",
    "A 10" before "A2", and "#1" before "1" before "a". Digit runs compare as
    integers and letter runs without regard to accents or case. Accents and
    then case only break ties, lower case first.

    Args:
        value: Cell text

    Returns:
        A tuple usable as a key for sorted()
    """
    primary = []
    for match in _NATURAL_CHUNKS.finditer(strip_accents(value)):
        chunk = match.group()
        if match.lastgroup == "symbols":
            primary.append((0, tuple(_symbol_weight(char) for char in chunk)))
        elif match.lastgroup == "digits":
            primary.append((1, int(chunk)))
        else:
            primary.append((2, chunk.casefold()))
    accents = unicodedata.normalize("NFD", value.casefold())
    return tuple(primary), accents, value.swapcase()
