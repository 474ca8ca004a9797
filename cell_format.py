"""
Rendering of worksheet cells to the text a spreadsheet application displays.

Only the parts of the Excel number-format language that matter for uploaded
business data are supported: date/time codes, fractions, fixed decimals,
percentages, thousands separators and literal text. Anything else falls back
to the General rendering of the value.
"""
import re
from datetime import date, datetime, time
from fractions import Fraction
from typing import List, Tuple

from models import SheetCell

MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# Day zero of the 1900 date system, used for time-only values
_EXCEL_EPOCH = date(1899, 12, 31)

_DATE_TOKEN = re.compile(
    r'"[^"]*"|\\.|\[[^\]]*\]|AM/PM|A/P|y{3,4}|y{1,2}|m{1,5}|d{1,4}|h{1,2}|s{1,2}|\.0+|.',
    re.IGNORECASE,
)
_NUMBER_TOKEN = re.compile(r'"[^"]*"|\\.|\[[^\]]*\]|_.|\*.|[0#?,.%]+|.')
_FRACTION = re.compile(r"^(?P<whole>[#0,]+\s+)?(?P<num>[?#0]+)\s*/\s*(?P<den>[?#0-9]+)$")
_DATE_CODES = re.compile(r"[ymdhs]", re.IGNORECASE)


def display_text(cell: SheetCell) -> str:
    """
    Return the text a spreadsheet application would display for a cell.

    Args:
        cell: Decoded cell

    Returns:
        Formatted display text
    """
    if cell.value is None:
        return ""
    if cell.kind == "b":
        return "TRUE" if cell.value else "FALSE"
    if cell.kind == "d":
        return format_date(cell.value, cell.number_format)
    if cell.kind == "n":
        return format_number(cell.value, cell.number_format)
    return str(cell.value)


def first_section(number_format: str) -> str:
    """Return the positive-value section of a number format."""
    sections = []
    current = []
    in_quotes = False
    escaped = False
    for char in number_format or "":
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\":
            escaped = True
        elif char == '"':
            in_quotes = not in_quotes
        elif char == ";" and not in_quotes:
            sections.append("".join(current))
            current = []
            continue
        current.append(char)
    sections.append("".join(current))
    return sections[0]


def _strip_literals(section: str) -> str:
    return re.sub(r'"[^"]*"|\\.|\[[^\]]*\]', "", section)


def is_date_format(number_format: str) -> bool:
    """True when the format contains date or time codes."""
    section = _strip_literals(first_section(number_format))
    if section.lower() in ("", "general", "@"):
        return False
    return bool(_DATE_CODES.search(section.replace("AM/PM", "").replace("A/P", "")))


def general_number(value) -> str:
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    text = f"{value:.10g}"
    if "e" in text:
        return text.upper()
    return text


def format_number(value, number_format: str) -> str:
    """
    Render a number through its format code.

    Args:
        value: int or float
        number_format: Excel number-format code

    Returns:
        Display text
    """
    section = first_section(number_format)
    plain = _strip_literals(section).strip()
    if plain.lower() in ("", "general", "@"):
        return _with_literals(section, general_number(value))

    fraction = _FRACTION.match(plain)
    if fraction:
        return format_fraction(value, fraction.group("whole"), fraction.group("den"))

    scientific = re.match(r"^[0#?]*\.?([0#?]*)E[+-][0#?]+$", plain, re.IGNORECASE)
    if scientific:
        return f"{value:.{len(scientific.group(1))}E}"

    rendered = []
    number_done = False
    for token in _NUMBER_TOKEN.findall(section):
        if token.startswith('"'):
            rendered.append(token[1:-1])
        elif token.startswith("\\"):
            rendered.append(token[1:])
        elif token.startswith("["):
            continue
        elif re.fullmatch(r"[0#?,.%]+", token) and re.search(r"[0#?]", token):
            if not number_done:
                rendered.append(_format_placeholders(value, token, "%" in section))
                number_done = True
        elif token.startswith("_"):
            rendered.append(" ")
        elif token.startswith("*") or token == "%":
            continue
        else:
            rendered.append(token)
    if not number_done:
        return general_number(value)
    return "".join(rendered)


def _format_placeholders(value, placeholders: str, percent: bool) -> str:
    if percent:
        value = value * 100
    placeholders = placeholders.replace("%", "")
    integer_part, _, decimal_part = placeholders.partition(".")
    decimals = len(re.findall(r"[0#?]", decimal_part))
    thousands = "," in integer_part
    text = f"{value:,.{decimals}f}" if thousands else f"{value:.{decimals}f}"
    if percent:
        text += "%"
    return text


def _with_literals(section: str, number_text: str) -> str:
    """Keep quoted literals around a General number, e.g. 0 "km/h"."""
    literals = re.findall(r'"([^"]*)"', section)
    if not literals:
        return number_text
    before, _, after = section.partition("General")
    if not after and not before.strip('"'):
        return number_text
    prefix = "".join(re.findall(r'"([^"]*)"', before))
    suffix = "".join(re.findall(r'"([^"]*)"', after))
    return f"{prefix}{number_text}{suffix}"


def format_fraction(value, whole: str, denominator: str) -> str:
    """
    Render a number as a fraction, e.g. "1 1/2" for 1.5 with "# ?/?".

    Args:
        value: Number to render
        whole: Whole-number placeholder group, or None for improper fractions
        denominator: "?"-style digit count or a fixed denominator
    """
    sign = "-" if value < 0 else ""
    value = abs(value)
    integer = int(value) if whole else 0
    remainder = value - integer

    if denominator.isdigit():
        den = int(denominator)
        num = round(remainder * den)
    else:
        approx = Fraction(remainder).limit_denominator(10 ** len(denominator) - 1)
        num, den = approx.numerator, approx.denominator

    if whole and num == den:
        integer += 1
        num = 0
    if whole:
        if num == 0:
            return f"{sign}{integer}"
        if integer == 0:
            return f"{sign}{num}/{den}"
        return f"{sign}{integer} {num}/{den}"
    return f"{sign}{num}/{den}"


def _tokenize_date(section: str) -> List[Tuple[str, str]]:
    """Split a date format into (kind, token) pairs; kind is "code" or "text"."""
    tokens = []
    for token in _DATE_TOKEN.findall(section):
        lower = token.lower()
        if token.startswith('"'):
            tokens.append(("text", token[1:-1]))
        elif token.startswith("\\"):
            tokens.append(("text", token[1:]))
        elif token.startswith("["):
            inner = lower[1:-1]
            if inner and set(inner) <= set("hms"):
                tokens.append(("code", inner[0] * min(len(inner), 2)))
        elif lower in ("am/pm", "a/p") or lower[0] in "ymdhs" or lower.startswith(".0"):
            tokens.append(("code", lower))
        else:
            tokens.append(("text", token))
    return tokens


def _resolve_minutes(tokens: List[Tuple[str, str]]) -> List[Tuple[str, str]]:
    """An m/mm code right after hours or right before seconds means minutes."""
    codes = [i for i, (kind, _) in enumerate(tokens) if kind == "code"]
    resolved = list(tokens)
    for position, index in enumerate(codes):
        token = tokens[index][1]
        if token not in ("m", "mm"):
            continue
        previous = tokens[codes[position - 1]][1] if position > 0 else ""
        following = tokens[codes[position + 1]][1] if position + 1 < len(codes) else ""
        if previous.startswith("h") or following.startswith("s"):
            resolved[index] = ("code", "n" * len(token))
    return resolved


def format_date(value, number_format: str) -> str:
    """
    Render a date, datetime or time through its format code.

    Args:
        value: datetime, date or time
        number_format: Excel number-format code

    Returns:
        Display text; ISO form when the format has no date codes
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, time):
        moment = datetime.combine(_EXCEL_EPOCH, value)
    else:
        return str(value)

    section = first_section(number_format)
    if not is_date_format(section):
        return date_string(value)

    tokens = _resolve_minutes(_tokenize_date(section))
    twelve_hour = any(kind == "code" and token in ("am/pm", "a/p") for kind, token in tokens)
    hour = moment.hour
    if twelve_hour:
        hour = hour % 12 or 12

    parts = []
    for kind, token in tokens:
        if kind == "text":
            parts.append(token)
        elif token in ("yyyy", "yyy"):
            parts.append(f"{moment.year:04d}")
        elif token in ("yy", "y"):
            parts.append(f"{moment.year % 100:02d}")
        elif token == "mmmmm":
            parts.append(MONTHS[moment.month - 1][0])
        elif token == "mmmm":
            parts.append(MONTHS[moment.month - 1])
        elif token == "mmm":
            parts.append(MONTHS[moment.month - 1][:3])
        elif token == "mm":
            parts.append(f"{moment.month:02d}")
        elif token == "m":
            parts.append(str(moment.month))
        elif token == "dddd":
            parts.append(WEEKDAYS[moment.weekday()])
        elif token == "ddd":
            parts.append(WEEKDAYS[moment.weekday()][:3])
        elif token == "dd":
            parts.append(f"{moment.day:02d}")
        elif token == "d":
            parts.append(str(moment.day))
        elif token == "hh":
            parts.append(f"{hour:02d}")
        elif token == "h":
            parts.append(str(hour))
        elif token == "nn":
            parts.append(f"{moment.minute:02d}")
        elif token == "n":
            parts.append(str(moment.minute))
        elif token == "ss":
            parts.append(f"{moment.second:02d}")
        elif token == "s":
            parts.append(str(moment.second))
        elif token.startswith(".0"):
            digits = len(token) - 1
            parts.append("." + f"{moment.microsecond:06d}"[:digits])
        elif token == "am/pm":
            parts.append("AM" if moment.hour < 12 else "PM")
        elif token == "a/p":
            parts.append("A" if moment.hour < 12 else "P")
    return "".join(parts)


def date_string(value) -> str:
    """
    String form of a date value: ISO date for midnight datetimes, ISO
    date and time otherwise.
    """
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)
