"""
Rule predicates - the field-level building blocks of validation.

Every predicate takes a submitted value (and, where the rule needs one, the
configured rule parameter or a second value) and returns a plain boolean.
Predicates never raise: a value of the wrong type or a malformed parameter
simply yields False.

Uniqueness rules need a record store and an event dispatcher, so they are
evaluated by the ValidationEngine rather than here.

## Rule vocabulary

Configuration refers to rules by name. The canonical names are listed in
RULE_NAMES; RULE_ALIASES maps older configuration keys onto them:

    intOnly            -> int
    lettersOnly        -> letters
    unicodeLettersOnly -> unicodeLetters
    uniqueInPage       -> uniquePage
    uniqueInDb         -> uniqueDb
"""

import calendar
import numbers
import re
from datetime import date, datetime, time
from typing import Any, Callable, Dict, List, Optional

from email_validator import EmailNotValidError, validate_email as _check_email

RULE_NAMES = (
    "required",
    "email",
    "min",
    "max",
    "int",
    "letters",
    "unicodeLetters",
    "uniquePage",
    "uniqueDb",
    "mustInclude",
    "mustNotInclude",
    "inList",
    "sameAs",
    "date",
)

RULE_ALIASES = {
    "intOnly": "int",
    "lettersOnly": "letters",
    "unicodeLettersOnly": "unicodeLetters",
    "uniqueInPage": "uniquePage",
    "uniqueInDb": "uniqueDb",
}

# Rules switched on by a "1" flag rather than carrying a real parameter
FLAG_RULES = frozenset(
    ["required", "email", "int", "letters", "unicodeLetters", "uniquePage", "uniqueDb"]
)

_NUMERIC_STRING = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_LETTERS = re.compile(r"[a-zA-Z_-]*")

# Format token -> (pattern, index of day group, index of month group)
DATE_FORMATS = {
    "d.m.Y": (re.compile(r"([0-9]{2})\.([0-9]{2})\.([0-9]{4})"), 1, 2),
    "m/d/Y": (re.compile(r"([0-9]{2})/([0-9]{2})/([0-9]{4})"), 2, 1),
}


def canonical_rule_name(name: str) -> Optional[str]:
    """Return the canonical rule name for a configured key, or None if unknown."""
    name = RULE_ALIASES.get(name, name)
    return name if name in RULE_NAMES else None


def error_key(rule_name: str) -> str:
    """Message key for a failed rule, e.g. 'uniqueDb' -> 'validationErrorUniqueDb'."""
    return "validationError" + rule_name[:1].upper() + rule_name[1:]


def is_flag_enabled(param: Any) -> bool:
    """Whether a flag rule parameter switches the rule on."""
    if isinstance(param, bool):
        return param
    return str(param).strip() == "1"


def is_numeric(value: Any) -> bool:
    """Numeric check: numbers and numeric strings, booleans excluded."""
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Number):
        return True
    if isinstance(value, str):
        return _NUMERIC_STRING.match(value) is not None
    return False


def is_empty(value: Any) -> bool:
    """Empty in the sense used to skip optional rules: None, "" or empty collection."""
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def trim_explode(value: Any, delimiter: str = ",") -> List[str]:
    """Split a delimited string, trimming items and dropping empty ones."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        parts = [str(v) for v in value]
    else:
        parts = str(value).split(delimiter)
    return [p.strip() for p in parts if p.strip() != ""]


def _to_number(param: Any) -> Optional[float]:
    if not is_numeric(param):
        return None
    return float(param)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def validate_required(value: Any) -> bool:
    """
    Validate that a value is present.

    Numbers (including 0) and numeric strings count as present, as do
    date/time values. Strings and collections must be non-empty.
    """
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_numeric(value):
        return True
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (date, datetime, time)):
        return True
    try:
        return len(value) > 0
    except TypeError:
        return False


def validate_email(value: Any) -> bool:
    """Validate email address syntax (no DNS lookup; intranet hosts allowed)."""
    if not isinstance(value, str):
        return False
    try:
        _check_email(value, check_deliverability=False, globally_deliverable=False)
    except EmailNotValidError:
        return False
    return True


def validate_min(value: Any, validation_setting: Any) -> bool:
    """Validate minimum number of characters."""
    limit = _to_number(validation_setting)
    if limit is None or value is None:
        return False
    return len(str(value)) >= limit


def validate_max(value: Any, validation_setting: Any) -> bool:
    """Validate maximum number of characters."""
    limit = _to_number(validation_setting)
    if limit is None or value is None:
        return False
    return len(str(value)) <= limit


def validate_int(value: Any) -> bool:
    return is_numeric(value)


def validate_letters(value: Any) -> bool:
    """Letters a-z, A-Z, hyphen and underscore only."""
    if not isinstance(value, str):
        return False
    return _LETTERS.fullmatch(value) is not None


def validate_unicode_letters(value: Any) -> bool:
    """Any Unicode letter, hyphen and underscore; at least one character."""
    if not isinstance(value, str) or value == "":
        return False
    return all(ch.isalpha() or ch in "-_" for ch in value)


# Character classes for mustInclude / mustNotInclude


def string_contains_number(value: str) -> bool:
    return any("0" <= ch <= "9" for ch in value)


def string_contains_letter(value: str) -> bool:
    return any(("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch in "-_" for ch in value)


def string_contains_uppercase(value: str) -> bool:
    return any("A" <= ch <= "Z" for ch in value)


def string_contains_special_character(value: str) -> bool:
    return any(
        not (("a" <= ch <= "z") or ("A" <= ch <= "Z") or ("0" <= ch <= "9"))
        for ch in value
    )


def string_contains_space_character(value: str) -> bool:
    return " " in value


CHARACTER_CLASSES: Dict[str, Callable[[str], bool]] = {
    "number": string_contains_number,
    "letter": string_contains_letter,
    "uppercase": string_contains_uppercase,
    "special": string_contains_special_character,
    "space": string_contains_space_character,
}


def validate_must_include(value: Any, validation_setting_list: Any) -> bool:
    """Value contains at least one character of every listed class."""
    if not isinstance(value, str):
        return False
    for class_name in trim_explode(validation_setting_list):
        check = CHARACTER_CLASSES.get(class_name)
        if check is not None and not check(value):
            return False
    return True


def validate_must_not_include(value: Any, validation_setting_list: Any) -> bool:
    """Value contains no character of any listed class."""
    if not isinstance(value, str):
        return False
    for class_name in trim_explode(validation_setting_list):
        check = CHARACTER_CLASSES.get(class_name)
        if check is not None and check(value):
            return False
    return True


def validate_in_list(value: Any, validation_setting_list: Any) -> bool:
    """Every item of the (comma separated) value appears in the allow-list."""
    allowed = set(trim_explode(validation_setting_list))
    return not (set(trim_explode(value)) - allowed)


def validate_same_as(value: Any, value2: Any) -> bool:
    if type(value) is not type(value2):
        return False
    return value == value2


def validate_date(value: Any, validation_setting: Any) -> bool:
    """Validate date string against a format token ('d.m.Y' or 'm/d/Y')."""
    if not isinstance(validation_setting, str) or not isinstance(value, str):
        return False
    date_format = DATE_FORMATS.get(validation_setting)
    if date_format is None:
        return False
    pattern, day_group, month_group = date_format
    match = pattern.fullmatch(value)
    if not match:
        return False
    day = int(match.group(day_group))
    month = int(match.group(month_group))
    year = int(match.group(3))
    return check_date(month, day, year)


def check_date(month: int, day: int, year: int) -> bool:
    """Gregorian calendar check for the given month, day and year."""
    if not 1 <= year <= 32767 or not 1 <= month <= 12:
        return False
    days_in_month = calendar.mdays[month] + (month == 2 and calendar.isleap(year))
    return 1 <= day <= days_in_month


# Predicates taking (value, param); uniqueness and sameAs are handled by the engine
PARAMETER_RULES: Dict[str, Callable[[Any, Any], bool]] = {
    "min": validate_min,
    "max": validate_max,
    "mustInclude": validate_must_include,
    "mustNotInclude": validate_must_not_include,
    "inList": validate_in_list,
    "date": validate_date,
}

# Predicates taking only the value, switched on by a flag
FLAG_PREDICATES: Dict[str, Callable[[Any], bool]] = {
    "required": validate_required,
    "email": validate_email,
    "int": validate_int,
    "letters": validate_letters,
    "unicodeLetters": validate_unicode_letters,
}
