import re
from typing import Any, Optional, Tuple

from pydantic import AnyUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from sweetshop.errors import ValidationError

INT4_MAX = 2147483647
INT4_MIN = -2147483648

_DIGITS = re.compile(r"^[0-9]+$")
_url_adapter = TypeAdapter(AnyUrl)


def parse_id(raw: Any, message: str) -> int:
    """Parse a path id as a positive 32-bit integer, else raise ``message``."""
    text = str(raw).strip()
    if not _DIGITS.fullmatch(text):
        raise ValidationError(message)
    value = int(text)
    if value <= 0 or value > INT4_MAX:
        raise ValidationError(message)
    return value


def parse_pagination(page: Optional[str], limit: Optional[str],
                     default_limit: int, max_limit: int) -> Tuple[int, int]:
    page_number = _to_int(page if page is not None else "1")
    limit_number = _to_int(limit if limit is not None else str(default_limit))

    if page_number is None or page_number < 1 or page_number > INT4_MAX:
        raise ValidationError("Page must be a positive integer.")
    if limit_number is None or limit_number < 1 or limit_number > max_limit:
        raise ValidationError(f"Limit must be between 1 and {max_limit}.")
    return page_number, limit_number


def pagination_meta(page: int, limit: int, total: int, total_key: str) -> dict:
    total_pages = (total + limit - 1) // limit
    return {
        "currentPage": page,
        "totalPages": total_pages,
        total_key: total,
        "limit": limit,
        "hasNextPage": page < total_pages,
        "hasPrevPage": page > 1,
    }


def optional_int(raw: Optional[str]) -> Optional[int]:
    """Lenient query parsing: anything that is not an integer is ignored.

    Values are clamped to the INT4 range every stored number lives in.
    """
    if raw is None:
        return None
    value = _to_int(raw)
    if value is None:
        return None
    return min(max(value, INT4_MIN), INT4_MAX)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def is_int4(value: Any) -> bool:
    """An integer (or integral float) that fits a 32-bit INTEGER column."""
    return is_integer(value) and INT4_MIN <= value <= INT4_MAX


def is_blank(value: Any) -> bool:
    return not isinstance(value, str) or value.strip() == ""


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        _url_adapter.validate_python(value)
    except PydanticValidationError:
        return False
    return True


def _to_int(raw: str) -> Optional[int]:
    text = str(raw).strip()
    if text.startswith("-"):
        sign, text = -1, text[1:]
    else:
        sign = 1
    if not _DIGITS.fullmatch(text):
        return None
    return sign * int(text)


def escape_like(term: str) -> str:
    """Make ``term`` match literally inside a LIKE pattern escaped with ``\\``."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
