import re
from typing import Optional, Tuple

from .errors import ValidationError

COMMAND_PATTERN = re.compile(r"^presenter([1-9])@(.+)$", re.IGNORECASE)
KEYWORD_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-_.]+$")
MAX_KEYWORD_LENGTH = 50


def parse_command(text: str) -> Optional[Tuple[int, str]]:
    """'presenter3@Real Madrid' -> (3, 'Real Madrid'); None when it does not match."""
    match = COMMAND_PATTERN.match((text or "").strip())
    if not match:
        return None
    return int(match.group(1)), match.group(2).strip()


def validate_request(presenter_id: int, keyword: str) -> Tuple[int, str]:
    if not isinstance(presenter_id, int) or isinstance(presenter_id, bool) or not 1 <= presenter_id <= 9:
        raise ValidationError("Presenter must be a number from 1 to 9")
    keyword = (keyword or "").strip()
    if not keyword:
        raise ValidationError("Keyword cannot be empty")
    if len(keyword) > MAX_KEYWORD_LENGTH:
        raise ValidationError(f"Keyword is too long (max {MAX_KEYWORD_LENGTH} characters)")
    if not KEYWORD_PATTERN.match(keyword):
        raise ValidationError("Keyword may only contain letters, digits, spaces, '-', '_' and '.'")
    return presenter_id, keyword
