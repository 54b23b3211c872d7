"""Built-in validators for common field types."""

from __future__ import annotations

import re
from typing import Any

# Registry of validator functions: name -> callable(value, **params) -> str | None
# Returns an error message string on failure, None on success.
VALIDATORS: dict[str, Any] = {}

PHONE_PATTERN = re.compile(r"\+1\d{10}")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")

MIN_OPTIONS = 2
MAX_OPTIONS = 10
MAX_OPTION_LENGTH = 100
MAX_SMS_LENGTH = 1600


def register(name: str):
    """Decorator to register a validator function."""
    def decorator(fn):
        VALIDATORS[name] = fn
        return fn
    return decorator


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@register("required")
def validate_required(value: Any, **_kwargs: Any) -> str | None:
    if _blank(value):
        return "This field is required."
    if isinstance(value, (list, dict)) and not value:
        return "This field is required."
    return None


@register("regex")
def validate_regex(value: Any, pattern: str = "", **_kwargs: Any) -> str | None:
    if value is None or not isinstance(value, str):
        return None
    if not re.fullmatch(pattern, value):
        return f"Value does not match required pattern: {pattern}"
    return None


@register("email")
def validate_email(value: Any, **_kwargs: Any) -> str | None:
    if _blank(value) or not isinstance(value, str):
        return None
    if not EMAIL_PATTERN.fullmatch(value.strip()):
        return "Please enter a valid email address."
    return None


@register("phone")
def validate_phone(value: Any, **_kwargs: Any) -> str | None:
    """US numbers in E.164 form: ``+1`` followed by exactly ten digits."""
    if _blank(value):
        return None
    if not isinstance(value, str) or not PHONE_PATTERN.fullmatch(value):
        return "Please enter a valid phone number."
    return None


@register("password")
def validate_password(value: Any, min_length: int | str = 8, **_kwargs: Any) -> str | None:
    text = value if isinstance(value, str) else ""
    if len(text) < int(min_length):
        return f"Password must be at least {min_length} characters."
    if not re.search(r"[a-z]", text):
        return "Password must contain a lowercase letter."
    if not re.search(r"[A-Z]", text):
        return "Password must contain an uppercase letter."
    if not re.search(r"\d", text):
        return "Password must contain a number."
    return None


@register("matches")
def validate_matches(
    value: Any, field: str = "", data: dict[str, Any] | None = None, **_kwargs: Any
) -> str | None:
    other = (data or {}).get(field)
    if value != other:
        return "Values do not match."
    return None


@register("checked")
def validate_checked(value: Any, **_kwargs: Any) -> str | None:
    if value is not True:
        return "You must agree to continue."
    return None


@register("max_length")
def validate_max_length(value: Any, limit: int | str = 0, **_kwargs: Any) -> str | None:
    if not isinstance(value, str):
        return None
    if len(value) > int(limit):
        return f"Must be at most {limit} characters."
    return None


@register("numeric")
def validate_numeric(
    value: Any, min_val: float | None = None, max_val: float | None = None, **_kwargs: Any
) -> str | None:
    if _blank(value):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return "Please enter a valid number."
    if min_val is not None and num < float(min_val):
        return f"Value must be at least {min_val}."
    if max_val is not None and num > float(max_val):
        return f"Value must be at most {max_val}."
    return None


@register("datetime")
def validate_datetime(value: Any, **_kwargs: Any) -> str | None:
    if _blank(value):
        return None
    if not isinstance(value, str) or not re.fullmatch(
        r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+\-]\d{2}:\d{2})?", value.strip()
    ):
        return "Please enter a valid date and time."
    return None


@register("options")
def validate_options(value: Any, **_kwargs: Any) -> str | None:
    """Choice list for a vote: 2-10 distinct, non-blank, short entries."""
    options = value if isinstance(value, list) else []
    if len(options) < MIN_OPTIONS:
        return f"At least {MIN_OPTIONS} options are required"
    if len(options) > MAX_OPTIONS:
        return f"Maximum {MAX_OPTIONS} options allowed"
    if any(not isinstance(o, str) or not o.strip() for o in options):
        return "All options must be filled in"
    normalized = [o.strip().lower() for o in options]
    if len(set(normalized)) != len(normalized):
        return "All options must be unique"
    if any(len(o.strip()) > MAX_OPTION_LENGTH for o in options):
        return f"Options cannot exceed {MAX_OPTION_LENGTH} characters"
    return None


@register("min_items")
def validate_min_items(value: Any, count: int | str = 1, **_kwargs: Any) -> str | None:
    items = value if isinstance(value, list) else []
    if len(items) < int(count):
        return f"Select at least {count}."
    return None


@register("sms_body")
def validate_sms_body(value: Any, **_kwargs: Any) -> str | None:
    if isinstance(value, str) and len(value) > MAX_SMS_LENGTH:
        return f"Message body cannot exceed {MAX_SMS_LENGTH} characters"
    return None


@register("questions")
def validate_questions(value: Any, **_kwargs: Any) -> str | None:
    """Data-collection questions: at least one, each with text and a mapped field."""
    questions = value if isinstance(value, list) else []
    if not questions:
        return "Add at least one question"
    for index, question in enumerate(questions, start=1):
        if not isinstance(question, dict):
            return f"Question {index} is malformed"
        if _blank(question.get("question_text")):
            return f"Question {index} needs text"
        if _blank(question.get("field_mapping")):
            return f"Question {index} must be mapped to a member field"
    return None


@register("mapping")
def validate_mapping(value: Any, **_kwargs: Any) -> str | None:
    """Compound fields (an address, a staged family member) must be objects."""
    if value is None or isinstance(value, dict):
        return None
    return "This answer is malformed."


@register("list_of_mappings")
def validate_list_of_mappings(value: Any, **_kwargs: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, dict) for item in value):
        return "This list is malformed."
    return None
