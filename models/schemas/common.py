import re

from marshmallow import ValidationError

USERNAME_MIN_LENGTH = 1
USERNAME_MAX_LENGTH = 64
LOCALE_MAX_LENGTH = 5
RESTRICTED_USERNAMES = {"app", "api", "admin", "system"}

_valid_username_chars = re.compile(r"^[a-zA-Z0-9.\-_]+$")
_locale_re = re.compile(r"^[a-z]{2}(-[A-Z]{2})?$")
_slug_strip = re.compile(r"[^a-z0-9]+")


def normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


def validate_username(value: str) -> None:
    if not (USERNAME_MIN_LENGTH <= len(value) <= USERNAME_MAX_LENGTH):
        raise ValidationError("invalid username")
    if not _valid_username_chars.match(value):
        raise ValidationError("invalid username")
    if value in RESTRICTED_USERNAMES:
        raise ValidationError("invalid username")


def validate_locale(value: str) -> None:
    if value and (len(value) > LOCALE_MAX_LENGTH or not _locale_re.match(value)):
        raise ValidationError("invalid locale")


def validate_gender(value) -> None:
    if value is not None and value not in ("m", "f"):
        raise ValidationError("invalid gender")


def slugify(value: str) -> str:
    """'Men's Shoes' -> 'men-s-shoes'"""
    return _slug_strip.sub("-", (value or "").lower()).strip("-")
