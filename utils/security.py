"""
security helpers:
- Password composition policy (length and required character classes)
- Argon2 password hashing via argon2-cffi
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHash, VerificationError

from utils.errors import Message, ValidationErrors, new_validation_error

NUMBERS = "0123456789"
SYMBOLS = " !\"\\#$%&'()*+,-./:;<=>?@[]^_`|~"
LOWERCASE_LETTERS = "abcdefghijklmnopqrstuvwxyz"
UPPERCASE_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"

MSG_INVALID_USER = Message("model.user.validate.app_error", "invalid user data")
MSG_PWD_LENGTH = Message("model.user.validate.password_length.app_error", "invalid password length")
MSG_PWD_UPPER = Message("model.user.validate.password_uppercase.app_error", "uppercase letter required")
MSG_PWD_LOWER = Message("model.user.validate.password_lowercase.app_error", "lowercase letter required")
MSG_PWD_NUMBER = Message("model.user.validate.password_numbers.app_error", "number required")
MSG_PWD_SYMBOL = Message("model.user.validate.password_symbols.app_error", "symbol required")

# Fixed work factor; parameters are encoded in each hash
ph = PasswordHasher(time_cost=3, memory_cost=64 * 1024, parallelism=4, type=Type.ID)


def _contains_any(value: str, chars: str) -> bool:
    return any(ch in chars for ch in value)


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 5
    max_length: int = 60
    require_lower: bool = True
    require_upper: bool = True
    require_digit: bool = True
    require_symbol: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "PasswordPolicy":
        return cls(
            min_length=int(config.get("PASSWORD_MIN_LENGTH", 5)),
            max_length=int(config.get("PASSWORD_MAX_LENGTH", 60)),
            require_lower=bool(config.get("PASSWORD_LOWERCASE", True)),
            require_upper=bool(config.get("PASSWORD_UPPERCASE", True)),
            require_digit=bool(config.get("PASSWORD_NUMBER", True)),
            require_symbol=bool(config.get("PASSWORD_SYMBOL", True)),
        )

    def check(self, password: str) -> ValidationErrors:
        """Return every criterion the password fails (empty when valid)."""
        errs = ValidationErrors()
        password = password or ""
        if len(password) < self.min_length or len(password) > self.max_length:
            errs.add("password", MSG_PWD_LENGTH)
        if self.require_lower and not _contains_any(password, LOWERCASE_LETTERS):
            errs.add("password", MSG_PWD_LOWER)
        if self.require_upper and not _contains_any(password, UPPERCASE_LETTERS):
            errs.add("password", MSG_PWD_UPPER)
        if self.require_digit and not _contains_any(password, NUMBERS):
            errs.add("password", MSG_PWD_NUMBER)
        if self.require_symbol and not _contains_any(password, SYMBOLS):
            errs.add("password", MSG_PWD_SYMBOL)
        return errs

    def validate(self, password: str) -> None:
        """
        Raise a single aggregate validation error listing all unmet criteria.
        Returns None when the password satisfies the policy.
        """
        errs = self.check(password)
        if not errs.is_zero():
            raise new_validation_error("User", MSG_INVALID_USER, errs)
        return None


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def compare_password(password_hash: str, password: str) -> bool:
    """ Verify a plaintext password against a stored argon2 hash
    """
    if not password or not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHash):
        return False
