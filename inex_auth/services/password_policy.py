"""
Password strength rules, configured from settings.
"""
import re
from dataclasses import dataclass, field
from typing import List

from inex_auth.config import Settings


@dataclass
class PasswordValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class PasswordPolicy:
    min_length: int = 8
    max_length: int = 72
    require_lowercase: bool = True
    require_uppercase: bool = True
    require_number: bool = True
    require_special: bool = True
    special_chars: str = "@$!%*?&"

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordPolicy":
        return cls(
            min_length=settings.PASSWORD_MIN_LENGTH,
            max_length=settings.PASSWORD_MAX_LENGTH,
            require_lowercase=settings.PASSWORD_REQUIRE_LOWERCASE,
            require_uppercase=settings.PASSWORD_REQUIRE_UPPERCASE,
            require_number=settings.PASSWORD_REQUIRE_NUMBER,
            require_special=settings.PASSWORD_REQUIRE_SPECIAL,
            special_chars=settings.PASSWORD_SPECIAL_CHARS,
        )

    def validate(self, password: str) -> PasswordValidationResult:
        errors = []

        if not password or len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters long")
        # Byte length: bcrypt ignores everything past 72 bytes
        if password and len(password.encode("utf-8")) > self.max_length:
            errors.append(f"Password must be at most {self.max_length} bytes long")
        if self.require_lowercase and not re.search(r"[a-z]", password or ""):
            errors.append("Password must contain at least one lowercase letter")
        if self.require_uppercase and not re.search(r"[A-Z]", password or ""):
            errors.append("Password must contain at least one uppercase letter")
        if self.require_number and not re.search(r"\d", password or ""):
            errors.append("Password must contain at least one number")
        if self.require_special and self.special_chars:
            pattern = "[" + re.escape(self.special_chars) + "]"
            if not re.search(pattern, password or ""):
                errors.append(
                    f"Password must contain at least one special character ({self.special_chars})"
                )

        return PasswordValidationResult(is_valid=not errors, errors=errors)
