from __future__ import annotations

import random
import re
from typing import Optional

from .config import CODE_ALPHABET, CODE_LENGTH, NAME_MAX_LENGTH


_WORKSHOP_CODE_RE = re.compile(rf"^[A-Z0-9]{{{CODE_LENGTH}}}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def is_valid_workshop_code(code: str) -> bool:
    """Return True iff the upper-cased code is exactly 4 chars of A-Z0-9."""
    if not isinstance(code, str):
        return False
    return bool(_WORKSHOP_CODE_RE.match(code.upper()))


def normalize_workshop_code(code: str) -> str:
    """Validate and upper-case a workshop code.

    Codes end up in cookie names and backend URLs, so validate them strictly
    rather than trying to repair them.
    """
    if not is_valid_workshop_code(code):
        raise ValueError("Invalid workshop code")
    return code.upper()


def generate_workshop_code(rng: Optional[random.Random] = None) -> str:
    """Generate a random workshop code.

    Not cryptographically strong; the backend rejects collisions.
    """
    rng = rng or random
    return "".join(rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def normalize_participant_name(name: str) -> str:
    if not isinstance(name, str):
        raise ValueError("Name is required")
    name = name.strip()
    if not name:
        raise ValueError("Name is required")
    if len(name) > NAME_MAX_LENGTH:
        raise ValueError(f"Name must be less than {NAME_MAX_LENGTH} characters")
    return name


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Empty or missing email means 'no email'."""
    if email is None:
        return None
    email = email.strip()
    if not email:
        return None
    if not _EMAIL_RE.match(email):
        raise ValueError("Invalid email format")
    return email


def cookie_policy(is_production: bool) -> dict:
    """Attributes applied to every participant/organizer cookie."""
    return {"samesite": "strict", "secure": bool(is_production), "path": "/", "httponly": True}
