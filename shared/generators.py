"""
Random code and id generators — pure, side-effect-free functions.

All generators use cryptographically secure sources (``secrets`` / ``uuid4``).
"""

from __future__ import annotations

import secrets
import string
import uuid


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Args:
        length: Number of digits (default 6). Leading zeros are kept.

    Returns:
        String of random decimal digits.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def new_id() -> uuid.UUID:
    return uuid.uuid4()


def image_filename(owner_id: uuid.UUID, unix_time: int) -> str:
    """Public name for an uploaded image: ``<owner>-<unix seconds>``."""
    return f"{owner_id}-{unix_time}"
