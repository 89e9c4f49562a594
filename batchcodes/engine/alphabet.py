"""Code alphabet and formatting helpers.

Codes are ``prefix + suffix`` where the suffix is drawn from an alphabet that
leaves out glyphs people confuse when reading codes aloud or off a sticker
(``I``, ``O``, ``0``, ``1``).
"""

from __future__ import annotations

import re
import secrets

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
# Sorts after every alphabet character and after the "-" separator.
HIGH_SENTINEL = "~"

_PREFIX_INVALID_CHARS = re.compile(r"[^A-Z0-9-]")
_CODE_CHARS = re.compile(r"^[A-Z0-9-]+$")


def random_suffix(length: int, *, alphabet: str = CODE_ALPHABET) -> str:
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def format_code(prefix: str, suffix: str) -> str:
    return f"{prefix}{suffix}"


def prefix_scan_bounds(prefix: str) -> tuple[str, str]:
    return prefix, f"{prefix}{HIGH_SENTINEL}"


def sanitize_prefix(raw_prefix: str) -> str:
    """Uppercase, drop characters outside ``[A-Z0-9-]`` and end with a dash."""
    sanitized = _PREFIX_INVALID_CHARS.sub("", raw_prefix.strip().upper())
    if sanitized and not sanitized.endswith("-"):
        sanitized = f"{sanitized}-"
    return sanitized


def calculate_check_digit(code: str) -> str:
    check_value = sum(ord(char) for char in code) % 36
    if check_value < 10:
        return str(check_value)
    return chr(ord("A") + check_value - 10)


def matches_scheme(code: str, *, prefix: str, code_length: int) -> bool:
    if not code.startswith(prefix):
        return False
    suffix = code[len(prefix) :]
    return len(suffix) == code_length and all(char in CODE_ALPHABET for char in suffix)


def validate_code_format(code: str, *, expected_prefix: str | None = None) -> tuple[bool, str]:
    if not code:
        return False, "Code cannot be empty"
    if expected_prefix and not code.startswith(expected_prefix):
        return False, f'Code must start with the prefix "{expected_prefix}"'
    if _CODE_CHARS.match(code) is None:
        return False, "Code can only contain uppercase letters, numbers, and hyphens"

    # A trailing single-character group is a check digit.
    parts = code.split("-")
    if len(parts) > 1 and len(parts[-1]) == 1:
        if calculate_check_digit(code[:-2]) != code[-1]:
            return False, "Invalid check digit"

    return True, "Code is valid"


def generate_sample_codes(
    *,
    prefix: str,
    code_length: int,
    count: int = 3,
    include_check_digit: bool = False,
) -> list[str]:
    samples: list[str] = []
    for _ in range(count):
        code = format_code(prefix, random_suffix(code_length))
        if include_check_digit:
            code = f"{code}-{calculate_check_digit(code)}"
        samples.append(code)
    return samples
