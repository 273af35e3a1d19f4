"""
License key generation

Keys look like ``PRO-7KQ2-M9XA-0CDE-ZL4P``: a fixed prefix followed by four
groups of four uppercase alphanumerics. A key is bound to its domain by the
stored license record, never by derivation, so verification only compares
stored values.
"""
import re
import secrets
import string
from typing import Optional

from config import LICENSE_KEY_PREFIX

KEY_ALPHABET = string.ascii_uppercase + string.digits
GROUP_COUNT = 4
GROUP_LENGTH = 4

_KEY_PATTERN = re.compile(
    r"^[A-Z]+(-[A-Z0-9]{%d}){%d}$" % (GROUP_LENGTH, GROUP_COUNT)
)


def _group() -> str:
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(GROUP_LENGTH))


def generate_license_key(domain: Optional[str] = None, prefix: str = LICENSE_KEY_PREFIX) -> str:
    """Generate a new human-readable license key for ``domain``."""
    groups = [_group() for _ in range(GROUP_COUNT)]
    return "-".join([prefix] + groups)


def is_license_key(value: str, prefix: str = LICENSE_KEY_PREFIX) -> bool:
    if not value or not value.startswith(prefix + "-"):
        return False
    return bool(_KEY_PATTERN.match(value))
