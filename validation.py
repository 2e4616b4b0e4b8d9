"""
Validation of interactively entered names.

The functions here never prompt or print; they return a ValidationResult
that the orchestrator acts on.
"""

import re
from collections import namedtuple

DEFAULT_CA_NAME = "localhost"
MAX_NAME_LENGTH = 64  # upper bound for X.520 commonName

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class ValidationResult(namedtuple("ValidationResult", ["value", "reason"])):
    """Either ok(value) or err(reason)."""

    __slots__ = ()

    @classmethod
    def ok(cls, value):
        return cls(value, None)

    @classmethod
    def err(cls, reason):
        return cls(None, reason)

    @property
    def is_ok(self):
        return self.reason is None


def check_name(name):
    """Apply the file-name safe policy to an already trimmed name."""
    if not name:
        return ValidationResult.err("Name cannot be empty.")
    if len(name) > MAX_NAME_LENGTH:
        return ValidationResult.err(f"Name must be at most {MAX_NAME_LENGTH} characters.")
    if not _NAME_PATTERN.match(name):
        return ValidationResult.err(
            "Name may only contain letters, digits, '.', '-' and '_' "
            "and must start with a letter or digit.")
    if ".." in name:
        return ValidationResult.err("Name cannot contain '..'.")
    return ValidationResult.ok(name)


def validate_ca_name(raw):
    """Blank input falls back to localhost."""
    name = (raw or "").strip() or DEFAULT_CA_NAME
    return check_name(name)


def validate_entity_cn(raw):
    return check_name((raw or "").strip())


def is_affirmative(answer, allow_upper=True):
    """True for 'y' (and 'Y' when allow_upper)."""
    answer = (answer or "").strip()
    if allow_upper:
        return answer in ("y", "Y")
    return answer == "y"
