"""Input validation utilities."""

import re

from rustcheck.exceptions import InvalidDependencyError

# Crate names: ASCII letter first, then alphanumerics, underscores, hyphens
CRATE_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")

# Version requirements: "1.0", "^0.8", ">=1.2, <2", "=1.0.0-beta.1+build", "*"
VERSION_REQ_RE = re.compile(r"^[0-9A-Za-z.*^~=<>, +-]+$")

MAX_CRATE_NAME_LENGTH = 64
MAX_VERSION_LENGTH = 64


def validate_crate_name(value: str, max_length: int = MAX_CRATE_NAME_LENGTH) -> str:
    """Validate a crate name before it is written into a manifest.

    Args:
        value: The crate name to validate
        max_length: Maximum allowed length

    Returns:
        The validated name

    Raises:
        InvalidDependencyError: If the name is invalid
    """
    if not value:
        raise InvalidDependencyError("Crate name cannot be empty")

    if len(value) > max_length:
        raise InvalidDependencyError(
            f"Crate name exceeds maximum length of {max_length}"
        )

    if not CRATE_NAME_RE.match(value):
        raise InvalidDependencyError(
            f"Invalid crate name {value!r}: must start with a letter and contain "
            "only alphanumeric characters, underscores, and hyphens"
        )

    return value


def validate_version_req(value: str, max_length: int = MAX_VERSION_LENGTH) -> str:
    """Validate a version requirement string.

    Args:
        value: The version requirement to validate
        max_length: Maximum allowed length

    Returns:
        The version requirement with surrounding whitespace removed

    Raises:
        InvalidDependencyError: If the requirement is invalid
    """
    value = value.strip() if value else value
    if not value:
        raise InvalidDependencyError("Version requirement cannot be empty")

    if len(value) > max_length:
        raise InvalidDependencyError(
            f"Version requirement exceeds maximum length of {max_length}"
        )

    if not VERSION_REQ_RE.match(value):
        raise InvalidDependencyError(
            f"Invalid version requirement {value!r}: contains forbidden characters"
        )

    return value
