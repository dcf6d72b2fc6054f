"""Utility functions."""

from rustcheck.utils.validation import validate_crate_name, validate_version_req

__all__ = ["validate_crate_name", "validate_version_req"]
