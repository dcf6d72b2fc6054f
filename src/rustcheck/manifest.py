"""Cargo.toml generation."""

import json
from collections.abc import Iterable

from rustcheck.config import ManifestConfig
from rustcheck.models import Dependency
from rustcheck.utils.validation import validate_crate_name, validate_version_req

MANIFEST_NAME = "Cargo.toml"


def toml_string(value: str) -> str:
    """Render a TOML basic string.

    JSON string escapes are a subset of TOML basic-string escapes.
    """
    return json.dumps(value, ensure_ascii=False)


def render_manifest(
    dependencies: Iterable[Dependency] = (),
    settings: ManifestConfig | None = None,
) -> str:
    """Render the manifest for a checked unit.

    Dependency names and versions are validated again here, so a manifest
    is never built from unchecked strings even when callers bypass the
    `Dependency` model.

    Args:
        dependencies: Crates for the `[dependencies]` table, in order
        settings: Package identity (defaults to `blockly_check` 0.1.0, edition 2021)

    Returns:
        Manifest text
    """
    settings = settings or ManifestConfig()

    lines = [
        "[package]",
        f"name = {toml_string(validate_crate_name(settings.package_name))}",
        f"version = {toml_string(settings.version)}",
        f"edition = {toml_string(settings.edition)}",
        "",
        "[dependencies]",
    ]
    for dep in dependencies:
        name = validate_crate_name(dep.name)
        version = validate_version_req(dep.version)
        lines.append(f"{name} = {toml_string(version)}")

    return "\n".join(lines) + "\n"
