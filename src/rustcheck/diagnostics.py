"""Parsing of the toolchain's JSON diagnostic stream.

cargo (`--message-format=json`) prints one JSON object per line on stdout,
with the compiler diagnostic nested under `message`:

    {"reason": "compiler-message", "message": {"rendered": "...", "level": "error", ...}}

rustc (`--error-format=json`) prints the diagnostic objects themselves, one
per line, on stderr. Both shapes are accepted. Lines that are not JSON, or
carry no rendered diagnostic, are skipped so one bad line never loses the
rest of the stream.
"""

import json
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from rustcheck.models import CompilationError, CompilationResult, ErrorLevel, SourceSpan
from rustcheck.observability import get_logger

logger = get_logger(__name__)

# rustc's closing tallies, e.g. "aborting due to 2 previous errors", "1 warning emitted"
SUMMARY_RE = re.compile(r"^(aborting due to\b|\d+ warnings? emitted)")


@dataclass
class ParsedDiagnostics:
    """Diagnostics extracted from one stream."""

    errors: list[CompilationError] = field(default_factory=list)
    warnings: list[CompilationError] = field(default_factory=list)
    skipped_lines: int = 0
    filtered: int = 0

    @property
    def success(self) -> bool:
        return not self.errors


def _payload(value: Any) -> dict[str, Any] | None:
    """Locate the diagnostic object within a decoded line."""
    if not isinstance(value, dict):
        return None
    message = value.get("message")
    if isinstance(message, dict):
        return message
    if "rendered" in value and "level" in value:
        return value
    return None


def _is_summary(payload: dict[str, Any]) -> bool:
    """True for rustc's end-of-run tallies, which describe no code location."""
    message = payload.get("message")
    return (
        isinstance(message, str)
        and not payload.get("spans")
        and SUMMARY_RE.match(message) is not None
    )


def _int(value: Any) -> int | None:
    # bool is an int subclass; positions never are
    if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
        return value
    return None


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _parse_span(raw: Any) -> SourceSpan | None:
    if not isinstance(raw, dict):
        return None
    return SourceSpan(
        file=_str(raw.get("file_name")),
        line_start=_int(raw.get("line_start")),
        line_end=_int(raw.get("line_end")),
        column_start=_int(raw.get("column_start")),
        column_end=_int(raw.get("column_end")),
        is_primary=raw.get("is_primary") is True,
        label=_str(raw.get("label")),
    )


def _suggestion(children: list[Any]) -> str | None:
    """First replacement text offered by a sub-diagnostic, if any."""
    for child in children:
        if not isinstance(child, dict):
            continue
        for span in child.get("spans") or []:
            if isinstance(span, dict) and isinstance(span.get("suggested_replacement"), str):
                return span["suggested_replacement"]
    return None


def parse_diagnostic(payload: dict[str, Any], nested: bool = False) -> CompilationError | None:
    """Convert one diagnostic object into a CompilationError.

    Args:
        payload: The diagnostic object (`message` of a cargo line, or a rustc line)
        nested: True for sub-diagnostics, whose `rendered` is usually null
            and falls back to `message`

    Returns:
        The diagnostic, or None when it has no text
    """
    text = _str(payload.get("rendered"))
    if text is None and nested:
        text = _str(payload.get("message"))
    if text is None:
        return None

    code_field = payload.get("code")
    code = _str(code_field.get("code")) if isinstance(code_field, dict) else None

    raw_spans = payload.get("spans")
    spans = [
        span
        for span in (_parse_span(s) for s in (raw_spans if isinstance(raw_spans, list) else []))
        if span is not None
    ]
    first = spans[0] if spans else None

    raw_children = payload.get("children")
    raw_children = raw_children if isinstance(raw_children, list) else []
    children = [
        child
        for child in (
            parse_diagnostic(c, nested=True) for c in raw_children if isinstance(c, dict)
        )
        if child is not None
    ]

    return CompilationError(
        level=ErrorLevel.from_tool(payload.get("level")),
        message=text,
        code=code,
        line=first.line_start if first else None,
        column=first.column_start if first else None,
        file=first.file if first else None,
        suggestion=_suggestion(raw_children),
        spans=spans,
        children=children,
    )


class DiagnosticParser:
    """Classifies a line-oriented JSON diagnostic stream.

    Errors and warnings keep the order the tool emitted them in. Top-level
    notes and help messages are parsed but not reported; the ones attached
    to an error or warning survive as its `children`. Closing tallies
    ("aborting due to ...", "N warnings emitted") are not diagnostics and are
    dropped.
    """

    def parse(
        self,
        stream: str,
        keep: Callable[[CompilationError], bool] | None = None,
    ) -> ParsedDiagnostics:
        """Parse every line of `stream`.

        Args:
            stream: Line-oriented JSON output of cargo or rustc
            keep: Optional predicate; errors and warnings it rejects are
                counted in `filtered` instead of reported
        """
        parsed = ParsedDiagnostics()

        for line in stream.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                value = json.loads(line)
            except ValueError:
                parsed.skipped_lines += 1
                continue

            payload = _payload(value)
            if payload is None or _is_summary(payload):
                continue

            diagnostic = parse_diagnostic(payload)
            if diagnostic is None:
                parsed.skipped_lines += 1
                continue

            if diagnostic.level not in (ErrorLevel.ERROR, ErrorLevel.WARNING):
                continue
            if keep is not None and not keep(diagnostic):
                parsed.filtered += 1
                continue

            if diagnostic.level is ErrorLevel.ERROR:
                parsed.errors.append(diagnostic)
            else:
                parsed.warnings.append(diagnostic)

        if parsed.skipped_lines or parsed.filtered:
            logger.debug(
                "Diagnostics not reported",
                context={"skipped_lines": parsed.skipped_lines, "filtered": parsed.filtered},
            )
        return parsed

    def build_result(
        self,
        stream: str,
        stdout: str,
        stderr: str,
        exit_code: int | None = None,
        duration_ms: float | None = None,
        keep: Callable[[CompilationError], bool] | None = None,
    ) -> CompilationResult:
        """Parse `stream` and assemble the full result."""
        parsed = self.parse(stream, keep)
        return CompilationResult.from_diagnostics(
            errors=parsed.errors,
            warnings=parsed.warnings,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
            duration_ms=duration_ms,
        )
