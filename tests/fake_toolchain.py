"""Stand-in for cargo and rustc used by the test suite.

Installed twice by conftest (as `cargo` and `rustc`) and told apart by its
arguments. It understands just enough Rust to emit realistic JSON
diagnostics:

- a `let` statement without a trailing `;` is an error
- a `let unused...` binding is an unused-variable warning
- a binary crate without `fn main` is error E0601
- `use some_crate::...` needs `some_crate` in Cargo.toml, otherwise error
  E0432; plain rustc links no crates, so there every such import fails
  (paths under `crate`, `self`, `super`, `std`, `core`, `alloc` always resolve)
- like rustc, every run ends with its closing tallies ("aborting due to ...",
  "N warnings emitted") and a failure-note pointing at `rustc --explain`
- a dependency other than the ones in KNOWN_CRATES fails resolution
- `HANG` in the source sleeps for a minute, `SLOW` for half a second
"""

import json
import os
import re
import sys
import time
from pathlib import Path

KNOWN_CRATES = {"serde", "rand"}
LOCAL_ROOTS = {"crate", "self", "super", "std", "core", "alloc"}

LET_RE = re.compile(r"^let\s+(?:mut\s+)?(\w+)")
USE_RE = re.compile(r"^use\s+(\w+)::")


def span(file_name, line, column, length):
    return {
        "file_name": file_name,
        "byte_start": 0,
        "byte_end": length,
        "line_start": line,
        "line_end": line,
        "column_start": column,
        "column_end": column + length,
        "is_primary": True,
        "label": None,
        "suggested_replacement": None,
        "text": [],
    }


def diagnostic(level, message, code, file_name, line, column, length, children=()):
    rendered = f"{level}: {message}\n --> {file_name}:{line}:{column}\n"
    return {
        "$message_type": "diagnostic",
        "message": message,
        "code": {"code": code, "explanation": None} if code else None,
        "level": level,
        "spans": [span(file_name, line, column, length)] if line else [],
        "children": list(children),
        "rendered": rendered,
    }


def analyze(source, file_name, binary, declared_crates):
    found = []
    lines = source.splitlines()

    if binary and not re.search(r"\bfn\s+main\s*\(", source):
        found.append(diagnostic(
            "error",
            "`main` function not found in crate `blockly_check`",
            "E0601",
            file_name, 1, 1, 1,
        ))

    for number, raw in enumerate(lines, 1):
        line = raw.strip()
        column = len(raw) - len(raw.lstrip()) + 1

        use = USE_RE.match(line)
        if use and use.group(1) not in LOCAL_ROOTS and use.group(1) not in declared_crates:
            found.append(diagnostic(
                "error",
                f"unresolved import `{use.group(1)}`",
                "E0432",
                file_name, number, column + 4, len(use.group(1)),
            ))

        binding = LET_RE.match(line)
        if not binding:
            continue
        if not line.endswith(";"):
            found.append(diagnostic(
                "error",
                "expected `;`, found `}`",
                None,
                file_name, number, column + len(line), 1,
            ))
        name = binding.group(1)
        if name.startswith("unused"):
            help_span = span(file_name, number, column + 4, len(name))
            help_span["suggested_replacement"] = f"_{name}"
            found.append(diagnostic(
                "warning",
                f"unused variable: `{name}`",
                "unused_variables",
                file_name, number, column + 4, len(name),
                children=[
                    {
                        "message": "`#[warn(unused_variables)]` on by default",
                        "code": None,
                        "level": "note",
                        "spans": [],
                        "children": [],
                        "rendered": None,
                    },
                    {
                        "message": "if this is intentional, prefix it with an underscore",
                        "code": None,
                        "level": "help",
                        "spans": [help_span],
                        "children": [],
                        "rendered": None,
                    },
                ],
            ))

    return found + tallies(found)


def plural(count, noun):
    return f"{count} {noun}" + ("" if count == 1 else "s")


def tally(level, message):
    return {
        "$message_type": "diagnostic",
        "message": message,
        "code": None,
        "level": level,
        "spans": [],
        "children": [],
        "rendered": f"{level}: {message}\n\n",
    }


def tallies(found):
    errors = [d for d in found if d["level"] == "error"]
    warnings = [d for d in found if d["level"] == "warning"]
    emitted = plural(len(warnings), "warning") + " emitted"
    result = []
    if errors:
        message = "aborting due to " + plural(len(errors), "previous error")
        if warnings:
            message += "; " + emitted
        result.append(tally("error", message))
        codes = [d["code"]["code"] for d in errors if d["code"]]
        if codes:
            result.append(tally(
                "failure-note",
                f"For more information about this error, try `rustc --explain {codes[0]}`.",
            ))
    elif warnings:
        result.append(tally("warning", emitted))
    return result


def declared_dependencies(manifest):
    crates = []
    in_deps = False
    for line in manifest.splitlines():
        line = line.strip()
        if line.startswith("["):
            in_deps = line == "[dependencies]"
            continue
        if in_deps and "=" in line:
            crates.append(line.split("=", 1)[0].strip())
    return crates


def pace(source):
    if "HANG" in source:
        time.sleep(60)
    elif "SLOW" in source:
        time.sleep(0.5)


def run_cargo():
    cwd = Path.cwd()
    manifest = (cwd / "Cargo.toml").read_text()
    source = (cwd / "src" / "main.rs").read_text()
    crates = declared_dependencies(manifest)

    for crate in crates:
        if crate not in KNOWN_CRATES:
            sys.stderr.write(
                f"    Updating crates.io index\n"
                f"error: no matching package named `{crate}` found\n"
            )
            return 101

    sys.stderr.write(f"    Checking blockly_check v0.1.0 ({cwd})\n")
    pace(source)

    found = analyze(source, "src/main.rs", binary=True, declared_crates=set(crates))
    print("this line is not json")
    for item in found:
        print(json.dumps({
            "reason": "compiler-message",
            "package_id": f"blockly_check 0.1.0 (path+file://{cwd})",
            "message": item,
        }))
    errors = [d for d in found if d["level"] == "error"]
    print(json.dumps({"reason": "build-finished", "success": not errors}))
    return 101 if errors else 0


def run_rustc(args):
    source_path = Path(args[args.index("-o") - 1])
    source = source_path.read_text()
    pace(source)
    found = analyze(source, str(source_path), binary=False, declared_crates=set())
    for item in found:
        sys.stderr.write(json.dumps(item) + "\n")
    return 1 if any(d["level"] == "error" for d in found) else 0


def main():
    args = sys.argv[1:]
    tool = os.path.basename(sys.argv[0])
    if args == ["--version"]:
        print(f"{tool} 1.75.0 (fake)")
        return 0
    if args and args[0] == "check":
        return run_cargo()
    if "--crate-type=lib" in args:
        return run_rustc(args)
    sys.stderr.write(f"fake {tool}: unsupported arguments {args}\n")
    return 2


if __name__ == "__main__":
    sys.exit(main())
