"""Command line interface.

Checks a single file or starts the HTTP service.
"""

import asyncio
import sys
from pathlib import Path

import click

from rustcheck.checker import RustChecker
from rustcheck.config import Config
from rustcheck.exceptions import RustCheckError
from rustcheck.models import CheckMode, Dependency
from rustcheck.observability import configure_logging


def load_checker(config_path: str | None) -> RustChecker:
    """Build a checker from an optional config file and set up logging."""
    config = Config.from_file(config_path) if config_path else Config()
    configure_logging(config.logging.level, config.logging.format)
    return RustChecker(config)


def parse_dependency(
    ctx: click.Context,
    param: click.Parameter,
    values: tuple[str, ...],
) -> list[Dependency]:
    """Click callback turning `name=version` options into dependencies."""
    deps = []
    for value in values:
        try:
            deps.append(Dependency.parse(value))
        except ValueError as e:
            raise click.BadParameter(str(e), ctx=ctx, param=param) from e
    return deps


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML or JSON configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None):
    """rustcheck - compile-check Rust snippets with cargo and rustc."""
    ctx.obj = config_path


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--quick", is_flag=True, help="Single-file rustc check, no cargo project")
@click.option(
    "--dep",
    "dependencies",
    multiple=True,
    callback=parse_dependency,
    help="Dependency as name=version (repeatable)",
)
@click.option("--wrap/--no-wrap", default=None, help="Force or disable the fn main wrapper")
@click.pass_obj
def check(
    config_path: str | None,
    file: str,
    quick: bool,
    dependencies: list[Dependency],
    wrap: bool | None,
):
    """Check FILE and print the result as JSON.

    Exits with status 1 when the code has errors and 2 when the check could
    not run.
    """
    try:
        code = Path(file).read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise click.BadParameter(f"{file} is not valid UTF-8: {e}", param_hint="FILE") from e

    checker = load_checker(config_path)

    if quick:
        mode = CheckMode.QUICK
    elif dependencies:
        mode = CheckMode.WITH_DEPENDENCIES
    else:
        mode = CheckMode.FULL

    try:
        result = asyncio.run(checker.check(code, mode, dependencies, wrap))
    except RustCheckError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    click.echo(result.model_dump_json(indent=2))
    if not result.success:
        sys.exit(1)


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", type=int, default=None, help="Port to bind to")
@click.pass_obj
def serve(config_path: str | None, host: str | None, port: int | None):
    """Start the HTTP service."""
    checker = load_checker(config_path)
    bind_host = host or checker.config.server.host
    bind_port = port or checker.config.server.port
    click.echo(f"rustcheck service starting on http://{bind_host}:{bind_port}")
    click.echo("   POST /check  - Check Rust code")
    click.echo("   GET  /health - Health check")
    checker.serve(host=bind_host, port=bind_port)


@cli.command()
@click.pass_obj
def doctor(config_path: str | None):
    """Report whether rustc and cargo are available."""
    checker = load_checker(config_path)

    async def _availability() -> list[bool]:
        return await asyncio.gather(
            checker.is_rust_available(),
            checker.is_cargo_available(),
        )

    rust_available, cargo_available = asyncio.run(_availability())
    click.echo(f"rustc: {'available' if rust_available else 'not found'}")
    click.echo(f"cargo: {'available' if cargo_available else 'not found'}")
    if not (rust_available and cargo_available):
        sys.exit(1)


def main():
    """Entry point for the rustcheck CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nInterrupted")
        sys.exit(130)


if __name__ == "__main__":
    main()
