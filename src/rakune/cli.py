"""CLI commands for running the edit/build convergence loop."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from .config import (
    DEFAULT_CONFIG_NAME,
    ConfigError,
    RakuneConfig,
    default_config_document,
    load_config,
    write_config,
)
from .models import LLMClient, OllamaClient, ResponsesClient
from .orchestrator import ConvergenceError, ConvergenceLoop
from .structured import Comment, Fragment
from .tools.diagnostics import BuildCommandError, DiagnosticsExtractor
from .tools.file_store import ApplyError
from .tools.vcs import GitError, GitRepository

APP_HELP = "Turn an instruction into edits and keep fixing until the build is green."

app = typer.Typer(help=APP_HELP)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log debug output and telemetry."),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config: str) -> RakuneConfig:
    try:
        return load_config(Path(config))
    except ConfigError as error:
        typer.echo(f"Configuration error: {error}")
        raise typer.Exit(code=1) from error


def _build_client(config: RakuneConfig) -> LLMClient:
    """Select the oracle backend named in the configuration."""
    models_cfg = config.models
    if models_cfg.backend == "responses":
        kwargs: Dict[str, Any] = {"model": models_cfg.model, "timeout": models_cfg.timeout, "api_key": models_cfg.api_key}
        if models_cfg.endpoint:
            kwargs["base_url"] = models_cfg.endpoint
        try:
            return ResponsesClient(**kwargs)
        except ValueError as error:
            typer.echo("No API key given. Set OPENAI_API_KEY or models.api_key in the config.")
            raise typer.Exit(code=1) from error
    client_kwargs: Dict[str, Any] = {"model": models_cfg.model, "timeout": models_cfg.timeout}
    if models_cfg.endpoint:
        client_kwargs["endpoint"] = models_cfg.endpoint
    return OllamaClient(**client_kwargs)


@app.command()
def init(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the rakune configuration file.",
    )
) -> None:
    """Write a default configuration file."""
    config_path = Path(config)
    if config_path.exists():
        typer.echo(f"Configuration already exists at {config_path}; leaving it untouched.")
        raise typer.Exit(code=1)
    write_config(config_path, default_config_document())
    typer.echo(f"Wrote default configuration to {config_path}.")


@app.command()
def check(
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the rakune configuration file.",
    )
) -> None:
    """Run the lint and build commands once and list the diagnostics."""
    config_data = _load(config)
    extractor = DiagnosticsExtractor(
        config_data.build.command,
        repo_root=config_data.repo_root(),
        lint_command=config_data.build.lint_command,
        error_marker=config_data.build.error_marker,
        timeout=config_data.build.timeout,
    )
    try:
        outcome = extractor.check()
    except BuildCommandError as error:
        typer.echo(f"Build failed to run: {error}")
        raise typer.Exit(code=1) from error

    if outcome.ok:
        typer.echo("Build succeeded.")
        return
    typer.echo(f"Build failed with exit code {outcome.exit_code} ({len(outcome.diagnostics)} diagnostic(s)).")
    for diagnostic in outcome.diagnostics:
        typer.echo(f"- {diagnostic.location()}: {diagnostic.message.splitlines()[0] if diagnostic.message else ''}")
    raise typer.Exit(code=1)


@app.command()
def run(
    instruction: List[str] = typer.Argument(..., help="Instruction for the oracle (repeat for several comments)."),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the rakune configuration file.",
    ),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="File the first instruction is anchored to."),
    start: int = typer.Option(0, "--start", help="First line of the anchor (zero-based)."),
    end: Optional[int] = typer.Option(None, "--end", help="Line after the anchor (exclusive); defaults to start + 1."),
    max_cycles: Optional[int] = typer.Option(None, "--max-cycles", min=1, help="Override loop.max_cycles."),
    commit: Optional[bool] = typer.Option(None, "--commit/--no-commit", help="Commit the result with the summary."),
) -> None:
    """Apply instructions and iterate until the build succeeds."""
    config_data = _load(config)
    if max_cycles is not None:
        config_data.loop.max_cycles = max_cycles
    if commit is not None:
        config_data.loop.commit = commit

    comments = [Comment(message=text) for text in instruction]
    if file:
        comments[0].fragments.append(Fragment(filepath=file, line_range=(start, end if end is not None else start + 1)))

    try:
        repository = GitRepository(config_data.repo_root())
    except GitError as error:
        typer.echo(f"Repository error: {error}")
        raise typer.Exit(code=1) from error

    try:
        loop = ConvergenceLoop.from_config(config_data, _build_client(config_data), repository=repository)
    except ApplyError as error:
        typer.echo(f"Repository error: {error}")
        raise typer.Exit(code=1) from error

    try:
        result = loop.run(comments)
    except ConvergenceError as error:
        typer.echo(f"Failed during {error.stage} after {error.cycles} cycle(s): {error.message}")
        raise typer.Exit(code=1) from error

    typer.echo(f"Converged after {result.cycles} cycle(s).")
    typer.echo(result.summary)
    if result.revision:
        typer.echo(f"Committed {result.revision}")


if __name__ == "__main__":
    app()
