"""Command line entry point for the node planner."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml

from .config import ConfigError, PlannerConfig, load_config
from .logs import configure_logging
from .models import AnthropicClient, LLMClient, OfflineLLMClient, OpenAIClient, UsageStats
from .planning.schemas import Constraints, PlanRequest
from .planning.service import PlannerService
from .validation import GraphValidator

APP_HELP = "Turn natural-language task descriptions into validated execution graphs."

app = typer.Typer(help=APP_HELP)


def _load(config: Optional[Path], *, offline: bool) -> PlannerConfig:
    """Load configuration, forcing the offline provider when requested."""
    if config is not None and not config.exists():
        raise typer.BadParameter(f"Config file not found: {config}")
    environ: Dict[str, str] = dict(os.environ)
    if offline:
        environ["PLANNER_LLM_PROVIDER"] = "offline"
    try:
        return load_config(config, environ=environ)
    except ConfigError as error:
        typer.echo(f"Invalid configuration: {error}", err=True)
        raise typer.Exit(code=1) from error


def _build_client(config: PlannerConfig, usage: Optional[UsageStats] = None) -> LLMClient:
    """Select the provider client named by the configuration."""
    llm = config.llm
    if llm.provider == "offline":
        return OfflineLLMClient(usage=usage)

    client_kwargs: Dict[str, Any] = {
        "api_key": llm.api_key,
        "model": llm.model,
        "timeout": llm.timeout,
        "retry_policy": llm.retry.build_policy(),
        "usage": usage,
    }
    if llm.base_url:
        client_kwargs["base_url"] = llm.base_url
    try:
        if llm.provider == "openai":
            return OpenAIClient(**client_kwargs)
        return AnthropicClient(**client_kwargs)
    except ValueError as error:
        typer.echo(f"Failed to initialise {llm.provider} client: {error}", err=True)
        raise typer.Exit(code=1) from error


def _parse_context(entries: List[str]) -> Dict[str, Any]:
    context: Dict[str, Any] = {}
    for entry in entries:
        key, sep, value = entry.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Context entries must look like key=value, got {entry!r}")
        try:
            context[key.strip()] = yaml.safe_load(value) if value else ""
        except yaml.YAMLError:
            context[key.strip()] = value
    return context


@app.command()
def plan(
    task: str = typer.Argument(..., help="Natural-language description of the task to plan."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a planner YAML file."),
    context: Optional[List[str]] = typer.Option(None, "--context", help="Extra context as key=value; repeatable."),
    max_nodes: Optional[int] = typer.Option(None, "--max-nodes", min=1, help="Upper bound on graph size."),
    mode: Optional[List[str]] = typer.Option(None, "--mode", help="Preferred node mode; repeatable."),
    tool: Optional[List[str]] = typer.Option(None, "--tool", help="Tool available to executor nodes; repeatable."),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", min=1, help="Lower the refinement budget."
    ),
    skip_analysis: bool = typer.Option(False, "--skip-analysis", help="Do not run task analysis first."),
    offline: bool = typer.Option(False, "--offline", help="Use the offline stub client."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write the response JSON here."),
) -> None:
    """Plan an execution graph for TASK and print the response as JSON."""
    settings = _load(config, offline=offline)
    configure_logging(settings.logging)

    constraints = None
    if max_nodes is not None or mode or tool or max_iterations is not None:
        constraints = Constraints(
            max_nodes=max_nodes,
            preferred_modes=list(mode or []),
            available_tools=list(tool or []),
            max_iterations=max_iterations,
        )
    request = PlanRequest(
        task=task,
        context=_parse_context(context or []),
        constraints=constraints,
        skip_analysis=skip_analysis,
    )

    service = PlannerService.from_config(settings, _build_client(settings, UsageStats()))
    response = service.plan(request)
    rendered = response.model_dump_json(indent=2)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered + "\n", encoding="utf-8")
        typer.echo(f"Wrote plan {response.plan_id} to {output}")
    else:
        typer.echo(rendered)

    if not response.success:
        raise typer.Exit(code=1)


@app.command()
def validate(
    graph_file: Path = typer.Argument(..., help="Graph JSON document to check."),
    max_nodes: Optional[int] = typer.Option(None, "--max-nodes", min=1, help="Upper bound on graph size."),
) -> None:
    """Validate a graph document and list every violation."""
    if not graph_file.exists():
        raise typer.BadParameter(f"Graph file not found: {graph_file}")
    outcome = GraphValidator(max_nodes=max_nodes).validate(graph_file.read_bytes())
    if outcome.valid:
        typer.echo("Graph is valid.")
        return
    typer.echo("Graph is invalid:")
    for message in outcome.messages:
        typer.echo(f"- {message}")
    raise typer.Exit(code=1)


@app.command("show-config")
def show_config(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a planner YAML file."),
    offline: bool = typer.Option(False, "--offline", help="Show settings as used with --offline."),
) -> None:
    """Print the effective configuration with secrets masked."""
    settings = _load(config, offline=offline)
    typer.echo(json.dumps(settings.to_dict(), indent=2))


if __name__ == "__main__":
    app()
