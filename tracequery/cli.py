"""tracequery CLI: ask questions about traces, get search filters back.

Usage:
    tracequery ask "Show me slow requests to the user service"
    tracequery ask "Find errors in payment processing" --model openai-gpt4 --json
    tracequery history
    tracequery settings --ollama-url http://gpu-box:11434
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="tracequery",
    help="tracequery: turn natural-language questions into distributed-trace search filters.",
    no_args_is_help=True,
)


def _init_logging(level: str) -> None:
    from tracequery.logging_setup import setup_logging

    setup_logging(level=level)


def _open_store(store: Optional[Path], default: str):
    from tracequery.storage import JsonFileStore

    return JsonFileStore(store or default)


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question about your traces"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="openai-gpt4 | openai-gpt3.5 | ollama-free (default: from .env)"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="OpenAI API key (default: OPENAI_API_KEY or saved settings)"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Ollama base URL (default: OLLAMA_API_BASE or saved settings)"),
    ollama_model: Optional[str] = typer.Option(None, "--ollama-model", help="Ollama model name (default: llama2)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Seconds to wait for the model"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    store: Optional[Path] = typer.Option(None, "--store", help="Settings/history JSON file"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
):
    """Translate a question into trace-search filters."""
    from tracequery.env_config import get_env_config
    from tracequery.errors import TraceQueryError
    from tracequery.gateway import ModelGateway
    from tracequery.orchestrator import QueryOrchestrator
    from tracequery.storage import QueryHistory, SettingsStore

    try:
        env = get_env_config(str(env_file) if env_file else None)
        _init_logging(env.log_level)
        kv = _open_store(store, env.store_path)
        config = env.client_config(
            model=model,
            api_key=api_key,
            base_url=base_url,
            local_model=ollama_model,
            settings=SettingsStore(kv),
        )
        orchestrator = QueryOrchestrator(
            gateway=ModelGateway(timeout=timeout or env.timeout),
            history=QueryHistory(kv),
            lookback=env.lookback,
            limit=env.limit,
        )
        result = asyncio.run(orchestrator.run(question, config))
    except TraceQueryError as e:
        typer.echo(f"Error ({e.kind}): {e}", err=True)
        raise typer.Exit(code=1)

    if json_output:
        payload = {
            "model": config.model.value,
            "query": result.query.model_dump(mode="json", by_alias=True),
            "filters": result.filters,
            "search_request": result.search_request,
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"\n{'='*60}")
    typer.echo(f"\U0001f50e tracequery [{config.model.value}]")
    typer.echo(f"{'='*60}")
    typer.echo(f"   Question: {question}")
    if not result.filters:
        typer.echo("   (no filters extracted, search would match all traces)")
    for name, value in result.filters.items():
        typer.echo(f"   {name:12s} {value}")
    if result.query.status.value != "all":
        typer.echo(f"   {'status':12s} {result.query.status.value}")
    typer.echo(f"{'-'*60}")
    typer.echo("   Search request:")
    for name in ("service", "operation", "start", "end", "limit", "lookback"):
        typer.echo(f"   {name:12s} {result.search_request[name]}")
    typer.echo(f"{'='*60}")


@app.command()
def history(
    clear: bool = typer.Option(False, "--clear", help="Forget all recent questions"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
    store: Optional[Path] = typer.Option(None, "--store", help="Settings/history JSON file"),
):
    """Show the most recent questions (newest first)."""
    from datetime import datetime

    from tracequery.env_config import get_env_config
    from tracequery.storage import QueryHistory

    env = get_env_config()
    recent = QueryHistory(_open_store(store, env.store_path))

    if clear:
        recent.clear()
        typer.echo("✅ History cleared")
        return

    entries = recent.entries()
    if json_output:
        typer.echo(json.dumps([e.model_dump() for e in entries], indent=2))
        return
    if not entries:
        typer.echo("No recent queries")
        return
    for entry in entries:
        when = datetime.fromtimestamp(entry.timestamp / 1000).strftime("%H:%M:%S")
        typer.echo(f"   {when}  {entry.question}")


@app.command()
def settings(
    api_key: Optional[str] = typer.Option(None, "--api-key", help="Save an OpenAI API key"),
    ollama_url: Optional[str] = typer.Option(None, "--ollama-url", help="Save the Ollama base URL"),
    store: Optional[Path] = typer.Option(None, "--store", help="Settings/history JSON file"),
):
    """Show or save backend settings."""
    from tracequery.env_config import get_env_config
    from tracequery.storage import SettingsStore

    env = get_env_config()
    saved = SettingsStore(_open_store(store, env.store_path))

    if api_key is not None or ollama_url is not None:
        saved.save(api_key=api_key, ollama_url=ollama_url)
        typer.echo("✅ Settings saved successfully")
        return

    typer.echo(f"   OpenAI key:  {_mask(saved.api_key)}")
    typer.echo(f"   Ollama URL:  {saved.ollama_url}")


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", "-H", help="Bind host (default: from .env)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port (default: from .env)"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Path to .env file (default: .env)"),
):
    """Start the HTTP API."""
    import uvicorn

    from tracequery.env_config import get_env_config
    from tracequery.server import create_app

    env = get_env_config(str(env_file) if env_file else None)
    _init_logging(env.log_level)
    effective_host = host or env.host
    effective_port = port or env.port

    typer.echo(f"\n\U0001f50e tracequery API Server")
    typer.echo(f"   http://{effective_host}:{effective_port}")
    typer.echo(f"   Model: {env.model} | Timeout: {env.timeout:g}s")
    typer.echo(f"   Endpoints: /v1/ask, /v1/history, /health")
    typer.echo(f"{'='*60}\n")

    uvicorn.run(create_app(env=env), host=effective_host, port=effective_port, log_level=env.log_level)


def _mask(secret: str | None) -> str:
    if not secret:
        return "(not set)"
    if len(secret) <= 8:
        return "****"
    return f"{secret[:3]}...{secret[-4:]}"


def main() -> None:
    app()


if __name__ == "__main__":
    main()
