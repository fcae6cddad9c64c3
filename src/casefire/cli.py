"""Command-line interface for casefire."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
from click.shell_completion import CompletionItem
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from casefire.auth import resolve_token
from casefire.body import DEFAULT_CASES_DIR, build_body, get_model, list_cases
from casefire.config import Config, load_config
from casefire.errors import CasefireError, ConfigParseError
from casefire.planner import REQUEST_TYPES, RequestPlan, plan_request
from casefire.stream import render_stream
from casefire.transport import DEFAULT_TIMEOUT, HttpTransport, to_curl

console = Console()
err_console = Console(stderr=True)

_logger = logging.getLogger(__name__)


def _load_config_quietly() -> Config | None:
    try:
        return load_config()
    except ConfigParseError:
        return None


# ---------------------------------------------------------------------------
# Shell completion
# ---------------------------------------------------------------------------

def _complete_providers(ctx, param, incomplete: str) -> list[CompletionItem]:
    config = _load_config_quietly()
    if config is None:
        return []
    return [CompletionItem(n) for n in config.provider_names() if n.startswith(incomplete)]


def _complete_cases(ctx, param, incomplete: str) -> list[CompletionItem]:
    cases_dir = ctx.params.get("cases_dir") or DEFAULT_CASES_DIR
    return [CompletionItem(n) for n in list_cases(cases_dir) if n.startswith(incomplete)]


def _complete_types(ctx, param, incomplete: str) -> list[CompletionItem]:
    return [CompletionItem(t) for t in REQUEST_TYPES if t.startswith(incomplete)]


def _complete_models(ctx, param, incomplete: str) -> list[CompletionItem]:
    provider = ctx.params.get("provider")
    config = _load_config_quietly()
    if not provider or config is None:
        return []
    return [CompletionItem(m) for m in config.models_for(provider) if m.startswith(incomplete)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_headers(values: tuple[str, ...]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {raw!r}", param_hint="-H")
        headers[name.strip()] = value.strip()
    return headers


def _raw_body_fields(raw: str) -> dict[str, Any]:
    """Parse a raw ``--data`` body only to learn its model; never rewritten."""
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _fail(message: str) -> None:
    err_console.print(f"[red]Error: {escape(message)}[/red]", highlight=False, soft_wrap=True)
    sys.exit(1)


def _execute(plan: RequestPlan, request_type: str, stream: bool, display: bool, timeout: float):
    with HttpTransport(timeout=timeout) as transport:
        if not stream:
            resp = transport.send(plan)
            click.echo(resp.text)
            return
        lines = transport.iter_lines(plan)
        if display:
            render_stream(request_type, lines, lambda s: click.echo(s, nl=False))
        else:
            for line in lines:
                click.echo(line)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def main(verbose: bool):
    """casefire - fire stored request cases at LLM provider APIs."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


@main.command()
@click.option("--provider", "-p", required=True, shell_complete=_complete_providers,
              help="Provider name (built-in or from ~/.llm-test/providers.yaml)")
@click.option("--type", "-t", "request_type", required=True, shell_complete=_complete_types,
              help="Request type: chat, message, gemini, response, or a literal path")
@click.option("--case", "-c", "case", default="", shell_complete=_complete_cases,
              help="Case name (directory holding <type>.json bodies)")
@click.option("--model", "-m", default="", shell_complete=_complete_models,
              help="Override the model in the request body")
@click.option("--stream", is_flag=True, help="Enable streaming mode")
@click.option("--display", is_flag=True,
              help="Render the stream as readable thinking/answer text (requires --stream)")
@click.option("--patch", default="", help="JSON merge patch applied to the request body")
@click.option("--cases-dir", default=DEFAULT_CASES_DIR, show_default=True,
              type=click.Path(file_okay=False), help="Directory containing cases")
@click.option("--data", "-d", "raw_data", default=None,
              help="Send this raw body instead of the case body")
@click.option("--header", "-H", "extra_headers", multiple=True,
              help="Extra header 'Name: value' (repeatable)")
@click.option("--timeout", default=DEFAULT_TIMEOUT, show_default=True,
              help="Read/write timeout in seconds (connect is capped at 30)")
@click.option("--dry-run", is_flag=True, help="Print the curl command instead of sending")
def send(provider: str, request_type: str, case: str, model: str, stream: bool,
         display: bool, patch: str, cases_dir: str, raw_data: str | None,
         extra_headers: tuple[str, ...], timeout: float, dry_run: bool):
    """Build a request from a case and send it.

    \b
    Examples:
      casefire send -p novita -c hello -t chat
      casefire send -p ppio -c hello -t message -m claude-sonnet-4-20250514
      casefire send -p novita -c hello -t gemini -m gemini-pro --stream --display
      casefire send -p novita -c hello -t chat --patch '{"temperature": 0.5}'
    """
    if display and not stream:
        raise click.UsageError("--display requires --stream")
    headers = _parse_headers(extra_headers)

    try:
        config = load_config()
        prov = config.resolve(provider)
        token = resolve_token(provider, prov) if prov.needs_auth else ""

        if raw_data is not None:
            body = _raw_body_fields(raw_data)
            if model:
                body["model"] = model
        else:
            body = build_body(cases_dir, case, request_type,
                              model=model, stream=stream, patch=patch)
        _logger.debug("Model for request: %r", get_model(body))

        plan = plan_request(
            prov, request_type, body,
            stream=stream, token=token, raw_body=raw_data, extra_headers=headers,
        )

        if dry_run:
            click.echo(to_curl(plan), nl=False)
            return

        _execute(plan, request_type, stream, display, timeout)
    except CasefireError as e:
        _fail(str(e))


@main.command()
@click.argument("provider", shell_complete=_complete_providers)
def models(provider: str):
    """List the models reachable from PROVIDER (may contain repeats)."""
    try:
        config = load_config()
        config.resolve(provider)
    except CasefireError as e:
        _fail(str(e))
        return
    for name in config.models_for(provider):
        click.echo(name)


@main.command()
def providers():
    """Show the merged provider table."""
    try:
        config = load_config()
    except CasefireError as e:
        _fail(str(e))
        return
    table = Table(title="Providers")
    table.add_column("Name", style="cyan")
    table.add_column("Base URL")
    table.add_column("Auth")
    table.add_column("Fusion")
    for name in config.provider_names():
        p = config.providers[name]
        table.add_row(
            name, p.base_url,
            "yes" if p.needs_auth else "no",
            "yes" if p.fusion_header else "no",
        )
    console.print(table)


@main.command()
@click.option("--cases-dir", default=DEFAULT_CASES_DIR, show_default=True,
              type=click.Path(file_okay=False), help="Directory containing cases")
def cases(cases_dir: str):
    """List case names from the cases dir and ~/.llm-test/cases."""
    for name in list_cases(Path(cases_dir)):
        click.echo(name)


if __name__ == "__main__":
    main()
