"""CLI entrypoint for Voice Search."""

from __future__ import annotations

import json
import os
from typing import Optional

import requests
import typer

app = typer.Typer(name="vsearch", help="Voice Search command-line interface")

DEFAULT_HOST = "http://127.0.0.1:5173"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("VSRCH_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    try:
        resp = requests.request(method, url, timeout=300, **kwargs)
    except requests.ConnectionError as exc:
        typer.echo(f"Could not reach {base}: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo_json(payload: object) -> None:
    typer.echo(json.dumps(payload, indent=2))


@app.command()
def search(
    query: str = typer.Argument(..., help="Query text"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum number of results"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw response"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Search records with hybrid vector and keyword retrieval."""
    payload: dict[str, object] = {"query": query}
    if limit is not None:
        payload["limit"] = limit
    data = _request("POST", "/search", host=host, json=payload).json()
    if as_json:
        _echo_json(data)
        return
    if not data["results"]:
        typer.echo("No results.")
        return
    for position, hit in enumerate(data["results"], start=1):
        record = hit["record"]
        typer.echo(f"{position}. {record['title']} [{record['id']}] {hit['rrf_score']:.4f} ({hit['relevance']})")
        if hit["snippet"]:
            typer.echo(f"   {hit['snippet']}")


@app.command()
def sync(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Reconcile the indexes with the record store."""
    _echo_json(_request("POST", "/index/sync", host=host).json())


@app.command()
def reindex(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Clear the indexes and rebuild them from scratch."""
    if not yes:
        typer.confirm("Re-embed every record?", abort=True)
    _echo_json(_request("POST", "/index/reindex", host=host).json())


@app.command()
def stats(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Show vector store and keyword index statistics."""
    _echo_json(_request("GET", "/stats", host=host).json())


@app.command()
def status(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    """Show the current indexing phase and progress."""
    _echo_json(_request("GET", "/status", host=host).json())


@app.command()
def index(
    record_id: str = typer.Argument(..., help="Record identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Index a single record immediately."""
    _echo_json(_request("POST", f"/records/{record_id}/index", host=host).json())


@app.command()
def remove(
    record_id: str = typer.Argument(..., help="Record identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Remove a record from the indexes."""
    _echo_json(_request("DELETE", f"/records/{record_id}", host=host).json())


if __name__ == "__main__":
    app()
