"""CLI entrypoint for doc-indexer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer

from doc_indexer.core.config import Settings
from doc_indexer.core.errors import IngestError
from doc_indexer.core.logging import configure_logging
from doc_indexer.core.metrics import render_metrics
from doc_indexer.ingest.loaders import URL_SCHEMES
from doc_indexer.ingest.pipeline import IngestPipeline
from doc_indexer.ingest.types import DocumentDescriptor
from doc_indexer.store.factory import build_store

app = typer.Typer(name="docix", help="Index PDFs, EPUBs and web pages into a vector store")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", envvar="DOCIX_LOG_LEVEL", help="Logging level"),
    log_format: str = typer.Option("json", "--log-format", envvar="DOCIX_LOG_FORMAT", help="'json' or 'text'"),
) -> None:
    """Index PDFs, EPUBs and web pages into a vector store."""
    configure_logging(log_level, log_format)


def _settings(config: Optional[Path], **overrides: object) -> Settings:
    return Settings.load(config, **overrides)


def _fail(exc: IngestError) -> None:
    typer.echo(json.dumps(exc.to_dict(), indent=2, default=str), err=True)
    raise typer.Exit(code=1)


@app.command()
def ingest(
    source: str = typer.Argument(..., help="PDF/EPUB path or http(s) URL"),
    strategy: Optional[str] = typer.Option(None, "--strategy", help="Force 'static' or 'rendered' scraping"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
    collection: Optional[str] = typer.Option(None, "--collection", help="Override the target collection"),
) -> None:
    """Load, chunk, embed and index one document."""
    settings = _settings(config, collection_name=collection)
    store = build_store(settings)
    try:
        pipeline = IngestPipeline(store, settings)
        if source.lower().startswith(URL_SCHEMES):
            manifest = pipeline.ingest_url(source, strategy=strategy)
        else:
            path = Path(source).expanduser()
            size = path.stat().st_size if path.is_file() else None
            manifest = pipeline.ingest(DocumentDescriptor(file_name=path.name, locator=str(path), file_size=size))
    except IngestError as exc:
        _fail(exc)
    finally:
        store.close()
    typer.echo(json.dumps(manifest.to_dict(), indent=2))


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", help="Skip the confirmation prompt"),
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
    collection: Optional[str] = typer.Option(None, "--collection", help="Override the target collection"),
) -> None:
    """Delete every point by recreating the collection."""
    settings = _settings(config, collection_name=collection)
    if not yes:
        typer.confirm(f"Drop all points in collection {settings.collection_name!r}?", abort=True)
    store = build_store(settings)
    try:
        store.ping()
        store.reset_collection(settings.collection_name, settings.vector_dim, settings.distance)
    except IngestError as exc:
        _fail(exc)
    finally:
        store.close()
    typer.echo(json.dumps({"status": "ok", "collection": settings.collection_name}))


@app.command()
def info(
    config: Optional[Path] = typer.Option(None, "--config", help="Path to a YAML config file"),
    collection: Optional[str] = typer.Option(None, "--collection", help="Override the target collection"),
) -> None:
    """Show vector size, distance and point count for the collection."""
    settings = _settings(config, collection_name=collection)
    store = build_store(settings)
    try:
        store.ping()
        if not store.collection_exists(settings.collection_name):
            typer.echo(f"Collection {settings.collection_name!r} does not exist", err=True)
            raise typer.Exit(code=1)
        details = store.get_collection_info(settings.collection_name)
    except IngestError as exc:
        _fail(exc)
    finally:
        store.close()
    typer.echo(
        json.dumps(
            {
                "name": details.name,
                "vectorSize": details.vector_size,
                "distance": details.distance,
                "pointsCount": details.points_count,
                "status": details.status,
            },
            indent=2,
        )
    )


@app.command()
def metrics() -> None:
    """Print ingestion metrics in Prometheus text format."""
    typer.echo(render_metrics().decode("utf-8"), nl=False)


if __name__ == "__main__":
    app()
