"""CLI de kbgraph: index, validate, query y serve.

Códigos de salida: 0 éxito, 1 issues encontrados (o referencia inexistente),
2 error fatal de carga.
"""

from __future__ import annotations

import json
import pathlib
from typing import Optional

import structlog
import typer

from kbgraph.config import Settings, get_settings
from kbgraph.exceptions import KbGraphError
from kbgraph.indexer.issues import filter_by_severity
from kbgraph.indexer.pipeline import IndexResult, build_snapshot, issue_to_dict
from kbgraph.log import configure_logging
from kbgraph.models import Cancelled, Document, NotFound, Severity
from kbgraph.search import query as kb_query

logger = structlog.get_logger(__name__)

EXIT_ISSUES = 1
EXIT_FATAL = 2

app = typer.Typer(help="Indexa un corpus markdown y resuelve sus documentos y links.", no_args_is_help=True)


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


@app.callback()
def main(
    ctx: typer.Context,
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Nivel de logging (DEBUG, INFO, ...)."),
    log_json: Optional[bool] = typer.Option(None, "--log-json/--no-log-json", help="Logs en JSON."),
    separator: Optional[str] = typer.Option(None, "--separator", help="Token separador de documentos."),
    threshold: Optional[float] = typer.Option(None, "--threshold", help="Umbral de similitud para duplicados."),
) -> None:
    """Carga la configuración desde el entorno y aplica los overrides de la línea de comandos."""
    overrides = {
        "log_level": log_level,
        "log_json": log_json,
        "doc_separator": separator,
        "similarity_threshold": threshold,
    }
    settings = get_settings().model_copy(update={k: v for k, v in overrides.items() if v is not None})
    configure_logging(settings)
    ctx.obj = {"settings": settings}


def _run_index(root: pathlib.Path, settings: Settings) -> IndexResult:
    try:
        result = build_snapshot(root, settings)
    except KbGraphError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL) from exc
    if isinstance(result, Cancelled):
        typer.echo(f"error: indexación cancelada ({result.reason})", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    return result


def _parse_severity(value: str) -> Severity:
    try:
        return Severity(value.lower())
    except ValueError as exc:
        raise typer.BadParameter(f"severidad inválida '{value}': usa info, warning o error") from exc


def _document_line(doc: Document) -> str:
    suffix = f" (variante de {doc.part_of})" if doc.part_of else ""
    return f"{doc.id}\t{doc.title}\t{doc.source_path}{suffix}"


@app.command()
def index(
    ctx: typer.Context,
    root: pathlib.Path = typer.Argument(..., help="Directorio raíz del corpus."),
    output: Optional[pathlib.Path] = typer.Option(None, "--output", "-o", help="Escribe el snapshot JSON en este archivo."),
) -> None:
    """Indexa el corpus y muestra un resumen (o escribe el snapshot completo)."""
    result = _run_index(root, _settings(ctx))
    snapshot = result.snapshot

    if output is not None:
        output.write_text(snapshot.dumps() + "\n", encoding="utf-8")

    typer.echo(
        f"{len(snapshot.documents)} documentos, {len(snapshot.graph.edges)} aristas, "
        f"{len(snapshot.groups)} grupos, {len(snapshot.graph.cycles)} ciclos, "
        f"{len(snapshot.issues)} issues, {len(snapshot.load_errors)} errores de carga"
    )
    typer.echo(f"fingerprint: {snapshot.fingerprint}")
    for error in snapshot.load_errors:
        typer.echo(f"load-error [{error.kind.value}] {error.path}: {error.detail}", err=True)


@app.command()
def validate(
    ctx: typer.Context,
    root: pathlib.Path = typer.Argument(..., help="Directorio raíz del corpus."),
    fail_on: Optional[str] = typer.Option(None, "--fail-on", help="Severidad mínima que hace fallar (info, warning, error)."),
    as_json: bool = typer.Option(False, "--json", help="Salida en JSON."),
) -> None:
    """Valida el corpus y lista los issues; sale con 1 si alguno alcanza ``--fail-on``."""
    settings = _settings(ctx)
    minimum = _parse_severity(fail_on or settings.fail_on)
    result = _run_index(root, settings)
    issues = kb_query.validate(result.snapshot)

    if as_json:
        typer.echo(json.dumps([issue_to_dict(i) for i in issues], ensure_ascii=False, indent=2))
    else:
        for issue in issues:
            typer.echo(f"{issue.severity.value:<7} {issue.kind.value:<24} {issue.document_id}: {issue.detail}")
        typer.echo(f"{len(issues)} issues")

    if filter_by_severity(issues, minimum):
        raise typer.Exit(code=EXIT_ISSUES)


@app.command()
def query(
    ctx: typer.Context,
    ref: str = typer.Argument(..., help="Id, path o título del documento."),
    root: pathlib.Path = typer.Option(pathlib.Path("."), "--root", "-r", help="Directorio raíz del corpus."),
    related: bool = typer.Option(False, "--related", help="Lista los documentos relacionados."),
    depth: Optional[int] = typer.Option(None, "--traverse", min=0, help="Recorre referencias hasta N saltos."),
    canonical: bool = typer.Option(False, "--canonical", help="Retorna el canónico del grupo."),
    as_json: bool = typer.Option(False, "--json", help="Salida en JSON."),
) -> None:
    """Resuelve un documento y opcionalmente sus relacionados o su vecindario."""
    snapshot = _run_index(root, _settings(ctx)).snapshot

    doc = kb_query.resolve(snapshot, ref, canonical=canonical)
    if isinstance(doc, NotFound):
        typer.echo(f"no encontrado: {ref}", err=True)
        raise typer.Exit(code=EXIT_ISSUES)

    if related:
        docs = kb_query.related_to(snapshot, doc.id)
    elif depth is not None:
        docs = kb_query.traverse(snapshot, doc.id, depth)
    else:
        docs = [doc]
    if isinstance(docs, NotFound):
        raise typer.Exit(code=EXIT_ISSUES)

    if as_json:
        payload = [
            {"id": d.id, "title": d.title, "source_path": d.source_path, "part_of": d.part_of}
            for d in docs
        ]
        typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return
    for d in docs:
        typer.echo(_document_line(d))


@app.command()
def serve(
    ctx: typer.Context,
    root: Optional[pathlib.Path] = typer.Option(None, "--root", "-r", help="Corpus a indexar al arrancar."),
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
) -> None:
    """Levanta la API HTTP con uvicorn."""
    import uvicorn

    from kbgraph.api.app import create_app

    settings = _settings(ctx)
    if root is not None:
        settings = settings.model_copy(update={"corpus_root": str(root)})

    logger.info("serve", host=host or settings.api_host, port=port or settings.api_port)
    uvicorn.run(create_app(settings), host=host or settings.api_host, port=port or settings.api_port)


if __name__ == "__main__":
    app()
