"""Command-line interface for marginalia."""

import logging
from pathlib import Path

import requests
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from marginalia import __version__
from marginalia.config import Settings
from marginalia.document.html import HtmlDocument
from marginalia.document.protocols import TextRange
from marginalia.errors import MarginaliaError
from marginalia.logging_config import setup_logging
from marginalia.models import Reply, ReplyType
from marginalia.service import AnnotationService, PageResolution
from marginalia.store import AnnotationStore, YamlFileBackend, dump_yaml

app = typer.Typer(
    name="marginalia",
    help="Anchor notes to passages of web pages and find them again after the page changes.",
)
console = Console()

# Settings for the current invocation, set by the app callback
_state: dict[str, Settings] = {"settings": Settings()}

# Errors reported as a one-line message with exit code 1
HANDLED_ERRORS = (MarginaliaError, ValueError, OSError, requests.RequestException)


@app.callback()
def configure(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML settings file",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Print a trace of every resolution",
    ),
) -> None:
    """Load settings and configure logging for all commands."""
    try:
        _state["settings"] = Settings.from_yaml_file(config) if config else Settings()
    except HANDLED_ERRORS as e:
        console.print(
            f"[bold red]Error:[/bold red] Invalid config {config}: {escape(str(e))}"
        )
        raise typer.Exit(1) from e
    if verbose:
        setup_logging(logging.DEBUG)


def _settings() -> Settings:
    return _state["settings"]


def _is_url(page: str) -> bool:
    return page.startswith(("http://", "https://"))


def _page_url(page: str, url: str | None) -> str:
    """URL annotations are stored under: explicit, the page URL, or a file URI."""
    if url:
        return url
    if _is_url(page):
        return page
    return Path(page).resolve().as_uri()


def _load_page(page: str, scroll_y: float = 0.0) -> HtmlDocument:
    if _is_url(page):
        return HtmlDocument.from_url(page, _settings(), scroll_offset=scroll_y)
    return HtmlDocument.from_file(page, _settings(), scroll_offset=scroll_y)


def _service(store: Path | None) -> AnnotationService:
    settings = _settings()
    backend = YamlFileBackend(store or settings.store_path)
    return AnnotationService(AnnotationStore(backend), settings)


def _select(document: HtmlDocument, quote: str, occurrence: int) -> TextRange:
    text_range = document.find_range(quote, occurrence)
    if text_range is None:
        raise ValueError(f"Quote not found on page: {quote!r} (occurrence {occurrence})")
    return text_range


STORE_OPTION = typer.Option(None, "--store", "-s", help="YAML annotation store")


@app.command()
def capture(
    page: str = typer.Argument(..., help="HTML file or http(s) URL"),
    quote: str = typer.Argument(..., help="Text to select"),
    occurrence: int = typer.Option(0, "--occurrence", "-n", help="Which occurrence to select"),
    scroll_y: float = typer.Option(0.0, "--scroll-y", help="Scroll offset at capture time"),
) -> None:
    """Capture an anchor for a quote and print it as YAML."""
    try:
        document = _load_page(page, scroll_y)
        text_range = _select(document, quote, occurrence)
        anchor = _service(None).capture_anchor_from_selection(document, text_range)
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(
        dump_yaml(anchor.to_record()),
        markup=False,
        highlight=False,
        emoji=False,
        soft_wrap=True,
        end="",
    )


@app.command()
def annotate(
    page: str = typer.Argument(..., help="HTML file or http(s) URL"),
    quote: str = typer.Argument(..., help="Text to annotate"),
    note: str = typer.Option(..., "--note", help="The note to attach"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    url: str | None = typer.Option(None, "--url", help="URL to store the annotation under"),
    occurrence: int = typer.Option(0, "--occurrence", "-n", help="Which occurrence to select"),
    scroll_y: float = typer.Option(0.0, "--scroll-y", help="Scroll offset at capture time"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Annotate a quote on a page."""
    try:
        document = _load_page(page, scroll_y)
        text_range = _select(document, quote, occurrence)
        annotation = _service(store).create_text_annotation(
            document, text_range, _page_url(page, url), note, tag
        )
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[bold green]Annotated:[/bold green] {annotation.id}")


@app.command()
def pin(
    url: str = typer.Argument(..., help="Page URL"),
    x: float = typer.Argument(..., help="Horizontal page position"),
    y: float = typer.Argument(..., help="Vertical page position"),
    note: str = typer.Option(..., "--note", help="The note to attach"),
    tag: list[str] | None = typer.Option(None, "--tag", "-t", help="Tag (repeatable)"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Pin a note to a position on a page."""
    try:
        annotation = _service(store).create_coordinate_annotation(url, x, y, note, tag)
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[bold green]Pinned:[/bold green] {annotation.id}")


def _resolution_table(result: PageResolution) -> Table:
    table = Table(title=f"Annotations on {result.url}")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Note")
    table.add_column("Location")

    for placement in result.placements:
        match = placement.match
        table.add_row(
            placement.annotation.id[:8],
            f"[green]{match.confidence.value}[/green]",
            escape(placement.annotation.text),
            escape(f"span {match.span.index}, offset {match.offset}: {match.text!r}"),
        )
    for annotation in result.pins:
        table.add_row(
            annotation.id[:8],
            "[blue]pin[/blue]",
            escape(annotation.text),
            f"({annotation.anchor.x:g}, {annotation.anchor.y:g})",
        )
    for annotation in result.detached:
        table.add_row(
            annotation.id[:8],
            "[yellow]detached[/yellow]",
            escape(annotation.text),
            escape(f"was {annotation.anchor.exact!r}"),
        )
    for failure in result.skipped:
        table.add_row(
            failure.annotation_id[:8], "[red]skipped[/red]", "", escape(str(failure))
        )
    return table


@app.command()
def resolve(
    page: str = typer.Argument(..., help="HTML file or http(s) URL"),
    url: str | None = typer.Option(None, "--url", help="URL the annotations are stored under"),
    scroll_y: float = typer.Option(0.0, "--scroll-y", help="Current scroll offset"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Resolve every annotation of a page and show where each one landed."""
    try:
        document = _load_page(page, scroll_y)
        result = _service(store).resolve_all_for_page(document, _page_url(page, url))
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if result.total == 0:
        console.print(f"[dim]No annotations for {result.url}[/dim]")
        return
    console.print(_resolution_table(result))


@app.command()
def locate(
    page: str = typer.Argument(..., help="HTML file or http(s) URL"),
    annotation_id: str = typer.Argument(..., help="Annotation ID"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Resolve one annotation on a page."""
    try:
        document = _load_page(page)
        resolution = _service(store).resolve_one_by_id(document, annotation_id)
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    if resolution.match is None:
        console.print("[yellow]Detached:[/yellow] the passage could not be found")
        return
    match = resolution.match
    console.print(f"[bold green]{resolution.confidence.value}[/bold green] match")
    console.print(f"  Span: {match.span.index}, offset {match.offset}, length {match.length}")
    console.print(f"  Text: {match.text}", markup=False, soft_wrap=True)


@app.command()
def reply(
    annotation_id: str = typer.Argument(..., help="Annotation ID"),
    text: str = typer.Argument(..., help="Reply text"),
    reply_type: ReplyType = typer.Option(ReplyType.COMMENT, "--type", help="Kind of reply"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Reply to an annotation."""
    try:
        new_reply = Reply(annotation_id=annotation_id, type=reply_type, text=text)
        _service(store).store.add_reply(annotation_id, new_reply)
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[bold green]Replied:[/bold green] {new_reply.id}")


@app.command()
def delete(
    annotation_id: str = typer.Argument(..., help="Annotation ID"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Delete an annotation and its replies."""
    try:
        _service(store).store.delete(annotation_id)
    except HANDLED_ERRORS as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        raise typer.Exit(1) from e

    console.print(f"[bold green]Deleted:[/bold green] {annotation_id}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", help="Port to listen on"),
    store: Path | None = STORE_OPTION,
) -> None:
    """Serve the HTTP API."""
    import uvicorn

    from marginalia.api import create_app

    service = _service(store)
    uvicorn.run(create_app(service.store, service.settings), host=host, port=port)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"marginalia {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
