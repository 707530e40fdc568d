"""studiodesk CLI.

Commands:
- totals: Preview invoice subtotal, GST and total for a list of amounts
- board show: List projects by board column
- board move: Move a project to another column
- estimates list: List estimates on a tab
- invoices list: Search and sort invoices
- images upload: Upload an image to the photo bank
"""

from __future__ import annotations

import asyncio
import mimetypes
from pathlib import Path
from uuid import UUID

import typer
from rich.console import Console
from rich.table import Table

from studiodesk import derivation
from studiodesk.auth import build_identity_provider
from studiodesk.board import ProjectBoard
from studiodesk.config import AppConfig, get_config
from studiodesk.core.logging import configure_logging, get_logger
from studiodesk.estimates.service import EstimateService
from studiodesk.gateway.client import GatewayClient
from studiodesk.gateway.errors import FormValidationError, GatewayError
from studiodesk.images.upload import ImageUploadService
from studiodesk.invoices.api import InvoiceRepository
from studiodesk.invoices.filters import SearchType, SortOption, filter_invoices, sort_invoices
from studiodesk.models import BoardColumn, InvoiceType
from studiodesk.notifications import Notice, NoticeLevel

app = typer.Typer(
    name="studiodesk",
    help="studiodesk - projects, estimates, invoices and photo bank for a photography studio",
    no_args_is_help=True,
)
board_cli = typer.Typer(help="Project status board")
app.add_typer(board_cli, name="board")

estimates_cli = typer.Typer(help="Estimates")
app.add_typer(estimates_cli, name="estimates")

invoices_cli = typer.Typer(help="Invoices")
app.add_typer(invoices_cli, name="invoices")

images_cli = typer.Typer(help="Photo bank images")
app.add_typer(images_cli, name="images")

console = Console()
log = get_logger("studiodesk.cli")

_STYLES = {
    NoticeLevel.SUCCESS: "[bold green]✓[/bold green]",
    NoticeLevel.INFO: "[blue]i[/blue]",
    NoticeLevel.ERROR: "[red]✗[/red]",
}


class ConsoleNotifier:
    """Prints notices to the terminal."""

    def notify(self, notice: Notice) -> None:
        line = f"{_STYLES[notice.level]} [bold]{notice.title}[/bold]"
        if notice.description:
            line += f" {notice.description}"
        console.print(line)


def _setup() -> AppConfig:
    try:
        config = get_config()
    except KeyError as exc:
        console.print(f"[red]✗[/red] Configuration error: {exc.args[0]}")
        raise typer.Exit(code=2) from exc
    configure_logging(config.log_level, json_logs=config.log_format == "json")
    return config


@app.command()
def totals(
    amounts: list[str] = typer.Argument(..., help="Line item amounts, e.g. 100 50.50"),
    gst_rate: str = typer.Option("18", "--gst-rate", help="GST rate in percent"),
    invoice_type: InvoiceType = typer.Option(InvoiceType.PAID, "--type", help="proforma or paid"),
    symbol: str = typer.Option(derivation.DEFAULT_SYMBOL, "--symbol", help="Currency symbol"),
):
    """Preview invoice totals without touching the store."""
    invalid = [a for a in amounts if not derivation.is_valid_amount(a)]
    if invalid:
        console.print(f"[yellow]⚠[/yellow] Ignoring invalid amounts: {', '.join(invalid)}")

    result = derivation.compute_totals(
        [{"amount": a} for a in amounts], gst_rate, invoice_type
    )

    table = Table(title=f"Invoice totals ({invoice_type.value})")
    table.add_column("Line", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_row("Subtotal", derivation.format_currency(result.subtotal, symbol))
    table.add_row(f"GST ({result.gst_rate}%)", derivation.format_currency(result.tax, symbol))
    table.add_row("[bold]Total[/bold]", f"[bold]{derivation.format_currency(result.total, symbol)}[/bold]")
    console.print(table)


@board_cli.command("show")
def board_show():
    """List projects grouped by board column."""
    config = _setup()

    async def _show():
        async with GatewayClient(config.gateway) as gateway:
            identity = build_identity_provider(config.auth, gateway)
            board = ProjectBoard(gateway, identity, ConsoleNotifier(), config.board)
            await board.load()
            return board

    board = asyncio.run(_show())
    if board.load_error is not None:
        raise typer.Exit(code=1)

    table = Table(title="Project board")
    table.add_column("Column", style="cyan")
    table.add_column("Project")
    table.add_column("Client")
    table.add_column("ID", style="dim")
    for column, projects in board.columns().items():
        if not projects:
            table.add_row(column.label, "[dim]-[/dim]", "", "")
        for project in projects:
            table.add_row(column.label, project.title, project.client_name or "", str(project.id))
    console.print(table)


@board_cli.command("move")
def board_move(
    project_id: UUID = typer.Argument(..., help="Project UUID"),
    column: BoardColumn = typer.Argument(..., help="Target column"),
):
    """Move a project card to another column."""
    config = _setup()

    async def _move():
        async with GatewayClient(config.gateway) as gateway:
            identity = build_identity_provider(config.auth, gateway)
            board = ProjectBoard(gateway, identity, ConsoleNotifier(), config.board)
            await board.load()
            if board.load_error is not None:
                raise typer.Exit(code=1)
            if project_id not in board.controller.entities:
                console.print(f"[red]✗[/red] Project not found: {project_id}")
                raise typer.Exit(code=1)
            return await board.move(project_id, column)

    outcome = asyncio.run(_move())
    log.info("board_move", project_id=str(project_id), column=column.value, state=outcome.state.value)
    if not outcome.succeeded:
        raise typer.Exit(code=1)
    console.print(f"[bold green]✓[/bold green] {column.label} ({outcome.state.value})")


@estimates_cli.command("list")
def estimates_list(
    tab: str = typer.Option("pending", "--tab", help="pending, approved, declined or all"),
):
    """List estimates on a tab."""
    config = _setup()

    async def _list():
        async with GatewayClient(config.gateway) as gateway:
            identity = build_identity_provider(config.auth, gateway)
            service = EstimateService(
                gateway,
                identity,
                ConsoleNotifier(),
                currency_symbol=config.invoices.currency_symbol,
            )
            await service.load()
            return service

    service = asyncio.run(_list())
    if service.load_error is not None:
        raise typer.Exit(code=1)
    estimates = service.filtered(tab)

    table = Table(title=f"Estimates ({tab})")
    table.add_column("Client", style="cyan")
    table.add_column("Project")
    table.add_column("Amount", justify="right")
    table.add_column("Status")
    for estimate in estimates:
        table.add_row(
            estimate.client_name, estimate.project_name, estimate.amount, estimate.status.value
        )
    console.print(table)


@invoices_cli.command("list")
def invoices_list(
    status: str | None = typer.Option(None, "--status", help="pending, partial or paid"),
    search: str = typer.Option("", "--search", help="Search text"),
    search_type: SearchType = typer.Option(SearchType.CLIENT, "--search-type"),
    sort: str = typer.Option(SortOption.DATE_DESC.value, "--sort", help="e.g. amount_desc"),
):
    """List invoices with search, status filter and sort."""
    config = _setup()

    async def _list():
        async with GatewayClient(config.gateway) as gateway:
            repository = InvoiceRepository(gateway, config.invoices)
            return await repository.fetch_all()

    try:
        invoices = asyncio.run(_list())
    except GatewayError as exc:
        console.print(f"[red]✗[/red] Could not load invoices: {exc.message}")
        raise typer.Exit(code=1) from exc

    invoices = sort_invoices(filter_invoices(invoices, search, status, search_type), sort)

    table = Table(title=f"Invoices ({len(invoices)})")
    table.add_column("Invoice", style="cyan")
    table.add_column("Client")
    table.add_column("Date")
    table.add_column("Amount", justify="right")
    table.add_column("Balance", justify="right")
    table.add_column("Status")
    for invoice in invoices:
        table.add_row(
            invoice.reference,
            invoice.client,
            invoice.date,
            invoice.amount,
            invoice.balance_amount,
            invoice.status.value,
        )
    console.print(table)


@images_cli.command("upload")
def images_upload(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Image file"),
    direct: bool = typer.Option(False, "--direct", help="Skip the edge function"),
):
    """Upload an image and print its id and public URL."""
    config = _setup()
    content_type = mimetypes.guess_type(file.name)[0] or "application/octet-stream"
    content = file.read_bytes()

    def _progress(percent: int) -> None:
        console.print(f"  {percent}%", style="dim")

    async def _upload():
        async with GatewayClient(config.gateway) as gateway:
            identity = build_identity_provider(config.auth, gateway)
            service = ImageUploadService(gateway, identity, config.storage)
            upload = service.upload_direct if direct else service.upload
            return await upload(content, file.name, content_type, _progress)

    try:
        result = asyncio.run(_upload())
    except FormValidationError as exc:
        console.print(f"[red]✗[/red] {next(iter(exc.errors.values()))}")
        raise typer.Exit(code=1) from exc
    except GatewayError as exc:
        console.print(f"[red]✗[/red] Upload failed: {exc.message}")
        raise typer.Exit(code=1) from exc

    console.print(f"[bold green]✓[/bold green] Image_UUID: {result.image_uuid}")
    console.print(f"  Image_AccessURL: {result.access_url}")


if __name__ == "__main__":
    app()
