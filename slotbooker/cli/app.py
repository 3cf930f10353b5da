"""
Main CLI application using Typer.
"""

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Dict, List, Optional, Tuple

import pendulum
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from ..adapters.google_calendar import GoogleCalendarClient
from ..adapters.memory_repository import InMemoryRepository
from ..adapters.mock_calendar import MockCalendarClient
from ..adapters.zoom_client import ZoomMeetingClient
from ..config import AppConfig, DataFile, get_default_config_path
from ..domain.exceptions import SlotbookerError
from ..services.availability import AvailabilityService
from ..services.booking import BookingService
from ..services.calendar_export import DEFAULT_ORGANIZER_EMAIL

app = typer.Typer(
    name="slotbooker",
    help="Compute bookable slots and manage bookings for event templates",
    add_completion=False
)

console = Console()

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to config file. Defaults to ./config.yaml"),
]
MockOption = Annotated[
    bool,
    typer.Option("--mock", help="Serve busy times from the data file instead of Google Calendar."),
]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show debug logging.")]


def _setup_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load(config_file: Optional[Path], verbose: bool) -> Tuple[AppConfig, DataFile]:
    config_path = config_file or get_default_config_path()
    config = AppConfig.load_from_yaml(config_path)
    _setup_logging(config.log_level, verbose)
    return config, DataFile.load_from_yaml(config.data_file)


def _build_services(
    config: AppConfig,
    data: DataFile,
    mock: bool
) -> Tuple[InMemoryRepository, AvailabilityService, BookingService]:
    """Wire repository, providers and services from the loaded files."""
    repository = InMemoryRepository.from_data_file(data)

    if mock:
        console.print("[yellow]⚠  MOCK MODE: busy times come from the data file[/yellow]\n")
        calendar_client = MockCalendarClient.from_data_file(data)
    elif config.google:
        calendar_client = GoogleCalendarClient(
            client_id=config.google.client_id,
            client_secret=config.google.client_secret,
            refresh_tokens=config.google.refresh_tokens,
        )
    else:
        calendar_client = None

    meeting_provider = None
    if config.zoom:
        meeting_provider = ZoomMeetingClient(
            account_id=config.zoom.account_id,
            client_id=config.zoom.client_id,
            client_secret=config.zoom.client_secret,
            timeout=config.fetch_timeout_seconds,
        )

    availability = AvailabilityService(
        repository,
        calendar_client=calendar_client,
        fetch_timeout_seconds=config.fetch_timeout_seconds,
    )
    booking = BookingService(
        repository,
        availability,
        calendar_client=calendar_client,
        meeting_provider=meeting_provider,
    )
    return repository, availability, booking


def _save(config: AppConfig, data: DataFile, repository: InMemoryRepository) -> None:
    data.with_bookings(repository.list_bookings()).save_to_yaml(config.data_file)


def _parse_answers(values: List[str]) -> Dict[str, str]:
    answers: Dict[str, str] = {}
    for value in values:
        question_id, sep, answer = value.partition("=")
        if not sep or not question_id.strip():
            raise ValueError(f"Answer must look like QUESTION_ID=TEXT, got '{value}'")
        answers[question_id.strip()] = answer.strip()
    return answers


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


@app.command()
def slots(
    template_id: Annotated[str, typer.Argument(help="Event template id")],
    date: Annotated[Optional[str], typer.Option("--date", "-d", help="Guest date (YYYY-MM-DD). Defaults to today.")] = None,
    tz: Annotated[Optional[str], typer.Option("--tz", help="Guest timezone (IANA name). Defaults to the configured one.")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    List the bookable slots of a template on one date.

    Examples:

        slotbooker slots intro-call --date 2024-11-25 --tz Asia/Tokyo

        slotbooker slots team-sync --mock
    """
    try:
        config, data = _load(config_file, verbose)
        guest_tz = tz or config.timezone
        requested_date = date or pendulum.now(guest_tz).format("YYYY-MM-DD")
        _, availability, _ = _build_services(config, data, mock)

        found = asyncio.run(
            availability.get_available_slots(
                event_template_id=template_id,
                requested_date=requested_date,
                guest_timezone=guest_tz,
            )
        )
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    console.print()
    if not found:
        console.print(f"[yellow]⚠ No slots available on {requested_date} ({guest_tz}).[/yellow]\n")
        return

    console.print(f"[bold green]✓ {len(found)} slot(s) on {requested_date} ({guest_tz}):[/bold green]\n")
    for slot in found:
        console.print(
            f"  {slot.format_display(guest_tz)}  "
            f"[dim]{slot.start.format('YYYY-MM-DD[T]HH:mm:ss[Z]')}  "
            f"{', '.join(slot.eligible_participant_ids)}[/dim]"
        )
    console.print()


@app.command()
def book(
    template_id: Annotated[str, typer.Argument(help="Event template id")],
    start: Annotated[str, typer.Argument(help="Slot start as ISO-8601 instant, e.g. 2024-11-25T00:00:00Z")],
    name: Annotated[str, typer.Option("--name", "-n", help="Guest name")],
    email: Annotated[str, typer.Option("--email", "-e", help="Guest email")],
    tz: Annotated[Optional[str], typer.Option("--tz", help="Guest timezone (IANA name)")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", help="Notes for the organizer")] = None,
    answers: Annotated[
        Optional[List[str]],
        typer.Option("--answer", "-a", help="Answer to a custom question as QUESTION_ID=TEXT (repeatable)"),
    ] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Book a slot for a guest.

    Examples:

        slotbooker book intro-call 2024-11-25T00:00:00Z -n "Grace Hopper" -e grace@example.com -a company=Acme
    """
    try:
        guest_answers = _parse_answers(answers or [])
        config, data = _load(config_file, verbose)
        repository, _, booking_service = _build_services(config, data, mock)
        guest_tz = tz or config.timezone

        booking = asyncio.run(
            booking_service.create_booking(
                {
                    "event_template_id": template_id,
                    "start_time": start,
                    "guest_name": name,
                    "guest_email": email,
                    "guest_timezone": guest_tz,
                    "guest_notes": notes,
                    "guest_answers": guest_answers,
                }
            )
        )
        _save(config, data, repository)
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    local_start = booking.start.in_timezone(guest_tz)
    console.print(Panel.fit(
        f"[bold green]✓ Booking confirmed[/bold green]\n\n"
        f"[bold]ID:[/bold] {booking.id}\n"
        f"[bold]When:[/bold] {local_start.format('dddd, YYYY-MM-DD HH:mm')} ({guest_tz})\n"
        f"[bold]With:[/bold] {booking.assigned_user_id}\n"
        f"[bold]Meeting:[/bold] {booking.meeting_url or 'N/A'}",
        title="Booking"
    ))


@app.command()
def cancel(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    reason: Annotated[Optional[str], typer.Option("--reason", "-r", help="Cancellation reason")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Cancel a confirmed booking.
    """
    try:
        config, data = _load(config_file, verbose)
        repository, _, booking_service = _build_services(config, data, mock)
        asyncio.run(booking_service.cancel_booking(booking_id, reason))
        _save(config, data, repository)
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    console.print(f"\n[green]✓ Booking {booking_id} cancelled.[/green]\n")


@app.command()
def reschedule(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    start: Annotated[str, typer.Argument(help="New start as ISO-8601 instant")],
    tz: Annotated[Optional[str], typer.Option("--tz", help="Guest timezone; defaults to the booking's")] = None,
    config_file: ConfigOption = None,
    mock: MockOption = False,
    verbose: VerboseOption = False,
):
    """
    Move a confirmed booking to another slot.
    """
    try:
        config, data = _load(config_file, verbose)
        repository, _, booking_service = _build_services(config, data, mock)
        booking = asyncio.run(booking_service.reschedule_booking(booking_id, start, tz))
        _save(config, data, repository)
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    console.print(
        f"\n[green]✓ Booking {booking_id} moved to {booking.start.format('YYYY-MM-DD HH:mm')} UTC "
        f"(new id {booking.id}).[/green]\n"
    )


@app.command()
def templates(
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List all configured event templates.
    """
    try:
        _, data = _load(config_file, verbose)
        event_templates = InMemoryRepository.from_data_file(data).list_event_templates()
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    if not event_templates:
        console.print("[yellow]No event templates defined in the data file.[/yellow]")
        return

    table = Table(
        title="Event templates",
        show_header=True,
        header_style="bold cyan"
    )
    table.add_column("ID", style="bold yellow")
    table.add_column("Title")
    table.add_column("Duration")
    table.add_column("Mode")
    table.add_column("Participants", style="dim")
    table.add_column("Questions")
    table.add_column("Active")

    for template in event_templates:
        table.add_row(
            template.id,
            template.title,
            f"{template.duration_minutes} min",
            template.scheduling_mode.value,
            ", ".join(template.participant_ids),
            str(len(template.custom_questions)),
            "yes" if template.is_active else "no",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def bookings(
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    List stored bookings.
    """
    try:
        _, data = _load(config_file, verbose)
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    if not data.bookings:
        console.print("[yellow]No bookings yet.[/yellow]")
        return

    table = Table(title="Bookings", show_header=True, header_style="bold cyan")
    table.add_column("ID", style="bold yellow")
    table.add_column("Template")
    table.add_column("Start (UTC)")
    table.add_column("Assignee")
    table.add_column("Guest", style="dim")
    table.add_column("Status")

    for record in data.bookings:
        table.add_row(
            record.id,
            record.event_template_id,
            record.start,
            record.assigned_user_id,
            record.guest_email,
            record.status.value,
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def ics(
    booking_id: Annotated[str, typer.Argument(help="Booking id")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write the .ics file here instead of stdout")] = None,
    organizer_email: Annotated[str, typer.Option("--organizer-email", help="Organizer address in the exported event")] = DEFAULT_ORGANIZER_EMAIL,
    config_file: ConfigOption = None,
    verbose: VerboseOption = False,
):
    """
    Export a booking as an iCalendar (.ics) file.

    Examples:

        slotbooker ics 5d0c... --output meeting.ics
    """
    try:
        _, data = _load(config_file, verbose)
        repository = InMemoryRepository.from_data_file(data)
        booking_service = BookingService(repository, AvailabilityService(repository))
        content = booking_service.export_ics(booking_id, organizer_email=organizer_email)
        link = booking_service.calendar_link(booking_id)
    except (FileNotFoundError, ValueError, SlotbookerError) as e:
        _fail(e)

    if output is None:
        typer.echo(content, nl=False)
        return

    output.write_text(content, encoding="utf-8")
    console.print(f"\n[green]✓ Wrote {output}[/green]")
    console.print(f"[dim]Google Calendar: {link}[/dim]\n")


@app.command()
def version():
    """
    Show version information.
    """
    from .. import __version__
    console.print(f"\n[bold cyan]slotbooker[/bold cyan] version [bold]{__version__}[/bold]\n")


if __name__ == "__main__":
    app()
