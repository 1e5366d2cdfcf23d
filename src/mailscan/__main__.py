"""CLI entry point for mailscan."""

import asyncio
import logging
import sys
from pathlib import Path

import click

from .adapters.api import HttpxApiAdapter, create_api_adapter
from .adapters.storage import YamlStore
from .config import Settings, load_settings
from .domain.errors import SubmitError
from .domain.history import HistoryFilter, HistorySort, HistoryView, project_history
from .domain.models import Credential, ScanRecord
from .domain.services import AuthService, ReconciliationService, ScanService
from .poller import ReconciliationPoller
from .ports.api import ApiError, ApiStatusError

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def format_scan(scan: ScanRecord, detailed: bool = False) -> list[str]:
    """Render a scan as display lines."""
    lines = [f"{scan.id}  {scan.status_label:<10}  {scan.relative_age()}"]
    if not detailed:
        return lines

    lines.append(f"  image: {scan.image_location}")
    lines.append(f"  created: {scan.created_at.isoformat()}")
    for label, value in (
        ("sender", scan.sender_name),
        ("sender address", scan.sender_address),
        ("sender pincode", scan.sender_pincode),
        ("recipient", scan.recipient_name),
        ("recipient address", scan.recipient_address),
        ("pincode", scan.pincode),
        ("sorting center", scan.sorting_center),
    ):
        if value:
            lines.append(f"  {label}: {value}")
    return lines


def format_history(view: HistoryView) -> list[str]:
    header = f"{view.count} of {view.total} scans ({view.filter.label}, {view.sort.label})"
    lines = [header]
    for scan in view.records:
        lines.extend(format_scan(scan))
    return lines


def describe_submit_error(error: SubmitError, image: Path) -> list[str]:
    """User-facing lines for a failed submission, with a retry hint."""
    lines = [f"Submission failed: {error.user_message}"]
    if error.status_code is not None:
        lines.append(f"  step: {error.step.value if error.step else '-'}, status: {error.status_code}")
    if error.requires_login:
        lines.append("  Run `mailscan login EMAIL` and try again.")
    elif error.retryable:
        lines.append(f"  Retry with: mailscan submit {image}")
    return lines


def describe_api_error(error: ApiError) -> list[str]:
    if isinstance(error, ApiStatusError) and error.details:
        return ["Request rejected:"] + [
            f"  {d.field}: {d.message}" if d.field else f"  {d.message}" for d in error.details
        ]
    return [f"Error: {error}"]


def open_store(settings: Settings) -> YamlStore:
    store = YamlStore(settings.storage.data_dir)
    if store.is_first_launch():
        click.echo(f"Welcome to mailscan. Data is kept in {settings.storage.data_dir}")
        store.complete_first_launch()
    return store


def require_credential(store: YamlStore) -> Credential:
    credential = store.get_credential()
    if credential is None:
        click.echo("Not logged in. Run `mailscan login EMAIL` first.", err=True)
        sys.exit(1)
    return credential


def fail_with(error: ApiError) -> None:
    for line in describe_api_error(error):
        click.echo(line, err=True)
    sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """mailscan - submit letter scans and track their extraction."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.argument("username")
@click.argument("email")
@click.password_option()
@click.pass_context
def register(ctx: click.Context, username: str, email: str, password: str) -> None:
    """Create an account and log in."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)

    async def run() -> None:
        async with create_api_adapter(settings.api) as api:
            user = await AuthService(api, store).register(username, email, password)
        if user.is_logged_in:
            click.echo(f"Registered and logged in as {user.email}")
        else:
            click.echo("Registration successful! Please login.")

    try:
        asyncio.run(run())
    except ApiError as e:
        fail_with(e)


@cli.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
@click.pass_context
def login(ctx: click.Context, email: str, password: str) -> None:
    """Log in and store the session credential."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)

    async def run() -> None:
        async with create_api_adapter(settings.api) as api:
            user = await AuthService(api, store).login(email, password)
        click.echo(f"Logged in as {user.email}")

    try:
        asyncio.run(run())
    except ApiError as e:
        fail_with(e)


@cli.command()
@click.pass_context
def logout(ctx: click.Context) -> None:
    """Forget the session credential, keeping the profile."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)
    store.logout()
    click.echo("Logged out")


@cli.command()
@click.pass_context
def whoami(ctx: click.Context) -> None:
    """Show the current user."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)
    user = store.get_user()
    if user is None:
        click.echo("No user")
        return
    state = "logged in" if user.is_logged_in else "logged out"
    click.echo(f"{user.username} <{user.email}> ({state})")


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def submit(ctx: click.Context, image: Path) -> None:
    """Upload a letter image for extraction."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)
    credential = require_credential(store)

    async def run() -> bool:
        async with create_api_adapter(settings.api) as api:
            result = await ScanService(api, store).submit(image, credential)
        if result.success and result.record:
            click.echo("Submitted:")
            for line in format_scan(result.record, detailed=True):
                click.echo(line)
            return True
        if result.error:
            for line in describe_submit_error(result.error, image):
                click.echo(line, err=True)
        return False

    if not asyncio.run(run()):
        sys.exit(1)


@cli.command()
@click.option("--limit", type=int, default=None, help="Page size")
@click.option("--offset", type=int, default=0, help="Page offset")
@click.pass_context
def sync(ctx: click.Context, limit: int | None, offset: int) -> None:
    """Refresh local scans from the server."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)
    credential = require_credential(store)

    async def run() -> None:
        async with create_api_adapter(settings.api) as api:
            result = await ScanService(api, store).refresh(
                credential, limit=limit or settings.api.page_size, offset=offset
            )
        click.echo(
            f"Fetched {result.fetched}: {len(result.added)} new, {len(result.updated)} updated"
        )

    try:
        asyncio.run(run())
    except ApiError as e:
        fail_with(e)


@cli.command()
@click.option(
    "--sort",
    type=click.Choice([s.value for s in HistorySort]),
    default=HistorySort.NEWEST.value,
    show_default=True,
)
@click.option(
    "--filter",
    "filter_",
    type=click.Choice([f.value for f in HistoryFilter]),
    default=HistoryFilter.ALL.value,
    show_default=True,
)
@click.pass_context
def history(ctx: click.Context, sort: str, filter_: str) -> None:
    """List stored scans."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)
    view = project_history(store.all_scans(), HistorySort(sort), HistoryFilter(filter_))
    for line in format_history(view):
        click.echo(line)


@cli.command()
@click.argument("scan_id")
@click.option("--refresh", is_flag=True, help="Fetch the latest state first")
@click.pass_context
def show(ctx: click.Context, scan_id: str, refresh: bool) -> None:
    """Show one scan."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)

    if refresh:
        credential = require_credential(store)

        async def run() -> None:
            async with create_api_adapter(settings.api) as api:
                await ScanService(api, store).fetch(scan_id, credential)

        try:
            asyncio.run(run())
        except ApiError as e:
            fail_with(e)

    scan = store.get_scan(scan_id)
    if scan is None:
        click.echo(f"Scan not found: {scan_id}", err=True)
        sys.exit(1)
    for line in format_scan(scan, detailed=True):
        click.echo(line)


@cli.command()
@click.argument("scan_ids", nargs=-1)
@click.option("--all", "delete_all", is_flag=True, help="Delete every stored scan")
@click.pass_context
def delete(ctx: click.Context, scan_ids: tuple[str, ...], delete_all: bool) -> None:
    """Delete stored scans."""
    if not scan_ids and not delete_all:
        raise click.UsageError("Give at least one scan id, or --all")

    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)
    if delete_all:
        count = store.scan_count()
        store.clear_scans()
        click.echo(f"Deleted {count} scans")
        return
    removed = sum(1 for scan_id in scan_ids if store.delete_scan(scan_id))
    click.echo(f"Deleted {removed} of {len(scan_ids)} scans")


@cli.command()
@click.option("--once", is_flag=True, help="Run a single sweep and exit")
@click.pass_context
def poll(ctx: click.Context, once: bool) -> None:
    """Reconcile pending scans with the server."""
    settings = load_settings(ctx.obj["config_path"])
    store = open_store(settings)

    def report(changed: list[str]) -> None:
        for scan_id in changed:
            scan = store.get_scan(scan_id)
            if scan:
                click.echo(f"Updated: {format_scan(scan)[0]}")

    async def run(api: HttpxApiAdapter) -> None:
        poller = ReconciliationPoller(
            ReconciliationService(api, store),
            store.get_credential,
            interval=settings.poll.interval_seconds,
            on_change=report,
        )
        if once:
            changed = await poller.poll_once()
            click.echo(f"{len(changed)} scans updated")
            return
        handle = poller.start(run_immediately=True)
        try:
            await handle.stopped()
        finally:
            handle.cancel()

    async def main() -> None:
        async with create_api_adapter(settings.api) as api:
            await run(api)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down...")


if __name__ == "__main__":
    cli()
