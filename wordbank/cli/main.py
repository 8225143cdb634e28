"""
Typer CLI for the wordbank engine.

Commands:
    wordbank db init                      - Initialize database tables
    wordbank quota status USER            - Show a learner's quota window
    wordbank quota reset USER             - Zero a learner's usage
    wordbank quota set-tier USER TIER     - Move a learner to another tier
    wordbank quota set-limit USER [LIMIT] - Override (or clear) the per-period limit
    wordbank quota bulk-reset TIER        - Reset every learner on a tier
    wordbank quota report                 - Usage report with upgrade candidates
    wordbank subjects USER NAME[:WEIGHT]  - Set a learner's subjects
    wordbank next USER                    - Deliver the next item
    wordbank act DELIVERY_ID ACTION       - Report an action on a delivery
    wordbank list USER                    - Show a learner's wordbank
    wordbank generate SUBJECT             - Generate terms for a subject

Usage:
    wordbank --help
    wordbank subjects alice Photography:2 Biology
    wordbank next alice --strategy model_first
    wordbank generate Photography --count 10
"""

from __future__ import annotations

import asyncio
from uuid import UUID

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from wordbank.db.database import init_db, session_scope
from wordbank.delivery import ItemStatus, WordbankService
from wordbank.errors import (
    DeliveryNotFound,
    GenerationError,
    InvalidAction,
    NoContentAvailable,
    QuotaExceeded,
)
from wordbank.generation import CatalogStore, GenerationOrchestrator, RetryingClient
from wordbank.logging_config import configure_logging
from wordbank.quota import QuotaGuard, QuotaStatus

app = typer.Typer(
    help="wordbank CLI: spaced-repetition delivery, quotas and on-demand generation",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show INFO logs"),
) -> None:
    """Wordbank delivery engine operations."""
    configure_logging(get_settings(), level="INFO" if verbose else "WARNING", console_format="<level>{message}</level>")


def _http_client() -> RetryingClient:
    settings = get_settings()
    return RetryingClient(
        timeout_seconds=settings.http_timeout_seconds,
        retry_attempts=settings.generation_retry_attempts,
        backoff_seconds=settings.generation_backoff_seconds,
    )


def _print_quota(status: QuotaStatus) -> None:
    table = Table(title=f"Quota: {status.user_id}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Tier", status.tier)
    table.add_row("Usage", f"{status.usage}/{status.limit}")
    table.add_row("Remaining", str(status.remaining))
    table.add_row("Allowed", "[green]yes[/green]" if status.allowed else "[red]no[/red]")
    table.add_row("Next reset", status.next_reset.isoformat() if status.next_reset else "never")
    console.print(table)


# ========================================
# Database Commands
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


# ========================================
# Quota Commands
# ========================================

quota_app = typer.Typer(help="Quota status and administration")
app.add_typer(quota_app, name="quota")


@quota_app.command("status")
def quota_status(
    user_id: str = typer.Argument(..., help="Learner id"),
    tier: str | None = typer.Option(None, "--tier", help="Sync the learner's tier first"),
) -> None:
    """Show a learner's quota window (applies a due reset)."""
    with session_scope() as db:
        _print_quota(QuotaGuard(db, default_tier=get_settings().default_tier).check(user_id, tier))


@quota_app.command("reset")
def quota_reset(
    user_id: str = typer.Argument(..., help="Learner id"),
    reason: str | None = typer.Option(None, "--reason", help="Reason recorded in the log"),
) -> None:
    """Zero a learner's usage and start a new period now."""
    with session_scope() as db:
        status = QuotaGuard(db).reset(user_id, reason=reason)
    rprint(f"[green]✓[/green] Quota reset for {user_id} ({status.tier})")


@quota_app.command("set-tier")
def quota_set_tier(
    user_id: str = typer.Argument(..., help="Learner id"),
    tier: str = typer.Argument(..., help="free, basic, premium or enterprise"),
) -> None:
    """Move a learner to another tier (usage starts over)."""
    try:
        with session_scope() as db:
            status = QuotaGuard(db).set_tier(user_id, tier)
            _print_quota(status)
    except ValueError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)


@quota_app.command("set-limit")
def quota_set_limit(
    user_id: str = typer.Argument(..., help="Learner id"),
    limit: int | None = typer.Argument(None, min=0, help="New limit; omit to restore the tier default"),
) -> None:
    """Override the learner's per-period limit."""
    with session_scope() as db:
        _print_quota(QuotaGuard(db).set_custom_limit(user_id, limit))


@quota_app.command("bulk-reset")
def quota_bulk_reset(tier: str = typer.Argument(..., help="Tier to reset")) -> None:
    """Reset every learner on a tier."""
    try:
        with session_scope() as db:
            users = QuotaGuard(db).bulk_reset(tier)
    except ValueError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    rprint(f"[green]✓[/green] Reset {len(users)} learner(s) on {tier.lower()}")


@quota_app.command("report")
def quota_report(top: int = typer.Option(10, "--top", help="Most active learners to list")) -> None:
    """Usage report: exceeded learners, per-tier averages, upgrade candidates."""
    with session_scope() as db:
        report = QuotaGuard(db).report(top=top)

    rprint("\n[bold cyan]Quota Report[/bold cyan]")
    rprint(f"  Learners: {report.total_users}")
    rprint(f"  Over quota: {report.quota_exceeded_users}")
    rprint(f"  Utilisation: {report.quota_utilization:.1f}%")

    if report.average_usage_per_tier:
        table = Table(title="Average usage per tier")
        table.add_column("Tier", style="cyan")
        table.add_column("Average", justify="right")
        for tier, average in sorted(report.average_usage_per_tier.items()):
            table.add_row(tier, f"{average:.1f}")
        console.print(table)

    if report.upgrade_recommendations:
        table = Table(title="Upgrade recommendations")
        table.add_column("Learner", style="cyan")
        table.add_column("Current")
        table.add_column("Recommended", style="green")
        for rec in report.upgrade_recommendations:
            table.add_row(str(rec["user_id"]), str(rec["current_tier"]), str(rec["recommended_tier"]))
        console.print(table)


# ========================================
# Learner Commands
# ========================================


def _parse_subject(value: str) -> tuple[str, float | None]:
    name, sep, weight = value.rpartition(":")
    if not sep:
        return value, None
    try:
        return name, float(weight)
    except ValueError:
        raise typer.BadParameter(f"Invalid weight in {value!r}") from None


@app.command("subjects")
def set_subjects(
    user_id: str = typer.Argument(..., help="Learner id"),
    subjects: list[str] = typer.Argument(..., help="Subject names, optionally NAME:WEIGHT"),
) -> None:
    """Replace a learner's subjects."""
    weights = dict(_parse_subject(s) for s in subjects)
    with session_scope() as db:
        rows = WordbankService(db).set_subjects(user_id, weights)
        names = [f"{row.subject.name} ({row.weight if row.weight is not None else '-'})" for row in rows]
    rprint(f"[green]✓[/green] {user_id} studies: {', '.join(names)}")


@app.command("next")
def next_item(
    user_id: str = typer.Argument(..., help="Learner id"),
    strategy: str | None = typer.Option(None, "--strategy", "-s", help="source_first or model_first"),
) -> None:
    """Deliver the learner's next item."""

    async def _run() -> None:
        async with _http_client() as client:
            with session_scope() as db:
                orchestrator = GenerationOrchestrator.from_settings(db, client, get_settings())
                service = WordbankService(db, orchestrator=orchestrator)
                delivery = await service.request_next_item(user_id, strategy=strategy)
                rprint(f"\n[bold cyan]{delivery.term.term}[/bold cyan]  [dim]({delivery.kind})[/dim]")
                rprint(f"  {delivery.term.definition}")
                for example in delivery.term.examples or []:
                    rprint(f"  [dim]e.g. {example}[/dim]")
                rprint(f"  Delivery: {delivery.id}")

    try:
        asyncio.run(_run())
    except QuotaExceeded as e:
        rprint(f"[yellow]⚠[/yellow] {e}")
        raise typer.Exit(code=2)
    except NoContentAvailable as e:
        rprint(f"[yellow]⚠[/yellow] No content available, try later: {e}")
        raise typer.Exit(code=3)


@app.command("act")
def report_action(
    delivery_id: str = typer.Argument(..., help="Delivery id"),
    action: str = typer.Argument(..., help="none, opened, favorited, learn_again, mastered"),
) -> None:
    """Report a learner action on a delivery."""
    try:
        with session_scope() as db:
            delivery = WordbankService(db).report_action(UUID(delivery_id), action)
            item = delivery.learning_item
            rprint(
                f"[green]✓[/green] {delivery.term.term}: {item.status} bucket {item.bucket}, "
                f"next review {item.next_review_at:%Y-%m-%d}"
            )
    except (InvalidAction, DeliveryNotFound, ValueError) as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)


@app.command("list")
def list_wordbank(
    user_id: str = typer.Argument(..., help="Learner id"),
    status: str | None = typer.Option(None, "--status", help="learning, reviewing, mastered, archived"),
    favorited: bool = typer.Option(False, "--favorited", help="Only favorited terms"),
) -> None:
    """Show a learner's wordbank."""
    try:
        item_status = ItemStatus(status) if status else None
    except ValueError:
        raise typer.BadParameter(f"Unknown status: {status}") from None

    with session_scope() as db:
        items = WordbankService(db).list_wordbank(user_id, item_status, True if favorited else None)
        table = Table(title=f"Wordbank: {user_id}")
        table.add_column("Term", style="cyan")
        table.add_column("Status")
        table.add_column("Bucket", justify="right")
        table.add_column("Reviews", justify="right")
        table.add_column("Next review")
        table.add_column("★", justify="center")
        for item in items:
            table.add_row(
                item.term.term,
                item.status,
                str(item.bucket),
                str(item.review_count),
                f"{item.next_review_at:%Y-%m-%d %H:%M}",
                "★" if item.favorited else "",
            )
        console.print(table)
        if not items:
            rprint("[dim]No terms yet.[/dim]")


@app.command("generate")
def generate(
    subject: str = typer.Argument(..., help="Subject name (created if missing)"),
    count: int = typer.Option(5, "--count", "-n", min=1, help="Terms wanted"),
    strategy: str | None = typer.Option(None, "--strategy", "-s", help="source_first or model_first"),
) -> None:
    """Generate catalog terms for a subject without delivering them."""

    async def _run() -> None:
        async with _http_client() as client:
            with session_scope() as db:
                subject_row = CatalogStore(db).get_or_create_subject(subject)
                orchestrator = GenerationOrchestrator.from_settings(db, client, get_settings())
                result = await orchestrator.generate(subject_row.id, count, strategy=strategy)

                table = Table(title=f"Generated for {subject_row.name} ({result.stats.strategy.value})")
                table.add_column("Term", style="cyan")
                table.add_column("Provenance")
                table.add_column("Confidence", justify="right")
                for term in result.terms:
                    table.add_row(term.term, term.provenance.value, f"{term.confidence:.2f}")
                console.print(table)

                stats = result.stats
                rprint(f"  Candidates: {stats.candidates}")
                rprint(f"  Persisted: {stats.persisted}")
                rprint(f"  Duplicates removed: {stats.duplicates_removed}")
                rprint(f"  Low confidence dropped: {stats.low_confidence_dropped}")
                rprint(f"  Elapsed: {stats.elapsed_ms} ms")

    try:
        asyncio.run(_run())
    except (GenerationError, ValueError) as e:
        rprint(f"[red]✗[/red] Generation failed: {e}")
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
