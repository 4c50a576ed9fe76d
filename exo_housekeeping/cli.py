"""Command line entry point: ``exo-housekeeping <command>``.

Every command writes its CSV report under ``--output-dir`` (``REPORT_DIR``
by default) and prints the path.  Commands that change the directory run
as a dry run unless ``--apply`` is given.
"""
from __future__ import annotations

import logging
import random
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from exo_housekeeping.core.constants import (
    ADDRESS_REPORT_FIELDS,
    ALIAS_REPORT_FIELDS,
    GROUP_REPORT_FIELDS,
    SKIPPED_ITEM_REPORT_FIELDS,
)
from exo_housekeeping.core.logging import setup_logging
from exo_housekeeping.core.settings import get_settings
from exo_housekeeping.exchange.client import (
    ExchangeCommandError,
    ExchangeTimeoutError,
    PowerShellExchangeClient,
    PowerShellNotFoundError,
)
from exo_housekeeping.export.csv_exporter import write_report
from exo_housekeeping.groups.placeholder import create_placeholder, finalize_placeholder
from exo_housekeeping.mailboxes.address_reconciler import reconcile_mailboxes
from exo_housekeeping.migration.skipped_items import collect_skipped_items
from exo_housekeeping.normalization.nickname_normalizer import NicknameSanitizer
from exo_housekeeping.publicfolders.alias_audit import (
    apply_alias_suggestions,
    audit_public_folder_aliases,
    records_from_csv,
    records_from_exchange,
)
from exo_housekeeping.readers.csv_reader import read_rows

app = typer.Typer(add_completion=False, help="Exchange Online tenant-migration housekeeping")
logger = logging.getLogger(__name__)


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except (ExchangeCommandError, ExchangeTimeoutError, PowerShellNotFoundError) as exc:
        logger.error("Exchange call failed: %s", exc)
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _output_dir(value: Optional[Path]) -> Path:
    return value if value is not None else Path(get_settings().report_dir)


def _client() -> PowerShellExchangeClient:
    return PowerShellExchangeClient()


@app.callback()
def _common() -> None:
    """Shared setup for all sub-commands."""
    setup_logging()


# ----------------------------- public folders -------------------------------


@app.command("audit-aliases")
def audit_aliases(
    input_csv: Optional[Path] = typer.Option(
        None, "--input", help="Get-Recipient export with Alias, EmailAddresses, RecipientTypeDetails."
    ),
    live: bool = typer.Option(False, "--live", help="Read public folders from Exchange Online."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for reproducible suffixes."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir"),
) -> None:
    """Report public-folder nicknames that need sanitizing and bad SMTP addresses."""
    if (input_csv is None) == (not live):
        typer.echo("Error: pass exactly one of --input or --live", err=True)
        raise typer.Exit(code=1)

    if seed is None:
        seed = get_settings().nickname_suffix_seed
    sanitizer = NicknameSanitizer(rng=random.Random(seed))

    with _handle_errors():
        records = records_from_exchange(_client()) if live else records_from_csv(input_csv)
        report = audit_public_folder_aliases(records, sanitizer=sanitizer)
        path = write_report(
            [row.as_dict() for row in report.rows],
            ALIAS_REPORT_FIELDS,
            _output_dir(output_dir),
            "public_folder_aliases",
        )

    typer.echo(
        f"{report.public_folders} public folder(s): {report.modified} alias change(s), "
        f"{report.bad_smtp} bad SMTP address(es)"
    )
    typer.echo(str(path))


@app.command("apply-aliases")
def apply_aliases(
    report_csv: Path = typer.Argument(..., help="Report written by audit-aliases."),
    apply: bool = typer.Option(False, "--apply", help="Change the directory (default: dry run)."),
) -> None:
    """Set the suggested nicknames from an alias report."""
    with _handle_errors():
        rows = list(read_rows(report_csv, ALIAS_REPORT_FIELDS))
        summary = apply_alias_suggestions(rows, _client(), dry_run=not apply)

    prefix = "" if apply else "[dry run] "
    typer.echo(f"{prefix}applied {summary.applied}, skipped {summary.skipped}, failed {summary.failed}")
    if summary.failed:
        raise typer.Exit(code=3)


# ----------------------------- migration ------------------------------------


@app.command("skipped-items")
def skipped_items(
    batch_id: Optional[str] = typer.Option(None, "--batch-id", help="Limit to one migration batch."),
    users: Optional[List[str]] = typer.Option(None, "--user", help="Migration user; repeatable."),
    kinds: Optional[List[str]] = typer.Option(None, "--kind", help="Only this skipped-item kind; repeatable."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir"),
) -> None:
    """Report items skipped by mailbox migration."""
    with _handle_errors():
        report = collect_skipped_items(
            _client(),
            batch_id=batch_id,
            identities=users or None,
            kinds=kinds or None,
        )
        path = write_report(
            report.rows,
            SKIPPED_ITEM_REPORT_FIELDS,
            _output_dir(output_dir),
            "skipped_items",
        )

    typer.echo(
        f"{len(report.rows)} skipped item(s) for {report.users_with_skips} of {report.users} user(s)"
    )
    typer.echo(str(path))
    if report.failed_users:
        typer.echo(f"Failed: {', '.join(report.failed_users)}", err=True)
        raise typer.Exit(code=3)


# ----------------------------- distribution groups --------------------------


@app.command("dl-placeholder")
def dl_placeholder(
    identity: str = typer.Argument(..., help="Synced distribution group."),
    snapshot_dir: Optional[Path] = typer.Option(None, "--snapshot-dir"),
    apply: bool = typer.Option(False, "--apply", help="Create the group (default: dry run)."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir"),
) -> None:
    """Snapshot a synced group and create its hidden Cloud- placeholder."""
    out = _output_dir(output_dir)
    with _handle_errors():
        result = create_placeholder(
            _client(),
            identity,
            snapshot_dir if snapshot_dir is not None else out / "snapshots",
            dry_run=not apply,
        )
        path = write_report([result.as_dict()], GROUP_REPORT_FIELDS, out, "dl_placeholder")

    typer.echo(f"Snapshot: {result.snapshot_path}")
    typer.echo(str(path))
    if result.has_failures:
        raise typer.Exit(code=3)


@app.command("dl-finalize")
def dl_finalize(
    snapshot: Path = typer.Argument(..., help="Snapshot written by dl-placeholder."),
    apply: bool = typer.Option(False, "--apply", help="Rename the placeholder (default: dry run)."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir"),
) -> None:
    """Turn a placeholder into the original group once it has left sync scope."""
    with _handle_errors():
        result = finalize_placeholder(_client(), snapshot, dry_run=not apply)
        path = write_report([result.as_dict()], GROUP_REPORT_FIELDS, _output_dir(output_dir), "dl_finalize")

    typer.echo(f"{result.identity} -> {result.primary_smtp_address}")
    typer.echo(str(path))
    if result.has_failures:
        typer.echo(f"Failed: {', '.join(result.failed_steps)}", err=True)
        raise typer.Exit(code=3)


# ----------------------------- mailboxes ------------------------------------


@app.command("reconcile-addresses")
def reconcile_addresses(
    identities: Optional[List[str]] = typer.Option(None, "--identity", help="Mailbox; repeatable."),
    input_csv: Optional[Path] = typer.Option(None, "--input", help="CSV with an Identity column."),
    apply: bool = typer.Option(False, "--apply", help="Remove unaccepted addresses (default: dry run)."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir"),
) -> None:
    """Compare mailbox SMTP addresses with the tenant's accepted domains."""
    with _handle_errors():
        targets = list(identities or [])
        if input_csv is not None:
            targets.extend(row["Identity"] for row in read_rows(input_csv, ["Identity"]))
        if not targets:
            raise ValueError("no mailboxes given; use --identity or --input")

        results, failed = reconcile_mailboxes(_client(), targets, dry_run=not apply)
        rows = [row for result in results for row in result.report_rows()]
        path = write_report(rows, ADDRESS_REPORT_FIELDS, _output_dir(output_dir), "address_reconciliation")

    removable = sum(1 for row in rows if row["Action"] == "Remove")
    review = sum(1 for row in rows if row["Action"] == "Review")
    typer.echo(f"{len(results)} mailbox(es): {removable} address(es) to remove, {review} primary to review")
    typer.echo(str(path))
    if failed:
        typer.echo(f"Failed: {', '.join(failed)}", err=True)
        raise typer.Exit(code=3)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
