"""Public-folder mail nickname audit.

Before a public-folder cutover every mail-enabled public folder needs a
nickname Exchange Online will accept.  The audit walks the directory's
recipients, keeps the public folders, and reports:

* an **alias row** for every folder whose nickname had to be sanitized,
  carrying the suggested replacement;
* a separate **address row** (blank ``SuggestedAlias``) for every folder
  whose SMTP address is not well-formed.

A folder with both problems produces both rows.  ``apply_alias_suggestions``
later reads the (possibly hand-edited) report back and sets the suggested
nicknames.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Mapping

from exo_housekeeping.core.constants import (
    PUBLIC_FOLDER_RECIPIENT_TYPE,
    RECIPIENT_INPUT_FIELDS,
)
from exo_housekeeping.exchange.client import ExchangeAdminClient, ExchangeCommandError
from exo_housekeeping.exchange.models import RecipientRecord
from exo_housekeeping.normalization.address_normalizer import (
    is_valid_smtp_address,
    select_primary_smtp,
)
from exo_housekeeping.normalization.nickname_normalizer import (
    NicknameSanitizer,
    is_valid_nickname,
)
from exo_housekeeping.readers.csv_reader import read_rows

logger = logging.getLogger(__name__)

AddressValidator = Callable[[str], bool]


@dataclass
class AliasReportRow:
    """One line of the alias audit report."""

    original_alias: str
    suggested_alias: str
    smtp: str
    smtp_is_bad: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "OriginalAlias": self.original_alias,
            "SuggestedAlias": self.suggested_alias,
            "SMTP": self.smtp,
            "SmtpIsBad": self.smtp_is_bad,
        }


@dataclass
class AliasAuditReport:
    rows: list[AliasReportRow] = field(default_factory=list)
    scanned: int = 0
    public_folders: int = 0
    modified: int = 0
    bad_smtp: int = 0
    secondary_fallbacks: int = 0
    missing_smtp: int = 0


@dataclass
class ApplySummary:
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


def is_public_folder(record: RecipientRecord) -> bool:
    return record.recipient_type_details.strip().lower() == PUBLIC_FOLDER_RECIPIENT_TYPE.lower()


def records_from_csv(path: str | Path) -> list[RecipientRecord]:
    """Load recipients from a ``Get-Recipient | Export-Csv`` style file."""
    return [
        RecipientRecord.model_validate(row)
        for row in read_rows(path, RECIPIENT_INPUT_FIELDS)
    ]


def records_from_exchange(client: ExchangeAdminClient) -> list[RecipientRecord]:
    return client.get_recipients(PUBLIC_FOLDER_RECIPIENT_TYPE)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------


def audit_public_folder_aliases(
    records: Iterable[RecipientRecord],
    *,
    sanitizer: NicknameSanitizer | None = None,
    validator: AddressValidator = is_valid_smtp_address,
) -> AliasAuditReport:
    """Sanitize every public-folder nickname in *records* and collect report rows.

    Every existing public-folder nickname is reserved in the sanitizer's
    registry first so that no suggestion collides with a live nickname.
    """
    sanitizer = sanitizer if sanitizer is not None else NicknameSanitizer()
    report = AliasAuditReport()

    folders: list[RecipientRecord] = []
    for record in records:
        report.scanned += 1
        if is_public_folder(record):
            folders.append(record)
    report.public_folders = len(folders)

    sanitizer.reserve(folder.alias for folder in folders)

    for folder in folders:
        selection = select_primary_smtp(folder.proxy_addresses)
        if selection.source == "secondary":
            report.secondary_fallbacks += 1
            logger.warning(
                "Public folder %r has no primary SMTP address; using secondary %s",
                folder.alias, selection.address,
            )
        elif selection.source == "missing":
            report.missing_smtp += 1
            logger.warning("Public folder %r has no SMTP address", folder.alias)

        smtp_is_bad = not validator(selection.address)
        result = sanitizer.sanitize(folder.alias)

        if result.was_modified:
            report.modified += 1
            report.rows.append(AliasReportRow(
                original_alias=result.original,
                suggested_alias=result.suggested,
                smtp=selection.address,
                smtp_is_bad=smtp_is_bad,
            ))
            logger.debug("Alias %r -> %r", result.original, result.suggested)

        if smtp_is_bad:
            report.bad_smtp += 1
            report.rows.append(AliasReportRow(
                original_alias=folder.alias,
                suggested_alias="",
                smtp=selection.address,
                smtp_is_bad=True,
            ))

    logger.info(
        "Audited %d public folder(s) of %d recipient(s): %d alias change(s), %d bad address(es)",
        report.public_folders, report.scanned, report.modified, report.bad_smtp,
    )
    return report


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply_alias_suggestions(
    rows: Iterable[Mapping[str, str]],
    client: ExchangeAdminClient,
    *,
    dry_run: bool = True,
) -> ApplySummary:
    """Set ``SuggestedAlias`` on every public folder listed in *rows*.

    Address-only rows (blank ``SuggestedAlias``) and suggestions that are not
    valid nicknames are skipped.  A failing ``Set-MailPublicFolder`` is logged
    and counted; the remaining rows are still processed.
    """
    summary = ApplySummary()
    for row in rows:
        original = (row.get("OriginalAlias") or "").strip()
        suggested = (row.get("SuggestedAlias") or "").strip()
        smtp = (row.get("SMTP") or "").strip()

        if not suggested:
            summary.skipped += 1
            continue
        if not is_valid_nickname(suggested):
            logger.warning("Skipping %r: suggested alias %r is not a valid nickname", original, suggested)
            summary.skipped += 1
            continue

        identity = smtp if is_valid_smtp_address(smtp) else original
        if dry_run:
            logger.info("[dry run] Set-MailPublicFolder %s -Alias %s", identity, suggested)
            summary.applied += 1
            continue

        try:
            client.set_public_folder_alias(identity, suggested)
        except ExchangeCommandError as exc:
            logger.error("Failed to set alias %r on %s: %s", suggested, identity, exc.message)
            summary.failed += 1
            summary.failures.append(identity)
            continue

        logger.info("Set alias of %s to %s", identity, suggested)
        summary.applied += 1

    return summary
