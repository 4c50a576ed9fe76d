"""Skipped mailbox-migration item report.

Lists every item a migration batch skipped (corrupt items, oversized items,
missing folders, ...) so the operator can decide whether a user needs a
follow-up copy before the batch is completed.

Users are taken from ``Get-MigrationUser`` (optionally scoped to one batch)
or passed explicitly; each user's ``Get-MigrationUserStatistics
-IncludeSkippedItems`` output is flattened to one report row per item.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from exo_housekeeping.exchange.client import ExchangeAdminClient, ExchangeCommandError
from exo_housekeeping.exchange.models import MigrationUser, MigrationUserStatistics

logger = logging.getLogger(__name__)


@dataclass
class SkippedItemReport:
    rows: list[dict[str, str]] = field(default_factory=list)
    users: int = 0
    users_with_skips: int = 0
    failed_users: list[str] = field(default_factory=list)


def build_skipped_item_rows(
    user: MigrationUser,
    statistics: MigrationUserStatistics,
    kinds: Iterable[str] | None = None,
) -> list[dict[str, str]]:
    """Flatten one user's statistics into report rows (pure)."""
    wanted = {k.strip().lower() for k in kinds} if kinds else None
    rows: list[dict[str, str]] = []
    for item in statistics.skipped_items:
        if wanted is not None and item.kind.lower() not in wanted:
            continue
        rows.append({
            "User": user.identity or statistics.identity,
            "BatchId": user.batch_id,
            "Status": statistics.status or user.status,
            "Kind": item.kind,
            "FolderName": item.folder_name,
            "Subject": item.subject,
            "Sender": item.sender,
            "Recipient": item.recipient,
            "DateSent": item.date_sent,
            "DateReceived": item.date_received,
            "MessageSize": item.message_size,
            "ScoringClassifications": item.scoring_classifications,
            "FailureMessage": item.failure_message,
        })
    return rows


def collect_skipped_items(
    client: ExchangeAdminClient,
    *,
    batch_id: str | None = None,
    identities: Iterable[str] | None = None,
    kinds: Iterable[str] | None = None,
) -> SkippedItemReport:
    """Gather skipped items for every migration user in scope.

    When *identities* is given the batch lookup is skipped and only those
    users are queried.  A user whose statistics call fails is logged and
    recorded in ``failed_users``; the run continues.
    """
    kinds = list(kinds) if kinds else None
    if identities is not None:
        users = [MigrationUser(identity=i, batch_id=batch_id or "") for i in identities if i.strip()]
    else:
        users = client.get_migration_users(batch_id)

    report = SkippedItemReport(users=len(users))
    logger.info("Collecting skipped items for %d migration user(s)", len(users))

    for user in users:
        try:
            statistics = client.get_migration_user_statistics(user.identity)
        except ExchangeCommandError as exc:
            logger.error("Could not read statistics for %s: %s", user.identity, exc.message)
            report.failed_users.append(user.identity)
            continue

        if statistics.skipped_item_count and not statistics.skipped_items:
            logger.warning(
                "%s reports %d skipped item(s) but none were returned",
                user.identity, statistics.skipped_item_count,
            )

        rows = build_skipped_item_rows(user, statistics, kinds)
        if rows:
            report.users_with_skips += 1
            report.rows.extend(rows)

    logger.info(
        "%d skipped item(s) across %d user(s); %d user(s) failed",
        len(report.rows), report.users_with_skips, len(report.failed_users),
    )
    return report
