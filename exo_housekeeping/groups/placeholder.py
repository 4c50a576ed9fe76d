"""Distribution-group cloud conversion -- placeholder and finalize steps.

Moving management of a directory-synced distribution group to Exchange
Online happens in two steps around the moment the on-premises group leaves
the sync scope:

1. **Placeholder** -- snapshot the synced group (attributes + members) to a
   JSON file and create a hidden cloud group whose Name, Alias, DisplayName
   and primary SMTP address carry the ``Cloud-`` prefix, with the same
   owners, delivery restrictions, moderation and members.
2. **Finalize** -- once the synced group is gone, rename the placeholder to
   the original Name/Alias/DisplayName/primary address, restore its address
   list visibility and add back every original proxy address plus the
   original ``LegacyExchangeDN`` as an X500 address so replies to old
   messages still resolve.

The snapshot file is the only state shared between the steps.  Failures after
the group exists are recorded in ``GroupStepResult.failed_steps`` instead of
aborting, and a finalize re-run picks up from the snapshot's ``renamed`` flag.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from exo_housekeeping.core.constants import (
    MAX_GROUP_NAME_LENGTH,
    MAX_NICKNAME_LENGTH,
    PLACEHOLDER_PREFIX,
    X500_PREFIX,
)
from exo_housekeeping.exchange.client import ExchangeAdminClient, ExchangeCommandError
from exo_housekeeping.exchange.models import DistributionGroup
from exo_housekeeping.normalization.address_normalizer import parse_proxy_addresses
from exo_housekeeping.normalization.nickname_normalizer import normalize_nickname

logger = logging.getLogger(__name__)


class GroupSnapshot(BaseModel):
    """Original group state written by the placeholder step.

    ``renamed`` is set once finalize has renamed the placeholder, so a
    re-run after a failed address update addresses the group by its
    original primary SMTP address.
    """

    group: DistributionGroup
    members: list[str] = Field(default_factory=list)
    placeholder_identity: str
    created_at: str
    renamed: bool = False


@dataclass
class GroupStepResult:
    step: str
    identity: str
    name: str
    primary_smtp_address: str
    snapshot_path: Path
    members: list[str] = field(default_factory=list)
    failed_members: list[str] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_members or self.failed_steps)

    def as_dict(self) -> dict[str, object]:
        return {
            "Step": self.step,
            "Identity": self.identity,
            "Name": self.name,
            "PrimarySmtpAddress": self.primary_smtp_address,
            "MemberCount": len(self.members),
            "FailedMembers": self.failed_members,
            "FailedSteps": self.failed_steps,
            "Snapshot": str(self.snapshot_path),
        }


# ---------------------------------------------------------------------------
# Pure builders
# ---------------------------------------------------------------------------


def placeholder_name(value: str) -> str:
    return f"{PLACEHOLDER_PREFIX}{value}"[:MAX_GROUP_NAME_LENGTH]


def placeholder_alias(alias: str) -> str:
    return normalize_nickname(f"{PLACEHOLDER_PREFIX}{alias}")


def placeholder_address(address: str) -> str:
    local, sep, domain = address.partition("@")
    if not sep:
        raise ValueError(f"not an SMTP address: {address!r}")
    return f"{(PLACEHOLDER_PREFIX + local)[:MAX_NICKNAME_LENGTH]}@{domain}"


def build_placeholder_parameters(group: DistributionGroup) -> dict[str, Any]:
    """``New-DistributionGroup`` parameters for the cloud placeholder."""
    if not group.primary_smtp_address:
        raise ValueError(f"group {group.name!r} has no primary SMTP address")

    parameters: dict[str, Any] = {
        "Name": placeholder_name(group.name),
        "Alias": placeholder_alias(group.alias or group.name),
        "DisplayName": placeholder_name(group.display_name or group.name),
        "PrimarySmtpAddress": placeholder_address(group.primary_smtp_address),
        "Type": "Security" if group.is_security_group else "Distribution",
        "RequireSenderAuthenticationEnabled": group.require_sender_authentication_enabled,
        "MemberJoinRestriction": group.member_join_restriction,
        "MemberDepartRestriction": group.member_depart_restriction,
    }
    if group.managed_by:
        parameters["ManagedBy"] = list(group.managed_by)
    if group.moderation_enabled:
        parameters["ModerationEnabled"] = True
        parameters["SendModerationNotifications"] = group.send_moderation_notifications
        if group.moderated_by:
            parameters["ModeratedBy"] = list(group.moderated_by)
    return parameters


def build_placeholder_settings(group: DistributionGroup) -> dict[str, Any]:
    """``Set-DistributionGroup`` parameters applied right after creation."""
    settings: dict[str, Any] = {"HiddenFromAddressListsEnabled": True}
    if group.accept_messages_only_from:
        settings["AcceptMessagesOnlyFromSendersOrMembers"] = list(group.accept_messages_only_from)
    if group.reject_messages_from:
        settings["RejectMessagesFromSendersOrMembers"] = list(group.reject_messages_from)
    if group.grant_send_on_behalf_to:
        settings["GrantSendOnBehalfTo"] = list(group.grant_send_on_behalf_to)
    if group.bypass_moderation_from:
        settings["BypassModerationFromSendersOrMembers"] = list(group.bypass_moderation_from)
    return settings


def build_finalize_parameters(group: DistributionGroup) -> dict[str, Any]:
    """``Set-DistributionGroup`` parameters that turn the placeholder into *group*."""
    return {
        "Name": group.name,
        "Alias": group.alias or normalize_nickname(group.name),
        "DisplayName": group.display_name or group.name,
        "PrimarySmtpAddress": group.primary_smtp_address,
        "HiddenFromAddressListsEnabled": group.hidden_from_address_lists_enabled,
    }


def build_finalize_addresses(group: DistributionGroup) -> list[str]:
    """Proxy addresses to add to the renamed placeholder.

    The original primary SMTP address is excluded (it is set through
    ``PrimarySmtpAddress``); other SMTP proxies are added as secondaries and
    ``LegacyExchangeDN`` is appended as an X500 address.
    """
    primary = group.primary_smtp_address.lower()
    seen: set[str] = set()
    addresses: list[str] = []

    def _add(value: str) -> None:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            addresses.append(value)

    for proxy in parse_proxy_addresses(group.email_addresses):
        if proxy.is_smtp:
            if proxy.address.lower() == primary:
                continue
            _add(f"smtp:{proxy.address}")
        else:
            _add(str(proxy))

    if group.legacy_exchange_dn:
        _add(f"{X500_PREFIX}:{group.legacy_exchange_dn}")
    return addresses


# ---------------------------------------------------------------------------
# Snapshot file
# ---------------------------------------------------------------------------


def snapshot_path_for(group: DistributionGroup, snapshot_dir: Path) -> Path:
    safe_alias = normalize_nickname(group.alias or group.name) or "group"
    return snapshot_dir / f"{safe_alias}.json"


def save_snapshot(snapshot: GroupSnapshot, path: Path) -> Path:
    """Write *snapshot* to *path*, replacing any earlier version."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
    logger.info("Wrote group snapshot %s", path)
    return path


def write_snapshot(snapshot: GroupSnapshot, snapshot_dir: Path) -> Path:
    return save_snapshot(snapshot, snapshot_path_for(snapshot.group, snapshot_dir))


def read_snapshot(path: Path) -> GroupSnapshot:
    if not path.is_file():
        raise FileNotFoundError(f"group snapshot not found: {path}")
    return GroupSnapshot.model_validate_json(path.read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def create_placeholder(
    client: ExchangeAdminClient,
    identity: str,
    snapshot_dir: Path,
    *,
    dry_run: bool = True,
) -> GroupStepResult:
    """Snapshot the synced group *identity* and create its cloud placeholder.

    The snapshot is written before anything is created.  Once the group
    exists, a failing ``Set-DistributionGroup`` or member add is logged and
    recorded on the result instead of aborting the step.
    """
    group = client.get_distribution_group(identity)
    members = client.get_distribution_group_members(identity)
    parameters = build_placeholder_parameters(group)
    settings = build_placeholder_settings(group)

    snapshot = GroupSnapshot(
        group=group,
        members=members,
        placeholder_identity=parameters["PrimarySmtpAddress"],
        created_at=datetime.now(timezone.utc).isoformat(),
    )
    snapshot_path = write_snapshot(snapshot, snapshot_dir)

    result = GroupStepResult(
        step="placeholder",
        identity=identity,
        name=parameters["Name"],
        primary_smtp_address=parameters["PrimarySmtpAddress"],
        snapshot_path=snapshot_path,
        members=list(members),
    )

    if dry_run:
        logger.info(
            "[dry run] New-DistributionGroup %s (%d member(s))",
            parameters["Name"], len(members),
        )
        return result

    created = client.new_distribution_group(parameters)
    placeholder = created.primary_smtp_address or parameters["PrimarySmtpAddress"]
    logger.info("Created placeholder %s for %s", placeholder, identity)

    if placeholder != snapshot.placeholder_identity:
        # finalize must address the group Exchange actually created
        snapshot.placeholder_identity = placeholder
        save_snapshot(snapshot, snapshot_path)
        result.primary_smtp_address = placeholder

    try:
        client.set_distribution_group(placeholder, settings)
    except ExchangeCommandError as exc:
        logger.error(
            "Placeholder %s created but not configured (still visible in address lists): %s",
            placeholder, exc.message,
        )
        result.failed_steps.append("settings")

    for member in members:
        try:
            client.add_distribution_group_member(placeholder, member)
        except ExchangeCommandError as exc:
            logger.error("Could not add %s to %s: %s", member, placeholder, exc.message)
            result.failed_members.append(member)

    return result


def finalize_placeholder(
    client: ExchangeAdminClient,
    snapshot_path: Path,
    *,
    dry_run: bool = True,
) -> GroupStepResult:
    """Rename the placeholder recorded in *snapshot_path* to the original group.

    The snapshot is marked ``renamed`` as soon as the rename succeeds, so a
    re-run after a failed address update skips the rename and retries only
    the addresses.
    """
    snapshot = read_snapshot(snapshot_path)
    group = snapshot.group
    parameters = build_finalize_parameters(group)
    addresses = build_finalize_addresses(group)

    result = GroupStepResult(
        step="finalize",
        identity=group.primary_smtp_address if snapshot.renamed else snapshot.placeholder_identity,
        name=group.name,
        primary_smtp_address=group.primary_smtp_address,
        snapshot_path=snapshot_path,
        members=list(snapshot.members),
    )

    if dry_run:
        logger.info(
            "[dry run] Set-DistributionGroup %s -> %s (+%d address(es))",
            result.identity, group.name, len(addresses),
        )
        return result

    if snapshot.renamed:
        logger.info("%s was already renamed; retrying addresses only", group.primary_smtp_address)
    else:
        client.set_distribution_group(snapshot.placeholder_identity, parameters)
        snapshot.renamed = True
        save_snapshot(snapshot, snapshot_path)

    if addresses:
        try:
            client.set_distribution_group(
                group.primary_smtp_address, {"EmailAddresses": {"add": addresses}}
            )
        except ExchangeCommandError as exc:
            logger.error(
                "Renamed %s but could not add its addresses: %s",
                group.primary_smtp_address, exc.message,
            )
            result.failed_steps.append("addresses")
            return result

    logger.info("Finalized %s as %s", snapshot.placeholder_identity, group.primary_smtp_address)
    return result
