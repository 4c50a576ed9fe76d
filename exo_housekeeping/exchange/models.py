"""Pydantic models for Exchange cmdlet output.

``ConvertTo-Json`` emits the cmdlet property names verbatim (PascalCase),
so every field carries an alias and models accept either spelling.
Multi-valued properties arrive as a JSON array, a single string, or
``null`` depending on cardinality and cmdlet; ``_as_list`` flattens all of
them to ``list[str]``.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from exo_housekeeping.normalization.address_normalizer import (
    ProxyAddress,
    parse_proxy_addresses,
)


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(";") if part.strip()]
    if isinstance(value, dict):
        # Deserialized multi-valued properties sometimes arrive wrapped
        return _as_list(value.get("value"))
    return [str(item) for item in value if item is not None and str(item).strip()]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        # Dates serialize as {"value": ..., "DateTime": ...} in Windows PowerShell
        return str(value.get("DateTime") or value.get("value") or "")
    return str(value)


class ExchangeModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class RecipientRecord(ExchangeModel):
    """A directory recipient as returned by ``Get-Recipient`` or a CSV export."""

    alias: str = Field(default="", alias="Alias")
    email_addresses: list[str] = Field(default_factory=list, alias="EmailAddresses")
    recipient_type_details: str = Field(default="", alias="RecipientTypeDetails")
    identity: str = Field(default="", alias="Identity")

    @field_validator("email_addresses", mode="before")
    @classmethod
    def coerce_addresses(cls, value: Any) -> list[str]:
        return _as_list(value)

    @field_validator("alias", "recipient_type_details", "identity", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @property
    def proxy_addresses(self) -> list[ProxyAddress]:
        return parse_proxy_addresses(self.email_addresses)


class MailboxRecord(RecipientRecord):
    """Subset of ``Get-Mailbox`` used for address reconciliation."""

    primary_smtp_address: str = Field(default="", alias="PrimarySmtpAddress")

    @field_validator("primary_smtp_address", mode="before")
    @classmethod
    def coerce_primary(cls, value: Any) -> str:
        return _as_text(value)


class MigrationUser(ExchangeModel):
    """One row of ``Get-MigrationUser``."""

    identity: str = Field(default="", alias="Identity")
    batch_id: str = Field(default="", alias="BatchId")
    status: str = Field(default="", alias="Status")

    @field_validator("identity", "batch_id", "status", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _as_text(value)


class SkippedItem(ExchangeModel):
    """One entry of ``Get-MigrationUserStatistics -IncludeSkippedItems``."""

    kind: str = Field(default="", alias="Kind")
    folder_name: str = Field(default="", alias="FolderName")
    subject: str = Field(default="", alias="Subject")
    sender: str = Field(default="", alias="Sender")
    recipient: str = Field(default="", alias="Recipient")
    date_sent: str = Field(default="", alias="DateSent")
    date_received: str = Field(default="", alias="DateReceived")
    message_size: str = Field(default="", alias="MessageSize")
    scoring_classifications: str = Field(default="", alias="ScoringClassifications")
    failure_message: str = Field(default="", alias="Failure")

    @field_validator(
        "kind", "folder_name", "subject", "sender", "recipient",
        "date_sent", "date_received", "message_size",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("scoring_classifications", mode="before")
    @classmethod
    def coerce_classifications(cls, value: Any) -> str:
        if isinstance(value, list):
            return ", ".join(str(item) for item in value)
        return _as_text(value)

    @field_validator("failure_message", mode="before")
    @classmethod
    def coerce_failure(cls, value: Any) -> str:
        if isinstance(value, dict):
            return str(value.get("Message") or value.get("FailureType") or "")
        return _as_text(value)


class MigrationUserStatistics(ExchangeModel):
    identity: str = Field(default="", alias="Identity")
    status: str = Field(default="", alias="Status")
    skipped_item_count: int = Field(default=0, alias="SkippedItemCount")
    skipped_items: list[SkippedItem] = Field(default_factory=list, alias="SkippedItems")

    @field_validator("identity", "status", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("skipped_item_count", mode="before")
    @classmethod
    def coerce_count(cls, value: Any) -> int:
        return int(value) if value not in (None, "") else 0

    @field_validator("skipped_items", mode="before")
    @classmethod
    def coerce_items(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, dict):
            return [value]
        return value


class DistributionGroup(ExchangeModel):
    """Attributes of ``Get-DistributionGroup`` carried over to a cloud placeholder."""

    name: str = Field(alias="Name")
    display_name: str = Field(default="", alias="DisplayName")
    alias: str = Field(default="", alias="Alias")
    primary_smtp_address: str = Field(default="", alias="PrimarySmtpAddress")
    recipient_type_details: str = Field(default="MailUniversalDistributionGroup", alias="RecipientTypeDetails")
    email_addresses: list[str] = Field(default_factory=list, alias="EmailAddresses")
    legacy_exchange_dn: str = Field(default="", alias="LegacyExchangeDN")
    managed_by: list[str] = Field(default_factory=list, alias="ManagedBy")
    accept_messages_only_from: list[str] = Field(
        default_factory=list, alias="AcceptMessagesOnlyFromSendersOrMembers"
    )
    reject_messages_from: list[str] = Field(
        default_factory=list, alias="RejectMessagesFromSendersOrMembers"
    )
    grant_send_on_behalf_to: list[str] = Field(default_factory=list, alias="GrantSendOnBehalfTo")
    moderated_by: list[str] = Field(default_factory=list, alias="ModeratedBy")
    bypass_moderation_from: list[str] = Field(
        default_factory=list, alias="BypassModerationFromSendersOrMembers"
    )
    moderation_enabled: bool = Field(default=False, alias="ModerationEnabled")
    require_sender_authentication_enabled: bool = Field(
        default=True, alias="RequireSenderAuthenticationEnabled"
    )
    hidden_from_address_lists_enabled: bool = Field(
        default=False, alias="HiddenFromAddressListsEnabled"
    )
    member_join_restriction: str = Field(default="Closed", alias="MemberJoinRestriction")
    member_depart_restriction: str = Field(default="Closed", alias="MemberDepartRestriction")
    send_moderation_notifications: str = Field(default="Never", alias="SendModerationNotifications")
    members: list[str] = Field(default_factory=list, alias="Members")

    @field_validator(
        "email_addresses", "managed_by", "accept_messages_only_from",
        "reject_messages_from", "grant_send_on_behalf_to", "moderated_by",
        "bypass_moderation_from", "members",
        mode="before",
    )
    @classmethod
    def coerce_lists(cls, value: Any) -> list[str]:
        return _as_list(value)

    @field_validator(
        "display_name", "alias", "primary_smtp_address", "legacy_exchange_dn",
        "recipient_type_details", "member_join_restriction",
        "member_depart_restriction", "send_moderation_notifications",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _as_text(value)

    @property
    def is_security_group(self) -> bool:
        return "security" in self.recipient_type_details.lower()


class AcceptedDomain(ExchangeModel):
    domain_name: str = Field(alias="DomainName")
    domain_type: str = Field(default="Authoritative", alias="DomainType")
    match_sub_domains: bool = Field(default=False, alias="MatchSubDomains")

    @field_validator("domain_name", "domain_type", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _as_text(value)
