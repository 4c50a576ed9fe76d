from __future__ import annotations

from typing import Any, Iterable, Mapping

import pytest

from exo_housekeeping.exchange.client import ExchangeCommandError
from exo_housekeeping.exchange.models import (
    AcceptedDomain,
    DistributionGroup,
    MailboxRecord,
    MigrationUser,
    MigrationUserStatistics,
    RecipientRecord,
)


class ScriptedRandom:
    """Random source returning a fixed sequence of numbers."""

    def __init__(self, values: Iterable[int]) -> None:
        self._values = list(values)
        self.calls: list[tuple[int, int]] = []

    def randrange(self, start: int, stop: int) -> int:
        self.calls.append((start, stop))
        value = self._values.pop(0)
        assert start <= value < stop, f"{value} outside [{start}, {stop})"
        return value


class LowestRandom:
    """Random source that always draws the bottom of the range."""

    def randrange(self, start: int, stop: int) -> int:
        return start


class FakeExchangeClient:
    """In-memory ExchangeAdminClient recording every write call."""

    def __init__(self) -> None:
        self.recipients: list[RecipientRecord] = []
        self.migration_users: list[MigrationUser] = []
        self.statistics: dict[str, MigrationUserStatistics] = {}
        self.groups: dict[str, DistributionGroup] = {}
        self.group_members: dict[str, list[str]] = {}
        self.accepted_domains: list[AcceptedDomain] = []
        self.mailboxes: dict[str, MailboxRecord] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, Any]] = []

    def _check(self, key: str, cmdlet: str) -> None:
        if key in self.failing:
            raise ExchangeCommandError(cmdlet, f"simulated failure for {key}")

    def get_recipients(self, recipient_type_details: str) -> list[RecipientRecord]:
        self.calls.append(("get_recipients", recipient_type_details))
        return list(self.recipients)

    def set_public_folder_alias(self, identity: str, alias: str) -> None:
        self._check(identity, "Set-MailPublicFolder")
        self.calls.append(("set_public_folder_alias", (identity, alias)))

    def get_migration_users(self, batch_id: str | None = None) -> list[MigrationUser]:
        self.calls.append(("get_migration_users", batch_id))
        return [u for u in self.migration_users if batch_id is None or u.batch_id == batch_id]

    def get_migration_user_statistics(self, identity: str) -> MigrationUserStatistics:
        self._check(identity, "Get-MigrationUserStatistics")
        return self.statistics.get(identity, MigrationUserStatistics(identity=identity))

    def get_distribution_group(self, identity: str) -> DistributionGroup:
        self._check(identity, "Get-DistributionGroup")
        return self.groups[identity]

    def get_distribution_group_members(self, identity: str) -> list[str]:
        return list(self.group_members.get(identity, []))

    def new_distribution_group(self, parameters: Mapping[str, Any]) -> DistributionGroup:
        self.calls.append(("new_distribution_group", dict(parameters)))
        return DistributionGroup(
            name=parameters["Name"],
            alias=parameters["Alias"],
            primary_smtp_address=parameters["PrimarySmtpAddress"],
        )

    def set_distribution_group(self, identity: str, parameters: Mapping[str, Any]) -> None:
        self._check(identity, "Set-DistributionGroup")
        self.calls.append(("set_distribution_group", (identity, dict(parameters))))

    def add_distribution_group_member(self, identity: str, member: str) -> None:
        self._check(member, "Add-DistributionGroupMember")
        self.calls.append(("add_distribution_group_member", (identity, member)))

    def get_accepted_domains(self) -> list[AcceptedDomain]:
        return list(self.accepted_domains)

    def get_mailbox(self, identity: str) -> MailboxRecord:
        self._check(identity, "Get-Mailbox")
        return self.mailboxes[identity]

    def update_mailbox_addresses(
        self,
        identity: str,
        *,
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
    ) -> None:
        self.calls.append(("update_mailbox_addresses", (identity, list(add), list(remove))))

    def calls_named(self, name: str) -> list[Any]:
        return [args for call, args in self.calls if call == name]


@pytest.fixture()
def fake_client() -> FakeExchangeClient:
    return FakeExchangeClient()


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    from exo_housekeeping.core.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
