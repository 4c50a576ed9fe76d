"""Exchange Online administration client -- PowerShell subprocess wrapper.

Runs Exchange Online cmdlets through ``pwsh -NoProfile -NonInteractive``
and returns their output as JSON-decoded dicts:

- **Session**: the client does not authenticate.  When
  ``settings.exchange_connect_command`` is set it is prefixed verbatim to
  every script (typically a ``Connect-ExchangeOnline`` line with app-only
  certificate parameters); otherwise the operator's profile or an
  already-connected host is assumed.
- **Serialization**: every cmdlet is piped through
  ``ConvertTo-Json -Depth 6 -Compress -EnumsAsStrings`` and decoded here.
  A single object and an array both come back as ``list[dict]``.
- **Errors**: a non-zero exit code or anything written to the error stream
  raises :class:`ExchangeCommandError`; a hung cmdlet raises
  :class:`ExchangeTimeoutError`.
- **Latency tracking**: wall-clock time of the last call is kept in
  ``last_latency_ms``.

Drivers depend on the :class:`ExchangeAdminClient` protocol so tests can
pass an in-memory fake.
"""
from __future__ import annotations

import json
import logging
import subprocess
import time
from typing import Any, Iterable, Mapping, Protocol

from exo_housekeeping.core.settings import get_settings
from exo_housekeeping.exchange.models import (
    AcceptedDomain,
    DistributionGroup,
    MailboxRecord,
    MigrationUser,
    MigrationUserStatistics,
    RecipientRecord,
)

logger = logging.getLogger(__name__)

JSON_PIPE = "ConvertTo-Json -Depth 6 -Compress -EnumsAsStrings"

# ---------------------------------------------------------------------------
# Custom exceptions
# ---------------------------------------------------------------------------


class ExchangeCommandError(RuntimeError):
    """Raised when a cmdlet fails or PowerShell exits non-zero."""

    def __init__(self, cmdlet: str, message: str) -> None:
        self.cmdlet = cmdlet
        self.message = message
        super().__init__(f"{cmdlet} failed: {message}")


class ExchangeTimeoutError(TimeoutError):
    """Raised when a cmdlet exceeds ``command_timeout_s``."""


class PowerShellNotFoundError(FileNotFoundError):
    """Raised when the configured PowerShell executable is not installed."""


# ---------------------------------------------------------------------------
# PowerShell parameter rendering
# ---------------------------------------------------------------------------


class Switch:
    """Marker for a switch parameter (``-IncludeSkippedItems``)."""

    def __repr__(self) -> str:
        return "Switch()"


SWITCH = Switch()


def quote(value: Any) -> str:
    """Render *value* as a PowerShell literal."""
    if isinstance(value, bool):
        return "$true" if value else "$false"
    if value is None:
        return "$null"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, Mapping):
        entries = ";".join(f"{key}={quote(item)}" for key, item in value.items())
        return f"@{{{entries}}}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "@(" + ",".join(quote(item) for item in value) + ")"
    # Single-quoted strings are literal; the only escape is a doubled quote
    return "'" + str(value).replace("'", "''") + "'"


def format_parameters(parameters: Mapping[str, Any]) -> str:
    """Render ``{"Identity": "x", "Force": SWITCH}`` as ``-Identity 'x' -Force``."""
    parts: list[str] = []
    for name, value in parameters.items():
        if isinstance(value, Switch):
            parts.append(f"-{name}")
        elif isinstance(value, bool):
            # Boolean parameters need the colon form to bind
            parts.append(f"-{name}:{quote(value)}")
        else:
            parts.append(f"-{name} {quote(value)}")
    return " ".join(parts)


def build_command(cmdlet: str, parameters: Mapping[str, Any] | None = None) -> str:
    rendered = format_parameters(parameters or {})
    return f"{cmdlet} {rendered}".strip()


def _decode_output(cmdlet: str, output: str) -> list[dict]:
    text = output.strip()
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        # Module banners may precede the JSON document
        start = min((i for i in (text.find("["), text.find("{")) if i != -1), default=-1)
        if start == -1:
            raise ExchangeCommandError(cmdlet, "output is not JSON") from None
        try:
            data = json.loads(text[start:])
        except json.JSONDecodeError as exc:
            raise ExchangeCommandError(cmdlet, f"output is not JSON: {exc}") from exc

    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return [item for item in data if isinstance(item, dict)]


# ---------------------------------------------------------------------------
# Client protocol
# ---------------------------------------------------------------------------


class ExchangeAdminClient(Protocol):
    def get_recipients(self, recipient_type_details: str) -> list[RecipientRecord]: ...

    def set_public_folder_alias(self, identity: str, alias: str) -> None: ...

    def get_migration_users(self, batch_id: str | None = None) -> list[MigrationUser]: ...

    def get_migration_user_statistics(self, identity: str) -> MigrationUserStatistics: ...

    def get_distribution_group(self, identity: str) -> DistributionGroup: ...

    def get_distribution_group_members(self, identity: str) -> list[str]: ...

    def new_distribution_group(self, parameters: Mapping[str, Any]) -> DistributionGroup: ...

    def set_distribution_group(self, identity: str, parameters: Mapping[str, Any]) -> None: ...

    def add_distribution_group_member(self, identity: str, member: str) -> None: ...

    def get_accepted_domains(self) -> list[AcceptedDomain]: ...

    def get_mailbox(self, identity: str) -> MailboxRecord: ...

    def update_mailbox_addresses(
        self,
        identity: str,
        *,
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
    ) -> None: ...


# ---------------------------------------------------------------------------
# PowerShellExchangeClient
# ---------------------------------------------------------------------------


class PowerShellExchangeClient:
    """Exchange Online client backed by a PowerShell subprocess per call.

    Parameters
    ----------
    executable:
        PowerShell binary.  Defaults to ``settings.powershell_executable``.
    connect_command:
        Script prefixed to every call.  Defaults to
        ``settings.exchange_connect_command``.
    timeout_s:
        Per-call timeout in seconds.  Defaults to
        ``settings.command_timeout_s``.
    """

    def __init__(
        self,
        *,
        executable: str | None = None,
        connect_command: str | None = None,
        timeout_s: int | None = None,
    ) -> None:
        settings = get_settings()
        self.executable = executable or settings.powershell_executable
        self.connect_command = (
            connect_command if connect_command is not None else settings.exchange_connect_command
        )
        self.timeout_s = timeout_s if timeout_s is not None else settings.command_timeout_s
        self.last_latency_ms: int | None = None

    # -- transport ----------------------------------------------------------

    def _script(self, command: str, *, json_output: bool) -> str:
        lines = ["$ErrorActionPreference = 'Stop'"]
        if self.connect_command:
            lines.append(self.connect_command)
        lines.append(f"{command} | {JSON_PIPE}" if json_output else f"{command} | Out-Null")
        return "; ".join(lines)

    def run(
        self,
        cmdlet: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        json_output: bool = True,
    ) -> list[dict]:
        """Run *cmdlet* with *parameters* and return its decoded output.

        Raises
        ------
        ExchangeCommandError
            The cmdlet failed or its output could not be decoded.
        ExchangeTimeoutError
            The call exceeded ``timeout_s``.
        PowerShellNotFoundError
            ``executable`` is not on the PATH.
        """
        command = build_command(cmdlet, parameters)
        script = self._script(command, json_output=json_output)
        logger.debug("Running %s", command)

        start = time.monotonic()
        try:
            result = subprocess.run(
                [self.executable, "-NoProfile", "-NonInteractive", "-Command", script],
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            self.last_latency_ms = int((time.monotonic() - start) * 1000)
            raise ExchangeTimeoutError(
                f"{cmdlet} timed out after {self.timeout_s}s"
            ) from exc
        except FileNotFoundError as exc:
            raise PowerShellNotFoundError(
                f"PowerShell executable {self.executable!r} not found"
            ) from exc
        self.last_latency_ms = int((time.monotonic() - start) * 1000)

        stderr = (result.stderr or "").strip()
        if result.returncode != 0 or stderr:
            raise ExchangeCommandError(cmdlet, stderr or f"exit code {result.returncode}")

        logger.debug("%s completed in %d ms", cmdlet, self.last_latency_ms)
        if not json_output:
            return []
        return _decode_output(cmdlet, result.stdout or "")

    def _run_one(self, cmdlet: str, parameters: Mapping[str, Any]) -> dict:
        rows = self.run(cmdlet, parameters)
        if not rows:
            raise ExchangeCommandError(cmdlet, f"no object returned for {parameters.get('Identity')!r}")
        return rows[0]

    # -- recipients / public folders -----------------------------------------

    def get_recipients(self, recipient_type_details: str) -> list[RecipientRecord]:
        rows = self.run(
            "Get-Recipient",
            {"RecipientTypeDetails": recipient_type_details, "ResultSize": "Unlimited"},
        )
        return [RecipientRecord.model_validate(row) for row in rows]

    def set_public_folder_alias(self, identity: str, alias: str) -> None:
        self.run("Set-MailPublicFolder", {"Identity": identity, "Alias": alias}, json_output=False)

    # -- migration ----------------------------------------------------------

    def get_migration_users(self, batch_id: str | None = None) -> list[MigrationUser]:
        parameters: dict[str, Any] = {"ResultSize": "Unlimited"}
        if batch_id:
            parameters["BatchId"] = batch_id
        return [MigrationUser.model_validate(row) for row in self.run("Get-MigrationUser", parameters)]

    def get_migration_user_statistics(self, identity: str) -> MigrationUserStatistics:
        row = self._run_one(
            "Get-MigrationUserStatistics",
            {"Identity": identity, "IncludeSkippedItems": SWITCH},
        )
        return MigrationUserStatistics.model_validate(row)

    # -- distribution groups --------------------------------------------------

    def get_distribution_group(self, identity: str) -> DistributionGroup:
        return DistributionGroup.model_validate(
            self._run_one("Get-DistributionGroup", {"Identity": identity})
        )

    def get_distribution_group_members(self, identity: str) -> list[str]:
        rows = self.run(
            "Get-DistributionGroupMember",
            {"Identity": identity, "ResultSize": "Unlimited"},
        )
        members: list[str] = []
        for row in rows:
            address = str(row.get("PrimarySmtpAddress") or row.get("Identity") or "").strip()
            if address:
                members.append(address)
        return members

    def new_distribution_group(self, parameters: Mapping[str, Any]) -> DistributionGroup:
        return DistributionGroup.model_validate(self._run_one("New-DistributionGroup", parameters))

    def set_distribution_group(self, identity: str, parameters: Mapping[str, Any]) -> None:
        self.run(
            "Set-DistributionGroup",
            {"Identity": identity, **parameters},
            json_output=False,
        )

    def add_distribution_group_member(self, identity: str, member: str) -> None:
        self.run(
            "Add-DistributionGroupMember",
            {"Identity": identity, "Member": member, "BypassSecurityGroupManagerCheck": SWITCH},
            json_output=False,
        )

    # -- accepted domains / mailboxes ----------------------------------------

    def get_accepted_domains(self) -> list[AcceptedDomain]:
        return [AcceptedDomain.model_validate(row) for row in self.run("Get-AcceptedDomain")]

    def get_mailbox(self, identity: str) -> MailboxRecord:
        return MailboxRecord.model_validate(self._run_one("Get-Mailbox", {"Identity": identity}))

    def update_mailbox_addresses(
        self,
        identity: str,
        *,
        add: Iterable[str] = (),
        remove: Iterable[str] = (),
    ) -> None:
        change: dict[str, list[str]] = {}
        to_add = list(add)
        to_remove = list(remove)
        if to_add:
            change["add"] = to_add
        if to_remove:
            change["remove"] = to_remove
        if not change:
            return
        self.run(
            "Set-Mailbox",
            {"Identity": identity, "EmailAddresses": change},
            json_output=False,
        )
