"""Proxy address helpers.

Exchange stores every address of a recipient in ``EmailAddresses`` as a
prefixed proxy string: ``SMTP:jane@contoso.com`` for the primary SMTP
address, ``smtp:j.doe@contoso.com`` for secondaries, plus non-SMTP types
such as ``X500:/o=...`` or ``SIP:jane@contoso.com``.  An upper-case prefix
marks the primary address of that type.

CSV exports flatten the list into one ``;``-delimited cell, live cmdlet
output returns a JSON array.  ``parse_proxy_addresses`` accepts both.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Literal

from exo_housekeeping.core.constants import SMTP_PREFIX

PrimarySource = Literal["primary", "secondary", "missing"]

# Local part: RFC 5322 atext plus dots (dot placement checked separately)
_LOCAL_PART_RE = re.compile(r"^[A-Za-z0-9!#$%&'*+/=?^_`{|}~.-]+$")
_DOMAIN_LABEL_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?$")
_PREFIX_RE = re.compile(r"^([A-Za-z0-9]+):(.*)$")

_MAX_ADDRESS_LENGTH = 254
_MAX_LOCAL_PART_LENGTH = 64


@dataclass(frozen=True)
class ProxyAddress:
    """One entry of a recipient's ``EmailAddresses``."""

    prefix: str
    address: str

    @property
    def is_smtp(self) -> bool:
        return self.prefix.lower() == SMTP_PREFIX

    @property
    def is_primary(self) -> bool:
        return self.prefix.isupper()

    def __str__(self) -> str:
        return f"{self.prefix}:{self.address}"


@dataclass(frozen=True)
class PrimarySelection:
    """SMTP address chosen to represent a recipient, and where it came from."""

    address: str
    source: PrimarySource


def parse_proxy_address(raw: str) -> ProxyAddress | None:
    """Parse one ``PREFIX:address`` string; ``None`` for a blank entry.

    An entry without a prefix is taken to be a secondary SMTP address.
    """
    text = raw.strip()
    if not text:
        return None
    match = _PREFIX_RE.match(text)
    if match:
        return ProxyAddress(prefix=match.group(1), address=match.group(2).strip())
    return ProxyAddress(prefix=SMTP_PREFIX, address=text)


def parse_proxy_addresses(raw: str | Iterable[str] | None) -> list[ProxyAddress]:
    """Parse a ``;``-delimited string or a sequence of proxy strings."""
    if raw is None:
        return []
    entries = raw.split(";") if isinstance(raw, str) else list(raw)
    parsed: list[ProxyAddress] = []
    for entry in entries:
        proxy = parse_proxy_address(str(entry))
        if proxy is not None:
            parsed.append(proxy)
    return parsed


def select_primary_smtp(addresses: Iterable[ProxyAddress]) -> PrimarySelection:
    """Pick the primary SMTP address, falling back to the first secondary.

    Returns a selection with an empty ``address`` and ``source="missing"``
    when the recipient has no SMTP proxy at all.
    """
    first_secondary: str | None = None
    for proxy in addresses:
        if not proxy.is_smtp:
            continue
        if proxy.is_primary:
            return PrimarySelection(address=proxy.address, source="primary")
        if first_secondary is None:
            first_secondary = proxy.address

    if first_secondary is not None:
        return PrimarySelection(address=first_secondary, source="secondary")
    return PrimarySelection(address="", source="missing")


def address_domain(address: str) -> str:
    """Return the lower-cased domain part of *address* (``""`` if none)."""
    _, sep, domain = address.strip().rpartition("@")
    return domain.lower() if sep else ""


def is_valid_smtp_address(value: str) -> bool:
    """Return ``True`` if *value* is a syntactically well-formed SMTP address.

    Checks shape only: one ``@``, a dot-atom local part of at most 64
    characters, and a domain of at least two DNS labels.  Quoted local parts
    and address literals (``user@[10.0.0.1]``) are rejected because Exchange
    will not accept them as proxy addresses either.
    """
    if not value or len(value) > _MAX_ADDRESS_LENGTH or value != value.strip():
        return False
    if value.count("@") != 1:
        return False

    local, _, domain = value.partition("@")

    if not local or len(local) > _MAX_LOCAL_PART_LENGTH:
        return False
    if not _LOCAL_PART_RE.match(local):
        return False
    if local.startswith(".") or local.endswith(".") or ".." in local:
        return False

    labels = domain.split(".")
    if len(labels) < 2:
        return False
    if not all(_DOMAIN_LABEL_RE.match(label) for label in labels):
        return False
    # Top-level label must not be all digits
    return not labels[-1].isdigit()
