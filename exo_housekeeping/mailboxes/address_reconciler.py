"""Reconcile a mailbox's SMTP addresses against the tenant's accepted domains.

Exchange Online refuses to move or update a mailbox that carries an SMTP
proxy in a domain the tenant does not own.  Each SMTP proxy is classified:

``Keep``
    domain is accepted (exact match, or a subdomain of an accepted domain
    that matches subdomains / is a ``*.`` wildcard).
``Remove``
    secondary address in a domain that is not accepted.
``Review``
    the *primary* address is in a domain that is not accepted.  It is never
    removed automatically; the operator has to pick a new primary first.

Non-SMTP proxies (X500, SIP, ...) are outside the accepted-domain rules and
are always kept.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Literal

from exo_housekeeping.exchange.client import ExchangeAdminClient, ExchangeCommandError
from exo_housekeeping.exchange.models import AcceptedDomain
from exo_housekeeping.normalization.address_normalizer import ProxyAddress, address_domain

logger = logging.getLogger(__name__)

Action = Literal["Keep", "Remove", "Review"]


@dataclass(frozen=True)
class AddressDecision:
    proxy: ProxyAddress
    domain: str
    accepted: bool
    action: Action


@dataclass
class AddressReconciliation:
    decisions: list[AddressDecision] = field(default_factory=list)

    @property
    def removable(self) -> list[ProxyAddress]:
        return [d.proxy for d in self.decisions if d.action == "Remove"]

    @property
    def primary_unaccepted(self) -> bool:
        return any(d.action == "Review" for d in self.decisions)


@dataclass
class MailboxReconciliationResult:
    identity: str
    reconciliation: AddressReconciliation
    removed: list[str] = field(default_factory=list)

    def report_rows(self) -> list[dict[str, object]]:
        return [
            {
                "Identity": self.identity,
                "Address": d.proxy.address,
                "Domain": d.domain,
                "IsPrimary": d.proxy.is_primary,
                "Accepted": d.accepted,
                "Action": d.action,
            }
            for d in self.reconciliation.decisions
        ]


def domain_is_accepted(domain: str, accepted_domains: Iterable[AcceptedDomain]) -> bool:
    """Return ``True`` if *domain* is covered by one of *accepted_domains*."""
    domain = domain.lower().rstrip(".")
    if not domain:
        return False
    for accepted in accepted_domains:
        name = accepted.domain_name.lower().rstrip(".")
        wildcard = name.startswith("*.")
        if wildcard:
            name = name[2:]
        if domain == name:
            return True
        if (wildcard or accepted.match_sub_domains) and domain.endswith("." + name):
            return True
    return False


def reconcile_addresses(
    addresses: Iterable[ProxyAddress],
    accepted_domains: Iterable[AcceptedDomain],
) -> AddressReconciliation:
    """Classify every SMTP proxy in *addresses* (pure)."""
    accepted_domains = list(accepted_domains)
    result = AddressReconciliation()
    for proxy in addresses:
        if not proxy.is_smtp:
            continue
        domain = address_domain(proxy.address)
        accepted = domain_is_accepted(domain, accepted_domains)
        if accepted:
            action: Action = "Keep"
        elif proxy.is_primary:
            action = "Review"
        else:
            action = "Remove"
        result.decisions.append(AddressDecision(proxy=proxy, domain=domain, accepted=accepted, action=action))
    return result


def reconcile_mailbox(
    client: ExchangeAdminClient,
    identity: str,
    accepted_domains: Iterable[AcceptedDomain],
    *,
    dry_run: bool = True,
) -> MailboxReconciliationResult:
    """Reconcile one mailbox and, unless *dry_run*, remove unaccepted secondaries."""
    mailbox = client.get_mailbox(identity)
    reconciliation = reconcile_addresses(mailbox.proxy_addresses, accepted_domains)
    result = MailboxReconciliationResult(identity=identity, reconciliation=reconciliation)

    if reconciliation.primary_unaccepted:
        logger.warning("%s: primary SMTP address is in a domain that is not accepted", identity)

    to_remove = [str(proxy) for proxy in reconciliation.removable]
    if not to_remove:
        logger.info("%s: all secondary SMTP addresses are in accepted domains", identity)
        return result

    if dry_run:
        logger.info("[dry run] %s: would remove %s", identity, ", ".join(to_remove))
        return result

    client.update_mailbox_addresses(identity, remove=to_remove)
    result.removed = to_remove
    logger.info("%s: removed %d address(es)", identity, len(to_remove))
    return result


def reconcile_mailboxes(
    client: ExchangeAdminClient,
    identities: Iterable[str],
    *,
    dry_run: bool = True,
) -> tuple[list[MailboxReconciliationResult], list[str]]:
    """Reconcile every mailbox in *identities* against the tenant's accepted domains.

    Returns the per-mailbox results and the identities that failed; a failing
    mailbox is logged and skipped.
    """
    accepted_domains = client.get_accepted_domains()
    logger.info("Tenant has %d accepted domain(s)", len(accepted_domains))

    results: list[MailboxReconciliationResult] = []
    failed: list[str] = []
    for identity in identities:
        identity = identity.strip()
        if not identity:
            continue
        try:
            results.append(reconcile_mailbox(client, identity, accepted_domains, dry_run=dry_run))
        except ExchangeCommandError as exc:
            logger.error("%s: reconciliation failed: %s", identity, exc.message)
            failed.append(identity)
    return results, failed
