"""Directory constants shared by the housekeeping drivers.

Mail nickname rules
-------------------
Exchange rejects a mail nickname (``Alias``) containing any character in
``FORBIDDEN_NICKNAME_CHARACTERS``, starting or ending with a period, or
longer than ``MAX_NICKNAME_LENGTH``.  Sanitized nicknames are cut to
``NORMALIZED_NICKNAME_LENGTH`` so a numeric disambiguation suffix still fits.

Report columns
--------------
Column names match the headers the Exchange admin scripts have always
written, so existing spreadsheets and follow-up imports keep working.
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Mail nickname rules
# ---------------------------------------------------------------------------

FORBIDDEN_NICKNAME_CHARACTERS: frozenset[str] = frozenset(
    " \\!#$%&*+/=?^`{}|~<>()';:,[]\"@"
)

MAX_NICKNAME_LENGTH: int = 64
NORMALIZED_NICKNAME_LENGTH: int = 60

#: Uniform draw range for the disambiguation suffix (stop is exclusive).
SUFFIX_RANGE: tuple[int, int] = (101, 999)
#: Fallback range once ``SUFFIX_ATTEMPTS`` draws have all collided.
WIDE_SUFFIX_RANGE: tuple[int, int] = (1000, 10000)
SUFFIX_ATTEMPTS: int = 50

# ---------------------------------------------------------------------------
# Recipient / proxy address vocabulary
# ---------------------------------------------------------------------------

PUBLIC_FOLDER_RECIPIENT_TYPE = "PublicFolder"
SMTP_PREFIX = "smtp"
X500_PREFIX = "X500"

#: Name/alias prefix of the cloud placeholder for a migrating distribution group.
PLACEHOLDER_PREFIX = "Cloud-"
MAX_GROUP_NAME_LENGTH: int = 64

# ---------------------------------------------------------------------------
# Report columns
# ---------------------------------------------------------------------------

ALIAS_REPORT_FIELDS: list[str] = [
    "OriginalAlias",
    "SuggestedAlias",
    "SMTP",
    "SmtpIsBad",
]

RECIPIENT_INPUT_FIELDS: list[str] = [
    "Alias",
    "EmailAddresses",
    "RecipientTypeDetails",
]

SKIPPED_ITEM_REPORT_FIELDS: list[str] = [
    "User",
    "BatchId",
    "Status",
    "Kind",
    "FolderName",
    "Subject",
    "Sender",
    "Recipient",
    "DateSent",
    "DateReceived",
    "MessageSize",
    "ScoringClassifications",
    "FailureMessage",
]

ADDRESS_REPORT_FIELDS: list[str] = [
    "Identity",
    "Address",
    "Domain",
    "IsPrimary",
    "Accepted",
    "Action",
]

GROUP_REPORT_FIELDS: list[str] = [
    "Step",
    "Identity",
    "Name",
    "PrimarySmtpAddress",
    "MemberCount",
    "FailedMembers",
    "FailedSteps",
    "Snapshot",
]
