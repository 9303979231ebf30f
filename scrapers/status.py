"""
Permit status normalization.

Every portal family words its statuses differently ("Finaled", "UNDER REVII",
"Ready to Issue", ...). normalize_status() folds them all into four values.
It is total: unknown text becomes Status.UNKNOWN, it never raises.
"""

import re
from enum import Enum
from typing import Optional


class Status(str, Enum):
    ISSUED = 'ISSUED'
    IN_REVIEW = 'IN_REVIEW'
    INACTIVE = 'INACTIVE'
    UNKNOWN = 'UNKNOWN'


class Dialect(str, Enum):
    ACCELA = 'accela'
    ETRAKIT = 'etrakit'
    # Loose substring matching (Campbell MGO, Mountain View reports)
    PLAIN = 'plain'


# ============================================================
# ACCELA
# ============================================================

ACCELA_EXACT = {
    Status.ISSUED: {'issued', 'active', 'finaled', 'final', 'permit issued'},
    Status.INACTIVE: {'void', 'expired', 'revoked', 'cancelled', 'canceled', 'withdrawn', 'closed'},
    Status.IN_REVIEW: {
        'pending', 'processing', 'plan check', 'in plan check', 'ready to issue',
        'plan review', 'submitted', 'pending resubmittal', 'incomplete',
        'received', 'accepted',
    },
}

# "Ready to issue" mentions issuing but the permit hasn't been issued yet
ACCELA_READY_TO_ISSUE = re.compile(r'(ready to issue|ready-to-issue|ready for issuance)')

ACCELA_PATTERNS = [
    (Status.ISSUED, re.compile(
        r'(^|\b)(issued|active|finaled|final|permit issued|certificate of occupancy|co issued)(\b|$)'
    )),
    (Status.INACTIVE, re.compile(r'(void|expired|revoked|cancelled|canceled|withdrawn|closed)')),
    (Status.IN_REVIEW, re.compile(
        r'(pending|plan\s*check|in\s*plan\s*check|processing|pre-application accepted'
        r'|pre\s*application accepted|review|intake|application received|under review'
        r'|submitted|pending\s*resubmittal|incomplete)'
    )),
]


# ============================================================
# eTRAKiT
# ============================================================

ETRAKIT_EXACT = {
    Status.ISSUED: {'ISSUED', 'APPROVED'},
    Status.INACTIVE: set(),
    # eTRAKiT truncates long labels in its grids ("UNDER REVII", "AWAITING PA")
    Status.IN_REVIEW: {
        'UNDER REVIEW', 'UNDER REVII', 'APPLIED', 'AWAITING PAYMENT', 'AWAITING PA',
        'PAID ONLINE', 'PLAN CHECK', 'RECEIVED',
    },
}

ETRAKIT_PATTERNS = [
    (Status.ISSUED, re.compile(r'ISSUED|APPROVED|FINALED|FINAL')),
    (Status.INACTIVE, re.compile(r'EXPIRED|VOID|REVOKED|CANCELLED|CANCELED|WITHDRAWN|CLOSED')),
    (Status.IN_REVIEW, re.compile(
        r'UNDER\s*REVIEW|APPLIED|AWAITING|PAID\s*ONLINE|PENDING|SUBMITTED|PLAN\s*CHECK|RECEIVED'
    )),
]


# ============================================================
# PLAIN
# ============================================================

PLAIN_KEYWORDS = [
    (Status.ISSUED, ('issued', 'approved', 'final', 'completed')),
    (Status.INACTIVE, ('void', 'cancel', 'expired', 'closed')),
    (Status.IN_REVIEW, ('pending', 'review', 'ready for issu', 'submitted', 'received')),
]


def _normalize_accela(text: str) -> Status:
    lowered = text.lower()

    for status in (Status.ISSUED, Status.INACTIVE, Status.IN_REVIEW):
        if lowered in ACCELA_EXACT[status]:
            return status

    if ACCELA_READY_TO_ISSUE.search(lowered):
        return Status.IN_REVIEW

    for status, pattern in ACCELA_PATTERNS:
        if pattern.search(lowered):
            return status

    return Status.UNKNOWN


def _normalize_etrakit(text: str) -> Status:
    upper = text.upper()

    for status in (Status.ISSUED, Status.INACTIVE, Status.IN_REVIEW):
        if upper in ETRAKIT_EXACT[status]:
            return status

    for status, pattern in ETRAKIT_PATTERNS:
        if pattern.search(upper):
            return status

    return Status.UNKNOWN


def _normalize_plain(text: str) -> Status:
    lowered = text.lower()

    # "Ready for Issuance" is still in review
    if 'ready for issu' in lowered or 'ready to issue' in lowered:
        return Status.IN_REVIEW

    for status, keywords in PLAIN_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return status

    return Status.UNKNOWN


_NORMALIZERS = {
    Dialect.ACCELA: _normalize_accela,
    Dialect.ETRAKIT: _normalize_etrakit,
    Dialect.PLAIN: _normalize_plain,
}


def normalize_status(raw: Optional[str], dialect: Dialect = Dialect.ACCELA) -> Status:
    """
    Map free-text portal status onto Status.

    Exact phrase matches win over pattern matches. Pattern families are
    tried in the order ISSUED, INACTIVE, IN_REVIEW. A value that is already
    a Status name passes straight through.
    """
    if raw is None:
        return Status.UNKNOWN
    if isinstance(raw, Status):
        return raw

    text = ' '.join(str(raw).split())
    if not text:
        return Status.UNKNOWN

    if text in Status.__members__:
        return Status[text]

    return _NORMALIZERS[Dialect(dialect)](text)
