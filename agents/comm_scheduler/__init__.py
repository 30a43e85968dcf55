"""Communication scheduler - rule-driven reminders for open invoices.

This module decides, for each configured schedule rule, whether now is the
moment to act, resolves which pending invoices qualify and dispatches an
e-mail, WhatsApp message or (stubbed) call to each of them.

Key Components:
- DTOs: Rules, candidate records and run bookkeeping
- Filters: Category filter expressions (pipe and legacy dialects)
- Due dates: Due-date projection and day-offset checks
- Resolver: Recipient selection per rule and cycle
- Dispatcher: Channel routing with per-recipient failure isolation
- Scheduler: Polling loop, overlap guard and last-run bookkeeping

Multi-tenant: every rule, record and transport setting is tenant scoped.
"""

__version__ = "1.0.0"

from .dispatcher import Dispatcher
from .dto import (
    CandidateRecord,
    CommunicationRule,
    CommunicationType,
    CycleReport,
    DispatchResult,
    DispatchStatus,
    RunOutcome,
    TriggerType,
)
from .filters import AnyCategory, CategorySet, matches, parse_filter
from .resolver import RecipientQueryError, RecipientResolver
from .scheduler import CommunicationScheduler

__all__ = [
    "AnyCategory",
    "CandidateRecord",
    "CategorySet",
    "CommunicationRule",
    "CommunicationScheduler",
    "CommunicationType",
    "CycleReport",
    "DispatchResult",
    "DispatchStatus",
    "Dispatcher",
    "RecipientQueryError",
    "RecipientResolver",
    "RunOutcome",
    "TriggerType",
    "matches",
    "parse_filter",
]
