"""Auto-send policy evaluation and the draft lifecycle state machine.

A draft reaches ``ready`` once it has been generated and scored. From there
the policy either sends it automatically or holds it for a human. Checks run
in a fixed order and the first failing check decides the hold reason:

1. the policy is enabled;
2. the category is not on the never-auto-send list;
3. the category is on the auto-send list, when that list is non-empty;
4. confidence meets the threshold (only enforced when
   ``require_approval_for_low_confidence`` is set);
5. a knowledge base match, when required;
6. the current time is inside working hours, when required;
7. the sentiment filter;
8. the organization's daily auto-send allowance.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import date, datetime, timezone
from typing import Protocol
from uuid import UUID
from zoneinfo import ZoneInfo

from ..errors import LifecycleError
from . import schemas
from .classifier import normalize_category

logger = logging.getLogger(__name__)

Status = schemas.DraftStatus

_TRANSITIONS: dict[Status, frozenset[Status]] = {
    Status.PENDING: frozenset({Status.PROCESSING, Status.FAILED}),
    Status.PROCESSING: frozenset({Status.READY, Status.FAILED}),
    Status.READY: frozenset({Status.SENT, Status.FAILED}),
    Status.SENT: frozenset(),
    Status.FAILED: frozenset(),
}


def can_transition(current: Status, target: Status) -> bool:
    return target in _TRANSITIONS[current]


def advance_status(
    record: schemas.DraftRecord,
    target: Status,
    *,
    now: datetime | None = None,
) -> schemas.DraftRecord:
    """Move ``record`` forward to ``target`` or raise :class:`LifecycleError`."""

    current = Status(record.status)
    if not can_transition(current, target):
        raise LifecycleError(
            f"Draft {record.id} cannot move from {current.value} to {target.value}"
        )
    moment = now or datetime.now(timezone.utc)
    record.status = target
    record.updated_at = moment
    if target is Status.SENT:
        record.sent_at = moment
    return record


class DraftLifecycle:
    """Forward-only status transitions with an injectable clock."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def advance(self, record: schemas.DraftRecord, target: Status) -> schemas.DraftRecord:
        return advance_status(record, target, now=self._clock())

    def fail(self, record: schemas.DraftRecord, error: str) -> schemas.DraftRecord:
        record.error = error
        return self.advance(record, Status.FAILED)


# ---------------------------------------------------------------------------
# Decision rules


def _hold(reason: str, check: str) -> schemas.AutoSendDecision:
    return schemas.AutoSendDecision(action="hold", reason=reason, check=check)


def _normalized(categories: list[str]) -> set[str]:
    return {c for c in (normalize_category(v) for v in categories) if c}


def _sentiment_allows(
    sentiment: str, sentiment_filter: schemas.SentimentFilter
) -> bool:
    if sentiment == "negative":
        return not sentiment_filter.require_approval_negative
    if sentiment == "positive":
        return sentiment_filter.auto_send_positive
    return sentiment_filter.auto_send_neutral


def decide_auto_send(
    draft: schemas.GeneratedDraft,
    classification: schemas.MessageClassification,
    policy: schemas.AutoSendPolicy,
    daily_auto_send_count: int,
    now: datetime | None = None,
) -> schemas.AutoSendDecision:
    """Return ``send`` only when every configured rule allows it."""

    if not policy.enabled:
        return _hold("Auto-send is disabled", "enabled")

    category = normalize_category(classification.category)
    if category and category in _normalized(policy.never_auto_send_categories):
        return _hold(f"Category '{category}' is never auto-sent", "never_auto_send_categories")

    allowed = _normalized(policy.auto_send_categories)
    if allowed and category not in allowed:
        return _hold(
            f"Category '{category or 'uncategorized'}' is not enabled for auto-send",
            "auto_send_categories",
        )

    if (
        draft.confidence < policy.confidence_threshold
        and policy.require_approval_for_low_confidence
    ):
        return _hold(
            f"Confidence {draft.confidence} is below threshold {policy.confidence_threshold}",
            "confidence_threshold",
        )

    if policy.require_knowledge_base_match and not draft.used_knowledge_base:
        return _hold("No knowledge base match", "require_knowledge_base_match")

    if policy.only_during_working_hours:
        hours = policy.working_hours or schemas.WorkingHours()
        if not hours.contains(now or datetime.now(timezone.utc)):
            return _hold("Outside working hours", "only_during_working_hours")

    if policy.sentiment_filter is not None and not _sentiment_allows(
        classification.sentiment, policy.sentiment_filter
    ):
        return _hold(
            f"Sentiment '{classification.sentiment}' requires approval", "sentiment_filter"
        )

    limit = policy.max_auto_responses_per_day
    if limit is not None and limit >= 0 and daily_auto_send_count >= limit:
        return _hold(
            f"Daily auto-send limit of {limit} reached", "max_auto_responses_per_day"
        )

    return schemas.AutoSendDecision(action="send", reason="All auto-send rules passed")


# ---------------------------------------------------------------------------
# Daily counter collaborator


class DailyAutoSendCounter(Protocol):
    """Day-scoped count of auto-sent drafts, owned by the persistence layer.

    ``try_reserve`` must check and take one unit of the allowance atomically,
    e.g. a conditional ``UPDATE ... WHERE count < limit`` in SQL.
    """

    def count(self, organization_id: UUID, day: date) -> int: ...

    def increment(self, organization_id: UUID, day: date) -> int: ...

    def try_reserve(self, organization_id: UUID, day: date, limit: int | None) -> bool: ...


class InMemoryDailyAutoSendCounter:
    """Lock-guarded counter keyed by organization and calendar day."""

    def __init__(self) -> None:
        self._counts: dict[tuple[UUID, date], int] = {}
        self._lock = threading.Lock()

    def count(self, organization_id: UUID, day: date) -> int:
        with self._lock:
            return self._counts.get((organization_id, day), 0)

    def increment(self, organization_id: UUID, day: date) -> int:
        with self._lock:
            key = (organization_id, day)
            self._counts[key] = self._counts.get(key, 0) + 1
            return self._counts[key]

    def try_reserve(self, organization_id: UUID, day: date, limit: int | None) -> bool:
        """Take one send from the day's allowance unless ``limit`` is reached.

        ``None`` or a negative limit means unlimited.
        """

        with self._lock:
            key = (organization_id, day)
            current = self._counts.get(key, 0)
            if limit is not None and limit >= 0 and current >= limit:
                return False
            self._counts[key] = current + 1
            return True

    def prune_before(self, day: date) -> int:
        with self._lock:
            stale = [key for key in self._counts if key[1] < day]
            for key in stale:
                del self._counts[key]
            return len(stale)


class AutoSendPolicyEngine:
    """Evaluate policies against an injected daily counter."""

    def __init__(
        self,
        counter: DailyAutoSendCounter,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._counter = counter
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _day(self, moment: datetime, policy: schemas.AutoSendPolicy) -> date:
        # The allowance resets at midnight in the organization's timezone.
        hours = policy.working_hours or schemas.WorkingHours()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timezone.utc)
        return moment.astimezone(ZoneInfo(hours.timezone)).date()

    def evaluate(
        self,
        organization_id: UUID,
        draft: schemas.GeneratedDraft,
        classification: schemas.MessageClassification,
        policy: schemas.AutoSendPolicy,
        now: datetime | None = None,
        reserve: bool = True,
    ) -> schemas.AutoSendDecision:
        """Decide whether ``draft`` may go out without review.

        A ``send`` decision takes one unit of the daily allowance through
        :meth:`DailyAutoSendCounter.try_reserve`; when a concurrent evaluation
        took the last unit first, the draft is held instead. Pass
        ``reserve=False`` when nothing will deliver the draft.
        """

        moment = now or self._clock()
        day = self._day(moment, policy)
        sent_today = self._counter.count(organization_id, day)
        decision = decide_auto_send(draft, classification, policy, sent_today, now=moment)
        if decision.should_send and reserve:
            limit = policy.max_auto_responses_per_day
            if not self._counter.try_reserve(organization_id, day, limit):
                decision = _hold(
                    f"Daily auto-send limit of {limit} reached", "max_auto_responses_per_day"
                )
        logger.info(
            "Auto-send decision for organization %s: %s (%s)",
            organization_id,
            decision.action,
            decision.check or "all checks passed",
        )
        return decision


__all__ = [
    "AutoSendPolicyEngine",
    "DailyAutoSendCounter",
    "DraftLifecycle",
    "InMemoryDailyAutoSendCounter",
    "advance_status",
    "can_transition",
    "decide_auto_send",
]
