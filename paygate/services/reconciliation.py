"""Payment status policy and transition graph.

The policy is evaluated from scratch every cycle from ledger totals; the graph
decides which of its targets a payment may actually move to.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

from paygate.models.payment import PaymentStatus

ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.DETECTED, PaymentStatus.CANCELLED, PaymentStatus.EXPIRED}
    ),
    PaymentStatus.DETECTED: frozenset(
        {
            PaymentStatus.CONFIRMING,
            PaymentStatus.COMPLETED,
            PaymentStatus.UNDERPAID,
            PaymentStatus.EXPIRED,
        }
    ),
    PaymentStatus.CONFIRMING: frozenset(
        {PaymentStatus.COMPLETED, PaymentStatus.UNDERPAID, PaymentStatus.EXPIRED}
    ),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.UNDERPAID: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

# Timestamp column set the first time a payment enters each status
MILESTONE_FIELDS: dict[PaymentStatus, tuple[str, ...]] = {
    PaymentStatus.DETECTED: ("detected_at",),
    PaymentStatus.CONFIRMING: ("confirmed_at",),
    PaymentStatus.COMPLETED: ("confirmed_at", "completed_at"),
}


def evaluate_status(
    total_received: int,
    min_confirmations: int | None,
    required_confirmations: int,
    amount_requested: int,
    previous_status: PaymentStatus,
) -> PaymentStatus:
    """Target status for the current totals.

    ``min_confirmations`` is None when no transaction has been recorded.
    """
    if total_received <= 0:
        return previous_status

    confirmations = min_confirmations or 0
    if total_received >= amount_requested:
        if confirmations >= required_confirmations:
            return PaymentStatus.COMPLETED
        if confirmations > 0:
            return PaymentStatus.CONFIRMING
        return PaymentStatus.DETECTED

    if confirmations >= required_confirmations:
        return PaymentStatus.UNDERPAID
    return PaymentStatus.DETECTED


def is_allowed(previous: PaymentStatus, target: PaymentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[previous]


def transition_path(previous: PaymentStatus, target: PaymentStatus) -> list[PaymentStatus] | None:
    """Shortest sequence of statuses leading from ``previous`` to ``target``.

    Returns an empty list when already there and None when the graph has no
    route (e.g. from a terminal status, or back from confirming to detected).
    """
    if previous == target:
        return []

    parents: dict[PaymentStatus, PaymentStatus] = {}
    queue = deque([previous])
    while queue:
        current = queue.popleft()
        for nxt in sorted(ALLOWED_TRANSITIONS[current], key=lambda s: s.value):
            if nxt in parents or nxt == previous:
                continue
            parents[nxt] = current
            if nxt == target:
                path = [nxt]
                while parents[path[-1]] != previous:
                    path.append(parents[path[-1]])
                return list(reversed(path))
            queue.append(nxt)
    return None


@dataclass
class ReconciliationDecision:
    """Outcome of evaluating one payment in one cycle."""

    previous_status: PaymentStatus
    status: PaymentStatus
    amount_paid: int
    current_confirmations: int
    steps: list[PaymentStatus] = field(default_factory=list)
    milestones: dict[str, datetime] = field(default_factory=dict)
    blocked_target: PaymentStatus | None = None

    @property
    def status_changed(self) -> bool:
        return self.status != self.previous_status


def decide(
    previous_status: PaymentStatus,
    total_received: int,
    min_confirmations: int | None,
    required_confirmations: int,
    amount_requested: int,
    now: datetime,
) -> ReconciliationDecision:
    """Evaluate the policy and resolve it against the transition graph."""
    target = evaluate_status(
        total_received,
        min_confirmations,
        required_confirmations,
        amount_requested,
        previous_status,
    )
    decision = ReconciliationDecision(
        previous_status=previous_status,
        status=previous_status,
        amount_paid=max(total_received, 0),
        current_confirmations=min_confirmations or 0,
    )

    path = transition_path(previous_status, target)
    if path is None:
        decision.blocked_target = target
        return decision

    decision.steps = path
    if path:
        decision.status = path[-1]
    for step in path:
        for name in MILESTONE_FIELDS.get(step, ()):
            decision.milestones.setdefault(name, now)
    return decision
