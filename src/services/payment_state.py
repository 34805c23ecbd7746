"""Payment state machine for orders.

An order's payment aspect moves UNLINKED -> LINK_CREATED -> PAID, and can
be CANCELLED from either of the first two states. PAID is terminal.

Three entry paths feed this module: the provider webhook, status polls and
the manual force-update. Each path first turns what it observed into a
``PaymentSignal``; ``decide_transition`` is the only place that decides
what a signal does to an order.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from src.core.payos import (
    STATUS_CANCELLED,
    STATUS_PENDING,
    PaymentLinkInfo,
    WebhookEvent,
)
from src.models.order import POST_PAYMENT_STATUSES

# Provider statuses that mean the money arrived
PAID_EQUIVALENT_STATUSES: frozenset[str] = frozenset({"PAID", "SUCCESS", "COMPLETED"})


class PaymentState(str, Enum):
    """Payment aspect of an order."""

    UNLINKED = "unlinked"
    LINK_CREATED = "link_created"
    PAID = "paid"
    CANCELLED = "cancelled"


class SignalSource(str, Enum):
    """Where a payment signal came from."""

    WEBHOOK = "webhook"
    POLL = "poll"
    MANUAL = "manual"


class Outcome(str, Enum):
    """What a signal says happened to the payment."""

    PAID = "paid"
    CANCELLED = "cancelled"
    PENDING = "pending"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    """How much a signal can be trusted."""

    CONFIRMED = "confirmed"
    # Fallback tier: inferred, not reported by the provider. Can be wrong.
    HEURISTIC = "heuristic"


class Action(str, Enum):
    """Write to perform on the order."""

    MARK_PAID = "mark_paid"
    MARK_CANCELLED = "mark_cancelled"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class PaymentSignal:
    """A normalized observation about an order's payment."""

    outcome: Outcome
    source: SignalSource
    confidence: Confidence = Confidence.CONFIRMED
    raw_status: str | None = None
    reason: str = ""


@dataclass(frozen=True)
class Transition:
    """Decision taken for a signal."""

    action: Action
    reason: str

    @property
    def changes_state(self) -> bool:
        return self.action is not Action.NO_CHANGE


def payment_state_of(order: Mapping[str, Any]) -> PaymentState:
    """Derive the payment state of an order row."""
    if order.get("is_paid"):
        return PaymentState.PAID
    if order.get("status") == "cancelled":
        return PaymentState.CANCELLED
    if order.get("payment_link_id"):
        return PaymentState.LINK_CREATED
    return PaymentState.UNLINKED


def decide_transition(order: Mapping[str, Any], signal: PaymentSignal) -> Transition:
    """Decide what a signal does to an order.

    Rules:
        - PAID is terminal: every signal is a no-op.
        - A paid signal marks the order paid, except on a cancelled order,
          where only a manual signal may do so.
        - A cancelled signal cancels an order that is not cancelled yet.
        - Pending and unknown signals never change anything.
    """
    state = payment_state_of(order)

    if state is PaymentState.PAID:
        return Transition(Action.NO_CHANGE, "order is already paid")

    if signal.outcome is Outcome.PAID:
        if state is PaymentState.CANCELLED and signal.source is not SignalSource.MANUAL:
            return Transition(
                Action.NO_CHANGE,
                f"order is cancelled; {signal.source.value} payment signal ignored",
            )
        return Transition(Action.MARK_PAID, signal.reason or f"paid signal from {signal.source.value}")

    if signal.outcome is Outcome.CANCELLED:
        if state is PaymentState.CANCELLED:
            return Transition(Action.NO_CHANGE, "order is already cancelled")
        return Transition(Action.MARK_CANCELLED, signal.reason or f"cancelled signal from {signal.source.value}")

    return Transition(
        Action.NO_CHANGE,
        f"{signal.outcome.value} status {signal.raw_status!r} from {signal.source.value}",
    )


def signal_from_webhook(event: WebhookEvent) -> PaymentSignal:
    """Turn a verified webhook event into a signal."""
    status = event.status.upper()

    if status in PAID_EQUIVALENT_STATUSES:
        outcome = Outcome.PAID
    elif status == STATUS_CANCELLED:
        outcome = Outcome.CANCELLED
    elif status == STATUS_PENDING:
        outcome = Outcome.PENDING
    else:
        outcome = Outcome.UNKNOWN

    return PaymentSignal(
        outcome=outcome,
        source=SignalSource.WEBHOOK,
        raw_status=status,
        reason=f"webhook reported {status}",
    )


def signal_from_link_info(info: PaymentLinkInfo, order: Mapping[str, Any]) -> PaymentSignal:
    """Turn a status query result into a signal.

    Several facts can hold at once, so the first matching tier wins:

    1. Transactions on the link: paid, even if the top-level status lags.
    2. A paid-equivalent status (PAID, SUCCESS, COMPLETED): paid.
    3. CANCELLED: cancelled.
    4. PENDING: pending.
    5. Anything else, ERROR included, falls back to heuristics:
       amount_paid >= amount means paid; an order that already moved to a
       post-payment status (processing, shipped, delivered) is taken as
       paid. Both are low confidence.
    """
    status = (info.status or "").upper()

    def _signal(outcome: Outcome, reason: str, confidence: Confidence = Confidence.CONFIRMED) -> PaymentSignal:
        return PaymentSignal(
            outcome=outcome,
            source=SignalSource.POLL,
            confidence=confidence,
            raw_status=status,
            reason=reason,
        )

    if info.transactions:
        return _signal(Outcome.PAID, f"{len(info.transactions)} transaction(s) on payment link")

    if status in PAID_EQUIVALENT_STATUSES:
        return _signal(Outcome.PAID, f"provider status {status}")

    if status == STATUS_CANCELLED:
        return _signal(Outcome.CANCELLED, "provider status CANCELLED")

    if status == STATUS_PENDING:
        return _signal(Outcome.PENDING, "provider status PENDING")

    if info.amount and info.amount_paid is not None and info.amount_paid >= info.amount:
        return _signal(
            Outcome.PAID,
            f"amount paid {info.amount_paid} covers amount {info.amount} (status {status})",
            Confidence.HEURISTIC,
        )

    if order.get("status") in POST_PAYMENT_STATUSES:
        return _signal(
            Outcome.PAID,
            f"order already {order.get('status')} while provider status is {status}",
            Confidence.HEURISTIC,
        )

    return _signal(Outcome.UNKNOWN, f"unresolved provider status {status}")


def display_status(order: Mapping[str, Any], signal: PaymentSignal | None = None) -> str:
    """Client-facing payment status for an order."""
    if order.get("is_paid"):
        return "paid"
    if order.get("status") == "cancelled":
        return "cancelled"
    if signal is None:
        return "pending" if order.get("payment_link_id") else "unpaid"
    return "pending" if signal.outcome is Outcome.PENDING else "unknown"
