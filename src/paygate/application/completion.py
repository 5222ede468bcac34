"""
Order Completion Coordinator - Post-confirmation side effects

Runs once a payment for an order has been confirmed. The money is already
taken at this point, so no step is allowed to fail the confirmation: each
step runs in isolation, a raising step is logged and recorded as a
StepError, and the next step still runs.

Files that USE this module:
- paygate.application.orchestrator (on_payment_confirmed)
- paygate.app (wires the referral engine and order repository)
- tests.test_completion

Files that this module USES:
- paygate.domain.models (Order, OrderCompletionOutcome, StepError)
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Callable, List, Optional, Protocol, Tuple

from paygate.domain.models import Order, OrderCompletionOutcome, StepError

log = logging.getLogger(__name__)

REFERRAL_STEP = "referral_qualification"

CompletionStep = Callable[[Order], Any]


class ReferralEngine(Protocol):
    def process_referral_qualification(self, user_id: str, order_id: str, order_total: Decimal) -> Any:
        ...


class OrderRepository(Protocol):
    def count_completed_orders(self, user_id: str) -> int:
        ...


class OrderCompletionCoordinator:
    """Ordered, individually isolated completion steps."""

    def __init__(
        self,
        referral_engine: Optional[ReferralEngine] = None,
        order_repository: Optional[OrderRepository] = None,
        steps: Optional[List[Tuple[str, CompletionStep]]] = None,
    ):
        """
        Args:
            referral_engine: Collaborator that qualifies referrals; the referral
                step is skipped when None
            order_repository: Collaborator used by is_first_order
            steps: Extra (name, callable) steps run after the referral step
        """
        self.referral_engine = referral_engine
        self.order_repository = order_repository
        self._steps: List[Tuple[str, CompletionStep]] = []
        if referral_engine is not None:
            self._steps.append((REFERRAL_STEP, self._qualify_referral))
        for name, step in steps or []:
            self.add_step(name, step)

    @property
    def step_names(self) -> List[str]:
        return [name for name, _ in self._steps]

    def add_step(self, name: str, step: CompletionStep) -> None:
        """Append a step; steps run in registration order."""
        if not name:
            raise ValueError("Completion step needs a name")
        self._steps.append((name, step))

    def _qualify_referral(self, order: Order) -> Any:
        return self.referral_engine.process_referral_qualification(
            order.user_id, order.order_id, order.total_amount
        )

    def complete(self, order: Order) -> OrderCompletionOutcome:
        """
        Run every step for ``order``.

        Never raises; failed steps are returned in ``outcome.errors``.
        """
        outcome = OrderCompletionOutcome(order_id=order.order_id)
        log.info(
            "Processing order completion: order=%s user=%s total=%s",
            order.order_id, order.user_id, order.total_amount,
        )

        for name, step in self._steps:
            try:
                result = step(order)
            except Exception as e:
                log.error(
                    "Order completion step %s failed: order=%s user=%s error=%s",
                    name, order.order_id, order.user_id, e,
                    exc_info=True,
                )
                outcome.errors.append(StepError(step=name, error_type=type(e).__name__, message=str(e)))
                continue

            if name == REFERRAL_STEP:
                outcome.referral_result = result
                if result:
                    log.info("Referral qualification processed: order=%s user=%s", order.order_id, order.user_id)
            outcome.completed_steps.append(name)

        if outcome.succeeded:
            log.info("Order completion processed: order=%s", order.order_id)
        else:
            log.warning(
                "Order completion finished with %d failed step(s): order=%s steps=%s",
                len(outcome.errors), order.order_id, ",".join(err.step for err in outcome.errors),
            )
        return outcome

    def is_first_order(self, user_id: str) -> bool:
        """
        Whether the user has at most one completed order (the current one).

        Degrades to False when the count cannot be read.
        """
        if self.order_repository is None:
            log.warning("No order repository configured; treating user %s as returning customer", user_id)
            return False
        try:
            return self.order_repository.count_completed_orders(user_id) <= 1
        except Exception as e:
            log.error("Failed to check first order for user %s: %s", user_id, e)
            return False
