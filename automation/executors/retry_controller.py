"""Per-court retry state machine driven by page classifications."""

from __future__ import annotations
from tracking import t

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError

from automation.forms.page_classifier import PageClassifier, PageType
from automation.shared.booking_contracts import CourtTarget
from automation.shared.cancellation import CancellationToken
from infrastructure.constants import DEFAULT_MAX_RETRIES


class RetryDecision(Enum):
    """What the controller does after a classification."""

    SUBMIT = "submit"
    RETRY = "retry"
    ABANDON = "abandon"


TRANSITION_TABLE: Dict[PageType, RetryDecision] = {
    PageType.READY: RetryDecision.SUBMIT,
    PageType.TOO_EARLY: RetryDecision.RETRY,
    PageType.SLOW_LOADING: RetryDecision.RETRY,
    PageType.UNKNOWN: RetryDecision.RETRY,
    PageType.CONTENDED: RetryDecision.ABANDON,
    PageType.TRANSIENT_ERROR: RetryDecision.ABANDON,
}


@dataclass(frozen=True)
class Transition:
    """Outcome of one step of the state machine."""

    decision: RetryDecision
    retry_count: int
    cap_reached: bool = False


def decide(result: PageType, retry_count: int, max_retries: int) -> Transition:
    """Pure transition function of the retry state machine.

    Retryable classifications consume one retry; reaching ``max_retries``
    turns the retry into an abandon. Non-retryable ones never touch the count.
    """
    t('automation.executors.retry_controller.decide')
    decision = TRANSITION_TABLE[result]
    if decision is not RetryDecision.RETRY:
        return Transition(decision=decision, retry_count=retry_count)

    next_count = retry_count + 1
    if next_count >= max_retries:
        return Transition(decision=RetryDecision.ABANDON, retry_count=next_count, cap_reached=True)
    return Transition(decision=RetryDecision.RETRY, retry_count=next_count)


@dataclass
class AttemptState:
    """Mutable state of one court while it is being attempted."""

    target: CourtTarget
    retry_count: int = 0
    navigation_count: int = 0
    last_result: Optional[PageType] = None
    history: List[PageType] = field(default_factory=list)
    cap_reached: bool = False


@dataclass(frozen=True)
class TargetAttempt:
    """Terminal result of running the state machine for one court."""

    target: CourtTarget
    decision: RetryDecision
    state: AttemptState
    page: Any = None

    @property
    def ready(self) -> bool:
        return self.decision is RetryDecision.SUBMIT


Navigator = Callable[[CourtTarget, bool], Awaitable[Any]]


class RetryController:
    """Navigate, classify and decide until the court is ready or abandoned."""

    def __init__(
        self,
        classifier: Optional[PageClassifier] = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        t('automation.executors.retry_controller.RetryController.__init__')
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self.classifier = classifier or PageClassifier()
        self.max_retries = max_retries
        self.logger = logger or logging.getLogger("RetryController")

    async def attempt(
        self,
        target: CourtTarget,
        navigate: Navigator,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TargetAttempt:
        """Run the state machine for ``target``.

        ``navigate(target, first_attempt)`` loads the booking form and returns
        the page; it is only told ``first_attempt=True`` once, so scheduling
        waits apply to the first navigation alone.
        """
        t('automation.executors.retry_controller.RetryController.attempt')
        state = AttemptState(target=target)

        while True:
            if cancel_token is not None:
                cancel_token.raise_if_cancelled()

            page: Any = None
            first_attempt = state.navigation_count == 0
            state.navigation_count += 1
            try:
                page = await navigate(target, first_attempt)
            except (PlaywrightError, asyncio.TimeoutError) as exc:
                self.logger.warning(
                    "%s: navigation %s failed (%s); treating as unknown",
                    target.label,
                    state.navigation_count,
                    exc,
                )
                result = PageType.UNKNOWN
            else:
                result = await self.classifier.classify(page)

            state.last_result = result
            state.history.append(result)
            transition = decide(result, state.retry_count, self.max_retries)
            state.retry_count = transition.retry_count
            state.cap_reached = transition.cap_reached

            if transition.decision is RetryDecision.SUBMIT:
                self.logger.info(
                    "✅ %s: booking form ready after %s navigation(s)", target.label, state.navigation_count
                )
                return TargetAttempt(target=target, decision=RetryDecision.SUBMIT, state=state, page=page)

            if transition.decision is RetryDecision.ABANDON:
                if transition.cap_reached:
                    self.logger.warning(
                        "❌ %s: max retries (%s) reached, last page %s",
                        target.label,
                        self.max_retries,
                        result.value,
                    )
                else:
                    self.logger.warning("❌ %s: %s, moving to next court", target.label, result.value)
                return TargetAttempt(target=target, decision=RetryDecision.ABANDON, state=state, page=page)

            self.logger.info(
                "🔁 %s: %s, retry %s/%s immediately",
                target.label,
                result.value,
                state.retry_count,
                self.max_retries,
            )


__all__ = [
    "AttemptState",
    "RetryController",
    "RetryDecision",
    "TargetAttempt",
    "Transition",
    "TRANSITION_TABLE",
    "decide",
]
