"""Engine - Reliable execution of single UI actions."""

import asyncio
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import structlog

from steadyhand.core.config import EngineConfig
from steadyhand.core.errors import AutomationFailure
from steadyhand.core.types import (
    ActionOutcome,
    ActionRequest,
    ActionType,
    AttemptEvent,
    ElementLocator,
    FailureDetails,
    StrategyName,
)
from steadyhand.driver import UIDriver
from steadyhand.engine.strategies import RecognitionStrategy, Strategy, StructuralStrategy
from steadyhand.recognition import Recognizer
from steadyhand.snapshots import Snapshot, SnapshotRecorder


logger = structlog.get_logger()

AttemptHook = Callable[[AttemptEvent], Any]
Sleep = Callable[[float], Awaitable[None]]


def _coerce_locator(locator: ElementLocator | str) -> ElementLocator:
    if isinstance(locator, ElementLocator):
        return locator
    return ElementLocator(css=locator)


class ReliableInteractionEngine:
    """Executes one action at a time against an unreliable UI.

    Each attempt runs the strategies in order (structural first, then
    recognition). A strategy that reports success is followed by the
    request's verification predicate. When every strategy fails, the engine
    backs off and retries until the request's retry budget is spent, then
    raises ``AutomationFailure`` carrying a final screenshot.

    The engine holds no session-level state; create one per driver.
    """

    def __init__(
        self,
        driver: UIDriver,
        recognizer: Recognizer | None = None,
        config: EngineConfig | None = None,
        snapshots: SnapshotRecorder | None = None,
        on_attempt: Optional[AttemptHook] = None,
        strategies: list[Strategy] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        """Initialize the engine.

        Args:
            driver: UI driver for the session this engine acts on
            recognizer: Optional recognition capability for the fallback path
            config: Engine configuration
            snapshots: Screenshot recorder; defaults to in-memory snapshots
            on_attempt: Observer called after every attempt, must not raise
            strategies: Override the default structural/recognition order; an
                empty list disables every strategy
            sleep: Awaitable sleep used for backoff, injectable for tests
        """
        self.driver = driver
        self.recognizer = recognizer
        self.config = config or EngineConfig()
        self.snapshots = snapshots or SnapshotRecorder(driver)
        self.on_attempt = on_attempt
        if strategies is None:
            strategies = [
                StructuralStrategy(driver),
                RecognitionStrategy(driver, recognizer),
            ]
        self.strategies: list[Strategy] = strategies
        self._sleep = sleep

    async def execute(self, request: ActionRequest) -> ActionOutcome:
        """Execute one action.

        Args:
            request: Action to perform

        Returns:
            Successful ActionOutcome naming the strategy that satisfied it

        Raises:
            AutomationFailure: Every strategy and retry was exhausted
        """
        started = time.monotonic()
        policy = self.config.retry_policy(request.retries)
        total = policy.total_attempts
        reasons: list[str] = []

        logger.info(
            "action_started",
            action=request.kind.value,
            target=request.name,
            locator=request.locator.describe(),
        )

        for attempt in range(total):
            reasons = []

            for strategy in self.strategies:
                if not strategy.applies(request):
                    continue

                result = await strategy.attempt(request)
                if not result.succeeded:
                    reasons.append(f"{strategy.name.value}: {result.failure.reason}")
                    if strategy.name == StrategyName.STRUCTURAL:
                        logger.debug(
                            "structural_failed_trying_next",
                            target=request.name,
                            reason=result.failure.reason,
                        )
                    continue

                verified, reason = await self._verify(request)
                if not verified:
                    reasons.append(f"{strategy.name.value}: {reason}")
                    continue

                elapsed = time.monotonic() - started
                self._emit(
                    AttemptEvent(
                        action_kind=request.kind,
                        target_name=request.name,
                        attempt=attempt + 1,
                        success=True,
                        strategy=strategy.name,
                        elapsed=elapsed,
                        reasons=reasons,
                    )
                )
                logger.info(
                    "action_succeeded",
                    action=request.kind.value,
                    target=request.name,
                    strategy=strategy.name.value,
                    attempt=attempt + 1,
                    elapsed=round(elapsed, 3),
                )
                return ActionOutcome(
                    success=True,
                    strategy=strategy.name,
                    elapsed=elapsed,
                    retries_used=attempt,
                    attempts=attempt + 1,
                )

            remaining = total - attempt - 1
            snapshot = await self._attempt_snapshot(request, attempt, remaining)

            self._emit(
                AttemptEvent(
                    action_kind=request.kind,
                    target_name=request.name,
                    attempt=attempt + 1,
                    success=False,
                    strategy=StrategyName.NONE,
                    elapsed=time.monotonic() - started,
                    reasons=reasons,
                    snapshot_path=snapshot.path if snapshot else None,
                )
            )
            logger.warning(
                "action_attempt_failed",
                action=request.kind.value,
                target=request.name,
                attempt=attempt + 1,
                retries_left=remaining,
                reasons=reasons,
            )

            if remaining > 0:
                await self._sleep(policy.delay_for(attempt))
            else:
                raise self._failure(request, reasons, snapshot, total, started)

        # total is at least 1, the loop always returns or raises
        raise RuntimeError("unreachable")

    async def try_execute(self, request: ActionRequest) -> ActionOutcome:
        """Execute one action, reporting failure as an outcome.

        Args:
            request: Action to perform

        Returns:
            ActionOutcome; on failure ``success`` is False and ``error`` is set
        """
        try:
            return await self.execute(request)
        except AutomationFailure as failure:
            return ActionOutcome(
                success=False,
                strategy=StrategyName.NONE,
                elapsed=failure.elapsed,
                retries_used=max(failure.attempts - 1, 0),
                attempts=failure.attempts,
                error=FailureDetails(
                    action_kind=failure.action_kind,
                    target_name=failure.target_name,
                    message=failure.message,
                    snapshot_path=failure.snapshot_path,
                    timestamp=failure.timestamp,
                ),
            )

    def _request(
        self,
        kind: ActionType,
        locator: ElementLocator | str,
        name: str,
        value: str | None = None,
        **options: Any,
    ) -> ActionRequest:
        options.setdefault("timeout", self.config.action_timeout)
        options.setdefault("retries", self.config.retries)
        return ActionRequest(
            kind=kind,
            locator=_coerce_locator(locator),
            name=name,
            value=value,
            **options,
        )

    async def click(self, locator: ElementLocator | str, name: str, **options: Any) -> ActionOutcome:
        """Click an element.

        Args:
            locator: ElementLocator or CSS selector
            name: Human-readable target name
            **options: Extra ActionRequest fields (fallback, verification, ...)
        """
        return await self.execute(self._request(ActionType.CLICK, locator, name, **options))

    async def type_text(
        self, locator: ElementLocator | str, text: str, name: str, **options: Any
    ) -> ActionOutcome:
        """Type into a field and check the field holds the text afterwards."""
        return await self.execute(self._request(ActionType.TYPE, locator, name, text, **options))

    async def select_option(
        self, locator: ElementLocator | str, value: str, name: str, **options: Any
    ) -> ActionOutcome:
        """Choose an option and check it is the selected one afterwards."""
        return await self.execute(
            self._request(ActionType.SELECT, locator, name, value, **options)
        )

    async def set_checked(
        self, locator: ElementLocator | str, checked: bool, name: str, **options: Any
    ) -> ActionOutcome:
        """Check or uncheck a checkbox; a box already in that state is left alone."""
        value = "true" if checked else "false"
        return await self.execute(
            self._request(ActionType.CHECK, locator, name, value, **options)
        )

    async def verify_element(
        self,
        locator: ElementLocator | str,
        name: str,
        should_exist: bool = True,
        timeout: float = 5.0,
    ) -> bool:
        """Check that an element is visible (or hidden).

        Args:
            locator: ElementLocator or CSS selector
            name: Human-readable target name
            should_exist: Wait for visible when True, hidden when False
            timeout: Seconds to wait

        Returns:
            True if the element reached the expected state
        """
        state = "visible" if should_exist else "hidden"
        try:
            reached = await self.driver.wait_for_state(_coerce_locator(locator), state, timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("verify_element_error", target=name, error=str(e))
            return False

        if reached:
            logger.info("element_verified", target=name, state=state)
        else:
            logger.warning("element_verification_failed", target=name, state=state)
        return reached

    async def wait_for_stable(self, timeout: float | None = None) -> bool:
        """Wait for network idle; timing out is not an error.

        Args:
            timeout: Seconds to wait (uses config default if None)

        Returns:
            True if the page went idle in time
        """
        timeout = timeout or self.config.idle_timeout
        try:
            idle = await self.driver.wait_for_idle(timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("wait_for_stable_error", error=str(e))
            return False

        if idle:
            logger.debug("page_stable")
        else:
            logger.warning("page_stability_timeout", timeout=timeout)
        return idle

    async def _verify(self, request: ActionRequest) -> tuple[bool, str]:
        """Run the request's predicate; an exception counts as a failed check."""
        if request.verification is None:
            return True, ""

        try:
            verified = await request.verification()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(
                "verification_raised",
                target=request.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False, f"verification raised {type(e).__name__}: {e}"

        if not verified:
            return False, "verification failed"
        return True, ""

    async def _attempt_snapshot(
        self, request: ActionRequest, attempt: int, remaining: int
    ) -> Snapshot | None:
        if remaining == 0:
            if self.config.capture_failure_snapshots:
                return await self.snapshots.capture(f"failed_{request.kind.value.lower()}_{request.name}")
            return None
        if self.config.capture_attempt_snapshots:
            return await self.snapshots.capture(
                f"attempt_{attempt + 1}_{request.kind.value.lower()}_{request.name}"
            )
        return None

    def _failure(
        self,
        request: ActionRequest,
        reasons: list[str],
        snapshot: Snapshot | None,
        attempts: int,
        started: float,
    ) -> AutomationFailure:
        elapsed = time.monotonic() - started
        snapshot_path: Path | None = snapshot.path if snapshot else None
        logger.error(
            "action_failed",
            action=request.kind.value,
            target=request.name,
            attempts=attempts,
            elapsed=round(elapsed, 3),
            snapshot=str(snapshot_path) if snapshot_path else None,
        )
        return AutomationFailure(
            action_kind=request.kind,
            target_name=request.name,
            message=f"All {request.kind.value.lower()} attempts failed for {request.name!r}",
            snapshot=snapshot.image if snapshot else None,
            snapshot_path=snapshot_path,
            locator=request.locator.describe(),
            attempts=attempts,
            elapsed=elapsed,
            last_reasons=reasons,
        )

    def _emit(self, event: AttemptEvent) -> None:
        """Notify the observer; its errors never affect the action."""
        if self.on_attempt is None:
            return
        try:
            self.on_attempt(event)
        except Exception as e:
            logger.warning("attempt_hook_error", error=str(e))
