"""Unit tests for the reliable interaction engine."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from steadyhand.core.config import EngineConfig
from steadyhand.core.errors import AutomationFailure
from steadyhand.core.types import (
    ActionRequest,
    ActionType,
    AttemptEvent,
    ElementLocator,
    RecognitionTarget,
    SelectBy,
    StrategyName,
    StrategyResult,
)
from steadyhand.engine import RecognitionStrategy, ReliableInteractionEngine, StructuralStrategy
from steadyhand.snapshots import SnapshotRecorder


def click_request(**overrides) -> ActionRequest:
    options = {
        "kind": ActionType.CLICK,
        "locator": ElementLocator(text="Heated Seats"),
        "name": "Heated Seats",
        "retries": 2,
        "timeout": 0.1,
    }
    options.update(overrides)
    return ActionRequest(**options)


class TestExecute:
    """Test suite for ReliableInteractionEngine.execute."""

    @pytest.mark.asyncio
    async def test_structural_success(self, fake_driver, fake_recognizer, no_sleep) -> None:
        """Test that a present element is handled structurally on the first attempt."""
        engine = ReliableInteractionEngine(fake_driver, fake_recognizer, sleep=no_sleep)

        outcome = await engine.execute(
            click_request(fallback=RecognitionTarget(text="Heated Seats"))
        )

        assert outcome.success is True
        assert outcome.strategy == StrategyName.STRUCTURAL
        assert outcome.attempts == 1
        assert outcome.retries_used == 0
        assert len(fake_driver.dispatched) == 1
        assert fake_recognizer.find_text_calls == []
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_recognition_fallback(
        self, make_driver, fake_recognizer, found_box, no_sleep
    ) -> None:
        """Test that a missing element is found on screen and clicked at its center."""
        driver = make_driver(present=False)
        engine = ReliableInteractionEngine(driver, fake_recognizer, sleep=no_sleep)

        outcome = await engine.execute(
            click_request(fallback=RecognitionTarget(text="Heated Seats"))
        )

        assert outcome.success is True
        assert outcome.strategy == StrategyName.RECOGNITION
        assert fake_recognizer.find_text_calls == ["Heated Seats"]
        coords, request = driver.dispatched_at[0]
        assert coords == found_box.center
        assert request.kind == ActionType.CLICK
        assert driver.dispatched == []

    @pytest.mark.asyncio
    async def test_image_fallback_after_text_miss(
        self, make_driver, make_recognizer, found_box, no_sleep, tmp_path: Path
    ) -> None:
        """Test that the template image is tried when text recognition misses."""
        driver = make_driver(present=False)
        recognizer = make_recognizer()
        recognizer.image_result = recognizer.text_result.model_copy(
            update={"found": True, "box": found_box}
        )
        template = tmp_path / "seats.png"
        engine = ReliableInteractionEngine(driver, recognizer, sleep=no_sleep)

        outcome = await engine.execute(
            click_request(fallback=RecognitionTarget(text="Heated Seats", image=template))
        )

        assert outcome.strategy == StrategyName.RECOGNITION
        assert recognizer.find_image_calls == [template]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_once_after_all_attempts(
        self, make_driver, make_recognizer, no_sleep
    ) -> None:
        """Test that retries + 1 attempts run before a single AutomationFailure."""
        driver = make_driver(present=False)
        recognizer = make_recognizer()
        engine = ReliableInteractionEngine(driver, recognizer, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.execute(
                click_request(retries=2, fallback=RecognitionTarget(text="Heated Seats"))
            )

        failure = exc_info.value
        assert len(driver.locate_calls) == 3
        assert len(recognizer.find_text_calls) == 3
        assert failure.attempts == 3
        assert failure.action_kind == ActionType.CLICK
        assert failure.target_name == "Heated Seats"
        assert failure.snapshot == b"png-bytes"
        assert any("element not found" in reason for reason in failure.last_reasons)
        assert any("not found on screen" in reason for reason in failure.last_reasons)
        assert [c.args[0] for c in no_sleep.await_args_list] == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_zero_retries_single_attempt(self, make_driver, no_sleep) -> None:
        driver = make_driver(present=False)
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure):
            await engine.execute(click_request(retries=0))

        assert len(driver.locate_calls) == 1
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_snapshot_saved_to_disk(
        self, make_driver, no_sleep, temp_screenshots_dir: Path
    ) -> None:
        """Test that the final failure carries the saved screenshot path."""
        driver = make_driver(present=False)
        engine = ReliableInteractionEngine(
            driver,
            snapshots=SnapshotRecorder(driver, temp_screenshots_dir),
            sleep=no_sleep,
        )

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.execute(click_request(retries=1))

        path = exc_info.value.snapshot_path
        assert path is not None
        assert path.parent == temp_screenshots_dir
        assert path.read_bytes() == b"png-bytes"
        # Only the final attempt is captured by default
        assert driver.screenshots == 1

    @pytest.mark.asyncio
    async def test_attempt_snapshots_when_enabled(self, make_driver, no_sleep) -> None:
        driver = make_driver(present=False)
        engine = ReliableInteractionEngine(
            driver, config=EngineConfig(capture_attempt_snapshots=True), sleep=no_sleep
        )

        with pytest.raises(AutomationFailure):
            await engine.execute(click_request(retries=2))

        assert driver.screenshots == 3

    @pytest.mark.asyncio
    async def test_element_appears_on_retry(self, make_driver, no_sleep) -> None:
        """Test recovery when the element shows up on the second attempt."""
        driver = make_driver(present=[False, True])
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        outcome = await engine.execute(click_request())

        assert outcome.strategy == StrategyName.STRUCTURAL
        assert outcome.attempts == 2
        assert outcome.retries_used == 1

    @pytest.mark.asyncio
    async def test_driver_errors_become_retries(self, make_driver, no_sleep) -> None:
        """Test that a driver exception is folded into a failed attempt."""
        driver = make_driver()
        driver.locate_error = RuntimeError("detached")
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.execute(click_request(retries=1))

        assert "RuntimeError: detached" in exc_info.value.last_reasons[0]

    @pytest.mark.asyncio
    async def test_not_actionable(self, make_driver, no_sleep) -> None:
        driver = make_driver(actionable=False)
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.execute(click_request(retries=0))

        assert "not actionable" in exc_info.value.last_reasons[0]
        assert driver.dispatched == []

    @pytest.mark.asyncio
    async def test_attempt_shares_one_timeout(self, make_driver, no_sleep) -> None:
        """Test that time spent locating is taken from the actionable and dispatch budget."""
        driver = make_driver()
        driver.locate_delay = 0.05
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        await engine.execute(click_request(timeout=1.0, retries=0))

        assert 0 < driver.actionable_timeouts[0] <= 0.96
        assert 0 < driver.dispatch_timeouts[0] <= driver.actionable_timeouts[0]

    @pytest.mark.asyncio
    async def test_slow_locate_exhausts_attempt(self, make_driver, no_sleep) -> None:
        driver = make_driver()
        driver.locate_delay = 0.1
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.execute(click_request(timeout=0.05, retries=0))

        assert "attempt exceeded" in exc_info.value.last_reasons[0]
        assert driver.actionable_timeouts == []
        assert driver.dispatched == []


class TestVerification:
    """Test suite for verification predicates and built-in checks."""

    @pytest.mark.asyncio
    async def test_idempotent_with_true_predicate(
        self, fake_driver, fake_recognizer, no_sleep
    ) -> None:
        """Test that repeating an already-satisfied action never uses recognition."""
        verification = AsyncMock(return_value=True)
        request = click_request(
            verification=verification, fallback=RecognitionTarget(text="Heated Seats")
        )
        engine = ReliableInteractionEngine(fake_driver, fake_recognizer, sleep=no_sleep)

        first = await engine.execute(request)
        second = await engine.execute(request)

        assert first.strategy == second.strategy == StrategyName.STRUCTURAL
        assert fake_recognizer.find_text_calls == []
        assert verification.await_count == 2

    @pytest.mark.asyncio
    async def test_false_predicate_tries_next_strategy(
        self, fake_driver, fake_recognizer, no_sleep
    ) -> None:
        """Test that a failed check after structural dispatch falls back to recognition."""
        verification = AsyncMock(side_effect=[False, True])
        engine = ReliableInteractionEngine(fake_driver, fake_recognizer, sleep=no_sleep)

        outcome = await engine.execute(
            click_request(verification=verification, fallback=RecognitionTarget(text="Heated Seats"))
        )

        assert outcome.strategy == StrategyName.RECOGNITION
        assert outcome.attempts == 1

    @pytest.mark.asyncio
    async def test_predicate_exception_is_retried(self, fake_driver, no_sleep) -> None:
        """Test that a raising predicate counts as a failed check, not a crash."""
        verification = AsyncMock(side_effect=[RuntimeError("stale element"), True])
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        outcome = await engine.execute(click_request(verification=verification))

        assert outcome.success is True
        assert outcome.attempts == 2
        assert verification.await_count == 2

    @pytest.mark.asyncio
    async def test_predicate_exception_reason_reported(self, fake_driver, no_sleep) -> None:
        verification = AsyncMock(side_effect=RuntimeError("stale element"))
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.execute(click_request(retries=0, verification=verification))

        assert "verification raised RuntimeError" in exc_info.value.last_reasons[0]

    @pytest.mark.asyncio
    async def test_typed_text_verified(self, fake_driver, no_sleep) -> None:
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        outcome = await engine.type_text("#search", "trucks", "Search box")

        assert outcome.strategy == StrategyName.STRUCTURAL
        assert fake_driver.dispatched[0].locator == ElementLocator(css="#search")
        assert fake_driver.dispatched[0].value == "trucks"

    @pytest.mark.asyncio
    async def test_typed_text_mismatch_fails(self, make_driver, no_sleep) -> None:
        """Test that text that did not land in the field is a failed attempt."""
        driver = make_driver(type_sticks=False)
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.type_text("#search", "trucks", "Search box", retries=1)

        assert "text verification failed" in exc_info.value.last_reasons[0]
        assert len(driver.dispatched) == 2

    @pytest.mark.asyncio
    async def test_text_verification_can_be_disabled(self, make_driver, no_sleep) -> None:
        driver = make_driver(type_sticks=False)
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        outcome = await engine.type_text("#search", "trucks", "Search box", verify_text=False)

        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_selection_verified_by_label(self, fake_driver, no_sleep) -> None:
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        outcome = await engine.select_option(
            ElementLocator(label="Trim"), "sport", "Trim", select_by=SelectBy.VALUE
        )

        assert outcome.success is True
        assert fake_driver.selection == ("sport", "Sport")

    @pytest.mark.asyncio
    async def test_selection_mismatch_fails(self, fake_driver, no_sleep) -> None:
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.select_option(
                ElementLocator(label="Trim"), "sport", "Trim", select_by=SelectBy.LABEL, retries=0
            )

        assert "selection verification failed" in exc_info.value.last_reasons[0]

    @pytest.mark.asyncio
    async def test_recognition_type_checks_focused_value(
        self, make_driver, fake_recognizer, no_sleep
    ) -> None:
        driver = make_driver(present=False, focused_value="wrong")
        engine = ReliableInteractionEngine(driver, fake_recognizer, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.type_text(
                ElementLocator(label="Search"),
                "trucks",
                "Search box",
                retries=0,
                fallback=RecognitionTarget(text="Search"),
            )

        assert any("text verification failed" in r for r in exc_info.value.last_reasons)

    @pytest.mark.asyncio
    async def test_checkbox_set_and_verified(self, fake_driver, no_sleep) -> None:
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        outcome = await engine.set_checked("#terms", True, "Accept terms")

        assert outcome.success is True
        assert fake_driver.dispatched[0].kind == ActionType.CHECK
        assert fake_driver.dispatched[0].value == "true"
        assert fake_driver.checked == {ElementLocator(css="#terms").describe(): True}

    @pytest.mark.asyncio
    async def test_checkbox_mismatch_fails(self, fake_driver, no_sleep) -> None:
        """Test that a checkbox still checked after unchecking is a failed attempt."""
        fake_driver.read_checked = AsyncMock(return_value=True)
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        with pytest.raises(AutomationFailure) as exc_info:
            await engine.set_checked("#newsletter", False, "Newsletter", retries=0)

        assert "checkbox verification failed" in exc_info.value.last_reasons[0]

    @pytest.mark.asyncio
    async def test_recognition_checkbox_clicked_once(
        self, make_driver, fake_recognizer, no_sleep
    ) -> None:
        driver = make_driver(present=False, focused_checked=False)
        engine = ReliableInteractionEngine(driver, fake_recognizer, sleep=no_sleep)

        outcome = await engine.set_checked(
            ElementLocator(label="Accept terms"),
            True,
            "Accept terms",
            fallback=RecognitionTarget(text="Accept terms"),
        )

        assert outcome.strategy == StrategyName.RECOGNITION
        assert len(driver.dispatched_at) == 1
        assert driver.focused_checked is True

    @pytest.mark.asyncio
    async def test_recognition_checkbox_already_set(
        self, make_driver, fake_recognizer, no_sleep
    ) -> None:
        """Test that a click which unchecks an already-checked box is undone."""
        driver = make_driver(present=False, focused_checked=True)
        engine = ReliableInteractionEngine(driver, fake_recognizer, sleep=no_sleep)

        outcome = await engine.set_checked(
            ElementLocator(label="Accept terms"),
            True,
            "Accept terms",
            retries=0,
            fallback=RecognitionTarget(text="Accept terms"),
        )

        assert outcome.success is True
        assert len(driver.dispatched_at) == 2
        assert driver.focused_checked is True


class TestTryExecute:
    """Test suite for try_execute."""

    @pytest.mark.asyncio
    async def test_failure_reported_as_outcome(self, make_driver, no_sleep) -> None:
        driver = make_driver(present=False)
        engine = ReliableInteractionEngine(driver, sleep=no_sleep)

        outcome = await engine.try_execute(click_request(retries=1))

        assert outcome.success is False
        assert outcome.strategy == StrategyName.NONE
        assert outcome.attempts == 2
        assert outcome.retries_used == 1
        assert outcome.error.action_kind == ActionType.CLICK
        assert outcome.error.target_name == "Heated Seats"

    @pytest.mark.asyncio
    async def test_success_passes_through(self, fake_driver, no_sleep) -> None:
        engine = ReliableInteractionEngine(fake_driver, sleep=no_sleep)

        outcome = await engine.try_execute(click_request())

        assert outcome.success is True
        assert outcome.error is None


class TestHooks:
    """Test suite for attempt observers."""

    @pytest.mark.asyncio
    async def test_events_for_every_attempt(self, make_driver, no_sleep) -> None:
        driver = make_driver(present=[False, False, True])
        events: list[AttemptEvent] = []
        engine = ReliableInteractionEngine(driver, on_attempt=events.append, sleep=no_sleep)

        await engine.execute(click_request())

        assert [e.success for e in events] == [False, False, True]
        assert [e.attempt for e in events] == [1, 2, 3]
        assert events[-1].strategy == StrategyName.STRUCTURAL
        assert events[0].strategy == StrategyName.NONE

    @pytest.mark.asyncio
    async def test_hook_errors_ignored(self, fake_driver, no_sleep) -> None:
        """Test that a raising observer does not change the outcome."""
        hook = MagicMock(side_effect=RuntimeError("observer broke"))
        engine = ReliableInteractionEngine(fake_driver, on_attempt=hook, sleep=no_sleep)

        outcome = await engine.execute(click_request())

        assert outcome.success is True
        hook.assert_called_once()


class TestStrategies:
    """Test suite for strategy ordering and applicability."""

    def test_default_order(self, fake_driver, fake_recognizer) -> None:
        engine = ReliableInteractionEngine(fake_driver, fake_recognizer)

        assert [s.name for s in engine.strategies] == [
            StrategyName.STRUCTURAL,
            StrategyName.RECOGNITION,
        ]

    def test_recognition_needs_recognizer_and_fallback(self, fake_driver, fake_recognizer) -> None:
        with_fallback = click_request(fallback=RecognitionTarget(text="Heated Seats"))

        assert RecognitionStrategy(fake_driver, fake_recognizer).applies(with_fallback)
        assert not RecognitionStrategy(fake_driver, None).applies(with_fallback)
        assert not RecognitionStrategy(fake_driver, fake_recognizer).applies(click_request())
        assert StructuralStrategy(fake_driver).applies(click_request())

    @pytest.mark.asyncio
    async def test_recognition_strategy_reports_not_configured(self, fake_driver) -> None:
        result = await RecognitionStrategy(fake_driver, None).attempt(click_request())

        assert result.succeeded is False
        assert result.failure.error_type == "not_configured"

    @pytest.mark.asyncio
    async def test_custom_strategies(self, fake_driver, no_sleep) -> None:
        """Test that a caller-supplied strategy list replaces the default order."""
        strategy = MagicMock()
        strategy.name = StrategyName.RECOGNITION
        strategy.applies.return_value = True
        strategy.attempt = AsyncMock(return_value=StrategyResult.ok(StrategyName.RECOGNITION))
        engine = ReliableInteractionEngine(fake_driver, strategies=[strategy], sleep=no_sleep)

        outcome = await engine.execute(click_request())

        assert outcome.strategy == StrategyName.RECOGNITION
        assert fake_driver.locate_calls == []

    @pytest.mark.asyncio
    async def test_empty_strategy_list_kept(self, fake_driver, fake_recognizer, no_sleep) -> None:
        """Test that an explicit empty list disables every strategy."""
        engine = ReliableInteractionEngine(
            fake_driver, fake_recognizer, strategies=[], sleep=no_sleep
        )

        with pytest.raises(AutomationFailure):
            await engine.execute(
                click_request(retries=0, fallback=RecognitionTarget(text="Heated Seats"))
            )

        assert engine.strategies == []
        assert fake_driver.locate_calls == []
        assert fake_recognizer.find_text_calls == []


class TestPageHelpers:
    """Test suite for verify_element and wait_for_stable."""

    @pytest.mark.asyncio
    async def test_verify_element(self, fake_driver) -> None:
        engine = ReliableInteractionEngine(fake_driver)

        assert await engine.verify_element("#done", "Done banner") is True
        fake_driver.state_reached = False
        assert await engine.verify_element("#spinner", "Spinner", should_exist=False) is False

    @pytest.mark.asyncio
    async def test_wait_for_stable_is_non_fatal(self, fake_driver) -> None:
        engine = ReliableInteractionEngine(fake_driver)
        fake_driver.idle = False

        assert await engine.wait_for_stable(0.1) is False
