import asyncio

from models.generation_models import StepStatus
from services.generation.ledger import GenerationLedger, format_seconds
from tests.conftest import FakeClock


def test_begin_invalidates_previous_ids():
    ledger = GenerationLedger()
    first = ledger.begin()
    assert ledger.is_current(first)

    second = ledger.begin()
    assert second == first + 1
    assert not ledger.is_current(first)
    assert ledger.is_current(second)


def test_format_seconds_uses_two_decimals():
    assert format_seconds(1.234) == "1.23"
    assert format_seconds(0) == "0.00"
    assert format_seconds(-2) == "0.00"


def test_reset_steps_creates_pending_steps():
    ledger = GenerationLedger()
    ledger.reset_steps(["a", "b"])
    assert ledger.steps_as_dicts() == [
        {"name": "a", "status": "pending", "time": "0.00"},
        {"name": "b", "status": "pending", "time": "0.00"},
    ]


def test_done_freezes_elapsed_time_without_loop():
    clock = FakeClock()
    ledger = GenerationLedger(clock=clock)
    ledger.reset_steps(["a", "b"])

    ledger.set_step(0, StepStatus.LOADING)
    assert ledger.steps[0].time == "0.00"
    clock.now += 2.5
    assert ledger.elapsed(0) == 2.5

    ledger.set_step(0, "done")
    clock.now += 10
    assert ledger.steps[0].status is StepStatus.DONE
    assert ledger.steps[0].time == "2.50"
    assert ledger.elapsed(0) == 2.5
    assert not ledger.timer_active


def test_loading_next_step_resets_its_own_stopwatch():
    clock = FakeClock()
    ledger = GenerationLedger(clock=clock)
    ledger.reset_steps(["a", "b"])
    ledger.set_step(0, "loading")
    clock.now += 1
    ledger.set_step(0, "done")
    ledger.set_step(1, "loading")
    clock.now += 3
    ledger.set_step(1, "done")

    assert [step.time for step in ledger.steps] == ["1.00", "3.00"]


def test_mark_loading_as_error_freezes_failed_step():
    clock = FakeClock()
    ledger = GenerationLedger(clock=clock)
    ledger.reset_steps(["a", "b"])
    ledger.set_step(0, "loading")
    clock.now += 1
    ledger.set_step(0, "done")
    ledger.set_step(1, "loading")
    clock.now += 4

    ledger.mark_loading_as_error()

    assert [step.status for step in ledger.steps] == [StepStatus.DONE, StepStatus.ERROR]
    assert ledger.steps[1].time == "4.00"


def test_clear_drops_steps_and_notifies():
    ledger = GenerationLedger()
    calls = []
    ledger.subscribe(lambda: calls.append(len(ledger.steps)))
    ledger.reset_steps(["a"])
    ledger.clear()
    assert ledger.steps == []
    assert calls == [1, 0]


def test_unsubscribe_stops_notifications():
    ledger = GenerationLedger()
    calls = []
    unsubscribe = ledger.subscribe(lambda: calls.append(1))
    ledger.reset_steps(["a"])
    unsubscribe()
    unsubscribe()
    ledger.reset_steps(["a"])
    assert calls == [1]


def test_failing_listener_does_not_break_transitions():
    ledger = GenerationLedger()

    def boom():
        raise RuntimeError("listener failure")

    ledger.subscribe(boom)
    ledger.reset_steps(["a"])
    ledger.set_step(0, "done")
    assert ledger.steps[0].status is StepStatus.DONE


def test_ticker_refreshes_loading_step():
    clock = FakeClock()

    async def scenario():
        ledger = GenerationLedger(clock=clock, tick_interval=0.01)
        ledger.reset_steps(["a"])
        ticks = []
        ledger.subscribe(lambda: ticks.append(ledger.steps[0].time))

        ledger.set_step(0, "loading")
        assert ledger.timer_active
        clock.now += 1.5
        await asyncio.sleep(0.05)
        live = ledger.steps[0].time

        ledger.set_step(0, "done")
        assert not ledger.timer_active
        clock.now += 5
        await asyncio.sleep(0.03)
        return live, ledger.steps[0].time, ticks

    live, final, ticks = asyncio.run(scenario())
    assert live == "1.50"
    assert final == "1.50"
    assert "1.50" in ticks


def test_stop_timer_keeps_status():
    async def scenario():
        ledger = GenerationLedger(tick_interval=0.01)
        ledger.reset_steps(["a"])
        ledger.set_step(0, "loading")
        ledger.stop_timer()
        return ledger.timer_active, ledger.steps[0].status

    active, status = asyncio.run(scenario())
    assert not active
    assert status is StepStatus.LOADING


def test_finishing_another_step_keeps_timed_step_running():
    clock = FakeClock()
    ledger = GenerationLedger(clock=clock)
    ledger.reset_steps(["a", "b"])
    ledger.set_step(0, "loading")
    clock.now += 2
    ledger.set_step(1, "error")
    clock.now += 1

    assert ledger.elapsed(0) == 3
    ledger.set_step(0, "done")
    assert ledger.steps[0].time == "3.00"
    assert ledger.steps[1].time == "0.00"


def test_finishing_another_step_keeps_ticker_alive():
    clock = FakeClock()

    async def scenario():
        ledger = GenerationLedger(clock=clock, tick_interval=0.01)
        ledger.reset_steps(["a", "b"])
        ledger.set_step(0, "loading")
        ledger.set_step(1, "done")
        active = ledger.timer_active
        clock.now += 0.75
        await asyncio.sleep(0.05)
        return active, ledger.steps[0].time

    active, live = asyncio.run(scenario())
    assert active
    assert live == "0.75"
