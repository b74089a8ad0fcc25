import pytest

from paxcount.config import RunMode
from paxcount.reset import ResetReason, RtcState, adjust_wakeup
from paxcount.timekeeper import SECS_YR_2000, TimeSource

HOUR_START = SECS_YR_2000


def test_adjust_wakeup_without_time_keeps_delay():
    assert adjust_wakeup(None, 1234, 30) == 1234


def test_adjust_wakeup_postpones_to_top_of_hour():
    result = adjust_wakeup(HOUR_START, 3590, 30)
    assert result >= 3590
    assert (HOUR_START + result) % 3600 == 0


def test_adjust_wakeup_preponed_is_short():
    result = adjust_wakeup(HOUR_START + 5, 10, 30)
    assert 0 < result <= 30


def test_adjust_wakeup_middle_unchanged():
    assert adjust_wakeup(HOUR_START, 1800, 30) == 1800


def test_reset_vars():
    state = RtcState(runmode=RunMode.UPDATE, restarts=7)
    state.reset_vars()
    assert state.runmode is RunMode.POWERCYCLE
    assert state.restarts == 0


@pytest.mark.parametrize(
    "reason", [ResetReason.CHIP_POWER_ON, ResetReason.SYS_BROWN_OUT]
)
def test_power_on_clears(reason):
    state = RtcState(runmode=RunMode.NORMAL, restarts=4)
    assert state.after_reset(reason, HOUR_START) == 0
    assert state.runmode is RunMode.POWERCYCLE
    assert state.restarts == 0


def test_software_reset_keeps_runmode():
    state = RtcState(runmode=RunMode.MAINTENANCE, restarts=2)
    state.after_reset(ResetReason.CPU0_SW, HOUR_START)
    assert state.runmode is RunMode.MAINTENANCE
    assert state.restarts == 3


@pytest.mark.parametrize("reason", [ResetReason.CORE_MWDT0, 0x42])
def test_other_reset_counts_and_powercycles(reason):
    state = RtcState(runmode=RunMode.UPDATE, restarts=1)
    state.after_reset(reason, HOUR_START)
    assert state.runmode is RunMode.POWERCYCLE
    assert state.restarts == 2


def test_deep_sleep_round_trip():
    state = RtcState(runmode=RunMode.NORMAL, reference_time=HOUR_START)
    state.enter_sleep(HOUR_START + 100.0, 5000)
    assert state.runmode is RunMode.SLEEP
    slept = state.after_reset(ResetReason.CORE_DEEP_SLEEP, HOUR_START + 160.5)
    assert slept == 60500
    assert state.runmode is RunMode.WAKEUP
    assert state.time_source is TimeSource.SET
    assert state.uptime(250) == 5000 + 60500 + 250


def test_deep_sleep_invalid_time_unsynced():
    state = RtcState(reference_time=HOUR_START)
    state.enter_sleep(10.0, 0)
    state.after_reset(ResetReason.CORE_DEEP_SLEEP, 20.0)
    assert state.time_source is TimeSource.UNSYNCED


def test_deep_sleep_keeps_pending_update():
    state = RtcState(reference_time=HOUR_START)
    state.enter_sleep(HOUR_START + 1.0, 0)
    state.runmode = RunMode.UPDATE
    state.after_reset(ResetReason.CORE_DEEP_SLEEP, HOUR_START + 2.0)
    assert state.runmode is RunMode.UPDATE


def test_uptime_adds_banked_millis():
    state = RtcState(millis=1000)
    assert state.uptime(0) == 1000
    assert state.uptime(500) - state.uptime(0) == 500