import pytest

from paxcount.timekeeper import (
    GPS_UTC_DIFF,
    LEAP_SECS_SINCE_GPSEPOCH,
    REFERENCE_TIME,
)
from paxcount.timesync import (
    TIME_SYNC_END_FLAG,
    TIME_SYNC_MAX_SEQNO,
    TimestampKind,
    TimeSync,
    TimeSyncError,
    network_time_to_utc,
    parse_server_answer,
)

VALID_SEC = REFERENCE_TIME + 1000


def frame(seq, seconds, fraction):
    return bytes([seq]) + seconds.to_bytes(4, "big") + bytes([fraction])


def make_sync(**kwargs):
    sent = []
    times = []
    scheduled = []
    sync = TimeSync(
        clock_ms=lambda: 1100,
        send=sent.append,
        on_time=lambda s, ms: times.append((s, ms)),
        schedule=scheduled.append,
        **kwargs,
    )
    return sync, sent, times, scheduled


def test_parse_server_answer():
    assert parse_server_answer(frame(5, VALID_SEC, 125)) == (5, VALID_SEC, 500)


def test_parse_server_answer_zero_fraction():
    assert parse_server_answer(frame(7, VALID_SEC, 0)) == (7, VALID_SEC, 0)


@pytest.mark.parametrize("data", [b"", b"\x01\x02", frame(1, VALID_SEC, 0) + b"\x00"])
def test_parse_server_answer_wrong_length(data):
    with pytest.raises(TimeSyncError):
        parse_server_answer(data)


def test_parse_end_flag_answer():
    with pytest.raises(TimeSyncError, match="confident"):
        parse_server_answer(bytes([TIME_SYNC_END_FLAG]))


def test_network_time_to_utc_no_delay():
    base = GPS_UTC_DIFF - LEAP_SECS_SINCE_GPSEPOCH
    assert network_time_to_utc(0, 0) == (base, 0)


def test_network_time_to_utc_with_delay():
    base = GPS_UTC_DIFF - LEAP_SECS_SINCE_GPSEPOCH
    sec, msec = network_time_to_utc(100, 2500)
    assert sec == base + 100 + 2
    assert msec == 500


def test_request_wraps_sequence_number():
    sync, sent, _, _ = make_sync(seq_no=TIME_SYNC_MAX_SEQNO)
    assert sync.request() == 0
    assert sent == [b"\x00"]


def test_request_while_pending_is_ignored():
    sync, sent, _, _ = make_sync(seq_no=3)
    assert sync.request() == 4
    assert sync.request() is None
    assert sent == [b"\x04"]


def test_invalid_initial_seq_no():
    with pytest.raises(ValueError):
        TimeSync(seq_no=TIME_SYNC_MAX_SEQNO + 1)


def test_full_handshake():
    sync, sent, times, scheduled = make_sync(seq_no=9)
    seq = sync.request()
    sync.store(1000, TimestampKind.TX)
    assert sync.server_answer(frame(seq, VALID_SEC, 125)) is True
    assert sync.complete
    result = sync.compute_time()
    assert result == (VALID_SEC, 575)
    assert times == [result]
    assert sent == [bytes([seq]), bytes([TIME_SYNC_END_FLAG])]
    assert sync.pending is False
    assert scheduled == []


def test_answer_without_request_is_ignored():
    sync, _, _, _ = make_sync()
    assert sync.server_answer(frame(1, VALID_SEC, 0)) is False


def test_out_of_sync_answer_aborts():
    sync, _, _, scheduled = make_sync(seq_no=9, retry_interval=3)
    seq = sync.request()
    assert sync.server_answer(frame(seq + 1, VALID_SEC, 0)) is False
    assert sync.pending is False
    assert scheduled == [3 * 60]


def test_outdated_time_aborts():
    sync, _, _, scheduled = make_sync(seq_no=9)
    seq = sync.request()
    assert sync.server_answer(frame(seq, 1000, 0)) is False
    assert sync.pending is False
    assert len(scheduled) == 1


def test_spurious_answer_aborts():
    sync, _, _, _ = make_sync(seq_no=9)
    sync.request()
    assert sync.server_answer(b"\x0a\x01") is False
    assert sync.pending is False


def test_compute_before_complete_raises():
    sync, _, _, _ = make_sync(seq_no=1)
    with pytest.raises(TimeSyncError):
        sync.compute_time()
    sync.request()
    with pytest.raises(TimeSyncError):
        sync.compute_time()


def test_multiple_samples_request_again_and_use_latest_gateway_time():
    sync, sent, _, _ = make_sync(seq_no=1, samples=2)
    seq = sync.request()
    sync.store(1000, TimestampKind.TX)
    assert sync.server_answer(frame(seq, VALID_SEC, 0)) is True
    assert not sync.complete
    assert sent == [bytes([seq]), bytes([seq])]
    sync.store(1000, TimestampKind.TX)
    assert sync.server_answer(frame(seq, VALID_SEC + 1, 0)) is True
    sec, msec = sync.compute_time()
    assert sec == VALID_SEC + 1
    assert 0 <= msec < 1000


def test_store_after_complete_raises():
    sync, _, _, _ = make_sync(seq_no=1)
    seq = sync.request()
    sync.store(1000, TimestampKind.TX)
    sync.server_answer(frame(seq, VALID_SEC, 0))
    with pytest.raises(TimeSyncError):
        sync.store(5, TimestampKind.TX)


def test_invalid_sample_count():
    with pytest.raises(ValueError):
        TimeSync(samples=0)