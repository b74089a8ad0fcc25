import pytest

from paxcount.config import (
    BmeStatus,
    ConfigData,
    GpsStatus,
    PayloadMask,
    SniffType,
)
from paxcount.payload import Encoding, PayloadFeatures, PlainPayload
from paxcount.senddata import PaxCount, Ports, Sender, map_port
from paxcount.sensor import sensor_read


class ListQueue:
    def __init__(self):
        self.items = []

    def enqueue(self, message):
        self.items.append(message)

    def queue_reset(self):
        self.items.clear()

    def queue_waiting(self):
        return len(self.items)


def make(features=None, mask=PayloadMask.COUNT_DATA, blescan=1, **kwargs):
    queue = ListQueue()
    config = ConfigData(payloadmask=int(mask), blescan=blescan)
    sender = Sender(
        PlainPayload(features or PayloadFeatures()),
        config,
        send_queues=[queue],
        **kwargs,
    )
    return sender, queue


@pytest.mark.parametrize("encoding", [Encoding.PLAIN, Encoding.PACKED])
def test_map_port_keeps_port_for_plain_and_packed(encoding):
    assert map_port(encoding, 42, Ports()) == 42


def test_map_port_dynamic_cayenne_uses_lpp1():
    ports = Ports()
    assert map_port(Encoding.CAYENNE_DYNAMIC, 42, ports) == ports.cayenne_lpp1


def test_map_port_packed_cayenne_remaps_on_lpp2_port():
    ports = Ports(cayenne_lpp2=2, rcmd=2, cayenne_actuator=10)
    assert map_port(Encoding.CAYENNE_PACKED, 1, ports) == 10


def test_map_port_packed_cayenne_unmatched_lpp2():
    ports = Ports(cayenne_lpp2=40)
    assert map_port(Encoding.CAYENNE_PACKED, 1, ports) == 40


def test_map_port_rejects_unknown_encoding():
    with pytest.raises(ValueError):
        map_port(9, 1)


def test_send_payload_goes_to_every_queue():
    first, second = ListQueue(), ListQueue()
    payload = PlainPayload()
    payload.add_byte(7)
    sender = Sender(payload, send_queues=[first, second])
    message = sender.send_payload(5)
    assert first.items == [message]
    assert second.items == [message]
    assert message.port == 5
    assert message.message == bytes([7])


def test_send_data_counts_wifi_and_ble():
    sender, queue = make()
    sent = sender.send_data(PaxCount(pax=30, wifi_count=10, ble_count=20))
    expected = PlainPayload()
    expected.add_count(10, SniffType.WIFI)
    expected.add_count(20, SniffType.BLE)
    assert [m.message for m in sent] == [expected.buffer]
    assert queue.items[0].port == Ports().counter


def test_send_data_without_blescan_only_wifi():
    sender, _ = make(blescan=0)
    sent = sender.send_data(PaxCount(wifi_count=10, ble_count=20))
    expected = PlainPayload()
    expected.add_count(10, SniffType.WIFI)
    assert sent[0].message == expected.buffer


def test_opensensebox_puts_gps_before_counts():
    features = PayloadFeatures(gps=True, opensensebox=True)
    fix = GpsStatus(latitude=1, longitude=2)
    sender, _ = make(features, ports=Ports(gps=1), gps_reader=lambda: fix)
    sent = sender.send_data(PaxCount(wifi_count=3, ble_count=4))
    expected = PlainPayload(features)
    expected.add_gps(fix)
    expected.add_count(3, SniffType.WIFI)
    expected.add_count(4, SniffType.BLE)
    assert sent[0].message == expected.buffer


def test_gps_without_fix_is_left_out_of_count():
    features = PayloadFeatures(gps=True)
    sender, _ = make(features, ports=Ports(gps=1), blescan=0)
    sent = sender.send_data(PaxCount(wifi_count=3))
    expected = PlainPayload(features)
    expected.add_count(3, SniffType.WIFI)
    assert sent[0].message == expected.buffer


def test_gps_on_own_port():
    features = PayloadFeatures(gps=True)
    fix = GpsStatus(latitude=5, longitude=6, satellites=7)
    sender, _ = make(features, mask=PayloadMask.GPS_DATA, gps_reader=lambda: fix)
    sent = sender.send_data(PaxCount())
    expected = PlainPayload(features)
    expected.add_gps(fix)
    assert [(m.port, m.message) for m in sent] == [(Ports().gps, expected.buffer)]


def test_gps_on_own_port_without_fix_sends_nothing():
    sender, queue = make(PayloadFeatures(gps=True), mask=PayloadMask.GPS_DATA)
    assert sender.send_data(PaxCount()) == []
    assert queue.items == []


def test_bme_sent_on_bme_port():
    features = PayloadFeatures(bme=True)
    reading = BmeStatus(temperature=21.0, pressure=1000.0, humidity=40.0, iaq=50.0)
    sender, _ = make(features, mask=PayloadMask.MEMS_DATA, bme_reader=lambda: reading)
    sent = sender.send_data(PaxCount())
    expected = PlainPayload(features)
    expected.add_bme(reading)
    assert sent[0].port == Ports().bme
    assert sent[0].message == expected.buffer


def test_bme_bit_ignored_without_sensor():
    sender, _ = make(mask=PayloadMask.MEMS_DATA)
    assert sender.send_data(PaxCount()) == []


def test_sensor_slots_sent_on_their_ports():
    features = PayloadFeatures(sensors=True)
    mask = PayloadMask.SENSOR1_DATA | PayloadMask.SENSOR3_DATA
    sender, _ = make(features, mask=mask)
    sent = sender.send_data(PaxCount())
    ports = Ports()
    assert [m.port for m in sent] == [ports.sensor1, ports.sensor3]
    assert sent[0].message == sensor_read(1)[1:]


def test_mask_order_count_then_battery():
    features = PayloadFeatures(battery=True)
    mask = PayloadMask.BATT_DATA | PayloadMask.COUNT_DATA
    sender, _ = make(features, mask=mask, voltage_reader=lambda: 3700)
    sent = sender.send_data(PaxCount(wifi_count=1))
    ports = Ports()
    assert [m.port for m in sent] == [ports.counter, ports.batt]
    assert sent[1].message == (3700).to_bytes(2, "big")


def test_sd_writer_and_plot_receive_counts():
    written, plotted = [], []
    sender, _ = make(
        PayloadFeatures(battery=True),
        voltage_reader=lambda: 3900,
        sd_writer=lambda *args: written.append(args),
        plot=plotted.append,
    )
    sender.send_data(PaxCount(pax=9, wifi_count=4, ble_count=5))
    assert written == [(4, 5, 3900)]
    assert plotted == [9]


def test_flush_queues_and_all_queues_empty():
    aux = ListQueue()
    sender, queue = make(aux_queues=[aux])
    aux.enqueue("cmd")
    sender.send_data(PaxCount(wifi_count=1))
    assert sender.all_queues_empty() is False
    sender.flush_queues()
    assert sender.all_queues_empty() is True
    assert queue.items == [] and aux.items == []