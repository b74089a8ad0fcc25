# paxcount

Device-side logic of a LoRaWAN people counter in pure Python: payload
encoding, the remote command interpreter, battery level estimation, time
keeping, the time server handshake and SPI framing. It uses only the
standard library.

## Modules

- `paxcount.config` – the runtime configuration `ConfigData` (fields are
  range-checked on creation; `version_bytes` gives the zero-padded 10 byte
  version field), the records `GpsStatus`, `BmeStatus` and `SdsStatus`, the
  payload bit mask `PayloadMask`, `SniffType`, `RunMode`, and the
  `MessageBuffer` (a port plus up to 256 payload bytes) that goes into send
  queues.
- `paxcount.sensor` – `sensor_mask(sensor_no)` maps a slot number to its
  `PayloadMask` bit (0 for an unknown slot); `sensor_read(sensor)` returns a
  length-prefixed sample frame.
- `paxcount.power` – battery curves `sigmoidal`, `asigmoidal` and `linear`;
  `battery_percent(voltage, map_function, min_voltage, max_voltage)`;
  `lorawan_battery_level(percent, external_power)` for the DevStatusAns
  value; `batt_sufficient(batt_level, min_level)`; and bit helpers for the
  IP5306 charger registers (`ip5306_get_bits`, `ip5306_set_bits`,
  `ip5306_battery_level`, `ip5306_leds_to_percent`).
- `paxcount.payload` – encoders `PlainPayload` (big-endian),
  `PackedPayload` (little-endian, LoRa serialization style) and
  `CayennePayload` (Cayenne LPP, dynamic with channels or packed without),
  chosen with `make_payload(encoding, features)`. `PayloadFeatures` says
  which hardware is present; fields for absent hardware are not written.
  Writing past the buffer capacity raises `OverflowError`.
- `paxcount.senddata` – `Sender` builds payloads according to the
  configured payload mask (`send_data(count)` with a `PaxCount`), hands each
  `MessageBuffer` to every send queue (`send_payload(port)`), and can flush
  or inspect all queues. `map_port` gives the port a payload goes out on for
  an encoding; `Ports` holds the port numbers.
- `paxcount.rcommand` – `RemoteCommands` parses opcode streams
  (`execute`), queues command buffers of up to 10 bytes (`enqueue`,
  `process_pending`) and applies them to the `Sender`'s configuration.
  Actions that reach outside the configuration (restart, storing the
  configuration, counter reconfiguration, LoRa settings, setting the time)
  are callbacks passed to the constructor. `mac_convert` turns a 6 byte MAC
  address into an integer.
- `paxcount.timekeeper` – `mkgmtime`, `is_leap_year`, serial transmit time
  `tx_ticks`, `time_is_valid`, the `TimeSource` enum and the `TimeKeeper`,
  which sets the time from GPS, RTC or LoRa sources given as callbacks.
- `paxcount.reset` – `RtcState`, the state kept across restarts and deep
  sleep (run mode, restart counter, monotonic milliseconds), updated per
  `ResetReason`; and `adjust_wakeup`, which aligns a wakeup with the top of
  the hour.
- `paxcount.timesync` – the time server handshake `TimeSync`,
  `parse_server_answer` for the 6 byte answer frame,
  `network_time_to_utc` for network GPS time, and `TimeSyncError`.
- `paxcount.spislave` – `crc16_be`, `transaction_size`, `build_frame`
  (CRC, port, size, payload, padded to a multiple of 4 bytes) and the
  `SpiSlave` send queue served one message per `transact(rx)`.

## Installing

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from paxcount.config import ConfigData, PayloadMask, SniffType
from paxcount.payload import Encoding, PayloadFeatures, make_payload
from paxcount.rcommand import RemoteCommands
from paxcount.senddata import PaxCount, Sender
from paxcount.spislave import SpiSlave

payload = make_payload(Encoding.PLAIN, PayloadFeatures())
payload.add_count(42, SniffType.WIFI)
payload.add_count(7, SniffType.BLE)
assert bytes(payload) == b"\x00\x2a\x00\x07"

spi = SpiSlave()
sender = Sender(
    payload,
    ConfigData(payloadmask=PayloadMask.COUNT_DATA, blescan=1),
    send_queues=[spi],
)
sender.send_data(PaxCount(pax=49, wifi_count=42, ble_count=7))
frame = spi.transact(bytes(8))  # CRC, port, size and the counts

commands = RemoteCommands(sender)
commands.execute(bytes([0x03, 0x01]))  # switch GPS data on in the payload mask
```

## What the package does not do

There is no radio, WiFi, Bluetooth, SPI bus or sensor access here, and no
command line program. Counting devices, transmitting queued messages,
storing the configuration in non-volatile memory and restarting the device
are left to the caller: the classes take readers, queues and callbacks for
them and only hold the logic in between.