from __future__ import annotations

import asyncio
import logging

import pytest

from yudectl.core.errors import (
    CharacteristicNotFoundError,
    DeviceNotFoundError,
    TransportConnectError,
    TransportMTUError,
    TransportReadError,
)
from yudectl.core.model import (
    Advertisement,
    Characteristic,
    CharProperty,
    PollPolicy,
    Profile,
    Service,
    Settings,
)
from yudectl.core.service import COMMAND, CommandService

WRITE_CHAR = Characteristic(handle=0x12, uuid="ffe1", properties=CharProperty.WRITE, service_uuid="ffe0")
NOTIFY_CHAR = Characteristic(handle=0x14, uuid="ffe2", properties=CharProperty.NOTIFY, service_uuid="ffe0")
PROFILE = Profile(services=(Service(uuid="ffe0", handle=0x10, characteristics=(WRITE_CHAR, NOTIFY_CHAR)),))
SETTINGS = Settings(poll=PollPolicy(max_reads=5, interval_s=0.0))


class FakeConnection:
    def __init__(
        self,
        responses: list[bytes | Exception],
        *,
        profile: Profile = PROFILE,
        mtu_error: Exception | None = None,
        drop_after_reads: int | None = None,
        cancel_error: Exception | None = None,
    ) -> None:
        self.address = "C4:4F:33:00:11:22"
        self.responses = list(responses)
        self.profile = profile
        self.mtu_error = mtu_error
        self.drop_after_reads = drop_after_reads
        self.cancel_error = cancel_error
        self.writes: list[tuple[Characteristic, bytes, bool]] = []
        self.reads = 0
        self.cancel_calls = 0
        self.requested_mtu: int | None = None
        self._disconnected = asyncio.Event()

    async def exchange_mtu(self, requested: int) -> int:
        self.requested_mtu = requested
        if self.mtu_error is not None:
            raise self.mtu_error
        return 247

    async def discover_profile(self, full: bool = True) -> Profile:
        assert full is True
        return self.profile

    async def write_characteristic(self, characteristic: Characteristic, payload: bytes, want_ack: bool) -> None:
        self.writes.append((characteristic, payload, want_ack))

    async def read_characteristic(self, characteristic: Characteristic) -> bytes:
        self.reads += 1
        if self.drop_after_reads is not None and self.reads == self.drop_after_reads:
            self._disconnected.set()
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def disconnected(self) -> asyncio.Event:
        return self._disconnected

    async def cancel_connection(self) -> None:
        self.cancel_calls += 1
        if self.cancel_error is not None:
            raise self.cancel_error
        if self._disconnected.is_set():
            return
        # The stack confirms closure asynchronously.
        asyncio.get_running_loop().call_later(0.01, self._disconnected.set)


class FakeHostStack:
    def __init__(self, advertisements: list[Advertisement], connection: FakeConnection | None = None) -> None:
        self.advertisements = advertisements
        self.connection = connection
        self.timeouts: list[float | None] = []

    async def connect(self, predicate, *, timeout_s, cancel):
        self.timeouts.append(timeout_s)
        for advertisement in self.advertisements:
            if predicate(advertisement):
                assert self.connection is not None
                self.connection.address = advertisement.address
                return self.connection
        raise DeviceNotFoundError(f"no matching peripheral found (timed out after {timeout_s}s)")


def _adv(name: str | None) -> Advertisement:
    return Advertisement(local_name=name, address="C4:4F:33:00:11:22", rssi=-55)


def _service(stack: FakeHostStack, notes: list[str], settings: Settings = SETTINGS) -> CommandService:
    return CommandService(stack, settings, notify=notes.append)


def test_end_to_end_success() -> None:
    connection = FakeConnection([b"pending", b"result ok"])
    stack = FakeHostStack([_adv("Other"), _adv("YUDETAMAGO CONFIG")], connection)
    notes: list[str] = []

    result = _service(stack, notes).run()

    assert result.response == "result ok"
    assert result.reads == 2
    assert result.mtu == 247
    assert result.write_characteristic == WRITE_CHAR
    assert result.read_characteristic == NOTIFY_CHAR
    assert connection.requested_mtu == 512
    assert connection.writes == [(WRITE_CHAR, COMMAND.encode("utf-8"), False)]
    assert connection.cancel_calls == 1
    assert connection.disconnected().is_set()
    assert notes[0] == "Scanning for 5s..."
    assert "Discovering profile..." in notes
    assert notes[-1] == "[ C4:4F:33:00:11:22 ] is disconnected"
    assert stack.timeouts == [5.0]


def test_no_match_fails_to_connect_without_traffic() -> None:
    connection = FakeConnection([b"result ok"])
    stack = FakeHostStack([_adv("Something else"), _adv(None)], connection)

    with pytest.raises(DeviceNotFoundError) as exc:
        _service(stack, []).run()

    assert str(exc.value).startswith("can't connect : ")
    assert connection.writes == []
    assert connection.reads == 0
    assert connection.cancel_calls == 0


def test_zero_scan_duration_waits_for_interrupt_only() -> None:
    connection = FakeConnection([b"result"])
    stack = FakeHostStack([_adv("Yudetamago config")], connection)
    notes: list[str] = []

    _service(stack, notes, Settings(scan_duration_s=0, poll=SETTINGS.poll)).run()

    assert stack.timeouts == [None]
    assert notes[0] == "Scanning until interrupted..."


def test_read_failure_still_tears_down() -> None:
    connection = FakeConnection([b"busy", TransportReadError("GATT read timeout"), b"result"])
    stack = FakeHostStack([_adv("Yudetamago config")], connection)
    notes: list[str] = []

    with pytest.raises(TransportReadError) as exc:
        _service(stack, notes).run()

    assert str(exc.value) == "ReadCharacteristic() returns fails : GATT read timeout"
    assert connection.reads == 2
    assert connection.cancel_calls == 1
    assert notes[-1].endswith("is disconnected")


def test_missing_write_characteristic_tears_down() -> None:
    profile = Profile(services=(Service(uuid="ffe0", handle=0x10, characteristics=(NOTIFY_CHAR,)),))
    connection = FakeConnection([b"result"], profile=profile)
    stack = FakeHostStack([_adv("Yudetamago config")], connection)

    with pytest.raises(CharacteristicNotFoundError, match="not found Write Characteristic"):
        _service(stack, []).run()

    assert connection.writes == []
    assert connection.cancel_calls == 1
    assert connection.disconnected().is_set()


def test_mtu_failure_is_reported_with_phase() -> None:
    connection = FakeConnection([], mtu_error=TransportMTUError("rejected"))
    stack = FakeHostStack([_adv("Yudetamago config")], connection)

    with pytest.raises(TransportMTUError) as exc:
        _service(stack, []).run()

    assert str(exc.value) == "can't exchange MTU : rejected"
    assert connection.cancel_calls == 1


def test_peer_disconnect_mid_command_is_observed_once() -> None:
    connection = FakeConnection([b"busy", b"result ok"], drop_after_reads=1)
    stack = FakeHostStack([_adv("Yudetamago config")], connection)
    notes: list[str] = []

    _service(stack, notes).run()

    assert connection.cancel_calls == 1
    assert notes.count("[ C4:4F:33:00:11:22 ] is disconnected") == 1


def test_failed_disconnect_does_not_mask_session_error(caplog: pytest.LogCaptureFixture) -> None:
    connection = FakeConnection(
        [TransportReadError("GATT read timeout")],
        cancel_error=TransportConnectError("BLE disconnect failed"),
    )
    stack = FakeHostStack([_adv("Yudetamago config")], connection)

    with caplog.at_level(logging.ERROR, logger="yudectl.core.service"):
        with pytest.raises(TransportReadError) as exc:
            _service(stack, []).run()

    assert str(exc.value) == "ReadCharacteristic() returns fails : GATT read timeout"
    assert connection.cancel_calls == 1
    assert "can't disconnect : BLE disconnect failed" in caplog.text


def test_failed_disconnect_after_success_is_reported() -> None:
    connection = FakeConnection(
        [b"result ok"],
        cancel_error=TransportConnectError("BLE disconnect failed"),
    )
    stack = FakeHostStack([_adv("Yudetamago config")], connection)
    notes: list[str] = []

    with pytest.raises(TransportConnectError) as exc:
        _service(stack, notes).run()

    assert str(exc.value) == "can't disconnect : BLE disconnect failed"
    assert not any(note.endswith("is disconnected") for note in notes)
