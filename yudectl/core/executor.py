"""Write-then-poll command execution against a connected peripheral."""

from __future__ import annotations

import asyncio
import logging

from yudectl.core.errors import CommandTimeoutError, TransportReadError, TransportWriteError
from yudectl.core.model import Characteristic, PollPolicy
from yudectl.transports.base import Connection

RESPONSE_MARKER = "result"
LOGGER = logging.getLogger(__name__)


async def execute_command(
    connection: Connection,
    command: str,
    write_characteristic: Characteristic,
    read_characteristic: Characteristic,
    *,
    policy: PollPolicy | None = None,
    want_ack: bool = False,
    marker: str = RESPONSE_MARKER,
) -> tuple[str, int]:
    """Send ``command`` and read until a response contains ``marker``.

    The write is unacknowledged by default; completion is inferred only from
    the polled responses. A failed read ends the exchange immediately.
    Returns the matching response text and the number of reads performed.
    """
    policy = policy or PollPolicy()

    LOGGER.info("[write] %s", command.rstrip("\n"))
    try:
        await connection.write_characteristic(
            write_characteristic,
            command.encode("utf-8"),
            want_ack,
        )
    except TransportWriteError as exc:
        exc.phase = exc.phase or "WriteCharacteristic() returns fails"
        raise

    delay = policy.interval_s
    for attempt in range(1, policy.max_reads + 1):
        try:
            buf = await connection.read_characteristic(read_characteristic)
        except TransportReadError as exc:
            exc.phase = exc.phase or "ReadCharacteristic() returns fails"
            raise

        try:
            response = bytes(buf).decode("utf-8")
        except UnicodeDecodeError:
            LOGGER.warning("[read ] undecodable response %s", bytes(buf).hex())
            response = None
        else:
            LOGGER.info("[read ] %s", response.rstrip("\n"))

        if response is not None and marker in response:
            return response, attempt

        if attempt < policy.max_reads and delay > 0:
            await asyncio.sleep(delay)
            delay = min(delay * policy.backoff, policy.max_interval_s)

    raise CommandTimeoutError(
        f"no response containing '{marker}' after {policy.max_reads} reads"
    )
