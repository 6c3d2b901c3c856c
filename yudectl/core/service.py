"""Session orchestration used by the CLI and the public API."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from collections.abc import Callable, Iterator

from yudectl.core.device_match import TARGET_NAME, name_filter
from yudectl.core.errors import TransportError, YudectlError
from yudectl.core.executor import execute_command
from yudectl.core.model import SessionResult, Settings
from yudectl.core.profile import describe_profile, select_notify_characteristic, select_write_characteristic
from yudectl.transports.base import Connection, HostStack

COMMAND = "set_led 0 0 0 0\n"
LOGGER = logging.getLogger(__name__)


@contextlib.contextmanager
def _phase(label: str) -> Iterator[None]:
    try:
        yield
    except YudectlError as exc:
        if exc.phase is None:
            exc.phase = label
        raise


@contextlib.contextmanager
def _interrupt_sets(event: asyncio.Event) -> Iterator[None]:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, event.set)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        # No loop signal handlers (Windows, non-main thread): deadline only.
        installed = False
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def watch_disconnection(connection: Connection, notify: Callable[[str], None]) -> None:
    await connection.disconnected().wait()
    notify(f"[ {connection.address} ] is disconnected")


async def teardown(
    connection: Connection,
    watcher: asyncio.Task[None],
    notify: Callable[[str], None],
) -> None:
    """Cancel the link, then wait for the watcher to confirm it closed."""
    notify(f"Disconnecting [ {connection.address} ]... (this might take up to few seconds on OS X)")
    try:
        with _phase("can't disconnect"):
            await connection.cancel_connection()
    except TransportError:
        watcher.cancel()
        raise
    await watcher


class CommandService:
    def __init__(
        self,
        host_stack: HostStack,
        settings: Settings | None = None,
        *,
        notify: Callable[[str], None] | None = None,
        target_name: str = TARGET_NAME,
    ) -> None:
        self.host_stack = host_stack
        self.settings = settings or Settings()
        self.notify = notify or LOGGER.info
        self.target_name = target_name

    def run(self) -> SessionResult:
        return asyncio.run(self.run_async())

    async def connect(self) -> Connection:
        duration = self.settings.scan_duration_s
        if duration > 0:
            self.notify(f"Scanning for {duration:g}s...")
        else:
            self.notify("Scanning until interrupted...")

        cancel = asyncio.Event()
        with _phase("can't connect"), _interrupt_sets(cancel):
            return await self.host_stack.connect(
                name_filter(self.target_name),
                timeout_s=duration if duration > 0 else None,
                cancel=cancel,
            )

    async def run_async(self) -> SessionResult:
        connection = await self.connect()
        LOGGER.debug("Connected to %s", connection.address)

        watcher = asyncio.create_task(watch_disconnection(connection, self.notify))
        try:
            result = await self._converse(connection)
        except BaseException:
            # The session error wins; a teardown failure behind it is only logged.
            try:
                await teardown(connection, watcher, self.notify)
            except YudectlError as exc:
                LOGGER.error("%s", exc)
            raise
        await teardown(connection, watcher, self.notify)
        return result

    async def _converse(self, connection: Connection) -> SessionResult:
        with _phase("can't exchange MTU"):
            mtu = await connection.exchange_mtu(self.settings.mtu)
        LOGGER.info("exchange MTU : %d", mtu)

        self.notify("Discovering profile...")
        with _phase("can't discover profile"):
            profile = await connection.discover_profile(True)
        for line in describe_profile(profile):
            LOGGER.debug(line)

        read_characteristic = select_notify_characteristic(profile)
        write_characteristic = select_write_characteristic(profile)

        with _phase("executeCommand() returns fail"):
            response, reads = await execute_command(
                connection,
                COMMAND,
                write_characteristic,
                read_characteristic,
                policy=self.settings.poll,
                want_ack=self.settings.write_with_response,
            )

        return SessionResult(
            address=connection.address,
            mtu=mtu,
            write_characteristic=write_characteristic,
            read_characteristic=read_characteristic,
            command=COMMAND,
            response=response,
            reads=reads,
        )
