"""
Live status stream for web clients.
Each connected /ws client gets its own session that polls the selected
speaker and pushes a status frame every few seconds until it disconnects.
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Awaitable, Callable

from fastapi import WebSocket, WebSocketDisconnect
from fastapi.websockets import WebSocketState

from soundtouch_errors import SoundTouchHubError
from soundtouch_selection import DeviceSelection
from soundtouch_status import StatusSnapshot

logger = logging.getLogger(__name__)

NO_DEVICE_FRAME = {"error": "No device selected"}

# Raised by the transport when the peer is gone
SEND_FAILURES = (WebSocketDisconnect, RuntimeError, OSError)


class SessionState(Enum):
    AWAITING_DEVICE = "awaiting_device"
    STREAMING = "streaming"
    CLOSED = "closed"


class StatusStreamSession:
    """Pushes status snapshots to one websocket client."""

    def __init__(
        self,
        websocket: WebSocket,
        selection: DeviceSelection,
        poll: Callable[[], Awaitable[StatusSnapshot]],
        interval: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            websocket: Accepted websocket connection
            selection: Registry read at session start
            poll: Coroutine function producing a fresh snapshot; it re-reads
                  the selection itself, so device switches apply on the next tick
            interval: Seconds between ticks
            sleep: Delay function (replaceable in tests)
        """
        self.websocket = websocket
        self.selection = selection
        self.poll = poll
        self.interval = interval
        self.sleep = sleep
        self.state = SessionState.AWAITING_DEVICE
        self.frames_sent = 0

    async def run(self) -> None:
        try:
            if not self.selection.get():
                await self._send(NO_DEVICE_FRAME)
                return

            self.state = SessionState.STREAMING
            watcher = asyncio.create_task(self._watch_disconnect())
            try:
                while self.state is SessionState.STREAMING:
                    await self._tick()
                    if self.state is SessionState.STREAMING:
                        await self.sleep(self.interval)
            finally:
                watcher.cancel()
                await asyncio.gather(watcher, return_exceptions=True)
        finally:
            await self._close()

    async def _watch_disconnect(self) -> None:
        """Mark the session closed once the client hangs up, even if no frame is being sent."""
        try:
            while True:
                message = await self.websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
        except SEND_FAILURES as e:
            logger.debug("Websocket receive failed: %s", e)
        logger.debug("Client disconnected, closing session")
        self.state = SessionState.CLOSED

    async def _tick(self) -> None:
        try:
            snapshot = await self.poll()
        except SoundTouchHubError as e:
            logger.debug("Skipping status tick: %s", e)
            return
        except Exception as e:
            logger.warning("Status poll failed, skipping tick: %s", e, exc_info=True)
            return
        await self._send(snapshot.to_message())

    async def _send(self, payload: dict) -> None:
        try:
            await self.websocket.send_text(json.dumps(payload))
        except SEND_FAILURES as e:
            logger.debug("Websocket send failed, closing session: %s", e)
            self.state = SessionState.CLOSED
            return
        self.frames_sent += 1

    async def _close(self) -> None:
        self.state = SessionState.CLOSED
        if self.websocket.application_state == WebSocketState.DISCONNECTED:
            return
        try:
            await self.websocket.close()
        except SEND_FAILURES:
            # peer already went away
            pass
