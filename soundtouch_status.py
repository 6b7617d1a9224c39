"""
Status snapshot of the selected speaker - what is playing and how loud.
"""

import logging
from typing import Callable

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, field_validator

from soundtouch_errors import DeviceQueryError, NoDeviceSelected
from soundtouch_lib import SoundTouchController
from soundtouch_selection import DeviceSelection

logger = logging.getLogger(__name__)

ControllerFactory = Callable[[str], SoundTouchController]


class StatusSnapshot(BaseModel):
    """One point-in-time read of playback and volume."""

    artist: str = ""
    track: str = ""
    volume: int = 0

    @field_validator("artist", "track", mode="before")
    @classmethod
    def _empty_if_missing(cls, value):
        return "" if value is None else value

    @field_validator("volume", mode="before")
    @classmethod
    def _clamp_volume(cls, value):
        if value is None:
            return 0
        return max(0, int(value))

    def to_message(self) -> dict:
        """Frame pushed to live sessions."""
        return {"type": "status", **self.model_dump()}


async def poll_status(selection: DeviceSelection, controller_factory: ControllerFactory) -> StatusSnapshot:
    """
    Read now-playing and volume from the selected speaker.

    The selected hostname is read once; a selection change while the
    queries run does not affect this poll.

    Raises:
        NoDeviceSelected: nothing is selected (no request is made)
        DeviceQueryError: either query failed
    """
    hostname = selection.get()
    if not hostname:
        raise NoDeviceSelected()

    controller = controller_factory(hostname)

    now_playing = await run_in_threadpool(controller.get_nowplaying)
    if now_playing is None:
        logger.warning("Failed to get now playing from %s", hostname)
        raise DeviceQueryError(hostname, "get now playing")

    volume = await run_in_threadpool(controller.get_volume)
    if volume is None:
        logger.warning("Failed to get volume from %s", hostname)
        raise DeviceQueryError(hostname, "get volume")

    return StatusSnapshot(
        artist=now_playing.get('artist'),
        track=now_playing.get('track'),
        volume=volume.get('actualvolume'),
    )
