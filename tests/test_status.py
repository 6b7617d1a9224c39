"""Tests for status snapshots and polling."""

import pytest

from soundtouch_errors import DeviceQueryError, NoDeviceSelected
from soundtouch_status import StatusSnapshot, poll_status

from conftest import ControllerFactory


class TestStatusSnapshot:

    def test_defaults(self):
        snapshot = StatusSnapshot()
        assert (snapshot.artist, snapshot.track, snapshot.volume) == ("", "", 0)

    def test_none_fields_become_empty(self):
        snapshot = StatusSnapshot(artist=None, track=None, volume=None)
        assert (snapshot.artist, snapshot.track, snapshot.volume) == ("", "", 0)

    def test_negative_volume_clamped(self):
        assert StatusSnapshot(volume=-12).volume == 0

    def test_message(self):
        snapshot = StatusSnapshot(artist="A", track="T", volume=30)
        assert snapshot.to_message() == {"type": "status", "artist": "A", "track": "T", "volume": 30}


class TestPollStatus:

    @pytest.mark.asyncio
    async def test_no_device_never_queries(self, selection, controllers):
        with pytest.raises(NoDeviceSelected):
            await poll_status(selection, controllers)
        assert controllers.created == []

    @pytest.mark.asyncio
    async def test_composes_snapshot(self, selection, controllers):
        selection.set("SoundTouch-Kitchen.local")

        snapshot = await poll_status(selection, controllers)

        assert snapshot == StatusSnapshot(artist="Nina Simone", track="Sinnerman", volume=25)
        assert controllers.hosts == ["SoundTouch-Kitchen.local"]

    @pytest.mark.asyncio
    async def test_missing_fields_and_zero_volume(self, selection):
        selection.set("a.local")
        factory = ControllerFactory(
            nowplaying={'source': 'STANDBY', 'artist': '', 'track': ''},
            volume={'actualvolume': 0},
        )

        snapshot = await poll_status(selection, factory)

        assert snapshot == StatusSnapshot(artist="", track="", volume=0)

    @pytest.mark.asyncio
    async def test_negative_reading_clamped(self, selection):
        selection.set("a.local")
        factory = ControllerFactory(nowplaying={}, volume={'actualvolume': -5})

        snapshot = await poll_status(selection, factory)

        assert snapshot.volume == 0

    @pytest.mark.asyncio
    async def test_nowplaying_failure(self, selection):
        selection.set("a.local")
        factory = ControllerFactory(nowplaying=None, volume={'actualvolume': 10})

        with pytest.raises(DeviceQueryError) as exc_info:
            await poll_status(selection, factory)
        assert exc_info.value.hostname == "a.local"

    @pytest.mark.asyncio
    async def test_volume_failure(self, selection):
        selection.set("a.local")
        factory = ControllerFactory(nowplaying={'artist': 'x'}, volume=None)

        with pytest.raises(DeviceQueryError):
            await poll_status(selection, factory)
