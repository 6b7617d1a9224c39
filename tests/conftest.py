"""Shared fakes for hub tests."""

from typing import List, Optional

import pytest

from soundtouch_discovery import Device
from soundtouch_selection import DeviceSelection


class FakeController:
    """Stands in for SoundTouchController; records every command."""

    def __init__(self, host: str, nowplaying: Optional[dict] = None,
                 volume: Optional[dict] = None, succeed: bool = True):
        self.host = host
        self.nowplaying = nowplaying
        self.volume = volume
        self.succeed = succeed
        self.keys = []
        self.presets = []
        self.volumes = []
        self.urls = []

    def get_nowplaying(self):
        return self.nowplaying

    def get_volume(self):
        return self.volume

    def send_key(self, key, sender="Gabbo"):
        self.keys.append(key)
        return self.succeed

    def select_preset(self, preset_id):
        self.presets.append(preset_id)
        return self.succeed

    def set_volume(self, volume, mute=False):
        self.volumes.append(volume)
        return self.succeed

    def play_url(self, url, name="Custom Stream"):
        self.urls.append(url)
        return self.succeed


class ControllerFactory:
    """hostname -> FakeController, configured per test."""

    def __init__(self, nowplaying=None, volume=None, succeed=True):
        self.nowplaying = nowplaying
        self.volume = volume
        self.succeed = succeed
        self.created: List[FakeController] = []

    def __call__(self, hostname: str) -> FakeController:
        controller = FakeController(hostname, self.nowplaying, self.volume, self.succeed)
        self.created.append(controller)
        return controller

    @property
    def hosts(self) -> List[str]:
        return [c.host for c in self.created]


class FakeScanner:
    def __init__(self, devices: Optional[List[Device]] = None):
        self.devices = devices or []
        self.calls = 0

    async def scan(self) -> List[Device]:
        self.calls += 1
        return list(self.devices)


@pytest.fixture
def selection() -> DeviceSelection:
    return DeviceSelection()


@pytest.fixture
def controllers() -> ControllerFactory:
    return ControllerFactory(
        nowplaying={'source': 'INTERNET_RADIO', 'artist': 'Nina Simone', 'track': 'Sinnerman',
                    'album': '', 'playStatus': 'PLAY_STATE'},
        volume={'targetvolume': 25, 'actualvolume': 25, 'muteenabled': False},
    )
