"""
Bose SoundTouch Device Library
Client for the speaker's HTTP control API (port 8090).
The hub uses it to read playback/volume status and to relay commands.
"""

import logging
import re
import requests
import xml.etree.ElementTree as ET
from xml.sax.saxutils import escape
from typing import List, Optional

logger = logging.getLogger(__name__)

_ATTR_ENTITIES = {'"': '&quot;'}

# Speaker key names as the device spells them (THUMBS_UP, AUX_INPUT, ...)
_RAW_KEY = re.compile(r"[A-Z0-9_]+")


class SoundTouchController:
    """Control Bose SoundTouch devices."""

    DEFAULT_PORT = 8090

    # Available key commands
    KEYS = {
        'power': 'POWER',
        'play': 'PLAY',
        'pause': 'PAUSE',
        'play_pause': 'PLAY_PAUSE',
        'stop': 'STOP',
        'next': 'NEXT_TRACK',
        'next_track': 'NEXT_TRACK',
        'previous': 'PREV_TRACK',
        'prev': 'PREV_TRACK',
        'prev_track': 'PREV_TRACK',
        'mute': 'MUTE',
        'volume_up': 'VOLUME_UP',
        'vol_up': 'VOLUME_UP',
        'volume_down': 'VOLUME_DOWN',
        'vol_down': 'VOLUME_DOWN',
        'preset1': 'PRESET_1',
        'preset2': 'PRESET_2',
        'preset3': 'PRESET_3',
        'preset4': 'PRESET_4',
        'preset5': 'PRESET_5',
        'preset6': 'PRESET_6',
        'thumbsup': 'THUMBS_UP',
        'thumbsdown': 'THUMBS_DOWN',
    }

    PRESET_IDS = range(1, 7)

    @classmethod
    def resolve_key(cls, key: str) -> Optional[str]:
        """Map an alias (any case) or a raw speaker key name to the key sent. None if neither."""
        key = key.strip()
        alias = cls.KEYS.get(key.lower())
        if alias is not None:
            return alias
        if _RAW_KEY.fullmatch(key):
            return key
        return None

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float = 5):
        """
        Initialize the controller.

        Args:
            host: Hostname or IP address of the SoundTouch device
            port: Port (default: 8090)
            timeout: HTTP timeout in seconds (default: 5)
        """
        self.host = host
        self.port = port
        self.base_url = f"http://{host}:{port}"
        self.timeout = timeout

    def _get_xml(self, path: str) -> Optional[ET.Element]:
        """GET an endpoint and parse the XML body. None on any failure."""
        url = f"{self.base_url}{path}"
        try:
            response = requests.get(url, timeout=self.timeout)
        except (requests.RequestException, ValueError) as e:
            # urllib3 raises LocationParseError (a ValueError) for malformed hostnames
            logger.warning("GET %s failed: %s", url, e)
            return None

        if response.status_code != 200:
            logger.warning("GET %s returned HTTP %d", url, response.status_code)
            return None

        try:
            return ET.fromstring(response.text)
        except ET.ParseError as e:
            logger.warning("Unparseable XML from %s: %s", url, e)
            return None

    def _post_xml(self, path: str, xml_body: str) -> bool:
        url = f"{self.base_url}{path}"
        headers = {'Content-Type': 'application/xml'}
        try:
            response = requests.post(url, data=xml_body, headers=headers, timeout=self.timeout)
        except (requests.RequestException, ValueError) as e:
            logger.warning("POST %s failed: %s", url, e)
            return False

        if response.status_code != 200:
            logger.warning("POST %s returned HTTP %d", url, response.status_code)
            return False
        return True

    def send_key(self, key: str, sender: str = "Gabbo") -> bool:
        """
        Send a key press to the device.

        Args:
            key: Alias from the KEYS dict, or a raw speaker key name such as "AUX_INPUT"
            sender: Sender identifier (must be "Gabbo" for compatibility)

        Returns:
            True if successful, False otherwise
        """
        key_value = self.resolve_key(key)
        if key_value is None:
            return False

        # Press and release are two separate calls
        for state in ['press', 'release']:
            xml_body = f'<key state="{state}" sender="{escape(sender, _ATTR_ENTITIES)}">{key_value}</key>'
            if not self._post_xml("/key", xml_body):
                return False
        return True

    def get_nowplaying(self) -> Optional[dict]:
        """Get currently playing info. Missing fields are empty strings."""
        root = self._get_xml("/now_playing")
        if root is None:
            return None
        return {
            'source': root.get('source', ''),
            'artist': root.findtext('artist', '') or '',
            'track': root.findtext('track', '') or '',
            'album': root.findtext('album', '') or '',
            'playStatus': root.get('playStatus') or root.findtext('playStatus', '') or '',
        }

    def get_volume(self) -> Optional[dict]:
        """Get current volume settings."""
        root = self._get_xml("/volume")
        if root is None:
            return None
        try:
            return {
                'targetvolume': int(root.findtext('targetvolume', '0')),
                'actualvolume': int(root.findtext('actualvolume', '0')),
                'muteenabled': root.findtext('muteenabled', 'false').lower() == 'true',
            }
        except ValueError as e:
            logger.warning("Bad volume reading from %s: %s", self.host, e)
            return None

    def set_volume(self, volume: int, mute: bool = False) -> bool:
        """
        Set volume level.

        Args:
            volume: Volume level 0-100
            mute: Mute status (optional)

        Returns:
            True if successful
        """
        if not 0 <= volume <= 100:
            return False

        mute_str = 'true' if mute else 'false'
        xml_body = f'<volume><targetvolume>{volume}</targetvolume><muteenabled>{mute_str}</muteenabled></volume>'
        return self._post_xml("/volume", xml_body)

    def select_preset(self, preset_id: int) -> bool:
        """Play one of the six stored presets."""
        if preset_id not in self.PRESET_IDS:
            return False
        return self.send_key(f"preset{preset_id}")

    def play_url(self, url: str, name: str = "Custom Stream") -> bool:
        """
        Play an internet radio stream.

        Args:
            url: Stream URL
            name: Display name shown on the speaker

        Returns:
            True if the speaker accepted the content item
        """
        xml_body = (
            f'<ContentItem source="INTERNET_RADIO" '
            f'location="{escape(url, _ATTR_ENTITIES)}" sourceAccount="">'
            f'<itemName>{escape(name)}</itemName>'
            f'</ContentItem>'
        )
        return self._post_xml("/select", xml_body)

    @staticmethod
    def get_available_keys() -> List[str]:
        """Get list of available keys."""
        return sorted(SoundTouchController.KEYS.keys())
