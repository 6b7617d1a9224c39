#!/usr/bin/env python3
"""
SoundTouch mDNS Discovery
Finds Bose SoundTouch speakers advertising _soundtouch._tcp on the LAN.
Used by the hub on startup and by GET /api/discover; also runnable as a CLI.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict
from zeroconf import ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from soundtouch_errors import DiscoveryError
from soundtouch_selection import DeviceSelection

logger = logging.getLogger(__name__)

SOUNDTOUCH_SERVICE_TYPE = "_soundtouch._tcp.local."


class Device(BaseModel):
    """A speaker found during one scan."""

    model_config = ConfigDict(frozen=True)

    hostname: str
    ip: str = ""
    port: int = 0
    realname: str = ""  # full mDNS service name


class SoundTouchDiscovery:
    """Time-boxed mDNS scan for SoundTouch speakers."""

    DEFAULT_TIMEOUT = 5.0
    POLL_INTERVAL = 0.1
    RESOLVE_TIMEOUT = 1.5

    def __init__(
        self,
        selection: Optional[DeviceSelection] = None,
        service_type: str = SOUNDTOUCH_SERVICE_TYPE,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        resolve_timeout: float = RESOLVE_TIMEOUT,
    ):
        """
        Initialize the scanner.

        Args:
            selection: Registry to seed with the first device found when empty.
                       None disables auto-selection.
            service_type: mDNS service type to browse
            timeout: Total scan budget in seconds
            poll_interval: Longest single wait for the next resolved service
            resolve_timeout: Ceiling for resolving one service
        """
        self.selection = selection
        self.service_type = service_type
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.resolve_timeout = resolve_timeout

    @classmethod
    def from_settings(cls, settings, selection: Optional[DeviceSelection] = None) -> "SoundTouchDiscovery":
        return cls(
            selection=selection,
            service_type=settings.service_type,
            timeout=settings.discovery_timeout,
            poll_interval=settings.discovery_poll_interval,
            resolve_timeout=settings.resolve_timeout,
        )

    async def scan(self) -> List[Device]:
        """
        Browse for speakers until the time budget runs out.

        Discovery is best-effort: if mDNS cannot be started the error is
        logged and an empty list is returned.

        Returns:
            Devices in the order they were resolved. A speaker that is
            re-announced during the scan may appear more than once.
        """
        devices: List[Device] = []

        try:
            azc = self._open_daemon()
        except DiscoveryError as e:
            logger.error("%s", e)
            return devices

        loop = asyncio.get_running_loop()
        resolved: asyncio.Queue = asyncio.Queue()
        pending: Set[asyncio.Task] = set()
        deadline = loop.time() + self.timeout
        browser = None

        def on_service_state_change(zeroconf, service_type, name, state_change):
            # zeroconf passes these as keyword arguments
            if state_change not in (ServiceStateChange.Added, ServiceStateChange.Updated):
                return
            task = loop.create_task(self._resolve(zeroconf, service_type, name, resolved, deadline))
            pending.add(task)
            task.add_done_callback(pending.discard)

        try:
            try:
                browser = self._browse(azc, on_service_state_change)
            except DiscoveryError as e:
                logger.error("%s", e)
                return devices

            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    device = await asyncio.wait_for(
                        resolved.get(), timeout=min(self.poll_interval, remaining)
                    )
                except asyncio.TimeoutError:
                    continue

                devices.append(device)
                if len(devices) == 1 and self.selection is not None:
                    self.selection.select_default(device.hostname)
        finally:
            unfinished = list(pending)
            for task in unfinished:
                task.cancel()
            await asyncio.gather(*unfinished, return_exceptions=True)
            await self._shutdown(azc, browser)

        logger.info("Discovered %d devices", len(devices))
        return devices

    @staticmethod
    def _open_daemon():
        try:
            return AsyncZeroconf()
        except Exception as e:
            raise DiscoveryError(f"Failed to create mDNS daemon: {e}") from e

    def _browse(self, azc, handler):
        try:
            return AsyncServiceBrowser(azc.zeroconf, [self.service_type], handlers=[handler])
        except Exception as e:
            raise DiscoveryError(f"Failed to browse mDNS: {e}") from e

    async def _resolve(self, zeroconf, service_type: str, name: str,
                       resolved: asyncio.Queue, deadline: float) -> None:
        """Resolve one announced service and queue it as a Device."""
        remaining = deadline - asyncio.get_running_loop().time()
        timeout_ms = int(min(self.resolve_timeout, remaining) * 1000)
        if timeout_ms <= 0:
            return

        info = AsyncServiceInfo(service_type, name)
        try:
            ok = await info.async_request(zeroconf, timeout_ms)
        except Exception as e:
            logger.error("mDNS receive error for %s: %s", name, e)
            return

        if not ok:
            logger.debug("Could not resolve %s", name)
            return

        device = self._to_device(info)
        if device is None:
            logger.debug("No hostname for %s", name)
            return
        resolved.put_nowait(device)

    @staticmethod
    def _to_device(info) -> Optional[Device]:
        hostname = (info.server or "").rstrip(".")
        if not hostname:
            return None
        addresses = info.parsed_addresses()
        return Device(
            hostname=hostname,
            ip=addresses[0] if addresses else "",
            port=info.port or 0,
            realname=info.name,
        )

    async def _shutdown(self, azc, browser) -> None:
        if browser is not None:
            try:
                await browser.async_cancel()
            except Exception as e:
                logger.error("Failed to stop mDNS browser: %s", e)
        try:
            await azc.async_close()
        except Exception as e:
            logger.error("Failed to shutdown mDNS: %s", e)


def main():
    """Main function."""
    parser = argparse.ArgumentParser(
        description="Discover Bose SoundTouch devices on your network via mDNS"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=SoundTouchDiscovery.DEFAULT_TIMEOUT,
        help="Scan duration in seconds (default: 5)"
    )
    parser.add_argument(
        "--service-type",
        default=SOUNDTOUCH_SERVICE_TYPE,
        help=f"mDNS service type (default: {SOUNDTOUCH_SERVICE_TYPE})"
    )
    parser.add_argument(
        "--json",
        metavar="FILE",
        help="Export the device list to a JSON file",
        default=None
    )

    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    print(f"[*] Scanning for {args.service_type} for {args.timeout:g}s...")
    scanner = SoundTouchDiscovery(service_type=args.service_type, timeout=args.timeout)
    devices = asyncio.run(scanner.scan())

    print(f"\n[*] Found {len(devices)} SoundTouch device(s)")
    for i, device in enumerate(devices, 1):
        print(f"\n[Device {i}]")
        print(f"  Name:      {device.realname}")
        print(f"  Hostname:  {device.hostname}")
        print(f"  IP:        {device.ip or 'unresolved'}")
        print(f"  Port:      {device.port}")

    if args.json:
        output_file = Path(args.json)
        with open(output_file, 'w') as f:
            json.dump([device.model_dump() for device in devices], f, indent=2)
        print(f"\n[*] Device list exported to: {output_file}")


if __name__ == "__main__":
    main()
