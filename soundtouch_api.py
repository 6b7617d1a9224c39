#!/usr/bin/env python3
"""
SoundTouch Hub Server
FastAPI app that discovers SoundTouch speakers, keeps one of them selected
and relays playback, volume and status requests to it.
Serves the web UI at / and streams status updates over /ws.

Run with `python soundtouch_api.py` or `uvicorn soundtouch_api:create_app --factory`.
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, List, Optional, Set
from urllib.parse import urlparse

import uvicorn
from fastapi import FastAPI, HTTPException, WebSocket
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from soundtouch_config import Settings, load_settings
from soundtouch_discovery import Device, SoundTouchDiscovery
from soundtouch_errors import ConfigError, DeviceQueryError, MalformedInput, NoDeviceSelected
from soundtouch_lib import SoundTouchController
from soundtouch_selection import DeviceSelection, selection as default_selection
from soundtouch_status import StatusSnapshot, poll_status
from soundtouch_websocket import StatusStreamSession

logger = logging.getLogger(__name__)

# Strong references to detached tasks (asyncio only keeps weak ones)
_background_tasks: Set[asyncio.Task] = set()


# ============================================================================
# Pydantic Models for Request/Response
# ============================================================================

class StreamRequest(BaseModel):
    """Body used by every POST route; the web UI always sends {"url": ...}."""
    url: str


# ============================================================================
# Helpers
# ============================================================================

def _selected_hostname(selection: DeviceSelection, action: str) -> str:
    hostname = selection.get()
    if not hostname:
        logger.info("No device selected for %s request", action)
        raise HTTPException(status_code=503, detail="No device selected")
    return hostname


def _parse_int(field: str, value: str, low: int, high: int) -> int:
    text = value.strip()
    # int() would also take "+5", "5_0" and non-ASCII digits
    if not (text.isascii() and text.isdigit()):
        raise MalformedInput(field, value, "not an integer")
    number = int(text)
    if not low <= number <= high:
        raise MalformedInput(field, value, f"must be {low}-{high}")
    return number


def _bad_request(e: MalformedInput) -> HTTPException:
    logger.info("%s", e)
    return HTTPException(status_code=400, detail=str(e))


def start_background_scan(scanner: SoundTouchDiscovery) -> asyncio.Task:
    """Fire-and-forget warm-up scan; only its side effect on the selection matters."""
    task = asyncio.create_task(scanner.scan())
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    task.add_done_callback(_log_scan_failure)
    return task


def _log_scan_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Background scan failed: %s", error, exc_info=error)


# ============================================================================
# App Factory
# ============================================================================

def create_app(
    settings: Optional[Settings] = None,
    selection: Optional[DeviceSelection] = None,
    scanner: Optional[SoundTouchDiscovery] = None,
    controller_factory: Optional[Callable[[str], SoundTouchController]] = None,
) -> FastAPI:
    """
    Build the hub application.

    Args:
        settings: Runtime settings (default: load_settings())
        selection: Selection registry (default: the process-wide one)
        scanner: Discovery scanner (default: mDNS scanner built from settings)
        controller_factory: hostname -> controller (default: SoundTouchController)
    """
    settings = settings or load_settings()
    selection = selection if selection is not None else default_selection
    scanner = scanner or SoundTouchDiscovery.from_settings(settings, selection)
    if controller_factory is None:
        def controller_factory(hostname: str) -> SoundTouchController:
            return SoundTouchController(hostname, port=settings.device_port, timeout=settings.http_timeout)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.scan_on_startup:
            start_background_scan(scanner)
        yield

    app = FastAPI(
        title="SoundTouch Hub",
        description="Local control hub for a Bose SoundTouch speaker",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.selection = selection

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    static_dir = Path(settings.static_dir)
    app.mount("/static", StaticFiles(directory=static_dir, check_dir=False), name="static")

    async def current_status() -> StatusSnapshot:
        return await poll_status(selection, controller_factory)

    # ------------------------------------------------------------------------
    # Discovery & selection
    # ------------------------------------------------------------------------

    @app.get("/api/discover", response_model=List[Device])
    async def discover():
        """Scan the network for SoundTouch speakers."""
        return await scanner.scan()

    @app.post("/api/select_device")
    async def select_device(device: StreamRequest):
        """Select the speaker all other routes talk to."""
        selection.set(device.url)
        return {"status": "success", "hostname": device.url}

    # ------------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------------

    @app.get("/api/status", response_model=StatusSnapshot)
    async def get_status():
        """Current artist, track and volume of the selected speaker."""
        try:
            return await current_status()
        except NoDeviceSelected:
            logger.info("No device selected for status request")
            raise HTTPException(status_code=503, detail="No device selected")
        except DeviceQueryError as e:
            raise HTTPException(status_code=500, detail=str(e))

    @app.websocket("/ws")
    async def ws_status(websocket: WebSocket):
        await websocket.accept()
        session = StatusStreamSession(
            websocket,
            selection,
            current_status,
            interval=settings.status_interval,
        )
        await session.run()

    # ------------------------------------------------------------------------
    # Command relay
    # ------------------------------------------------------------------------

    @app.post("/api/preset")
    async def select_preset(preset: StreamRequest):
        """Play preset 1-6."""
        hostname = _selected_hostname(selection, "preset")
        try:
            preset_id = _parse_int("preset", preset.url, 1, 6)
        except MalformedInput as e:
            raise _bad_request(e)

        controller = controller_factory(hostname)
        if not await run_in_threadpool(controller.select_preset, preset_id):
            logger.error("Failed to set preset %d on %s", preset_id, hostname)
            raise HTTPException(status_code=500, detail=f"Failed to set preset {preset_id}")
        return {"status": "success", "hostname": hostname, "preset": preset_id}

    @app.post("/api/volume")
    async def set_volume(volume: StreamRequest):
        """Set volume 0-100."""
        hostname = _selected_hostname(selection, "volume")
        try:
            volume_value = _parse_int("volume", volume.url, 0, 100)
        except MalformedInput as e:
            raise _bad_request(e)

        controller = controller_factory(hostname)
        if not await run_in_threadpool(controller.set_volume, volume_value):
            logger.error("Failed to set volume %d on %s", volume_value, hostname)
            raise HTTPException(status_code=500, detail="Failed to set volume")
        return {"status": "success", "hostname": hostname, "volume": volume_value}

    @app.post("/api/radio")
    async def play_radio(request: StreamRequest):
        """Play an internet radio stream URL."""
        hostname = _selected_hostname(selection, "radio")
        if urlparse(request.url).scheme not in ("http", "https"):
            raise _bad_request(MalformedInput("stream url", request.url, "must be http(s)"))

        controller = controller_factory(hostname)
        if not await run_in_threadpool(controller.play_url, request.url):
            logger.error("Failed to start stream %s on %s", request.url, hostname)
            raise HTTPException(status_code=500, detail="Failed to play stream")
        return {"status": "success", "hostname": hostname, "url": request.url}

    @app.post("/api/play")
    async def play_action(action: StreamRequest):
        """Send a key press: an alias from /api/keys or a speaker key name such as AUX_INPUT."""
        hostname = _selected_hostname(selection, "play action")
        key = SoundTouchController.resolve_key(action.url)
        if key is None:
            raise _bad_request(MalformedInput("key", action.url, "unknown key"))

        controller = controller_factory(hostname)
        if not await run_in_threadpool(controller.send_key, key):
            logger.error("Failed to send key %s to %s", key, hostname)
            raise HTTPException(status_code=500, detail=f"Failed to send key '{action.url}'")
        return {"status": "success", "hostname": hostname, "key": key}

    # ------------------------------------------------------------------------
    # Utility
    # ------------------------------------------------------------------------

    @app.get("/api/keys", response_model=List[str])
    async def get_available_keys():
        return SoundTouchController.get_available_keys()

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", "selected": selection.get()}

    @app.get("/", response_class=HTMLResponse)
    async def serve_index():
        index = static_dir / "index.html"
        if not index.is_file():
            raise HTTPException(status_code=404, detail="index.html not found")
        return HTMLResponse(index.read_text(encoding="utf-8"))

    return app


def main():
    """Main function."""
    parser = argparse.ArgumentParser(description="SoundTouch Hub server")
    parser.add_argument("--config", help="JSON config file", default=None)
    parser.add_argument("--host", help="Listen address", default=None)
    parser.add_argument("--port", type=int, help="Listen port", default=None)
    parser.add_argument("--discovery-timeout", type=float, help="Scan duration in seconds", default=None)
    parser.add_argument("--no-startup-scan", action="store_true", help="Skip the warm-up scan")
    parser.add_argument("--log-level", help="Logging level (e.g. DEBUG, INFO)", default=None)
    args = parser.parse_args()

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        parser.error(str(e))

    if args.host:
        settings.host = args.host
    if args.port is not None:
        settings.port = args.port
    if args.discovery_timeout is not None:
        settings.discovery_timeout = args.discovery_timeout
    if args.no_startup_scan:
        settings.scan_on_startup = False
    if args.log_level:
        settings.log_level = args.log_level

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info("Starting server on http://%s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
