"""
RendererScanner - Discover AVTransport renderers on the network
"""
import asyncio
from typing import List, Dict, Any, Optional, Callable

from async_upnp_client.search import async_search

from core.utils import log_info, log_debug, log_warning
from config import (
    AVTRANSPORT_SERVICE_TYPE,
    RENDERER_SCAN_INTERVAL,
    RENDERER_SCAN_TIMEOUT,
    RENDERER_OFFLINE_THRESHOLD,
)


def udn_from_headers(headers) -> Optional[str]:
    """
    Get the device UDN from SSDP response headers.

    async_upnp_client adds "_udn"; otherwise it is the part of the USN
    before "::" ("uuid:1234::urn:schemas-upnp-org:service:AVTransport:1").
    """
    udn = headers.get("_udn")
    if udn:
        return udn
    usn = headers.get("usn") or ""
    if not usn:
        return None
    return usn.split("::", 1)[0] or None


class RendererScanner:
    """
    Renderer scanner.

    Periodically sends an SSDP search for the AVTransport service and
    notifies when renderers are discovered or lost. A renderer is lost after
    it missed the configured number of consecutive scans. A known renderer
    answering from a new location is reported as lost and then found again.
    """

    def __init__(
        self,
        on_device_found: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_device_lost: Optional[Callable[[str], Any]] = None,
        bind_ip: Optional[str] = None,
        search_target: str = AVTRANSPORT_SERVICE_TYPE,
        scan_interval: float = RENDERER_SCAN_INTERVAL,
        scan_timeout: int = RENDERER_SCAN_TIMEOUT,
        offline_threshold: int = RENDERER_OFFLINE_THRESHOLD,
        search=async_search,
    ):
        """
        Initialize renderer scanner.

        Args:
            on_device_found: Callback (or coroutine function) when a new renderer is found
            on_device_lost: Callback (or coroutine function) with the UDN of a lost renderer
            bind_ip: Local address to send the search from (None = any)
            search: SSDP search function, async_upnp_client's async_search by default
        """
        self._on_device_found = on_device_found
        self._on_device_lost = on_device_lost
        self._bind_ip = bind_ip
        self._search_target = search_target
        self._scan_interval = scan_interval
        self._scan_timeout = scan_timeout
        self._offline_threshold = max(1, offline_threshold)
        self._search = search

        self._devices: Dict[str, Dict[str, Any]] = {}  # udn -> device info
        self._missed: Dict[str, int] = {}  # udn -> consecutive missed scans
        self._running = False
        self._scan_task: Optional[asyncio.Task] = None

    async def scan_once(self) -> List[Dict[str, Any]]:
        """
        Perform a single SSDP search.

        Returns:
            List of discovered device info dictionaries (one per UDN)
        """
        log_debug("Scanner", f"Searching for {self._search_target} (timeout={self._scan_timeout}s)")

        found: Dict[str, Dict[str, Any]] = {}

        async def collect(headers):
            udn = udn_from_headers(headers)
            location = (headers.get("location") or "").strip()
            if not udn or not location or udn in found:
                return
            found[udn] = {
                "udn": udn,
                "location": location,
                "server": headers.get("server", ""),
                "st": headers.get("st", ""),
            }
            log_debug("Scanner", f"Found renderer: {udn} at {location}")

        kwargs = {
            "async_callback": collect,
            "timeout": self._scan_timeout,
            "search_target": self._search_target,
        }
        if self._bind_ip:
            kwargs["source"] = (self._bind_ip, 0)

        try:
            await self._search(**kwargs)
        except OSError as e:
            log_warning("Scanner", f"Search failed: {e}")
            return []

        log_debug("Scanner", f"Search complete, found {len(found)} renderer(s)")
        return list(found.values())

    async def _call(self, callback, argument, name: str):
        if not callback:
            return
        try:
            result = callback(argument)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            log_warning("Scanner", f"{name} callback error: {e}")

    async def process_scan(self, discovered: List[Dict[str, Any]]):
        """
        Compare a scan result with the known renderers and fire callbacks.

        Args:
            discovered: Result of scan_once()
        """
        discovered_ids = {d["udn"] for d in discovered}

        # Check for new renderers
        for device_info in discovered:
            udn = device_info["udn"]
            self._missed.pop(udn, None)
            if udn not in self._devices:
                self._devices[udn] = device_info
                log_info("Scanner", f"New renderer discovered: {udn} ({device_info['location']})")
                await self._call(self._on_device_found, device_info, "on_device_found")
            elif self._devices[udn].get("location") != device_info["location"]:
                # Rebooted renderer answering from a new address
                log_info("Scanner", f"Renderer {udn} moved: {self._devices[udn].get('location')} -> "
                                    f"{device_info['location']}")
                self._devices[udn] = device_info
                await self._call(self._on_device_lost, udn, "on_device_lost")
                await self._call(self._on_device_found, device_info, "on_device_found")
            else:
                self._devices[udn] = device_info

        # Check for lost renderers
        for udn in list(self._devices.keys()):
            if udn in discovered_ids:
                continue
            missed = self._missed.get(udn, 0) + 1
            self._missed[udn] = missed
            if missed < self._offline_threshold:
                log_debug("Scanner", f"Renderer {udn} missed scan {missed}/{self._offline_threshold}")
                continue

            self._devices.pop(udn, None)
            self._missed.pop(udn, None)
            log_info("Scanner", f"Renderer lost: {udn}")
            await self._call(self._on_device_lost, udn, "on_device_lost")

    def forget(self, udn: str):
        """Drop a renderer so the next scan reports it as new again"""
        self._devices.pop(udn, None)
        self._missed.pop(udn, None)

    async def _scan_loop(self):
        """
        Continuous scanning loop.
        """
        log_info("Scanner", "Starting periodic renderer scanning")

        while self._running:
            try:
                await asyncio.sleep(self._scan_interval)
                discovered = await self.scan_once()
                await self.process_scan(discovered)

            except asyncio.CancelledError:
                log_debug("Scanner", "Scan loop cancelled")
                break
            except Exception as e:
                log_warning("Scanner", f"Scan loop error: {e}")

        log_info("Scanner", "Periodic scanning stopped")

    def start(self):
        """
        Start periodic scanning (the first scan is left to the caller).
        """
        if self._running:
            log_debug("Scanner", "Scanner already running")
            return

        self._running = True
        self._scan_task = asyncio.create_task(self._scan_loop())
        log_info("Scanner", "Scanner started")

    def stop(self):
        """
        Stop periodic scanning.
        """
        if not self._running:
            return

        self._running = False
        if self._scan_task:
            self._scan_task.cancel()
            self._scan_task = None

        log_info("Scanner", "Scanner stopped")

    def get_devices(self) -> List[Dict[str, Any]]:
        """
        Get list of currently known renderers.
        """
        return list(self._devices.values())

    def is_running(self) -> bool:
        return self._running
