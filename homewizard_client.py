"""
HomeWizard P1 Telemetrie-Quellen

- HomeWizardPoller: HTTP Polling auf /api/v1/data (Standard, kein Token)
- HomeWizardWebsocketClient: Push über /api/ws (API v2, Token nötig)

Beide liefern pro Zyklus ein PollResult an einen Callback. Fehler
(Timeout, Netzwerk, kaputtes JSON) werden hier abgefangen und als
PollResult.failure weitergegeben, nie als Exception.
"""

import asyncio
import json
import logging
import random
import ssl

import aiohttp
import websockets

from const import (
    HOMEWIZARD_DATA_PATH,
    HOMEWIZARD_WS_PATH,
    HTTP_TIMEOUT_S,
    POLL_INTERVAL_MS,
    WS_BACKOFF_BASE,
    WS_BACKOFF_MAX,
    WS_MAX_SIZE,
    WS_OPEN_TIMEOUT,
    WS_PING_INTERVAL,
    WS_PING_TIMEOUT,
    WS_QUEUE_MAX_SIZE,
)
from em24_meter import PollResult, TelemetrySnapshot

_LOGGER = logging.getLogger(__name__)

# API v2 Feldnamen → Snapshot Feldnamen (API v1)
V2_FIELD_MAP = {
    "voltage_l1_v": "active_voltage_l1_v",
    "voltage_l2_v": "active_voltage_l2_v",
    "voltage_l3_v": "active_voltage_l3_v",
    "current_l1_a": "active_current_l1_a",
    "current_l2_a": "active_current_l2_a",
    "current_l3_a": "active_current_l3_a",
    "power_l1_w": "active_power_l1_w",
    "power_l2_w": "active_power_l2_w",
    "power_l3_w": "active_power_l3_w",
    "power_w": "active_power_w",
    "energy_import_kwh": "total_power_import_kwh",
    "energy_export_kwh": "total_power_export_kwh",
}


def power_direction(power_w):
    if power_w > 0:
        return "importing"
    if power_w < 0:
        return "exporting"
    return "idle"


def log_power(snapshot):
    power = snapshot.active_power_w or 0
    _LOGGER.info("%.1fW %s", abs(power), power_direction(power))


def translate_v2(data: dict) -> dict:
    """API v2 Measurement → API v1 Feldnamen"""
    return {V2_FIELD_MAP[k]: v for k, v in data.items() if k in V2_FIELD_MAP}


# ====================================================
# HTTP Polling (API v1)
# ====================================================

class HomeWizardPoller:
    """Pollt /api/v1/data im festen Intervall und ruft callback(PollResult) auf"""

    def __init__(self, host, callback, interval_ms=POLL_INTERVAL_MS, timeout_s=HTTP_TIMEOUT_S, session=None):
        self.url = f"http://{host}{HOMEWIZARD_DATA_PATH}"
        self.callback = callback
        self.interval = interval_ms / 1000
        self.timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._session = session
        self._own_session = session is None
        self._task = None
        self._running = False

    async def start(self):
        if self._task and not self._task.done():
            _LOGGER.debug("Poller bereits aktiv")
            return
        if self._session is None:
            self._session = aiohttp.ClientSession()
        self._running = True
        self._task = asyncio.create_task(self._run())
        _LOGGER.info("HomeWizard Poller gestartet: %s alle %.1fs", self.url, self.interval)

    async def stop(self):
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if self._own_session and self._session is not None:
            await self._session.close()
            self._session = None
        _LOGGER.info("HomeWizard Poller gestoppt")

    async def fetch(self):
        """Ein HTTP Request → PollResult (Fehler als Wert, nicht als Exception)"""
        try:
            async with self._session.get(self.url, timeout=self.timeout) as resp:
                resp.raise_for_status()
                data = await resp.json(content_type=None)
            return PollResult.success(TelemetrySnapshot.from_json(data))
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as err:
            return PollResult.failure(f"{type(err).__name__}: {err}")

    async def poll_once(self):
        result = await self.fetch()
        self.callback(result)
        if result.ok:
            log_power(result.snapshot)
        else:
            _LOGGER.warning("HomeWizard poll failed: %s", result.error)
        return result

    async def _run(self):
        loop = asyncio.get_running_loop()
        while self._running:
            started = loop.time()
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception as err:
                _LOGGER.error("Fehler im Poll-Zyklus: %s", err)
            # festes Raster wie setInterval, langsame Requests verkürzen die Pause
            await asyncio.sleep(max(0.0, self.interval - (loop.time() - started)))


# ====================================================
# WebSocket Push (API v2)
# ====================================================

class HomeWizardWebsocketClient:
    """Robuster WebSocket-Client mit Reconnect, Message Queue und Deduplication"""

    def __init__(self, host, token, callback):
        self.url = f"wss://{host}{HOMEWIZARD_WS_PATH}"
        self.token = token
        self.callback = callback
        self._task = None
        self._consumer_task = None
        self._ws = None
        self._running = False
        self._message_queue = asyncio.Queue(maxsize=WS_QUEUE_MAX_SIZE)
        self._last_signature = None

        # Backoff-Konfiguration (exponentiell bis 60s)
        self._backoff_base = WS_BACKOFF_BASE
        self._backoff_max = WS_BACKOFF_MAX

        # P1 Meter nutzt ein selbst-signiertes Zertifikat
        self._ssl = ssl.create_default_context()
        self._ssl.check_hostname = False
        self._ssl.verify_mode = ssl.CERT_NONE

    async def start(self):
        """Starte WebSocket-Verbindung"""
        if self._task and not self._task.done():
            _LOGGER.debug("WebSocket-Client bereits aktiv")
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        self._consumer_task = asyncio.create_task(self._consume_messages())
        _LOGGER.info("WebSocket-Client gestartet: %s", self.url)

    async def stop(self):
        """Trenne WebSocket-Verbindung sauber"""
        self._running = False
        if self._ws:
            try:
                await self._ws.close()
            except Exception as err:
                _LOGGER.debug("Fehler beim Schließen der WS: %s", err)

        for task in (self._task, self._consumer_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._task = None
        self._consumer_task = None
        self._ws = None
        self._clear_queue()
        _LOGGER.info("WebSocket-Client getrennt")

    async def _run(self):
        """Hauptschleife: Verbinde, empfange Nachrichten, Reconnect bei Fehler"""
        backoff = self._backoff_base

        while self._running:
            try:
                _LOGGER.info("Verbinde zu HomeWizard WebSocket: %s", self.url)
                async with websockets.connect(
                    self.url,
                    ssl=self._ssl,
                    open_timeout=WS_OPEN_TIMEOUT,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=WS_PING_TIMEOUT,
                    max_size=WS_MAX_SIZE,
                ) as ws:
                    self._ws = ws
                    _LOGGER.info("HomeWizard WebSocket verbunden")
                    backoff = self._backoff_base

                    async for msg in ws:
                        reply = await self.handle_message(msg)
                        if reply is not None:
                            await ws.send(json.dumps(reply))

            except asyncio.CancelledError:
                _LOGGER.debug("WebSocket-Run-Task abgebrochen")
                raise

            except (websockets.exceptions.WebSocketException, OSError, asyncio.TimeoutError) as e:
                self._ws = None
                self._last_signature = None
                _LOGGER.warning("WS-Fehler: %s", e)
                self.callback(PollResult.failure(e))
                sleep_for = self._next_backoff(backoff)
                _LOGGER.debug("Backoff nach WS-Fehler: %.2fs", sleep_for)
                await asyncio.sleep(sleep_for)
                backoff = min(backoff * 2, self._backoff_max)

            except Exception as e:
                self._ws = None
                self._last_signature = None
                _LOGGER.warning("Unerwarteter WS-Fehler: %s", e)
                self.callback(PollResult.failure(e))
                await asyncio.sleep(self._next_backoff(backoff))
                backoff = min(backoff * 2, self._backoff_max)

    async def handle_message(self, msg):
        """Eine WS-Nachricht verarbeiten, liefert ggf. eine Antwort an den Server"""
        try:
            message = json.loads(msg)
        except json.JSONDecodeError:
            _LOGGER.debug("Nicht-JSON WS-Nachricht ignoriert")
            return None
        if not isinstance(message, dict):
            return None

        msg_type = message.get("type")
        if msg_type == "authorization_requested":
            return {"type": "authorization", "data": self.token}
        if msg_type == "authorized":
            _LOGGER.info("HomeWizard WebSocket autorisiert")
            return {"type": "subscribe", "data": "measurement"}
        if msg_type == "error":
            _LOGGER.warning("HomeWizard WS-Fehlermeldung: %s", message.get("data"))
            return None
        if msg_type != "measurement" or not isinstance(message.get("data"), dict):
            return None

        # Deduplication: Skip wenn gleiche Daten wie zuletzt
        signature = self._signature(message["data"])
        if signature == self._last_signature:
            _LOGGER.debug("Duplicate WS-Nachricht ignoriert")
            return None
        self._last_signature = signature

        if self._message_queue.full():
            _LOGGER.warning("WS-Message Queue voll; Nachricht wird verworfen")
        else:
            self._message_queue.put_nowait(message["data"])
        return None

    async def _consume_messages(self):
        """Separate Task: Verarbeite Nachrichten aus der Queue"""
        while self._running or not self._message_queue.empty():
            data = await self._message_queue.get()
            try:
                self.deliver(data)
            except Exception as err:
                _LOGGER.error("Fehler im Consumer-Task: %s", err)
            finally:
                self._message_queue.task_done()

    def deliver(self, data):
        """Measurement (API v2) → Snapshot → callback"""
        snapshot = TelemetrySnapshot.from_json(translate_v2(data))
        self.callback(PollResult.success(snapshot))
        log_power(snapshot)

    def _clear_queue(self):
        """Leere die Message Queue"""
        while not self._message_queue.empty():
            try:
                self._message_queue.get_nowait()
                self._message_queue.task_done()
            except asyncio.QueueEmpty:
                break

    def _next_backoff(self, current: int) -> float:
        """Exponential Backoff mit Jitter"""
        jitter = random.uniform(0, current)
        return min(current + jitter, self._backoff_max)

    def _signature(self, data: dict) -> str:
        """Erstelle Hash der Nachrichten-Inhalte für Deduplication"""
        return json.dumps(data, sort_keys=True)
