#!/usr/bin/env python3
"""
EM24 Fake Meter: HomeWizard P1 → Victron Energy Bridge
Emuliert einen Carlo Gavazzi EM24 Energiezähler über Modbus TCP.
Venus OS erkennt das Gerät automatisch als Netzzähler, ohne Änderungen am GX.

ARCHITEKTUR:
┌──────────────────────────────────────────────────────────────┐
│ HomeWizard P1 Meter                                          │
│   └─ HTTP  http://IP/api/v1/data  (Polling, Standard)        │
│   └─ WSS   wss://IP/api/ws        (API v2, optional)         │
└──────────────────────────┬───────────────────────────────────┘
                           │  TelemetrySnapshot / PollResult
                           ▼
                  EM24Meter (Register Store)
                           │
                           ▼
                  EM24 Register (Modbus TCP, Unit 1)
                           │
                           ▼
┌──────────────────────────┴───────────────────────────────────┐
│ Victron GX / Venus OS (Modbus Master)                        │
│   └─ erkennt Model 1653, liest Spannung, Strom, Leistung     │
└──────────────────────────────────────────────────────────────┘
"""

import argparse
import asyncio
import logging
import signal

import const
from em24_meter import EM24Meter
from em24_modbus_handler import create_server
from homewizard_client import HomeWizardPoller, HomeWizardWebsocketClient

_LOGGER = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="HomeWizard P1 → EM24 Modbus TCP Emulation")
    parser.add_argument("--homewizard-ip", default=const.HOMEWIZARD_IP)
    parser.add_argument("--poll-interval", type=int, default=const.POLL_INTERVAL_MS, help="Poll-Intervall in ms")
    parser.add_argument("--host", default=const.MODBUS_HOST)
    parser.add_argument("--port", type=int, default=const.MODBUS_PORT)
    parser.add_argument("--unit", type=int, default=const.MODBUS_UNIT_ID)
    parser.add_argument("--serial", default=const.SERIAL_NUMBER)
    parser.add_argument(
        "--source",
        choices=(const.SOURCE_HTTP, const.SOURCE_WEBSOCKET),
        default=const.SOURCE_MODE,
    )
    parser.add_argument("--token", default=const.HOMEWIZARD_TOKEN, help="API v2 Token (nur --source websocket)")
    parser.add_argument("--debug", action="store_true", default=const.DEBUG)
    args = parser.parse_args(argv)
    if args.source == const.SOURCE_WEBSOCKET and not args.token:
        parser.error("--source websocket braucht --token (oder HOMEWIZARD_TOKEN)")
    return args


def build_source(args, meter):
    if args.source == const.SOURCE_WEBSOCKET:
        return HomeWizardWebsocketClient(args.homewizard_ip, args.token, meter.consume)
    return HomeWizardPoller(args.homewizard_ip, meter.consume, interval_ms=args.poll_interval)


def print_banner(args, meter):
    print("\n" + "=" * 70)
    print(f"🚀 HomeWizard P1 → Victron Bridge (EM24 Modbus TCP Emulation) — {const.VERSION}")
    print("=" * 70)
    print(f"📡 Modbus TCP: {args.host}:{args.port} (Unit {args.unit})")
    print("")
    print("🏭 Zähler-Identität:")
    print(f"   Model: Carlo Gavazzi EM24 (Model ID {const.MODEL_ID})")
    print(f"   Serial: {meter.serial_number}")
    print(f"   Application: Mode H ({const.APPLICATION_MODE})")
    print("")
    print("🌐 HomeWizard:")
    print(f"   IP: {args.homewizard_ip}")
    if args.source == const.SOURCE_WEBSOCKET:
        print("   Mode: WebSocket (API v2)")
    else:
        print(f"   Mode: HTTP Polling alle {args.poll_interval} ms")
    print("")
    print("📝 EM24 Register:")
    print("   0x0000 = Spannung L1-L3 (V * 10)")
    print("   0x000C = Strom L1-L3 (A * 1000)")
    print("   0x0012 = Leistung L1-L3 (W * 10)")
    print("   0x0028 = Gesamtleistung (W * 10)")
    print("   0x0034 = Energie Import (kWh * 10)")
    print("   0x004E = Energie Export (kWh * 10)")
    print("")
    print("In Venus OS: Settings > Modbus TCP Devices > IP dieses Rechners hinzufügen")
    print("=" * 70 + "\n")


async def run(args):
    meter = EM24Meter(serial_number=args.serial, unit_id=args.unit, debug=args.debug)
    meter.init_registers()

    server = create_server(meter.vector, args.host, args.port)
    source = build_source(args, meter)
    print_banner(args, meter)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    server_task = asyncio.create_task(server.serve_forever())
    await source.start()
    _LOGGER.info("Modbus TCP Server lauscht auf Port %d", args.port)

    stop_waiter = asyncio.create_task(stop_event.wait())
    done, _ = await asyncio.wait({server_task, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)
    if server_task in done and server_task.exception() is not None:
        _LOGGER.error("Modbus TCP Fehler: %s", server_task.exception())

    print("\nShutting down...")
    try:
        await asyncio.wait_for(_shutdown(source, server, server_task), timeout=const.SHUTDOWN_TIMEOUT_S)
    except asyncio.TimeoutError:
        _LOGGER.warning("Shutdown nach %ds abgebrochen", const.SHUTDOWN_TIMEOUT_S)
    stop_waiter.cancel()
    print("Goodbye!")


async def _shutdown(source, server, server_task):
    await source.stop()
    await server.shutdown()
    if not server_task.done():
        server_task.cancel()
        try:
            await server_task
        except asyncio.CancelledError:
            pass


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
