"""
Konstanten für den EM24 Fake Meter (HomeWizard P1 → Victron GX)
"""

import os


def _env_int(name, default):
    """Integer aus Umgebungsvariable, Fallback bei leerem/ungültigem Wert"""
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() == "true"


# ====================================================
# HOMEWIZARD VERBINDUNG
# ====================================================
HOMEWIZARD_IP = os.getenv("HOMEWIZARD_IP", "192.168.1.188")
HOMEWIZARD_DATA_PATH = "/api/v1/data"          # API v1 (HTTP, ohne Token)
HOMEWIZARD_WS_PATH = "/api/ws"                 # API v2 (WebSocket, mit Token)
HOMEWIZARD_TOKEN = os.getenv("HOMEWIZARD_TOKEN", "")
POLL_INTERVAL_MS = _env_int("POLL_INTERVAL", 1000)   # Poll-Intervall (ms)
HTTP_TIMEOUT_S = _env_int("HTTP_TIMEOUT", 5)          # HTTP Timeout (Sekunden)

# ====================================================
# MODE SWITCH
# ====================================================
SOURCE_HTTP = "http"                # Polling über /api/v1/data
SOURCE_WEBSOCKET = "websocket"      # Push über /api/ws (API v2)
SOURCE_MODE = os.getenv("SOURCE_MODE", SOURCE_HTTP)
DEBUG = _env_bool("DEBUG")          # True = jeder Register-Zugriff wird geloggt

# ====================================================
# MODBUS KONFIGURATION
# ====================================================
MODBUS_HOST = os.getenv("MODBUS_HOST", "0.0.0.0")    # Alle Interfaces
MODBUS_PORT = _env_int("MODBUS_PORT", 502)            # Modbus TCP Port
MODBUS_UNIT_ID = _env_int("MODBUS_UNIT_ID", 1)        # Venus OS fragt Unit 1 ab
SHUTDOWN_TIMEOUT_S = 3                                # harter Exit nach 3s

# ====================================================
# WEBSOCKET KONFIGURATION
# ====================================================
WS_OPEN_TIMEOUT = 10               # Timeout beim Verbinden (Sekunden)
WS_PING_INTERVAL = 30              # Heartbeat-Frequenz (Sekunden)
WS_PING_TIMEOUT = 10               # Ping-Response Timeout (Sekunden)
WS_MAX_SIZE = 1_000_000            # Maximale Nachrichtengröße (Bytes)
WS_QUEUE_MAX_SIZE = 100            # Maximale Queue-Größe (Messages)
WS_BACKOFF_BASE = 1                # Basis-Backoff (Sekunden)
WS_BACKOFF_MAX = 60                # Maximales Backoff (Sekunden)

# ====================================================
# FESTE WERTE (EM24-Identität)
# ====================================================
# Venus OS erkennt das Gerät nur mit exakt diesen Werten als EM24!
MODEL_ID = 1653                    # EM24 Ethernet (0x0675)
HW_VERSION = 0x1100                # 1.1.0
FW_VERSION = 0x1100                # 1.1.0
PHASE_CONFIG = 0                   # 0 = 3-phasig mit Neutralleiter
SERIAL_NUMBER = os.getenv("METER_SERIAL", "HWP1MTR")
SERIAL_NUMBER_REGS = 7             # 7 Register = 14 Zeichen
APPLICATION_MODE = 7               # Mode H (von Venus OS verlangt)
FRONT_SWITCH = 3                   # 3 = gesperrt
PHASE_SEQUENCE = 0                 # 0 = OK
FREQUENCY_X10 = 500                # 50.0 Hz (* 10)

# ====================================================
# EM24 REGISTER MAPPING
# ====================================================
MODEL_ID_ADDR = 0x000B
HW_VERSION_ADDR = 0x0302
FW_VERSION_ADDR = 0x0304
PHASE_CONFIG_ADDR = 0x1002
SERIAL_NUMBER_ADDR = 0x5000
APPLICATION_ADDR = 0xA000
FRONT_SWITCH_ADDR = 0xA100
PHASE_SEQUENCE_ADDR = 0x0032
FREQUENCY_ADDR = 0x0033

# 32-bit Messwerte (CG Word Order: Low Word zuerst)
VOLTAGE_L1_ADDR = 0x0000
VOLTAGE_L2_ADDR = 0x0002
VOLTAGE_L3_ADDR = 0x0004
CURRENT_L1_ADDR = 0x000C
CURRENT_L2_ADDR = 0x000E
CURRENT_L3_ADDR = 0x0010
POWER_L1_ADDR = 0x0012
POWER_L2_ADDR = 0x0014
POWER_L3_ADDR = 0x0016
POWER_TOTAL_ADDR = 0x0028
ENERGY_IMPORT_ADDR = 0x0034
ENERGY_L1_ADDR = 0x0040
ENERGY_L2_ADDR = 0x0042
ENERGY_L3_ADDR = 0x0044
ENERGY_EXPORT_ADDR = 0x004E

# Snapshot-Feld → (Register, Skalierung)
MEASUREMENT_REGISTERS = {
    "active_voltage_l1_v": (VOLTAGE_L1_ADDR, 10),
    "active_voltage_l2_v": (VOLTAGE_L2_ADDR, 10),
    "active_voltage_l3_v": (VOLTAGE_L3_ADDR, 10),
    "active_current_l1_a": (CURRENT_L1_ADDR, 1000),
    "active_current_l2_a": (CURRENT_L2_ADDR, 1000),
    "active_current_l3_a": (CURRENT_L3_ADDR, 1000),
    "active_power_l1_w": (POWER_L1_ADDR, 10),
    "active_power_l2_w": (POWER_L2_ADDR, 10),
    "active_power_l3_w": (POWER_L3_ADDR, 10),
    "active_power_w": (POWER_TOTAL_ADDR, 10),
    "total_power_import_kwh": (ENERGY_IMPORT_ADDR, 10),
    "total_power_export_kwh": (ENERGY_EXPORT_ADDR, 10),
}

# Alle 32-bit Messregister, die beim Start genullt werden
ZERO_REGISTERS = (
    VOLTAGE_L1_ADDR, VOLTAGE_L2_ADDR, VOLTAGE_L3_ADDR,
    CURRENT_L1_ADDR, CURRENT_L2_ADDR, CURRENT_L3_ADDR,
    POWER_L1_ADDR, POWER_L2_ADDR, POWER_L3_ADDR, POWER_TOTAL_ADDR,
    ENERGY_IMPORT_ADDR, ENERGY_EXPORT_ADDR,
    ENERGY_L1_ADDR, ENERGY_L2_ADDR, ENERGY_L3_ADDR,   # Energie pro Phase (bleibt 0)
)

# ====================================================
# VERSION
# ====================================================
VERSION = "v0.2.0"
VERSION_INFO = "EM24 Emulation, Thread-Safe Register Store, HomeWizard HTTP/WebSocket"
