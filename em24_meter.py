"""
EM24 Meter Model

- Identität (Model ID, Version, Seriennummer, ...) einmalig beim Start
- Messwerte aus HomeWizard Snapshot → 32-bit Register (CG Word Order)
- Register Access Vector als Schnittstelle für den Modbus Server
"""

import logging
import math
from dataclasses import dataclass, fields
from typing import Optional

from const import (
    APPLICATION_ADDR,
    APPLICATION_MODE,
    DEBUG,
    FREQUENCY_ADDR,
    FREQUENCY_X10,
    FRONT_SWITCH,
    FRONT_SWITCH_ADDR,
    FW_VERSION,
    FW_VERSION_ADDR,
    HW_VERSION,
    HW_VERSION_ADDR,
    MEASUREMENT_REGISTERS,
    MODBUS_UNIT_ID,
    MODEL_ID,
    MODEL_ID_ADDR,
    PHASE_CONFIG,
    PHASE_CONFIG_ADDR,
    PHASE_SEQUENCE,
    PHASE_SEQUENCE_ADDR,
    SERIAL_NUMBER,
    SERIAL_NUMBER_ADDR,
    SERIAL_NUMBER_REGS,
    ZERO_REGISTERS,
)
from em24_registers import RegisterStore, str_to_regs, write_s32le, write_u16

_LOGGER = logging.getLogger(__name__)


# ====================================================
# Telemetrie Snapshot
# ====================================================

@dataclass(frozen=True)
class TelemetrySnapshot:
    """Messwerte eines HomeWizard P1 Polls, jedes Feld optional"""

    active_voltage_l1_v: Optional[float] = None
    active_voltage_l2_v: Optional[float] = None
    active_voltage_l3_v: Optional[float] = None
    active_current_l1_a: Optional[float] = None
    active_current_l2_a: Optional[float] = None
    active_current_l3_a: Optional[float] = None
    active_power_l1_w: Optional[float] = None
    active_power_l2_w: Optional[float] = None
    active_power_l3_w: Optional[float] = None
    active_power_w: Optional[float] = None
    total_power_import_kwh: Optional[float] = None
    total_power_export_kwh: Optional[float] = None

    @classmethod
    def from_json(cls, data: dict) -> "TelemetrySnapshot":
        """Rohes JSON einmalig prüfen: nur echte Zahlen übernehmen, Rest → None"""
        if not isinstance(data, dict):
            raise ValueError(f"Unerwartetes Snapshot-Format: {type(data).__name__}")

        values = {}
        for f in fields(cls):
            raw = data.get(f.name)
            # bool ist in Python ein int, zählt hier aber nicht als Messwert;
            # NaN/Infinity aus dem JSON werden wie fehlende Felder behandelt
            if isinstance(raw, (int, float)) and not isinstance(raw, bool) and math.isfinite(raw):
                values[f.name] = float(raw)
        return cls(**values)

    def present(self):
        """Nur die gesetzten Felder"""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class PollResult:
    """Ergebnis eines Poll-Zyklus: entweder snapshot oder error"""

    snapshot: Optional[TelemetrySnapshot] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.snapshot is not None and self.error is None

    @classmethod
    def success(cls, snapshot):
        return cls(snapshot=snapshot)

    @classmethod
    def failure(cls, error):
        return cls(error=str(error))


# ====================================================
# Register Access Vector (für den Modbus Server)
# ====================================================

class RegisterAccessVector:
    """Schnittstelle zwischen Modbus Server und Register Store"""

    def __init__(self, store, unit_id=MODBUS_UNIT_ID, debug=DEBUG):
        self.store = store
        self.unit_id = unit_id
        self.debug = debug

    def get_holding_register(self, address, unit_id):
        # Das EM24 antwortet nur als eine Unit, alles andere liest 0
        if unit_id != self.unit_id:
            return 0
        value = self.store.get(address)
        if self.debug:
            _LOGGER.debug("[Modbus] Read 0x%04X = %d", address, value)
        return value

    def get_holding_registers(self, address, count, unit_id):
        if unit_id != self.unit_id:
            return [0] * count
        values = self.store.get_values(address, count)
        if self.debug:
            _LOGGER.debug("[Modbus] Read 0x%04X[%d] = %s", address, count, values)
        return values

    def get_input_register(self, address, unit_id=None):
        return self.store.get(address)

    def get_input_registers(self, address, count, unit_id=None):
        return self.store.get_values(address, count)

    def set_register(self, address, value, unit_id):
        """Remote-Schreibzugriff wird ungeprüft übernommen (wie beim echten Gerät)"""
        if self.debug:
            _LOGGER.debug("[Modbus] Write 0x%04X = %d", address, value)
        self.store.set(address, value)

    def set_registers(self, address, values, unit_id):
        if self.debug:
            _LOGGER.debug("[Modbus] Write 0x%04X = %s", address, list(values))
        self.store.set_values(address, values)


# ====================================================
# EM24 Meter
# ====================================================

class EM24Meter:
    """Virtueller Carlo Gavazzi EM24 (Model 1653)"""

    def __init__(self, store=None, serial_number=SERIAL_NUMBER, unit_id=MODBUS_UNIT_ID, debug=DEBUG):
        self.store = store if store is not None else RegisterStore()
        self.serial_number = serial_number
        self.vector = RegisterAccessVector(self.store, unit_id=unit_id, debug=debug)
        self.last_snapshot = None
        self.failed_polls = 0

    def init_registers(self):
        """Statische Identität schreiben und alle Messregister nullen (idempotent)"""
        write_u16(self.store, MODEL_ID_ADDR, MODEL_ID)

        # Hardware / Firmware Version
        write_u16(self.store, HW_VERSION_ADDR, HW_VERSION)
        write_u16(self.store, FW_VERSION_ADDR, FW_VERSION)

        write_u16(self.store, PHASE_CONFIG_ADDR, PHASE_CONFIG)

        # Seriennummer als ASCII, 2 Zeichen pro Register
        self.store.set_values(SERIAL_NUMBER_ADDR, str_to_regs(self.serial_number, SERIAL_NUMBER_REGS))

        write_u16(self.store, APPLICATION_ADDR, APPLICATION_MODE)
        write_u16(self.store, FRONT_SWITCH_ADDR, FRONT_SWITCH)
        write_u16(self.store, PHASE_SEQUENCE_ADDR, PHASE_SEQUENCE)
        write_u16(self.store, FREQUENCY_ADDR, FREQUENCY_X10)

        for addr in ZERO_REGISTERS:
            write_s32le(self.store, addr, 0)

        _LOGGER.info(
            "EM24 Register initialisiert: Model %d, Serial %s, %d Register",
            MODEL_ID,
            self.serial_number,
            len(self.store),
        )

    def update_registers(self, snapshot):
        """Nur vorhandene Felder schreiben, fehlende behalten den letzten Wert"""
        written = 0
        for name, value in snapshot.present().items():
            addr, scale = MEASUREMENT_REGISTERS[name]
            write_s32le(self.store, addr, value * scale)
            written += 1
        self.last_snapshot = snapshot
        _LOGGER.debug("Register aktualisiert: %d Messwerte", written)
        return written

    def consume(self, result):
        """Callback für die Telemetrie-Quelle: bei Fehler bleiben alle Register eingefroren"""
        if not result.ok:
            self.failed_polls += 1
            _LOGGER.debug("Kein Snapshot (%s), Register bleiben unverändert", result.error)
            return 0
        self.failed_polls = 0
        return self.update_registers(result.snapshot)
