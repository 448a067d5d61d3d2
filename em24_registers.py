"""
EM24 Register Store + Encoding (CG Word Order)

Sparse Register-Tabelle (16-bit Adresse → 16-bit Wert). Nicht gesetzte
Register lesen sich als 0. Ein Lock schützt die ganze Tabelle: jeder
Lesezugriff und jeder 32-bit Schreibzugriff läuft komplett darunter, damit
ein Modbus-Client nie ein halb geschriebenes Registerpaar sieht.
"""

import math
import threading


class RegisterStore:
    """Thread-sicherer Register Store für alle EM24 Adressen"""

    def __init__(self):
        self.registers = {}
        self.lock = threading.Lock()

    def get(self, address):
        """Einzelnes Register lesen (0 wenn nie geschrieben)"""
        with self.lock:
            return self.registers.get(address, 0)

    def set(self, address, value):
        """Einzelnes Register schreiben (auf 16 bit maskiert)"""
        with self.lock:
            self.registers[address] = int(value) & 0xFFFF

    def get_values(self, address, count=1):
        """Mehrere Register am Stück lesen"""
        with self.lock:
            return [self.registers.get(address + i, 0) for i in range(count)]

    def set_values(self, address, values):
        """Mehrere Register am Stück schreiben (eine Lock-Sektion)"""
        with self.lock:
            for i, val in enumerate(values):
                self.registers[address + i] = int(val) & 0xFFFF

    def snapshot(self):
        """Kopie der gesamten Tabelle (Debug/Tests)"""
        with self.lock:
            return dict(self.registers)

    def __len__(self):
        with self.lock:
            return len(self.registers)


# ====================================================
# Encoding
# ====================================================

def round_half_up(value):
    """.5 wird immer nach oben gerundet, auch bei negativen Werten (-3.5 → -3)"""
    return math.floor(value + 0.5)


def write_u16(store, address, value):
    """UINT16 schreiben, Werte außerhalb 0..65535 laufen über (kein Fehler)"""
    store.set(address, round_half_up(value) & 0xFFFF)


def s32_to_words(value):
    """Signed 32-bit → (low, high) Word, Überlauf wird abgeschnitten"""
    raw = round_half_up(value) & 0xFFFFFFFF
    return raw & 0xFFFF, (raw >> 16) & 0xFFFF


def words_to_s32(low, high):
    raw = ((high & 0xFFFF) << 16) | (low & 0xFFFF)
    if raw & 0x80000000:
        raw -= 1 << 32
    return raw


def write_s32le(store, address, value):
    """Signed 32-bit als zwei Register: Low Word auf address, High Word auf address+1"""
    low, high = s32_to_words(value)
    store.set_values(address, [low, high])


def read_s32le(store, address):
    """Gegenstück zu write_s32le, beide Words unter einem Lock gelesen"""
    low, high = store.get_values(address, 2)
    return words_to_s32(low, high)


def str_to_regs(s, num_regs):
    """String → Register (2 Zeichen pro Register, High Byte zuerst, mit 0 aufgefüllt)"""
    regs = []
    s_padded = s[:num_regs * 2].ljust(num_regs * 2, '\x00')
    for i in range(num_regs):
        hi = ord(s_padded[i * 2]) & 0xFF
        lo = ord(s_padded[i * 2 + 1]) & 0xFF
        regs.append((hi << 8) | lo)
    return regs
