#!/usr/bin/env python3
"""
EM24 Custom Modbus Handler
Leitet pymodbus Requests direkt auf den Register Access Vector um
(keine ModbusSequentialDataBlock-Kopie, kein +1 Offset)
"""

import logging

from pymodbus.datastore.context import ModbusBaseSlaveContext, ModbusServerContext
from pymodbus.server import ModbusTcpServer

_LOGGER = logging.getLogger(__name__)

# ====================================================
# Custom Slave Context für explizites Addressing
# ====================================================

class MeterDeviceContext(ModbusBaseSlaveContext):
    """Sicht auf den Register Store für genau eine Unit ID"""

    def __init__(self, vector, unit_id):
        self.vector = vector
        self.unit_id = unit_id

    def reset(self):
        """Register werden nie über Modbus zurückgesetzt"""

    def validate(self, fc_as_hex, address, count=1):
        """Nur Holding (h) und Input (i) Register, Coils gibt es beim EM24 nicht"""
        if self.decode(fc_as_hex) not in ("h", "i"):
            return False
        return 0 <= address and address + count <= 0x10000

    def getValues(self, fc_as_hex, address, count=1):
        if self.decode(fc_as_hex) == "i":
            return self.vector.get_input_registers(address, count, self.unit_id)
        return self.vector.get_holding_registers(address, count, self.unit_id)

    def setValues(self, fc_as_hex, address, values):
        self.vector.set_registers(address, values, self.unit_id)

    def __str__(self):
        return f"EM24 Device Context (Unit {self.unit_id})"


class MeterServerContext(ModbusServerContext):
    """Beantwortet jede Unit ID, die Filterung macht der Access Vector (0-Sentinel)"""

    def __init__(self, vector):
        self.vector = vector
        super().__init__(slaves={vector.unit_id: MeterDeviceContext(vector, vector.unit_id)}, single=False)

    def __contains__(self, slave):
        return True

    def __getitem__(self, slave):
        return MeterDeviceContext(self.vector, slave)

    def slaves(self):
        return [self.vector.unit_id]


# ====================================================
# Modbus TCP Server
# ====================================================

def create_server(vector, host, port):
    """Modbus TCP Server für den Access Vector bauen (Start über serve_forever)"""
    context = MeterServerContext(vector)
    _LOGGER.debug("Modbus TCP Server auf %s:%d (Unit %d)", host, port, vector.unit_id)
    return ModbusTcpServer(context, address=(host, port))
