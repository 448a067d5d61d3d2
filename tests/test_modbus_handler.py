"""pymodbus Anbindung: Device Context und Server Context"""

import pytest

from em24_modbus_handler import MeterDeviceContext, MeterServerContext, create_server
from em24_meter import TelemetrySnapshot

FC_READ_COILS = 1
FC_READ_HOLDING = 3
FC_READ_INPUT = 4
FC_WRITE_SINGLE = 6
FC_WRITE_MULTIPLE = 16


def test_holding_read_through_context(vector):
    context = MeterDeviceContext(vector, 1)
    assert context.validate(FC_READ_HOLDING, 0x000B, 1)
    assert context.getValues(FC_READ_HOLDING, 0x000B, 1) == [1653]


def test_foreign_unit_context_reads_zero(vector):
    context = MeterDeviceContext(vector, 2)
    assert context.getValues(FC_READ_HOLDING, 0x000B, 1) == [0]
    assert context.getValues(FC_READ_INPUT, 0x000B, 1) == [1653]


def test_composite_read_in_one_request(meter, vector):
    meter.update_registers(TelemetrySnapshot(active_power_w=-150))
    context = MeterDeviceContext(vector, 1)
    assert context.getValues(FC_READ_HOLDING, 0x0028, 2) == [0xFA24, 0xFFFF]


def test_coils_not_supported(vector):
    context = MeterDeviceContext(vector, 1)
    assert not context.validate(FC_READ_COILS, 0, 1)


def test_address_range_validation(vector):
    context = MeterDeviceContext(vector, 1)
    assert context.validate(FC_READ_HOLDING, 0xFFFF, 1)
    assert not context.validate(FC_READ_HOLDING, 0xFFFF, 2)


def test_write_through_context(vector):
    context = MeterDeviceContext(vector, 1)
    context.setValues(FC_WRITE_SINGLE, 0xA100, [0])
    context.setValues(FC_WRITE_MULTIPLE, 0x3000, [7, 8])
    assert vector.get_holding_register(0xA100, 1) == 0
    assert vector.get_holding_registers(0x3000, 2, 1) == [7, 8]


def test_server_context_answers_every_unit(vector):
    server_context = MeterServerContext(vector)
    assert 1 in server_context
    assert 42 in server_context
    assert server_context[1].getValues(FC_READ_HOLDING, 0x000B, 1) == [1653]
    assert server_context[42].getValues(FC_READ_HOLDING, 0x000B, 1) == [0]
    assert server_context.slaves() == [1]


@pytest.mark.asyncio
async def test_create_server(vector):
    server = create_server(vector, "127.0.0.1", 5020)
    assert isinstance(server.context, MeterServerContext)
