"""Gemeinsame Fixtures für die EM24 Tests"""

import pytest

from em24_meter import EM24Meter
from em24_registers import RegisterStore


@pytest.fixture
def store():
    return RegisterStore()


@pytest.fixture
def meter(store):
    meter = EM24Meter(store=store, serial_number="HWP1MTR", unit_id=1, debug=False)
    meter.init_registers()
    return meter


@pytest.fixture
def vector(meter):
    return meter.vector
