"""
Pytest configuration and fixtures for relay tests.
"""
import os
import sys

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

# Set test environment before importing app
os.environ["DEVICE_BASE_URL"] = "http://device.test"
os.environ["DASHBOARD_ENABLED"] = "false"
os.environ["FALLBACK_NOTICE"] = "banner"
os.environ["DEBUG"] = "true"


def legacy_payload(**overrides):
    """Snapshot in the chip-keyed layout the device firmware reports."""
    payload = {
        "hmc5883l": {"mag": {"x": 1.5, "y": -20.25, "z": 33.0}},
        "mpu6050": {
            "accel": {"x": 0.0004, "y": 0.0002, "z": 0.98},
            "gyro": {"x": 0.01, "y": -0.02, "z": 0.03},
            "temp_c": 27.5,
        },
        "timestamp": 1706000000.25,
    }
    payload.update(overrides)
    return payload


def canonical_payload(**overrides):
    """Snapshot in the flat layout with the UV group."""
    payload = {
        "acceleration": {"x": 0.001, "y": 0.0, "z": 1.0},
        "gyro": {"x": 0.0, "y": 0.04, "z": -0.04},
        "magneticField": {"x": -3.0, "y": 12.0, "z": -45.0},
        "temperature": 29.0,
        "uvSensor": {"rawAdc": 512, "index": 3.2, "voltageOrOutput": 1.65},
        "timestamp": 1706000001.5,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def legacy_snapshot():
    return legacy_payload()


@pytest.fixture
def canonical_snapshot():
    return canonical_payload()
