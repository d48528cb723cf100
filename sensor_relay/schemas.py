"""
Pydantic schemas for telemetry samples and API responses.

Telemetry arrives from the device in one of two layouts:
- v1: legacy nested layout keyed by chip ({"mpu6050": {...}, "hmc5883l": {...}})
- v2: canonical flat layout ({"acceleration": {...}, "magneticField": {...}, ...})

Both are normalized into SensorSample. Serialization always uses the
canonical camelCase names.
"""
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

SCHEMA_V1 = 1
SCHEMA_V2 = 2

# Numeric and finite: rejects strings, bools, NaN and +/-inf.
Reading = Annotated[float, Field(strict=True, allow_inf_nan=False)]


# ============ Telemetry ============

class Vector3(BaseModel):
    """Three-axis reading (g, deg/s or uT depending on the sensor)."""
    x: Reading
    y: Reading
    z: Reading


class UVSensor(BaseModel):
    """UV sensor group, only reported by newer device firmware."""
    model_config = ConfigDict(populate_by_name=True)

    raw_adc: Reading = Field(..., alias="rawAdc")
    index: Reading
    voltage_or_output: Reading = Field(..., alias="voltageOrOutput")


def _from_legacy_layout(data: dict) -> dict:
    """Map the v1 chip-keyed payload onto canonical field names.

    Only keys that are present get copied, so a missing group still
    fails validation as missing rather than being filled in.
    """
    normalized: dict[str, Any] = {"schemaVersion": SCHEMA_V1}

    mpu = data.get("mpu6050")
    if isinstance(mpu, dict):
        for src, dst in (("accel", "acceleration"), ("gyro", "gyro"), ("temp_c", "temperature")):
            if src in mpu:
                normalized[dst] = mpu[src]

    hmc = data.get("hmc5883l")
    if isinstance(hmc, dict) and "mag" in hmc:
        normalized["magneticField"] = hmc["mag"]

    for key in ("uvSensor", "timestamp"):
        if key in data:
            normalized[key] = data[key]

    return normalized


class SensorSample(BaseModel):
    """
    One telemetry record as consumed by the dashboard.

    Every group except uv_sensor is required; a payload missing any of
    them is rejected and never reaches history.
    """
    model_config = ConfigDict(populate_by_name=True)

    schema_version: Literal[1, 2] = Field(SCHEMA_V2, alias="schemaVersion")
    acceleration: Vector3
    gyro: Vector3
    magnetic_field: Vector3 = Field(..., alias="magneticField")
    temperature: Reading
    uv_sensor: Optional[UVSensor] = Field(None, alias="uvSensor")
    timestamp: Reading = Field(..., description="Seconds since epoch")

    @model_validator(mode="before")
    @classmethod
    def normalize_layout(cls, data: Any) -> Any:
        if isinstance(data, dict) and ("mpu6050" in data or "hmc5883l" in data):
            return _from_legacy_layout(data)
        return data

    def to_wire(self) -> dict:
        """Serialize using canonical camelCase names."""
        return self.model_dump(by_alias=True)


# ============ Relay ============

class ErrorEnvelope(BaseModel):
    """Body returned by the relay when forwarding raises."""
    error: str
    stacktrace: Optional[str] = None


# ============ Dashboard ============

class DashboardStateResponse(BaseModel):
    """Current dashboard session state."""
    mounted: bool
    latest: Optional[SensorSample] = None
    history: list[SensorSample] = []
    synthetic: bool = False
    warning: Optional[str] = None
    cycles: int = 0
    failures: int = 0


class AxisPoint(BaseModel):
    time: int
    x: float
    y: float
    z: float


class ScalarPoint(BaseModel):
    time: int
    value: float


class UVPoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time: int
    raw_adc: Optional[float] = Field(None, alias="rawAdc")
    index: Optional[float] = None
    voltage_or_output: Optional[float] = Field(None, alias="voltageOrOutput")


class ChartsResponse(BaseModel):
    """Chart series indexed by position in history (0 = oldest)."""
    model_config = ConfigDict(populate_by_name=True)

    acceleration: list[AxisPoint] = []
    gyro: list[AxisPoint] = []
    magnetic_field: list[AxisPoint] = Field([], alias="magneticField")
    temperature: list[ScalarPoint] = []
    uv_sensor: Optional[list[UVPoint]] = Field(None, alias="uvSensor")
