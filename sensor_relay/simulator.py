#!/usr/bin/env python3
"""
Sensor Device Simulator - Stand-in for the real sensor board's HTTP server.

Serves the four endpoints the relay forwards to:
    /sensors   JSON snapshot (legacy chip-keyed or canonical layout)
    /image     single JPEG frame
    /video     multipart MJPEG stream with --frame boundaries
    /predict   echoes ?image_url= with a placeholder label

Usage:
    python -m sensor_relay.simulator --port 5000
    python -m sensor_relay.simulator --layout canonical --image frame.jpg --fps 5
"""
import argparse
import asyncio
import base64
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import Response, StreamingResponse

from sensor_relay.schemas import SensorSample
from sensor_relay.services.fallback import FallbackSynthesizer

BOUNDARY = "frame"

# Minimal 1x1 JPEG used when no --image is given.
PLACEHOLDER_JPEG = base64.b64decode(
    "/9j/4AAQSkZJRgABAQEASABIAAD/2wBDAP//////////////////////////////////////"
    "////////////////////////////////////////////////wgALCAABAAEBAREA/8QAFBAB"
    "AAAAAAAAAAAAAAAAAAAAAP/aAAgBAQABPxA="
)


def to_legacy_layout(sample: SensorSample) -> dict:
    """Chip-keyed layout reported by older firmware (no UV group)."""
    return {
        "hmc5883l": {"mag": sample.magnetic_field.model_dump()},
        "mpu6050": {
            "accel": sample.acceleration.model_dump(),
            "gyro": sample.gyro.model_dump(),
            "temp_c": sample.temperature,
        },
        "timestamp": sample.timestamp,
    }


def mjpeg_part(frame: bytes) -> bytes:
    return (
        f"--{BOUNDARY}\r\nContent-Type: image/jpeg\r\n"
        f"Content-Length: {len(frame)}\r\n\r\n"
    ).encode() + frame + b"\r\n"


def create_app(
    layout: str = "legacy",
    frame: bytes = PLACEHOLDER_JPEG,
    fps: float = 10.0,
    seed: Optional[int] = None,
) -> FastAPI:
    """Build a simulator app. Readings come from the fallback synthesizer."""
    app = FastAPI(title="Sensor Device Simulator")
    synthesizer = FallbackSynthesizer(seed=seed)

    @app.get("/sensors")
    async def sensors():
        sample = synthesizer.synthesize()
        if layout == "legacy":
            return to_legacy_layout(sample)
        payload = sample.to_wire()
        payload.pop("schemaVersion", None)
        return payload

    @app.get("/image")
    async def image():
        return Response(content=frame, media_type="image/jpeg")

    @app.get("/video")
    async def video(request: Request):
        async def frames():
            while not await request.is_disconnected():
                yield mjpeg_part(frame)
                await asyncio.sleep(1.0 / fps)

        return StreamingResponse(
            frames(),
            media_type=f"multipart/x-mixed-replace; boundary={BOUNDARY}",
        )

    @app.get("/predict")
    async def predict(image_url: Optional[str] = None):
        if not image_url:
            raise HTTPException(status_code=400, detail="image_url is required")
        return {"image_url": image_url, "label": "unknown", "confidence": 0.0}

    return app


def main():
    parser = argparse.ArgumentParser(description="Sensor device simulator")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=5000, help="Bind port")
    parser.add_argument(
        "--layout",
        choices=["legacy", "canonical"],
        default="legacy",
        help="Snapshot JSON layout",
    )
    parser.add_argument("--image", type=Path, help="JPEG file to serve as the camera frame")
    parser.add_argument("--fps", type=float, default=10.0, help="MJPEG frames per second")
    parser.add_argument("--seed", type=int, help="Seed for reproducible readings")
    args = parser.parse_args()

    if args.fps <= 0:
        parser.error("--fps must be positive")
    frame = args.image.read_bytes() if args.image else PLACEHOLDER_JPEG

    import uvicorn
    uvicorn.run(
        create_app(layout=args.layout, frame=frame, fps=args.fps, seed=args.seed),
        host=args.host,
        port=args.port,
    )


if __name__ == "__main__":
    main()
