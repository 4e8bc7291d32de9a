from __future__ import annotations

import asyncio
import os
import random
import time
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from functions.descriptors import FunctionDescriptor, ParameterSpec
from functions.registry import FunctionRegistry

WEATHER = FunctionDescriptor(
    name="getWeather",
    description="Get current weather information for a specific city",
    parameters=(
        ParameterSpec("city", "string", "City name", required=True),
        ParameterSpec("units", "string", "Temperature units (celsius/fahrenheit)"),
    ),
)

CURRENT_TIME = FunctionDescriptor(
    name="getCurrentTime",
    description="Get current time for a specific timezone",
    parameters=(
        ParameterSpec("timezone", "string", "Timezone (e.g., America/New_York)"),
    ),
)

SAVE_NOTE = FunctionDescriptor(
    name="saveNote",
    description="Save a note to a file",
    parameters=(
        ParameterSpec("content", "string", "Note content", required=True),
        ParameterSpec("filename", "string", "File name"),
    ),
)

_CONDITIONS = ("Sunny", "Cloudy", "Rainy", "Partly cloudy")


class DemoFunctions:
    """Example handlers the remote model can call during a conversation."""

    def __init__(
        self,
        *,
        notes_dir: str,
        weather_delay_s: float = 1.0,
        rng: random.Random | None = None,
    ) -> None:
        self._notes_dir = notes_dir
        self._weather_delay_s = weather_delay_s
        self._rng = rng or random.Random()

    async def get_weather(self, args: dict[str, Any]) -> dict[str, Any]:
        city = str(args.get("city") or "Unknown")
        units = str(args.get("units") or "celsius").lower()

        # Stand-in for a real weather API call
        await asyncio.sleep(self._weather_delay_s)

        celsius = self._rng.randint(5, 34)
        if units == "fahrenheit":
            temperature = f"{round(celsius * 9 / 5 + 32)}°F"
        else:
            temperature = f"{celsius}°C"

        return {
            "status": "success",
            "data": {
                "city": city,
                "temperature": temperature,
                "condition": self._rng.choice(_CONDITIONS),
                "humidity": f"{self._rng.randint(40, 79)}%",
                "wind_speed": f"{self._rng.randint(5, 24)} km/h",
            },
            "message": f"Weather retrieved for {city}",
        }

    def get_current_time(self, args: dict[str, Any]) -> dict[str, Any]:
        tz_name = str(args.get("timezone") or "UTC")
        try:
            tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            return {
                "status": "error",
                "error": f"Invalid timezone: {tz_name}",
                "message": "Please provide a valid timezone",
            }

        now = datetime.now(tz)
        return {
            "status": "success",
            "data": {
                "timezone": tz_name,
                "current_time": now.strftime("%A, %d %B %Y %H:%M:%S %Z"),
                "timestamp": int(now.timestamp() * 1000),
            },
            "message": f"Current time retrieved for {tz_name}",
        }

    async def save_note(self, args: dict[str, Any]) -> dict[str, Any]:
        content = str(args.get("content") or "")
        # basename only: the model never picks the directory
        filename = os.path.basename(str(args.get("filename") or ""))
        if filename in ("", ".", ".."):
            filename = f"note_{int(time.time() * 1000)}.txt"

        path = os.path.join(self._notes_dir, filename)
        try:
            await asyncio.to_thread(self._write_note, path, content)
        except OSError as e:
            return {
                "status": "error",
                "error": str(e),
                "message": "Failed to save note",
            }

        return {
            "status": "success",
            "data": {
                "filename": filename,
                "path": path,
                "size": len(content),
            },
            "message": f"Note saved successfully to {filename}",
        }

    def _write_note(self, path: str, content: str) -> None:
        os.makedirs(self._notes_dir, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)


def build_demo_registry(notes_dir: str, *, weather_delay_s: float = 1.0) -> FunctionRegistry:
    demo = DemoFunctions(notes_dir=notes_dir, weather_delay_s=weather_delay_s)
    registry = FunctionRegistry()
    registry.declare(WEATHER, demo.get_weather)
    registry.declare(CURRENT_TIME, demo.get_current_time)
    registry.declare(SAVE_NOTE, demo.save_note)
    return registry
