"""Weather signal for special rewards.

Looks up conditions at the start of a run's route. Any failure, timeout or
missing input degrades to "no weather conditions", never an error.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Protocol

import httpx
import structlog

from esko.exceptions import ExternalDependencyUnavailable
from esko.rewards.schemas import RunEvent, WeatherConditions

logger = structlog.get_logger()

HOT_THRESHOLD_F = 100
COLD_THRESHOLD_F = 10

NO_WEATHER = WeatherConditions()


class WeatherProvider(Protocol):
    async def conditions_at(
        self, coordinate: tuple[float, float], when: datetime
    ) -> WeatherConditions | None: ...


def decode_polyline(encoded: str) -> list[tuple[float, float]]:
    """Decode a Google encoded polyline into (lat, lng) pairs."""
    points: list[tuple[float, float]] = []
    index = 0
    lat = 0
    lng = 0
    length = len(encoded)

    while index < length:
        deltas = []
        for _ in range(2):
            shift = 0
            result = 0
            while True:
                if index >= length:
                    raise ValueError("Truncated polyline")
                byte = ord(encoded[index]) - 63
                index += 1
                result |= (byte & 0x1F) << shift
                shift += 5
                if byte < 0x20:
                    break
            deltas.append(~(result >> 1) if result & 1 else result >> 1)
        lat += deltas[0]
        lng += deltas[1]
        points.append((lat / 1e5, lng / 1e5))

    return points


def route_start(polyline: str | None) -> tuple[float, float] | None:
    """First coordinate of a route, or None when absent or undecodable."""
    if not polyline:
        return None
    try:
        points = decode_polyline(polyline)
    except ValueError:
        return None
    return points[0] if points else None


def classify(temp_f: float, weather_id: int | None) -> WeatherConditions:
    """Map an OpenWeatherMap reading to the reward predicates.

    Codes 2xx-5xx (thunderstorm, drizzle, rain) count as raining, 6xx as snow.
    """
    raining = weather_id is not None and 200 <= weather_id < 600
    snowing = weather_id is not None and 600 <= weather_id < 700
    return WeatherConditions(
        is_hot=temp_f > HOT_THRESHOLD_F,
        is_cold=temp_f < COLD_THRESHOLD_F,
        is_snowing=snowing,
        is_raining=raining,
    )


class OpenWeatherMapProvider:
    """Current-conditions lookup against OpenWeatherMap (imperial units).

    Historical lookups need a paid plan, so current weather at the route start
    is used; it is accurate for recently synced runs.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openweathermap.org/data/2.5/weather",
        timeout: float = 3.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    async def conditions_at(
        self, coordinate: tuple[float, float], when: datetime
    ) -> WeatherConditions | None:
        if not self.api_key:
            logger.warning("weather_disabled", reason="no_api_key")
            return None

        lat, lon = coordinate
        params = {"lat": lat, "lon": lon, "appid": self.api_key, "units": "imperial"}
        try:
            if self._client is not None:
                response = await self._client.get(self.base_url, params=params, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.get(self.base_url, params=params)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ExternalDependencyUnavailable(f"Weather lookup failed: {exc}") from exc

        weather = (data.get("weather") or [{}])[0]
        temp = float((data.get("main") or {}).get("temp", 50))
        conditions = classify(temp, weather.get("id"))
        logger.info(
            "weather_checked",
            lat=round(lat, 2),
            lon=round(lon, 2),
            temp_f=temp,
            description=weather.get("description", ""),
        )
        return conditions


async def fetch_run_weather(
    provider: WeatherProvider | None,
    run: RunEvent,
    timeout: float = 3.0,
) -> WeatherConditions:
    """Resolve the weather signal for a run, degrading to NO_WEATHER.

    A signal already attached to the run wins over a lookup.
    """
    if run.weather is not None:
        return run.weather
    if provider is None:
        return NO_WEATHER

    coordinate = route_start(run.polyline)
    if coordinate is None:
        return NO_WEATHER

    try:
        conditions = await asyncio.wait_for(provider.conditions_at(coordinate, run.occurred_at), timeout)
    except asyncio.TimeoutError:
        logger.warning("weather_timeout", timeout=timeout)
        return NO_WEATHER
    except Exception as exc:
        logger.warning("weather_unavailable", error=str(exc))
        return NO_WEATHER

    return conditions or NO_WEATHER
