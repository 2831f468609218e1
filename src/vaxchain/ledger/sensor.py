"""Simulated cold-chain sensor and the alert rule applied to its readings."""

import datetime
import random
from dataclasses import dataclass
from typing import Callable, Optional

from vaxchain.core.config import Settings
from vaxchain.core.schemas import VaccineData


@dataclass(frozen=True)
class SafeRange:
    """Acceptable temperature band; readings outside it raise an alert."""

    low: float = 2.0
    high: float = 8.0

    def is_alert(self, temperature: float) -> bool:
        return temperature < self.low or temperature > self.high

    @classmethod
    def from_settings(cls, settings: Settings) -> "SafeRange":
        return cls(low=settings.SAFE_TEMP_MIN, high=settings.SAFE_TEMP_MAX)


def _utc_timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class TemperatureSensor:
    """Produces a reading for a given block position.

    The temperature is drawn from a generator seeded with
    ``(seed, lineage, index)``, so the same position always yields the same
    temperature, also after a restart. Only the timestamp varies.
    """

    def __init__(
        self,
        container_no: str = "CONT-0001",
        low: float = 0.0,
        high: float = 12.0,
        seed: int = 42,
        vaccine_name: str = "Covishield",
        manufacture_name: str = "Serum Institute",
        shipment_name: str = "BlueDart",
        current_location: str = "Mumbai",
        clock: Optional[Callable[[], str]] = None,
    ):
        self.container_no = container_no
        self.low = low
        self.high = high
        self.seed = seed
        self.vaccine_name = vaccine_name
        self.manufacture_name = manufacture_name
        self.shipment_name = shipment_name
        self.current_location = current_location
        self._clock = clock or _utc_timestamp

    @classmethod
    def from_settings(cls, settings: Settings) -> "TemperatureSensor":
        return cls(
            container_no=settings.CONTAINER_NO,
            low=settings.SENSOR_TEMP_LOW,
            high=settings.SENSOR_TEMP_HIGH,
            seed=settings.SENSOR_SEED,
        )

    def temperature_for(self, lineage_id: str, index: int) -> float:
        rng = random.Random(f"{self.seed}:{lineage_id}:{index}")
        return round(rng.uniform(self.low, self.high), 2)

    def read(self, lineage_id: str, index: int) -> VaccineData:
        return VaccineData(
            temperature=self.temperature_for(lineage_id, index),
            container_no=self.container_no,
            batch_no=lineage_id,
            vaccine_name=self.vaccine_name,
            manufacture_name=self.manufacture_name,
            shipment_name=self.shipment_name,
            current_location=self.current_location,
            timestamp=self._clock(),
        )
