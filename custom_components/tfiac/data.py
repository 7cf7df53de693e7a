"""Custom types for tfiac."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from homeassistant.config_entries import ConfigEntry
    from homeassistant.loader import Integration

    from .cache_manager import CacheManager
    from .coordinator import TfiacDataUpdateCoordinator


type TfiacConfigEntry = ConfigEntry[TfiacData]


@dataclass
class TfiacData:
    """Data for the TFIAC integration."""

    manager: CacheManager
    coordinator: TfiacDataUpdateCoordinator
    integration: Integration
