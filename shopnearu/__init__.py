"""Nearby-shop discovery and subscription engine for the Shop Near U client."""
import logging

from .config import load_config
from .const import VERSION
from .discovery import DiscoveryViewModel
from .geolocator import GeoLocator, LocationHost
from .models import ANONYMOUS, Session

__version__ = VERSION
__all__ = ["DiscoveryViewModel", "GeoLocator", "Session", "async_setup_discovery"]

_LOGGER = logging.getLogger(__name__)


async def async_setup_discovery(
    host: LocationHost | None, session: Session = ANONYMOUS, **overrides
) -> DiscoveryViewModel:
    """Build a view model from config and run its initial load."""
    config = load_config(**overrides)
    view = DiscoveryViewModel.from_config(config, GeoLocator.from_config(host, config), session)
    _LOGGER.debug("Setting up discovery against %s", config["api_base_url"])
    await view.async_mount()
    return view
