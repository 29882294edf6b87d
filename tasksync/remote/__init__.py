"""Remote task service gateways."""

from .cockpit import CockpitGateway
from .gateway import RemoteGateway
from .memory import InMemoryGateway

__all__ = ["CockpitGateway", "InMemoryGateway", "RemoteGateway"]
