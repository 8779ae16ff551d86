"""HTTP routers for the simulator: the sensor API plus index and debug pages."""

from fleetsim.routes.debug import create_debug_router
from fleetsim.routes.sensors import create_sensor_router

__all__ = ["create_debug_router", "create_sensor_router"]
