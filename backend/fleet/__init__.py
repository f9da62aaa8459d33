from .app import FleetDashboardApp

__all__ = ["FleetDashboardApp"]
