from .pairing import get_event_bus_dep, get_pairing_registry_dep, get_reclaim_sweeper_dep

__all__ = [
    "get_event_bus_dep",
    "get_pairing_registry_dep",
    "get_reclaim_sweeper_dep",
]
