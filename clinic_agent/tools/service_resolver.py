"""Map the free-text service name from a booking block onto a catalog row."""

from __future__ import annotations

import logging
from typing import Protocol

from clinic_agent.models import ServiceRef
from clinic_agent.services.supabase_client import SupabaseAPIError

logger = logging.getLogger(__name__)


class ServiceCatalog(Protocol):
    def list_services(self) -> list[ServiceRef]: ...


class ServiceResolver:
    """Case-insensitive substring lookup over the service catalog.

    Not finding a service is an expected outcome: the booking still goes
    ahead with a null ``service_id`` and the clinic fixes it up by hand.
    """

    def __init__(self, catalog: ServiceCatalog | None) -> None:
        self._catalog = catalog

    def resolve(self, service_name: str) -> ServiceRef | None:
        needle = service_name.strip().lower()
        if not needle or self._catalog is None:
            return None

        try:
            services = self._catalog.list_services()
        except SupabaseAPIError as exc:
            logger.warning("Service catalog unavailable, booking without service_id: %s", exc)
            return None

        for service in services:
            name = service.name.lower()
            # "yoga" -> "Therapeutic Yoga", "Hydrotherapy session" -> "Hydrotherapy"
            if needle in name or (name and name in needle):
                return service

        logger.info("No catalog match for service %r", service_name)
        return None
