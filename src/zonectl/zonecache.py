"""Per-run memoisation of each provider's zone list."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Dict, List

from .models import ProviderInstance
from .providers.base import ZoneLister, call_with_deadline, deadline_for

LOG = logging.getLogger("zonectl")


class ZoneCache:
    """Caches ``list_zones`` results keyed by provider name.

    The first caller for a key does the listing; concurrent callers for the
    same key wait on its future. Failures are handed to every waiter and then
    forgotten, so the next caller lists again.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = timeout
        self._lock = threading.Lock()
        self._entries: Dict[str, Future] = {}

    def zone_list(self, instance: ProviderInstance) -> List[str]:
        """Return the provider's zones, listing them at most once per run."""
        driver = instance.driver
        if not isinstance(driver, ZoneLister):
            return []
        with self._lock:
            future = self._entries.get(instance.name)
            owner = future is None
            if owner:
                future = Future()
                self._entries[instance.name] = future
        if not owner:
            LOG.debug("Zone list cache hit for %s", instance.name)
            return list(future.result())

        try:
            zones = call_with_deadline(driver.list_zones, timeout=deadline_for(driver, self.timeout))
        except BaseException as exc:
            with self._lock:
                self._entries.pop(instance.name, None)
            future.set_exception(exc)
            raise
        zones = [zone.rstrip(".").lower() for zone in zones]
        future.set_result(zones)
        return list(zones)

    def has_zone(self, instance: ProviderInstance, zone: str) -> bool:
        return zone.lower() in self.zone_list(instance)

    def invalidate(self, provider_name: str) -> None:
        """Forget a provider's list, e.g. after a zone was created."""
        with self._lock:
            self._entries.pop(provider_name, None)
