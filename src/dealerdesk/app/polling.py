from __future__ import annotations

import logging
import threading

from dealerdesk.gateway.base import GatewayError

from .analytics import PendingAggregator
from .health import SystemHealthService

logger = logging.getLogger(__name__)


class DashboardPoller:
    """Background refresher for per-store analytics and health views.

    A failed refresh keeps the previous cached value and is retried on the
    next tick.
    """

    def __init__(
        self,
        *,
        aggregator: PendingAggregator,
        health: SystemHealthService,
        stores: list[str],
        interval_s: float,
    ) -> None:
        self.aggregator = aggregator
        self.health = health
        self.stores = list(stores)
        self.interval_s = interval_s
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> int:
        """Refresh every store once. Returns the number of failed refreshes."""
        failures = 0
        for store in self.stores:
            for name, refresh in (
                ("analytics", self.aggregator.refresh),
                ("system_health", self.health.refresh),
            ):
                try:
                    refresh(store)
                except GatewayError as exc:
                    failures += 1
                    logger.warning(
                        "poller event=refresh_failed view=%s store=%s error=%s",
                        name,
                        store,
                        exc.message,
                    )
                except Exception:  # noqa: BLE001
                    failures += 1
                    logger.exception(
                        "poller event=refresh_failed view=%s store=%s", name, store
                    )
        logger.debug("poller event=tick stores=%d failures=%d", len(self.stores), failures)
        return failures

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="dashboard-poller", daemon=True)
        self._thread.start()
        logger.info("poller event=start interval_s=%s stores=%s", self.interval_s, self.stores)

    def stop(self, timeout_s: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout_s)
            self._thread = None
        logger.info("poller event=stop")

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_s):
            self.run_once()
