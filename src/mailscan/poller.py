"""Background reconciliation of outstanding scans."""

import asyncio
import logging
from collections.abc import Callable

from .domain.models import Credential
from .domain.services import ReconciliationService

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[list[str]], None]


class PollerHandle:
    """Owner's handle on a running poller.

    Cancelling stops future sweeps and discards results of fetches that
    are still in flight.
    """

    def __init__(self, task: "asyncio.Task[None]") -> None:
        self._task = task
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def running(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._task.cancel()
        logger.debug("Poller cancelled")

    async def stopped(self) -> None:
        """Wait until the poller task has finished."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class ReconciliationPoller:
    """Runs a reconciliation sweep on a fixed interval.

    The poller never raises: fetch failures are handled by the sweep and
    anything unexpected is logged before the next tick.
    """

    def __init__(
        self,
        service: ReconciliationService,
        credential_provider: Callable[[], Credential | None],
        interval: float = 120.0,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.service = service
        self.credential_provider = credential_provider
        self.interval = interval
        self.on_change = on_change
        self._handle: PollerHandle | None = None

    def start(self, run_immediately: bool = False) -> PollerHandle:
        """Start polling on the running event loop."""
        if self._handle is not None and self._handle.running:
            raise RuntimeError("Poller already running")
        task = asyncio.get_running_loop().create_task(self._run(run_immediately))
        self._handle = PollerHandle(task)
        logger.info(f"Polling outstanding scans every {self.interval:g}s")
        return self._handle

    async def poll_once(self) -> list[str]:
        """Run a single sweep and notify observers of changes."""
        return await self._tick(lambda: True)

    async def _run(self, run_immediately: bool) -> None:
        if not run_immediately:
            await asyncio.sleep(self.interval)
        while True:
            handle = self._handle
            await self._tick(lambda: handle is None or not handle.cancelled)
            await asyncio.sleep(self.interval)

    async def _tick(self, should_apply: Callable[[], bool]) -> list[str]:
        try:
            credential = self.credential_provider()
            changed = await self.service.sweep(credential, should_apply=should_apply)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Reconciliation sweep failed: {e}")
            return []

        if changed and should_apply() and self.on_change is not None:
            try:
                self.on_change(changed)
            except Exception as e:
                logger.exception(f"Change observer failed: {e}")
        return changed
