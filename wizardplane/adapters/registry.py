"""
Adapter registry — binds steps to adapters and runs them.

The registry is the single point of adapter management: binding,
lookup, mock mode and execution.  The control-plane never calls an
adapter directly.  ``launch`` runs a step's adapter on a worker thread
and always ends with exactly one terminal event on the task reporter,
whatever the adapter does.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor

from wizardplane.adapters.base import StepAdapter, StepReceipt
from wizardplane.adapters.mock import MockAdapter
from wizardplane.core.engine.tasks import TaskReporter
from wizardplane.core.models.step import TaskHandle

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Central registry and dispatcher for step adapters.

    Features:
        - Bind adapters to step ids
        - Mock mode: every step runs on the mock adapter
        - Unbound steps fall back to ``fallback`` (the mock by default;
          ``use_fallback=False`` makes them fail instead)
        - Run adapters on a bounded worker pool
    """

    def __init__(
        self,
        mock_mode: bool = False,
        *,
        fallback: StepAdapter | None = None,
        use_fallback: bool = True,
        max_workers: int = 4,
    ):
        self._bindings: dict[str, StepAdapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: StepAdapter = MockAdapter()
        self._fallback: StepAdapter | None = None
        if use_fallback:
            self._fallback = fallback if fallback is not None else self._mock_adapter
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()

    def bind(self, step_id: str, adapter: StepAdapter) -> None:
        if step_id in self._bindings:
            logger.warning("Rebinding step %s to adapter %s", step_id, adapter.name)
        self._bindings[step_id] = adapter
        logger.debug("Bound step %s → %s", step_id, adapter.name)

    def resolve(self, step_id: str) -> StepAdapter | None:
        """The adapter that would run ``step_id`` right now."""
        if self._mock_mode:
            return self._mock_adapter
        return self._bindings.get(step_id, self._fallback)

    # ── Execution ───────────────────────────────────────────────

    def execute(self, handle: TaskHandle, reporter: TaskReporter) -> StepReceipt:
        """Run the step's adapter and report its receipt as the terminal event.

        Never raises: a missing or unavailable adapter and any exception
        from the adapter become a failed receipt.
        """
        start_time = time.monotonic()
        adapter = self.resolve(handle.step_id)

        if adapter is None:
            receipt = StepReceipt.failure(
                adapter="none", step_id=handle.step_id,
                error=f"No adapter bound for step '{handle.step_id}'",
            )
        elif not _available(adapter):
            receipt = StepReceipt.failure(
                adapter=adapter.name, step_id=handle.step_id,
                error=f"Adapter '{adapter.name}' is not available on this system",
            )
        else:
            try:
                receipt = adapter.run(handle, reporter)
            except Exception as e:
                logger.error("Adapter %s raised while running %s: %s", adapter.name, handle.step_id, e)
                receipt = StepReceipt.failure(
                    adapter=adapter.name, step_id=handle.step_id, error=f"Unexpected error: {e}",
                )

        receipt.duration_ms = int((time.monotonic() - start_time) * 1000)

        details = {"adapter": receipt.adapter, "durationMs": receipt.duration_ms}
        if receipt.ok:
            reporter.succeeded(receipt.message or None, details)
        else:
            reporter.failed(receipt.error, details)
        logger.info(
            "Step %s via %s: %s (%dms)", handle.step_id, receipt.adapter, receipt.status, receipt.duration_ms,
        )
        return receipt

    def launch(self, handle: TaskHandle, reporter: TaskReporter) -> Future[StepReceipt]:
        """Run ``execute`` on the worker pool."""
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="wizard-step",
                )
            future = self._pool.submit(self.execute, handle, reporter)
        future.add_done_callback(_log_crash)
        return future

    def shutdown(self, wait: bool = True) -> None:
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=wait)


def _available(adapter: StepAdapter) -> bool:
    try:
        return adapter.is_available()
    except Exception:
        return False


def _log_crash(future: Future[StepReceipt]) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Step worker crashed: %s", exc)
