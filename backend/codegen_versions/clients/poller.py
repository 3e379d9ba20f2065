from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from codegen_versions.errors import OperationTimeoutError
from codegen_versions.models.neon import OperationStatus

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[str, str], Awaitable[OperationStatus]]
UpdateObserver = Callable[[str, OperationStatus], None]

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_TIMEOUT = 300.0


def log_operation_update(operation_id: str, status: OperationStatus) -> None:
    logger.info(f"Operation {operation_id} -> {status.value}")


class OperationPoller:
    """Waits for control-plane operations to reach a settled status.

    ``fetch_status(project_ref, operation_id)`` is polled until the status is
    finished, skipped, cancelled or failed. The settled status is returned as
    is; deciding whether ``failed`` or ``cancelled`` is fatal is the caller's
    business. Running out of time raises :class:`OperationTimeoutError`.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetch_status = fetch_status
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    async def wait_for_one(
        self,
        project_ref: str,
        operation_id: str,
        *,
        poll_interval: float | None = None,
        timeout: float | None = None,
        on_update: UpdateObserver | None = None,
    ) -> OperationStatus:
        interval = self.poll_interval if poll_interval is None else poll_interval
        budget = self.timeout if timeout is None else timeout
        started_at = self._clock()

        while True:
            status = await self._fetch_status(project_ref, operation_id)
            if on_update is not None:
                on_update(operation_id, status)
            if status.is_settled:
                return status
            elapsed = self._clock() - started_at
            if elapsed >= budget:
                raise OperationTimeoutError(operation_id, status.value, budget)
            # The last sleep is shortened so the final poll lands on the deadline.
            await self._sleep(min(interval, budget - elapsed))

    async def wait_for_many(
        self,
        project_ref: str,
        operation_ids: Sequence[str],
        *,
        poll_interval: float | None = None,
        timeout: float | None = None,
        on_update: UpdateObserver | None = None,
    ) -> dict[str, OperationStatus]:
        """Wait for every operation; one failing wait never cancels the others."""
        results = await asyncio.gather(
            *(
                self.wait_for_one(
                    project_ref,
                    operation_id,
                    poll_interval=poll_interval,
                    timeout=timeout,
                    on_update=on_update,
                )
                for operation_id in operation_ids
            ),
            return_exceptions=True,
        )

        statuses: dict[str, OperationStatus] = {}
        first_error: BaseException | None = None
        for operation_id, result in zip(operation_ids, results):
            if isinstance(result, BaseException):
                logger.warning(f"Waiting for operation {operation_id} failed: {result}")
                first_error = first_error or result
            else:
                statuses[operation_id] = result

        if first_error is not None:
            raise first_error
        return statuses
