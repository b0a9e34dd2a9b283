# Overview: Runs independent financial summaries in parallel worker threads.

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import date

from flask import current_app

from .wac_service import FinancialSummary, ReplayCancelledError, financial_summary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SummaryRequest:
    from_date: date
    to_date: date
    supplier_id: str | None = None


def summarize_many(
    requests: list[SummaryRequest],
    *,
    max_workers: int | None = None,
    cancel_event: threading.Event | None = None,
) -> list[FinancialSummary]:
    """
    Compute several financial summaries concurrently.

    Each worker pushes its own app context, so each replay gets its own
    scoped session. Results come back in request order. The first failure
    sets the shared cancel event so the remaining replays stop early, and
    that failure is re-raised once every worker has finished, never the
    ReplayCancelledError it caused in the other workers.
    """
    if not requests:
        return []

    app = current_app._get_current_object()
    workers = max_workers or int(app.config.get("ANALYTICS_MAX_WORKERS", 4))
    cancel = cancel_event or threading.Event()
    first_failure: list[Exception] = []
    failure_lock = threading.Lock()

    def _run(req: SummaryRequest) -> FinancialSummary:
        with app.app_context():
            try:
                return financial_summary(req.from_date, req.to_date, req.supplier_id, cancel_event=cancel)
            except ReplayCancelledError:
                raise
            except Exception as exc:
                with failure_lock:
                    if not first_failure:
                        first_failure.append(exc)
                cancel.set()
                raise

    logger.info("Running %d financial summaries on %d workers", len(requests), workers)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="wac-summary") as pool:
        futures = [pool.submit(_run, req) for req in requests]

    if first_failure:
        logger.warning("Financial summary batch aborted: %s", first_failure[0])
        raise first_failure[0]
    return [f.result() for f in futures]
