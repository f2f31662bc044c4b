"""Background processing of queued webhook deliveries."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

from .webhook_service import WebhookServiceError

logger = logging.getLogger(__name__)

WORKER_BATCH_SIZE = 10
WORKER_INTERVAL = 10.0
_BATCH_PAUSE = 0.1


def _run_batch(service: Any, failure_message: str) -> None:
    try:
        service.process_pending_deliveries(WORKER_BATCH_SIZE)
    except WebhookServiceError as exc:
        logger.warning("%s: %s", failure_message, exc)


def start_delivery_worker(service: Any, stop_event: threading.Event) -> None:
    """Process pending deliveries now and then every interval until ``stop_event`` is set."""
    logger.info("Starting webhook delivery worker...")
    _run_batch(service, "Error processing initial pending deliveries")
    while not stop_event.wait(WORKER_INTERVAL):
        _run_batch(service, "Error processing pending deliveries")
    logger.info("Webhook delivery worker shutting down...")


def process_all_pending_deliveries(service: Any) -> int:
    """Work through every pending delivery in batches; return how many were handled.

    Failures of single deliveries are logged; a failure to fetch a batch
    propagates to the caller.
    """
    total_processed = 0
    while True:
        deliveries = list(service.store.get_pending_webhook_deliveries(WORKER_BATCH_SIZE))
        if not deliveries:
            break

        logger.info("Processing batch of %d webhook deliveries", len(deliveries))
        for delivery in deliveries:
            try:
                service.process_delivery(delivery)
            except WebhookServiceError as exc:
                logger.warning("Failed to process delivery %s: %s", delivery.id, exc)

        total_processed += len(deliveries)
        if len(deliveries) < WORKER_BATCH_SIZE:
            break
        time.sleep(_BATCH_PAUSE)

    logger.info("Processed %d total webhook deliveries", total_processed)
    return total_processed