"""Celery tasks for marketplace background processing."""

import logging

from celery import shared_task
from django.db import close_old_connections

logger = logging.getLogger(__name__)


@shared_task
def expire_dispatch_entry_task(entry_id: int):
    """
    Expire one dispatch entry once its offer window has passed.

    Scheduled when the entry is notified. If the operator already answered
    or the queue moved on, this is a no-op; otherwise the entry expires and
    the next operator in the queue is notified.
    """
    from services.matching import expire_dispatch_entry

    expired = expire_dispatch_entry(entry_id)
    if expired:
        logger.info("Dispatch entry %s expired by scheduled task", entry_id)
    else:
        logger.debug("Dispatch entry %s needed no expiry", entry_id)
    return expired


@shared_task
def sweep_expirations_task():
    """Periodic sweep for lapsed dispatch offers and quote windows."""
    from marketplace.services.expirations import process_expirations

    entries, windows = process_expirations()
    # Close stale DB connections for long-running workers
    close_old_connections()
    return {"dispatch_entries_expired": entries, "quote_windows_expired": windows}
