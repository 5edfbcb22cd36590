"""
Background Tasks Module for the invitation backend

Tasks are started during application lifespan and run in the background.

Dependencies (injected at startup):
- ledger / events: store implementations
- logger: Logging instance
"""
import asyncio

from services.purchases import reconcile_pending_purchases

# Module-level references to dependencies (set by init_tasks)
_ledger = None
_events = None
_logger = None
_task_running = True
_RECONCILE_INTERVAL = 300
_RECONCILE_BATCH_SIZE = 100


def init_tasks(ledger, events, logger, RECONCILE_INTERVAL=300, RECONCILE_BATCH_SIZE=100):
    """
    Initialize the tasks module with required dependencies.
    Must be called before starting any background tasks.
    """
    global _ledger, _events, _logger, _task_running
    global _RECONCILE_INTERVAL, _RECONCILE_BATCH_SIZE

    _ledger = ledger
    _events = events
    _logger = logger
    _RECONCILE_INTERVAL = RECONCILE_INTERVAL
    _RECONCILE_BATCH_SIZE = RECONCILE_BATCH_SIZE
    _task_running = True

    _logger.info("Background tasks module initialized")


def stop_tasks():
    """Signal all tasks to stop"""
    global _task_running
    _task_running = False


async def run_reconciliation_once() -> int:
    """One pass over purchases with a balance or event step still pending"""
    return await reconcile_pending_purchases(_ledger, _events, _RECONCILE_BATCH_SIZE)


async def auto_reconcile_purchases():
    """
    Background task re-driving purchase steps that did not apply
    when the webhook was processed (store errors after the purchase insert).
    """
    _logger.info("Purchase reconciliation task started")

    while _task_running:
        try:
            applied = await run_reconciliation_once()
            if applied:
                _logger.info(f"Reconciliation pass applied {applied} steps")
        except Exception as e:
            _logger.error(f"Purchase reconciliation error: {e}")

        await asyncio.sleep(_RECONCILE_INTERVAL)
