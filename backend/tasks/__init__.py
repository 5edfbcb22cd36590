"""
Tasks package for the invitation backend

Contains background tasks that run continuously during application lifetime.
"""
from .background import (
    init_tasks,
    stop_tasks,
    run_reconciliation_once,
    auto_reconcile_purchases,
)

__all__ = [
    'init_tasks',
    'stop_tasks',
    'run_reconciliation_once',
    'auto_reconcile_purchases',
]
