"""Job handlers for the Proof Pack worker.

Each handler processes one job type:
- notification: Redeliver notifications whose inline send failed
- expiry: Recompute packs whose documents enter the expiry window
"""

from proofpack.worker.handlers.expiry import expiry_sweep_handler
from proofpack.worker.handlers.notification import deliver_notification_handler

__all__ = [
    "deliver_notification_handler",
    "expiry_sweep_handler",
]
