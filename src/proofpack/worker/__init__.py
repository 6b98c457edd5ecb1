"""Proof Pack background worker.

Processes jobs from the PostgreSQL job queue:
- notification_deliver: retry notifications whose inline send failed
- expiry_sweep: recompute packs with documents entering the expiry window
"""

from proofpack.worker.main import Worker, WorkerConfig, run

__all__ = ["Worker", "WorkerConfig", "run"]
