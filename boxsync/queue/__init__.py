"""
Queue module.
Contains the idempotent job queue facade.
"""

from boxsync.queue.job_queue import JobQueue, validate_key

__all__ = ["JobQueue", "validate_key"]
