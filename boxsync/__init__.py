"""
Box Sync Service

Idempotent job queue and client synchronization engine for field boxes:
exactly-once account registration, monotonic verification, leased workers,
and a constrained background sync loop on the client side.
"""

__version__ = "1.0.0"
