"""
Accounts module.
Contains payment account registration and verification.
"""

from boxsync.accounts.service import AccountService, registration_payload

__all__ = ["AccountService", "registration_payload"]
