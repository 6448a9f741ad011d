"""
Billing enumerations.
"""

import enum


class TransactionStatus(str, enum.Enum):
    """
    Transaction status enumeration.

    Flow: PENDING_RELEASE -> RELEASED (payment provider confirmed) or FAILED
    """
    PENDING_RELEASE = "PENDING_RELEASE"
    RELEASED = "RELEASED"
    FAILED = "FAILED"
