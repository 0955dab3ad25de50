"""
HTLC escrow program.
"""

from .state import HTLCRecord, STATUS_ACTIVE, STATUS_WITHDRAWN, STATUS_CANCELLED
from .events import HTLCCreated, HTLCWithdrawn, HTLCCancelled
from .instructions import CreateHTLCParams, InvocationContext
from .processor import HTLCProgram

__all__ = [
    "HTLCProgram",
    "HTLCRecord",
    "CreateHTLCParams",
    "InvocationContext",
    "HTLCCreated",
    "HTLCWithdrawn",
    "HTLCCancelled",
    "STATUS_ACTIVE",
    "STATUS_WITHDRAWN",
    "STATUS_CANCELLED",
]
