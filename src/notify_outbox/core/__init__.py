"""
Notify Outbox Core Package

Database access, leases, rendering, channels and the outbox itself.
"""

from . import database
from . import outbox

__all__ = ["database", "outbox"]
