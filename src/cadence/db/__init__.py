"""Database layer."""

from cadence.db.engine import Database
from cadence.db.models import Automation, AutomationRun, Base

__all__ = [
    # Engine
    "Database",
    # Models
    "Automation",
    "AutomationRun",
    "Base",
]
