"""Data models for carelog."""

from carelog.models.inspection import InspectionRecord
from carelog.models.staff import Staff
from carelog.models.store import Store

__all__ = ["InspectionRecord", "Staff", "Store"]
