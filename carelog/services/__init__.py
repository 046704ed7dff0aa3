"""Services package initialization."""

from carelog.services.autosave import AutosaveController
from carelog.services.drafts import Draft, KeyedDraftStore
from carelog.services.existence import ExistenceTracker
from carelog.services.export_docx import LogbookExporter
from carelog.services.gateway import InspectionRecordGateway, RecordGateway
from carelog.services.reconcile import PersistOutcome, ReconciliationClient, Verb
from carelog.services.runner import InlineRunner, ThreadPoolRunner
from carelog.services.scheduler import DebounceScheduler
from carelog.services.settings import AutosaveSettings
from carelog.services.status import SaveStatus, SaveStatusTracker

__all__ = [
    "AutosaveController",
    "AutosaveSettings",
    "DebounceScheduler",
    "Draft",
    "ExistenceTracker",
    "InlineRunner",
    "InspectionRecordGateway",
    "KeyedDraftStore",
    "LogbookExporter",
    "PersistOutcome",
    "ReconciliationClient",
    "RecordGateway",
    "SaveStatus",
    "SaveStatusTracker",
    "ThreadPoolRunner",
    "Verb",
]
