"""Domain models for the CRM spreadsheet importer.

Value objects shared between the excel, services and cli layers: config
tree, logical records, entity references, run statistics and error records.
"""

from .config_models import CatalogConfig, DatabaseConfig, ImportConfig, OfferSheetConfig, OffersConfig
from .entities import EntityKind, EntityReference
from .error_record import ErrorRecord
from .records import GroupingResult, LogicalRecord, SkippedRecord
from .run_statistics import Outcome, RunStatistics, SheetStat

__all__ = [
    # Configuration models
    "CatalogConfig",
    "DatabaseConfig",
    "ImportConfig",
    "OfferSheetConfig",
    "OffersConfig",
    # Processing models
    "EntityKind",
    "EntityReference",
    "ErrorRecord",
    "GroupingResult",
    "LogicalRecord",
    "SkippedRecord",
    "Outcome",
    "RunStatistics",
    "SheetStat",
]
