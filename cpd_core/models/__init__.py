# =============================================================================
# cpd_core/models/__init__.py
# Domain Models
# =============================================================================

from .categories import (
    NMCCategory,
    NMC_CATEGORIES,
    CATEGORY_IDS,
    list_categories,
    get_category,
    search_categories,
)

from .entry import (
    ActivityType,
    SyncState,
    Evidence,
    TranscriptReference,
    CPDEntryDraft,
    CPDEntry,
    generate_correlation_id,
)

__all__ = [
    # NMC taxonomy
    "NMCCategory",
    "NMC_CATEGORIES",
    "CATEGORY_IDS",
    "list_categories",
    "get_category",
    "search_categories",
    # Entries
    "ActivityType",
    "SyncState",
    "Evidence",
    "TranscriptReference",
    "CPDEntryDraft",
    "CPDEntry",
    "generate_correlation_id",
]
