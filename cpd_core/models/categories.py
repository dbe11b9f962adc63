# =============================================================================
# cpd_core/models/categories.py
# NMC Code Categories (static reference data)
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Tuple

from cpd_core.errors import NotFound


@dataclass(frozen=True)
class NMCCategory:
    """One of the four themes of the NMC Code."""
    id: str
    name: str
    description: str
    required_hours: float


NMC_CATEGORIES: Tuple[NMCCategory, ...] = (
    NMCCategory(
        id="prioritise_people",
        name="Prioritise People",
        description="Put the interests of people using services first",
        required_hours=12,
    ),
    NMCCategory(
        id="practise_effectively",
        name="Practise Effectively",
        description="Practise in a way that is evidence-based and person-centered",
        required_hours=12,
    ),
    NMCCategory(
        id="preserve_safety",
        name="Preserve Safety",
        description="Be aware of safety and how to respond to risk",
        required_hours=6,
    ),
    NMCCategory(
        id="promote_professionalism",
        name="Promote Professionalism",
        description="Uphold the reputation of the profession at all times",
        required_hours=5,
    ),
)

_BY_ID: Dict[str, NMCCategory] = {c.id: c for c in NMC_CATEGORIES}

CATEGORY_IDS: Tuple[str, ...] = tuple(_BY_ID)


def list_categories() -> List[NMCCategory]:
    """Return all NMC categories in display order."""
    return list(NMC_CATEGORIES)


def get_category(category_id: str) -> NMCCategory:
    """
    Look up a category by id.

    Raises:
        NotFound: If the id is not part of the taxonomy
    """
    try:
        return _BY_ID[category_id]
    except KeyError:
        raise NotFound(f"Unknown NMC category: {category_id}", entry_id=category_id) from None


def is_known_category(category_id: str) -> bool:
    return category_id in _BY_ID


def search_categories(query: str) -> List[NMCCategory]:
    """Case-insensitive match on category name or description."""
    needle = query.strip().lower()
    if not needle:
        return list_categories()
    return [
        c for c in NMC_CATEGORIES
        if needle in c.name.lower() or needle in c.description.lower()
    ]
