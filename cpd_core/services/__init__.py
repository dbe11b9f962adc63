# =============================================================================
# cpd_core/services/__init__.py
# Service Layer
# =============================================================================
"""
Service layer for CPD entries.

Usage:
    from cpd_core.services import build_cpd_service

    service = build_cpd_service()
    entries = await service.get_all()
"""

from .base_service import BaseService, ServiceResult
from .cpd_service import CPDFilters, CPDService, CPDServiceProtocol
from .factory import build_cpd_service

__all__ = [
    # Base
    "BaseService",
    "ServiceResult",
    # CPD
    "CPDFilters",
    "CPDService",
    "CPDServiceProtocol",
    "build_cpd_service",
]
