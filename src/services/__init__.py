"""
Services module for business logic.

Provides the personalization service facade used by the API layer.
"""

from services.personalization_service import (
    PersonalizationService,
    get_personalization_service,
    reset_personalization_service,
)

__all__ = [
    "PersonalizationService",
    "get_personalization_service",
    "reset_personalization_service",
]
