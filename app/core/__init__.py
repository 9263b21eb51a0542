"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the domain apps; no chat logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError: Input validation failures

Views (import from core.views):
    - health_check: Database, cache and channel layer check

Note:
    Models are NOT imported here to avoid AppRegistryNotReady errors.
    Import them directly from their modules.
"""

from .exceptions import BaseApplicationError, ValidationError
from .services import BaseService, ServiceResult

__all__ = [
    "BaseService",
    "ServiceResult",
    "BaseApplicationError",
    "ValidationError",
]
