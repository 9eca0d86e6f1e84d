"""Service layer: result wrapper, operation queue and entity operations."""

from .base import BaseService, ServiceResult
from .queue import Operation, OperationKind, OperationQueue, QueueStats
from .entity_service import EntityService

__all__ = [
    "BaseService",
    "ServiceResult",
    "Operation",
    "OperationKind",
    "OperationQueue",
    "QueueStats",
    "EntityService",
]
