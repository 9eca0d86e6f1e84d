"""Base service class with common patterns and error handling."""

import logging
from typing import TypeVar, Generic, Optional, List, Dict, Any, Callable, Awaitable
from pydantic import BaseModel, Field
from datetime import datetime

from ..errors import (
    AssistantError,
    EntityStoreError,
    InsufficientPermission,
    OperationFailure,
)


T = TypeVar("T")


class ServiceResult(BaseModel, Generic[T]):
    """Standard service result wrapper for all operations."""

    model_config = {"arbitrary_types_allowed": True}

    success: bool = Field(description="Whether the operation was successful")
    data: Optional[T] = Field(None, description="Operation result data")
    message: str = Field("", description="Short human-readable outcome")
    error: Optional[str] = Field(None, description="Error message if operation failed")
    warnings: List[str] = Field(
        default_factory=list, description="Any warnings during operation"
    )
    metadata: Dict[str, Any] = Field(
        default_factory=dict, description="Additional metadata"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now, description="When operation was performed"
    )

    @classmethod
    def success_result(
        cls,
        data: T = None,
        message: str = "",
        warnings: List[str] = None,
        metadata: Dict[str, Any] = None,
    ) -> "ServiceResult[T]":
        """Create a successful result."""
        return cls(
            success=True,
            data=data,
            message=message,
            warnings=warnings or [],
            metadata=metadata or {},
        )

    @classmethod
    def error_result(
        cls,
        error: str,
        message: str = "",
        warnings: List[str] = None,
        metadata: Dict[str, Any] = None,
    ) -> "ServiceResult[T]":
        """Create an error result."""
        return cls(
            success=False,
            error=error,
            message=message or error,
            warnings=warnings or [],
            metadata=metadata or {},
        )


class BaseService:
    """Base service class with common patterns and error handling."""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    async def _execute_with_error_handling(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
        success_message: Optional[Callable[[T], str]] = None,
    ) -> ServiceResult[T]:
        """
        Execute an operation with standardized error handling and timing.

        Args:
            operation: Async function to execute
            operation_name: Name of operation for logging
            success_message: Builds the user-facing message from the result

        Returns:
            ServiceResult with success/error information
        """
        start_time = datetime.now()

        try:
            self.logger.debug(f"Starting {operation_name}")
            result = await operation()

            execution_time = (datetime.now() - start_time).total_seconds() * 1000
            self.logger.debug(f"Completed {operation_name} in {execution_time:.2f}ms")

            return ServiceResult.success_result(
                data=result,
                message=success_message(result) if success_message else "",
                metadata={"execution_time_ms": execution_time},
            )

        except Exception as e:
            execution_time = (datetime.now() - start_time).total_seconds() * 1000
            cause = e.cause if isinstance(e, OperationFailure) and e.cause is not None else e
            error_type = self._classify_error(cause)

            if error_type == "internal_error":
                self.logger.exception(f"Internal error in {operation_name}: {e}")
                user_message = f"Internal error in {operation_name}"
            else:
                self.logger.error(f"Error in {operation_name}: {cause}")
                user_message = cause.user_message

            return ServiceResult.error_result(
                error=str(cause),
                message=user_message,
                metadata={
                    "execution_time_ms": execution_time,
                    "error_type": error_type,
                    "original_error": str(cause),
                },
            )

    @staticmethod
    def _classify_error(error: BaseException) -> str:
        if isinstance(error, InsufficientPermission):
            return "insufficient_permission"
        if isinstance(error, EntityStoreError):
            return "entity_store_error"
        if isinstance(error, AssistantError):
            return "invalid_request"
        return "internal_error"
