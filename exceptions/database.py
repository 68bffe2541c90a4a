"""
Database Exception Classes for Uptime Monitor

Exceptions raised by the storage layer: connection problems,
failed queries, missing and duplicate records.
"""

from __future__ import annotations

from typing import Any, Optional

from config.constants import ErrorCodes
from exceptions.base import UptimeMonitorException


class DatabaseException(UptimeMonitorException):
    """
    Base Database Exception

    Parent class for all database-related exceptions.
    """

    default_error_code = ErrorCodes.DB_QUERY_ERROR
    default_recoverable = False

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if table:
            self.details["table"] = table


class DatabaseConnectionError(DatabaseException):
    """
    Database Connection Error

    Raised when unable to establish or maintain database connection.
    """

    default_error_code = ErrorCodes.DB_CONNECTION_ERROR

    def __init__(
        self,
        message: str = "Unable to connect to database",
        url: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if url:
            # never leak credentials into error payloads
            self.details["url"] = url.split("@")[-1]

    def user_message(self) -> str:
        return "Unable to access the database. Please try again later."


class DatabaseQueryError(DatabaseException):
    """
    Database Query Error

    Raised when a database statement fails to execute.
    """

    default_error_code = ErrorCodes.DB_QUERY_ERROR

    def __init__(
        self,
        message: str = "Database query failed",
        operation: Optional[str] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if operation:
            self.details["operation"] = operation

    def user_message(self) -> str:
        return "An error occurred while processing your request."


class RecordNotFoundError(DatabaseException):
    """
    Record Not Found Error

    Raised when an update or delete targets a record that does not exist.
    """

    default_error_code = ErrorCodes.DB_NOT_FOUND
    default_recoverable = True

    def __init__(
        self,
        message: str = "Record not found",
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if entity_type:
            self.details["entity_type"] = entity_type
        if entity_id is not None:
            self.details["entity_id"] = entity_id


class DuplicateRecordError(DatabaseException):
    """Raised when a unique field (a monitor name) is already taken."""

    default_error_code = ErrorCodes.DB_DUPLICATE
    default_recoverable = True

    def __init__(
        self,
        message: str = "Record already exists",
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs: Any
    ) -> None:
        super().__init__(message, **kwargs)

        if field:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = str(value)
