"""Typed errors raised by the hierarchy service.

Every error carries an :class:`ErrorCode` with a stable short code and a
default message, so a presentation layer can map errors to user text
without inspecting exception classes.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    DATABASE_ERROR = ("DB001", "Database operation failed")
    BOOKMARK_NOT_FOUND = ("BKM001", "Bookmark not found")
    BOOKMARK_SAVE_ERROR = ("BKM002", "Failed to save bookmark")
    BOOKMARK_DELETE_ERROR = ("BKM003", "Failed to delete bookmark")
    FOLDER_NOT_FOUND = ("FLD001", "Bookmark folder not found")
    FOLDER_SAVE_ERROR = ("FLD002", "Failed to save bookmark folder")
    FOLDER_DELETE_ERROR = ("FLD003", "Failed to delete bookmark folder")
    FOLDER_CYCLE = ("FLD004", "Folder cannot be moved into itself or its descendants")
    INVALID_INPUT = ("INP001", "Invalid input provided")
    UNKNOWN_ERROR = ("UNK001", "An unknown error occurred")

    def __init__(self, code: str, default_message: str) -> None:
        self.code = code
        self.default_message = default_message


class GatewayError(Exception):
    """Generic storage failure raised by persistence gateways."""


class MarkhiveError(Exception):
    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.error_code.default_message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.error_code.code

    def __str__(self) -> str:
        return f"[{self.code}] {self.error_code.name}: {self.message}"


class InvalidInput(MarkhiveError):
    error_code = ErrorCode.INVALID_INPUT


class FolderCycleError(InvalidInput):
    error_code = ErrorCode.FOLDER_CYCLE


class BookmarkNotFound(MarkhiveError):
    error_code = ErrorCode.BOOKMARK_NOT_FOUND


class FolderNotFound(MarkhiveError):
    error_code = ErrorCode.FOLDER_NOT_FOUND


class BookmarkSaveError(MarkhiveError):
    error_code = ErrorCode.BOOKMARK_SAVE_ERROR


class BookmarkDeleteError(MarkhiveError):
    error_code = ErrorCode.BOOKMARK_DELETE_ERROR


class FolderSaveError(MarkhiveError):
    error_code = ErrorCode.FOLDER_SAVE_ERROR


class FolderDeleteError(MarkhiveError):
    error_code = ErrorCode.FOLDER_DELETE_ERROR


class DatabaseError(MarkhiveError):
    error_code = ErrorCode.DATABASE_ERROR


class UnknownError(MarkhiveError):
    error_code = ErrorCode.UNKNOWN_ERROR
