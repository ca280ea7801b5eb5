#!/usr/bin/env python3
"""
Custom exceptions for the notification engine.

Producers never raise these into the UI; they are caught at the watcher
boundary and logged.
"""


class NotificationEngineException(Exception):
    """Base exception for notification engine errors."""
    pass


class StoreException(NotificationEngineException):
    """Raised when a document store read or write fails."""
    pass


class PermissionDeniedException(StoreException):
    """Raised when a read is rejected by the store's access rules."""
    pass


class DraftStorageException(NotificationEngineException):
    """Raised when the local draft store cannot be read or written."""
    pass
