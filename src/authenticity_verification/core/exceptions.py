"""
Exceptions raised across service boundaries.
"""

from typing import Optional


class PersistenceError(RuntimeError):
    """A verification could not be durably recorded."""

    def __init__(self, message: str, scan_id: Optional[str] = None):
        super().__init__(message)
        self.scan_id = scan_id
