"""Workflow node classes for the browser automation node."""

from .batch_driver import BatchDriverNode
from .session_admin import SessionAdminNode

__all__ = [
    "BatchDriverNode",
    "SessionAdminNode",
]
