"""
Artifact publishing for enginepack.

This module uploads produced artifacts to remote storage.
"""

from .publisher import (
    CommandPublisher,
    HttpPublisher,
    IPublisher,
    PublishError,
    PublishResult,
    create_publisher,
)

__all__ = [
    "IPublisher",
    "CommandPublisher",
    "HttpPublisher",
    "PublishResult",
    "PublishError",
    "create_publisher",
]
