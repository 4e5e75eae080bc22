"""🏭 Service Factory - Build the collaborators from settings.

Services are built once by the caller and handed to the session; nothing in
the engine looks them up globally.
"""

from __future__ import annotations

import logging

from archview.config import Settings

from .base import Services
from .http import EventsClient, MetadataClient, OperationsClient
from .memory import Dataset, memory_services, sample_dataset

logger = logging.getLogger(__name__)


def create_services(settings: Settings, dataset: Dataset | None = None) -> Services:
    """Create HTTP clients, or in-memory services when mocks are enabled.

    Args:
        settings: Service URIs and timeouts
        dataset: Dataset for the in-memory services (default: built-in sample)
    """
    if settings.use_mock_services:
        logger.info("Using in-memory services")
        return memory_services(dataset or sample_dataset())

    logger.info(
        "Using HTTP services (metadata=%s, events=%s, operations=%s)",
        settings.metadata_uri,
        settings.events_uri,
        settings.operations_uri,
    )
    return Services(
        metadata=MetadataClient(settings.metadata_uri, timeout=settings.request_timeout),
        events=EventsClient(settings.events_uri, timeout=settings.request_timeout),
        operations=OperationsClient(settings.operations_uri, timeout=settings.request_timeout),
    )
