"""📡 Data-Access Services - Metadata, events and operations.

Example:
    from archview.services import create_services
    from archview.config import Settings

    services = create_services(Settings(use_mock_services=True))
    operations = services.operations.get_active_operations()
"""

from .base import (
    CustomMetadata,
    EventsApi,
    MetadataApi,
    OperationsApi,
    Services,
    Stage1Metadata,
    UpsertMetadata,
)
from .factory import create_services
from .http import EventsClient, MetadataClient, OperationsClient, ServiceClient
from .memory import Dataset, aggregate_events, memory_services, sample_dataset

__all__ = [
    "CustomMetadata",
    "Dataset",
    "EventsApi",
    "EventsClient",
    "MetadataApi",
    "MetadataClient",
    "OperationsApi",
    "OperationsClient",
    "ServiceClient",
    "Services",
    "Stage1Metadata",
    "UpsertMetadata",
    "aggregate_events",
    "create_services",
    "memory_services",
    "sample_dataset",
]
