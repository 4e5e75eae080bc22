"""🌐 HTTP Service Clients - REST transports for the data-access services.

Endpoints:
- metadata:    GET /labels, POST /columns, /project-ids, /datafactory-ids,
               /stage1, /upsert, /custom
- events:      POST /events/aggregate, POST /events
- operations:  GET /active

Example:
    with OperationsClient("http://localhost:3002/api") as ops:
        operations = ops.get_active_operations()
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from archview.errors import ServiceError, ServiceNotFoundError
from archview.graph.models import (
    AggregatedEvent,
    Event,
    FilterCriteria,
    LabelMappings,
    Operation,
    TableColumn,
)

from .base import CustomMetadata, Stage1Metadata, UpsertMetadata

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ServiceClient:
    """Base JSON-over-HTTP client.

    Args:
        uri: Base URI of the service (e.g., "http://localhost:3001/api")
        timeout: Request timeout in seconds
        client: Pre-built httpx client (tests inject a MockTransport)
    """

    def __init__(
        self,
        uri: str,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ):
        self.uri = uri.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ServiceClient:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Make an HTTP request and decode the JSON body.

        Raises:
            ServiceNotFoundError: On 404
            ServiceError: On transport errors, other 4xx/5xx and non-JSON bodies
        """
        url = f"{self.uri}/{path.lstrip('/')}"
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise ServiceError(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            error_msg = response.text
            try:
                error_msg = response.json().get("message", error_msg)
            except (ValueError, AttributeError):
                pass

            logger.warning("%s %s -> %d: %s", method, url, response.status_code, error_msg)
            if response.status_code == 404:
                raise ServiceNotFoundError(error_msg, status_code=404)
            raise ServiceError(
                f"Service error ({response.status_code}): {error_msg}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            logger.warning("%s %s returned a non-JSON body", method, url)
            raise ServiceError(
                f"Invalid JSON from {url}: {e}", status_code=response.status_code
            ) from e

    def _expect(self, data: Any, kind: type, path: str) -> Any:
        """Check the decoded body has the expected JSON container type."""
        if not isinstance(data, kind):
            raise ServiceError(
                f"Unexpected response from {self.uri}/{path}: "
                f"expected {kind.__name__}, got {type(data).__name__}"
            )
        return data

    def _parse(self, model: type[ModelT], data: Any, path: str) -> ModelT:
        """Validate one record, reporting a malformed payload as a ServiceError."""
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ServiceError(f"Unexpected response from {self.uri}/{path}: {e}") from e

    def _parse_list(self, model: type[ModelT], data: Any, path: str) -> list[ModelT]:
        return [self._parse(model, row, path) for row in self._expect(data, list, path)]


class MetadataClient(ServiceClient):
    """Labels, columns, ownership and per-arch metadata."""

    def get_label_mappings(self) -> LabelMappings:
        return self._parse(LabelMappings, self._request("GET", "labels") or {}, "labels")

    def get_table_columns(self, source_id: str) -> list[TableColumn]:
        data = self._request("POST", "columns", json={"source_id": source_id}) or []
        return self._parse_list(TableColumn, data, "columns")

    def get_project_ids(self, source_ids: list[str]) -> dict[str, dict[str, str]]:
        data = self._request("POST", "project-ids", json={"source_ids": source_ids}) or {}
        return self._expect(data, dict, "project-ids")

    def get_datafactory_ids(self, source_ids: list[str]) -> dict[str, dict[str, str]]:
        data = self._request("POST", "datafactory-ids", json={"source_ids": source_ids}) or {}
        return self._expect(data, dict, "datafactory-ids")

    def _arch_metadata(
        self, model: type[ModelT], path: str, source_table_id: str, sink_table_id: str
    ) -> ModelT:
        payload = {"source_table_id": source_table_id, "sink_table_id": sink_table_id}
        data = self._expect(self._request("POST", path, json=payload) or {}, dict, path)
        return self._parse(model, {**payload, **data}, path)

    def get_stage1_metadata(self, source_table_id: str, sink_table_id: str) -> Stage1Metadata:
        return self._arch_metadata(Stage1Metadata, "stage1", source_table_id, sink_table_id)

    def get_upsert_metadata(self, source_table_id: str, sink_table_id: str) -> UpsertMetadata:
        return self._arch_metadata(UpsertMetadata, "upsert", source_table_id, sink_table_id)

    def get_custom_metadata(self, source_table_id: str, sink_table_id: str) -> CustomMetadata:
        return self._arch_metadata(CustomMetadata, "custom", source_table_id, sink_table_id)


class EventsClient(ServiceClient):
    """Event history and aggregated rollups."""

    def _query(self, criteria: FilterCriteria | None, limit: int | None) -> dict[str, Any]:
        body: dict[str, Any] = {"filters": (criteria or FilterCriteria()).to_query()}
        if limit:
            body["limit"] = limit
        return body

    def get_events_aggregation(
        self, criteria: FilterCriteria | None = None, limit: int | None = None
    ) -> list[AggregatedEvent]:
        data = self._request("POST", "events/aggregate", json=self._query(criteria, limit)) or []
        return self._parse_list(AggregatedEvent, data, "events/aggregate")

    def get_events(
        self, criteria: FilterCriteria | None = None, limit: int | None = None
    ) -> list[Event]:
        data = self._request("POST", "events", json=self._query(criteria, limit)) or {}
        rows = data.get("events", []) if isinstance(data, dict) else data
        return self._parse_list(Event, rows, "events")


class OperationsClient(ServiceClient):
    """Active operations from the operations manager."""

    def get_active_operations(self) -> list[Operation]:
        data = self._request("GET", "active") or {}
        rows = data.get("operations", []) if isinstance(data, dict) else data
        return self._parse_list(Operation, rows, "active")
