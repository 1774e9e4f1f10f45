"""Raw-record adapters for the backend's query APIs.

Each backend API family returns its own record schema inside a ``{"value": [...]}``
envelope. An adapter validates one raw record against that schema and projects
it into the uniform shape returned to clients.
"""

from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError

from model_gateway.domain.operations import Endpoint, Model, Operation, OperationType
from model_gateway.errors import BackendProtocolError

logger = logging.getLogger(__name__)

RawT = TypeVar("RawT", bound=BaseModel)
ProjectedT = TypeVar("ProjectedT", bound=BaseModel)


class _RawRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")


class RunRecord(_RawRecord):
    """One run as returned by the run-history query API."""

    tags: dict[str, str]
    status: str | None = None
    startTimeUtc: str | None = None
    endTimeUtc: str | None = None
    description: str | None = None
    error: Any = None


class ModelRecord(_RawRecord):
    name: str
    createdTime: str | None = None
    modifiedTime: str | None = None
    description: str | None = None


class ServiceRecord(_RawRecord):
    name: str
    createdTime: str | None = None
    updatedTime: str | None = None
    scoringUri: str | None = None
    description: str | None = None


def unwrap_envelope(payload: dict[str, Any], raw_body: str = "") -> list[Any]:
    """Return the ``value`` list of a backend response envelope."""
    if "value" not in payload:
        logger.warning("Backend response has no 'value' key")
        raise BackendProtocolError("Response has no 'value' field", body=raw_body)
    value = payload["value"]
    if not isinstance(value, list):
        logger.warning("Backend response 'value' is %s, not a list", type(value).__name__)
        raise BackendProtocolError("Response 'value' field is not a list", body=raw_body)
    return value


class RecordAdapter(Generic[RawT, ProjectedT]):
    """Validate raw backend records and project them for clients."""

    raw_model: type[RawT]

    def parse(self, item: Any) -> RawT:
        try:
            return self.raw_model.model_validate(item)
        except ValidationError as exc:
            logger.warning(
                "Backend record does not match %s: %s",
                self.raw_model.__name__,
                exc.errors(include_input=False),
            )
            raise BackendProtocolError(
                f"Cannot parse backend record as {self.raw_model.__name__}",
                body=str(item),
            ) from exc

    def project(self, record: RawT) -> ProjectedT:
        raise NotImplementedError

    def adapt(self, payload: dict[str, Any], raw_body: str = "") -> list[dict[str, Any]]:
        """Unwrap, validate and project a whole response envelope."""
        records = [self.parse(item) for item in unwrap_envelope(payload, raw_body)]
        return [self.project(record).to_dict() for record in records]


class RunHistoryAdapter(RecordAdapter[RunRecord, Operation]):
    """Runs are projected differently depending on which operation they track."""

    raw_model = RunRecord

    def __init__(self, operation_type: OperationType) -> None:
        self.operation_type = operation_type

    def project(self, record: RunRecord) -> Operation:
        tags = record.tags
        common = {
            "operationType": tags.get("operationType"),
            "startTimeUtc": record.startTimeUtc,
            "completeTimeUtc": record.endTimeUtc,
            "error": record.error,
        }
        if self.operation_type is OperationType.TRAINING:
            return Operation(
                modelId=tags.get("modelId"),
                status=record.status,
                description=record.description,
                **common,
            )
        if self.operation_type is OperationType.INFERENCE:
            return Operation(
                operationId=tags.get("operationId"),
                description=record.description,
                **common,
            )
        return Operation(endpointId=tags.get("endpointId"), **common)


class ModelManagementAdapter(RecordAdapter[ModelRecord, Model]):
    raw_model = ModelRecord

    def project(self, record: ModelRecord) -> Model:
        return Model(
            modelId=record.name,
            startTimeUtc=record.createdTime,
            completeTimeUtc=record.modifiedTime,
            description=record.description,
        )


class ServiceListingAdapter(RecordAdapter[ServiceRecord, Endpoint]):
    raw_model = ServiceRecord

    def project(self, record: ServiceRecord) -> Endpoint:
        return Endpoint(
            endpointId=record.name,
            startTimeUtc=record.createdTime,
            completeTimeUtc=record.updatedTime,
            scoringUrl=record.scoringUri,
            description=record.description,
        )
