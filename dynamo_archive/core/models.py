from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

Record = dict[str, dict[str, Any]]

ACTIVE_TABLE_STATUS = "ACTIVE"
PAY_PER_REQUEST = "PAY_PER_REQUEST"
PROVISIONED = "PROVISIONED"


class TransferPhase(StrEnum):
    VALIDATING = "validating"
    FETCHING_SCHEMA = "fetching_schema"
    CREATING_OR_CHECKING_TABLE = "creating_or_checking_table"
    WAITING_TABLE_ACTIVE = "waiting_table_active"
    SCANNING = "scanning"
    STREAMING = "streaming"
    DRAINING = "draining"
    RESTORING_CAPACITY = "restoring_capacity"
    DONE = "done"
    FAILED = "failed"


@dataclass
class Page:
    items: list[Record]
    last_evaluated_key: Record | None = None
    segment: int | None = None

    @property
    def is_last(self) -> bool:
        return not self.last_evaluated_key


@dataclass
class Batch:
    """A group of records submitted together through BatchWriteItem.

    `attempts` counts how many times the items were already submitted, a
    retry batch built from unprocessed items keeps a reference to the batch
    it came from in `retry_of`.
    """

    items: list[Record]
    attempts: int = 0
    retry_of: "Batch | None" = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("A batch must contain at least one item")

    def __len__(self) -> int:
        return len(self.items)

    def retry(self, items: list[Record] | None = None) -> "Batch":
        return Batch(
            items=list(items if items is not None else self.items),
            attempts=self.attempts + 1,
            retry_of=self,
        )


class CapacitySnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    read_capacity: int
    write_capacity: int
    on_demand: bool = False

    @classmethod
    def from_description(cls, table: dict[str, Any]) -> "CapacitySnapshot":
        throughput = table.get("ProvisionedThroughput") or {}
        billing_mode = (table.get("BillingModeSummary") or {}).get(
            "BillingMode", PROVISIONED
        )
        return cls(
            read_capacity=int(throughput.get("ReadCapacityUnits", 0)),
            write_capacity=int(throughput.get("WriteCapacityUnits", 0)),
            on_demand=billing_mode == PAY_PER_REQUEST,
        )


class _DynamoModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class KeySchemaElement(_DynamoModel):
    attribute_name: str = Field(alias="AttributeName")
    key_type: str = Field(alias="KeyType")


class AttributeDefinition(_DynamoModel):
    attribute_name: str = Field(alias="AttributeName")
    attribute_type: str = Field(alias="AttributeType")


class ProvisionedThroughput(_DynamoModel):
    read_capacity_units: int = Field(0, alias="ReadCapacityUnits")
    write_capacity_units: int = Field(0, alias="WriteCapacityUnits")


class BillingModeSummary(_DynamoModel):
    billing_mode: str = Field(PROVISIONED, alias="BillingMode")


class Projection(_DynamoModel):
    projection_type: str = Field("ALL", alias="ProjectionType")
    non_key_attributes: list[str] | None = Field(None, alias="NonKeyAttributes")


class SecondaryIndex(_DynamoModel):
    index_name: str = Field(alias="IndexName")
    key_schema: list[KeySchemaElement] = Field(alias="KeySchema")
    projection: Projection = Field(default_factory=Projection, alias="Projection")
    provisioned_throughput: ProvisionedThroughput | None = Field(
        None, alias="ProvisionedThroughput"
    )


class SchemaDocument(_DynamoModel):
    """The part of a DescribeTable response needed to recreate the table."""

    table_name: str = Field(alias="TableName")
    key_schema: list[KeySchemaElement] = Field(alias="KeySchema")
    attribute_definitions: list[AttributeDefinition] = Field(
        alias="AttributeDefinitions"
    )
    provisioned_throughput: ProvisionedThroughput = Field(
        default_factory=ProvisionedThroughput, alias="ProvisionedThroughput"
    )
    billing_mode_summary: BillingModeSummary | None = Field(
        None, alias="BillingModeSummary"
    )
    local_secondary_indexes: list[SecondaryIndex] | None = Field(
        None, alias="LocalSecondaryIndexes"
    )
    global_secondary_indexes: list[SecondaryIndex] | None = Field(
        None, alias="GlobalSecondaryIndexes"
    )

    @classmethod
    def from_description(cls, table: dict[str, Any]) -> "SchemaDocument":
        return cls.model_validate(table)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "SchemaDocument":
        return cls.model_validate_json(raw)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @property
    def on_demand(self) -> bool:
        return (
            self.billing_mode_summary is not None
            and self.billing_mode_summary.billing_mode == PAY_PER_REQUEST
        )

    @property
    def capacity(self) -> CapacitySnapshot:
        return CapacitySnapshot(
            read_capacity=self.provisioned_throughput.read_capacity_units,
            write_capacity=self.provisioned_throughput.write_capacity_units,
            on_demand=self.on_demand,
        )

    def to_create_table_params(
        self, table_name: str, write_capacity: int | None = None
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "TableName": table_name,
            "KeySchema": [
                element.model_dump(by_alias=True) for element in self.key_schema
            ],
            "AttributeDefinitions": [
                definition.model_dump(by_alias=True)
                for definition in self.attribute_definitions
            ],
        }
        if self.on_demand:
            params["BillingMode"] = PAY_PER_REQUEST
        else:
            params["BillingMode"] = PROVISIONED
            params["ProvisionedThroughput"] = {
                "ReadCapacityUnits": max(
                    self.provisioned_throughput.read_capacity_units, 1
                ),
                "WriteCapacityUnits": max(
                    write_capacity or 0,
                    self.provisioned_throughput.write_capacity_units,
                    1,
                ),
            }
        if self.local_secondary_indexes:
            params["LocalSecondaryIndexes"] = [
                self._index_params(index, with_throughput=False)
                for index in self.local_secondary_indexes
            ]
        if self.global_secondary_indexes:
            params["GlobalSecondaryIndexes"] = [
                self._index_params(index, with_throughput=not self.on_demand)
                for index in self.global_secondary_indexes
            ]
        return params

    @staticmethod
    def _index_params(index: SecondaryIndex, with_throughput: bool) -> dict[str, Any]:
        params: dict[str, Any] = {
            "IndexName": index.index_name,
            "KeySchema": [
                element.model_dump(by_alias=True) for element in index.key_schema
            ],
            "Projection": index.projection.model_dump(by_alias=True, exclude_none=True),
        }
        if with_throughput:
            throughput = index.provisioned_throughput or ProvisionedThroughput()
            params["ProvisionedThroughput"] = {
                "ReadCapacityUnits": max(throughput.read_capacity_units, 1),
                "WriteCapacityUnits": max(throughput.write_capacity_units, 1),
            }
        return params


class ArchiveLocation(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class TransferManifest(BaseModel):
    table_name: str
    archive: ArchiveLocation
    content_length: int = 0
    items_transferred: int = 0
    items_dropped: int = 0
    started_at: datetime
    ended_at: datetime | None = None

    @property
    def duration(self) -> float:
        if self.ended_at is None:
            return 0.0
        return (self.ended_at - self.started_at).total_seconds()
