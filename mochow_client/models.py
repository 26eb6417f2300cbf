# mochow_client/models.py
from __future__ import annotations
from enum import Enum
from typing import Annotated, Any, TypeVar, Union

from pydantic import AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

M = TypeVar("M", bound=BaseModel)


def _enum_value(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


# Enum-valued wire fields stay plain strings so that values added by newer
# servers still decode; membership is checked where requests are built.
EnumStr = Annotated[str, BeforeValidator(_enum_value)]


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -------- Enums --------
class FieldType(str, Enum):
    BOOL = "BOOL"
    INT8 = "INT8"
    UINT8 = "UINT8"
    INT16 = "INT16"
    UINT16 = "UINT16"
    INT32 = "INT32"
    UINT32 = "UINT32"
    INT64 = "INT64"
    UINT64 = "UINT64"
    FLOAT = "FLOAT"
    DOUBLE = "DOUBLE"
    DATE = "DATE"
    DATETIME = "DATETIME"
    TIMESTAMP = "TIMESTAMP"
    STRING = "STRING"
    BINARY = "BINARY"
    UUID = "UUID"
    TEXT = "TEXT"
    TEXT_GBK = "TEXT_GBK"
    TEXT_GB18030 = "TEXT_GB18030"
    FLOAT_VECTOR = "FLOAT_VECTOR"


class IndexType(str, Enum):
    FLAT = "FLAT"
    HNSW = "HNSW"
    HNSWPQ = "HNSWPQ"
    PUCK = "PUCK"
    SECONDARY = "SECONDARY"


VECTOR_INDEX_TYPES = frozenset({IndexType.FLAT, IndexType.HNSW, IndexType.HNSWPQ, IndexType.PUCK})


class MetricType(str, Enum):
    L2 = "L2"
    IP = "IP"
    COSINE = "COSINE"


class IndexState(str, Enum):
    INVALID = "INVALID"
    BUILDING = "BUILDING"
    NORMAL = "NORMAL"


class TableState(str, Enum):
    INVALID = "INVALID"
    CREATING = "CREATING"
    NORMAL = "NORMAL"
    DELETING = "DELETING"


class PartitionType(str, Enum):
    HASH = "HASH"


class ReadConsistency(str, Enum):
    EVENTUAL = "EVENTUAL"
    STRONG = "STRONG"


class AutoBuildPolicyType(str, Enum):
    TIMING = "TIMING"
    PERIODICAL = "PERIODICAL"
    ROW_COUNT_INCREMENT = "ROW_COUNT_INCREMENT"


# -------- Tables --------
class FieldSchema(_Model):
    field_name: str = ""
    field_type: EnumStr
    primary_key: bool | None = None
    partition_key: bool | None = None
    auto_increment: bool | None = None
    not_null: bool | None = None
    dimension: int | None = None


class Partition(_Model):
    partition_type: EnumStr = PartitionType.HASH.value
    partition_num: int = 1


# -------- Indexes --------
class HNSWParams(_Model):
    m: int = Field(alias="M")
    ef_construction: int


class HNSWPQParams(_Model):
    m: int = Field(alias="M")
    ef_construction: int
    nsq: int = Field(alias="NSQ")
    sample_rate: float


class PUCKParams(_Model):
    coarse_cluster_count: int
    fine_cluster_count: int


class GenericIndexParams(_Model):
    """Params of an index type this client has no explicit model for."""
    model_config = ConfigDict(extra="allow")


IndexParams = Union[HNSWParams, HNSWPQParams, PUCKParams, GenericIndexParams]

_PARAMS_BY_INDEX_TYPE: dict[str, type[BaseModel]] = {
    IndexType.HNSW.value: HNSWParams,
    IndexType.HNSWPQ.value: HNSWPQParams,
    IndexType.PUCK.value: PUCKParams,
}


class AutoBuildPolicy(_Model):
    policy_type: EnumStr | None = None
    timing: str | None = None
    period_in_second: int | None = None
    row_count_increment: int | None = None
    row_count_increment_ratio: float | None = None


class IndexSchema(_Model):
    index_name: str = ""
    index_type: EnumStr | None = None
    metric_type: EnumStr | None = None
    field: str | None = None
    params: IndexParams | None = None
    auto_build: bool | None = None
    auto_build_policy: AutoBuildPolicy | None = None
    # server-reported, never sent back
    state: EnumStr | None = Field(default=None, exclude=True)
    index_major_version: int | None = Field(default=None, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _tag_params(cls, data: Any) -> Any:
        # params carry no tag of their own; the sibling indexType selects the variant
        if not isinstance(data, dict) or not isinstance(data.get("params"), dict):
            return data
        kind = _enum_value(data.get("indexType", data.get("index_type")))
        model = _PARAMS_BY_INDEX_TYPE.get(kind, GenericIndexParams)
        return {**data, "params": model.model_validate(data["params"])}


class TableSchema(_Model):
    fields: list[FieldSchema] = Field(default_factory=list)
    indexes: list[IndexSchema] = Field(default_factory=list)

    @property
    def primary_keys(self) -> list[str]:
        return [f.field_name for f in self.fields if f.primary_key]


# -------- Search params --------
class FLATSearchParams(_Model):
    limit: int = 50
    distance_far: float | None = None
    distance_near: float | None = None


class HNSWSearchParams(_Model):
    ef: int
    limit: int = 50
    distance_far: float | None = None
    distance_near: float | None = None
    pruning: bool = False


class HNSWPQSearchParams(_Model):
    ef: int
    limit: int = 50
    distance_far: float | None = None
    distance_near: float | None = None


class PUCKSearchParams(_Model):
    search_coarse_count: int
    limit: int = 50
    distance_far: float | None = None
    distance_near: float | None = None


class GenericSearchParams(_Model):
    model_config = ConfigDict(extra="allow")
    limit: int | None = None


SearchParams = Union[FLATSearchParams, HNSWSearchParams, HNSWPQSearchParams, PUCKSearchParams, GenericSearchParams]


# -------- Request bodies --------
class DatabaseIn(_Model):
    database: str


class TableIn(_Model):
    database: str
    table: str


class CreateTableIn(TableIn):
    description: str | None = None
    replication: int = 3
    partition: Partition = Field(default_factory=Partition)
    enable_dynamic_field: bool | None = None
    table_schema: TableSchema = Field(alias="schema")


class AddFieldIn(TableIn):
    table_schema: TableSchema = Field(alias="schema")


class AliasIn(TableIn):
    alias: str


class CreateIndexIn(TableIn):
    indexes: list[IndexSchema]


class IndexIn(TableIn):
    index_name: str


class ModifyIndexIn(TableIn):
    index: IndexSchema


class RowsIn(TableIn):
    rows: list[Any]


class UpdateRowIn(TableIn):
    primary_key: dict[str, Any]
    partition_key: dict[str, Any] | None = None
    update: dict[str, Any]


class DeleteRowIn(TableIn):
    primary_key: dict[str, Any] | None = None
    partition_key: dict[str, Any] | None = None
    filter: str | None = None


class QueryRowIn(TableIn):
    primary_key: dict[str, Any]
    partition_key: dict[str, Any] | None = None
    projections: list[str] | None = None
    retrieve_vector: bool | None = None
    read_consistency: EnumStr | None = None


class AnnsSearchParams(_Model):
    vector_field: str
    vector_floats: list[float]
    params: SearchParams
    filter: str | None = None
    metric_type: EnumStr | None = None


class BatchAnnsSearchParams(_Model):
    vector_field: str
    vector_floats: list[list[float]]
    params: SearchParams
    filter: str | None = None
    metric_type: EnumStr | None = None


class SearchRowsIn(TableIn):
    anns: AnnsSearchParams
    partition_key: dict[str, Any] | None = None
    projections: list[str] | None = None
    retrieve_vector: bool | None = None
    read_consistency: EnumStr | None = None


class BatchSearchRowsIn(TableIn):
    anns: BatchAnnsSearchParams
    partition_key: dict[str, Any] | None = None
    projections: list[str] | None = None
    retrieve_vector: bool | None = None
    read_consistency: EnumStr | None = None


class SelectRowsIn(TableIn):
    filter: str | None = None
    marker: Any = None
    limit: int | None = None
    projections: list[str] | None = None
    read_consistency: EnumStr | None = None


# -------- Responses --------
class CommonResponse(_Model):
    code: int = 0
    msg: str = ""


class ErrorEnvelope(_Model):
    code: int
    message: str = Field(default="", validation_alias=AliasChoices("msg", "message"))


class ListDatabaseResponse(CommonResponse):
    databases: list[str] = Field(default_factory=list)


class ListTableResponse(CommonResponse):
    tables: list[str] = Field(default_factory=list)


class DatabaseDescription(_Model):
    database: str
    tables: list[str] = Field(default_factory=list)


class TableDescription(_Model):
    database: str
    table: str
    create_time: str = ""
    description: str = ""
    replication: int = 0
    partition: Partition | None = None
    enable_dynamic_field: bool = False
    state: EnumStr | None = None
    aliases: list[str] = Field(default_factory=list)
    table_schema: TableSchema = Field(default_factory=TableSchema, alias="schema")


class DescribeTableResponse(CommonResponse):
    table: TableDescription


class TableStats(CommonResponse):
    row_count: int = 0
    memory_size_in_byte: int = 0
    disk_size_in_byte: int = 0


class DescribeIndexResponse(CommonResponse):
    index: IndexSchema


class AffectedResponse(CommonResponse):
    affected_count: int = 0


class QueryRowResponse(CommonResponse):
    row: dict[str, Any]


class RowResult(_Model):
    row: dict[str, Any]
    distance: float | None = None
    score: float | None = None

    def to(self, model: type[M]) -> M:
        return model.model_validate(self.row)


class SearchRowsResponse(CommonResponse):
    rows: list[RowResult] = Field(default_factory=list)


class SelectRowsResponse(CommonResponse):
    rows: list[dict[str, Any]] = Field(default_factory=list)
    is_truncated: bool = False
    next_marker: Any = None


class BatchRowResult(_Model):
    search_vector_floats: list[float] = Field(default_factory=list)
    rows: list[RowResult] = Field(default_factory=list)


class BatchSearchRowsResponse(CommonResponse):
    results: list[BatchRowResult] = Field(default_factory=list)
