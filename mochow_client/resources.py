# mochow_client/resources.py
from __future__ import annotations
import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Iterable

from pydantic import BaseModel, ValidationError

from . import models as M
from .exceptions import DecodingError, DecodingErrorKind, InvalidRequestError, ServerErrorCode, ServiceError
from .transport import RequestDescriptor

if TYPE_CHECKING:
    from .client import MochowClient

log = logging.getLogger("mochow.client")


# ------------ local validation ------------
def _require(name: str, value: Any) -> None:
    if not value:
        raise InvalidRequestError(f"{name} must not be empty")


def _values(enum: type[Enum]) -> set[str]:
    return {e.value for e in enum}


def _check_member(name: str, value: Any, enum: type[Enum]) -> None:
    if value not in _values(enum):
        raise InvalidRequestError(
            f"unsupported {name} {value!r}; expected one of {sorted(_values(enum))}"
        )


def _as_model(model: type[M.M], value: Any, what: str) -> M.M:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise InvalidRequestError(f"invalid {what}: {exc}") from exc


def check_index(index: M.IndexSchema) -> None:
    """Enum-membership checks only; numeric params are left to the service."""
    _require("index_name", index.index_name)
    _require("field", index.field)
    _check_member("index type", index.index_type, M.IndexType)
    if index.metric_type is not None:
        _check_member("metric type", index.metric_type, M.MetricType)
    elif index.index_type in {t.value for t in M.VECTOR_INDEX_TYPES}:
        raise InvalidRequestError(f"vector index {index.index_name!r} requires a metric type")


def check_table_schema(schema: M.TableSchema) -> None:
    if not schema.fields:
        raise InvalidRequestError("table schema needs at least one field")
    for f in schema.fields:
        _require("field_name", f.field_name)
    if not schema.primary_keys:
        raise InvalidRequestError("table schema needs a primary key field")
    for index in schema.indexes:
        check_index(index)


class _Resource:
    resource = ""

    def __init__(self, core: "MochowClient"):
        self.core = core

    def _post(self, verb: str, body: BaseModel, *, idempotent: bool = False) -> RequestDescriptor:
        return RequestDescriptor(
            "POST", self.core.path(self.resource), query={verb: None}, body=body, idempotent=idempotent
        )

    def _delete(self, body: BaseModel) -> RequestDescriptor:
        return RequestDescriptor("DELETE", self.core.path(self.resource), body=body)

    async def _create(self, d: RequestDescriptor, exists_code: ServerErrorCode, if_not_exists: bool) -> M.CommonResponse:
        try:
            return await self.core.call(d, M.CommonResponse)
        except ServiceError as exc:
            if if_not_exists and exc.server_code == exists_code:
                log.info("%s already exists; treating create as done (%s)", self.resource, exc.message)
                return M.CommonResponse(code=exc.code, msg=exc.message)
            raise

    async def _drop(self, d: RequestDescriptor, missing_code: ServerErrorCode, missing_ok: bool) -> M.CommonResponse:
        try:
            return await self.core.call(d, M.CommonResponse)
        except ServiceError as exc:
            if missing_ok and (exc.status == 404 or exc.server_code == missing_code):
                log.info("%s already absent; treating drop as done (%s)", self.resource, exc.message)
                return M.CommonResponse(code=exc.code, msg=exc.message)
            raise


# ------------ Databases ------------
class DatabaseResource(_Resource):
    resource = "database"

    async def create(self, name: str, *, if_not_exists: bool = False) -> M.CommonResponse:
        _require("database", name)
        d = self._post("create", M.DatabaseIn(database=name), idempotent=if_not_exists)
        return await self._create(d, ServerErrorCode.DB_ALREADY_EXIST, if_not_exists)

    async def list(self) -> list[str]:
        d = RequestDescriptor("POST", self.core.path("database"), query={"list": None}, idempotent=True)
        r = await self.core.call(d, M.ListDatabaseResponse)
        return r.databases

    async def exists(self, name: str) -> bool:
        return name in await self.list()

    async def describe(self, name: str) -> M.DatabaseDescription:
        # no describe verb on the service; listing its tables yields DB_NOT_EXIST for unknown names
        _require("database", name)
        tables = await self.core.tables.list(name)
        return M.DatabaseDescription(database=name, tables=tables)

    async def drop(self, name: str, *, missing_ok: bool = True) -> M.CommonResponse:
        """Drop a database; it must hold no tables."""
        _require("database", name)
        return await self._drop(self._delete(M.DatabaseIn(database=name)), ServerErrorCode.DB_NOT_EXIST, missing_ok)


# ------------ Tables ------------
class TableResource(_Resource):
    resource = "table"

    async def create(
        self,
        database: str,
        table: str,
        schema: M.TableSchema | dict[str, Any],
        *,
        replication: int = 3,
        partition: M.Partition | None = None,
        description: str | None = None,
        enable_dynamic_field: bool | None = None,
        if_not_exists: bool = False,
    ) -> M.CommonResponse:
        _require("database", database)
        _require("table", table)
        schema = _as_model(M.TableSchema, schema, "table schema")
        check_table_schema(schema)
        body = M.CreateTableIn(
            database=database,
            table=table,
            description=description,
            replication=replication,
            partition=partition or M.Partition(),
            enable_dynamic_field=enable_dynamic_field,
            table_schema=schema,
        )
        d = self._post("create", body, idempotent=if_not_exists)
        return await self._create(d, ServerErrorCode.TABLE_ALREADY_EXIST, if_not_exists)

    async def list(self, database: str) -> list[str]:
        _require("database", database)
        r = await self.core.call(self._post("list", M.DatabaseIn(database=database), idempotent=True), M.ListTableResponse)
        return r.tables

    async def exists(self, database: str, table: str) -> bool:
        return table in await self.list(database)

    async def describe(self, database: str, table: str) -> M.TableDescription:
        _require("table", table)
        d = self._post("desc", M.TableIn(database=database, table=table), idempotent=True)
        return (await self.core.call(d, M.DescribeTableResponse)).table

    async def stats(self, database: str, table: str) -> M.TableStats:
        _require("table", table)
        d = self._post("stats", M.TableIn(database=database, table=table), idempotent=True)
        return await self.core.call(d, M.TableStats)

    async def drop(self, database: str, table: str, *, missing_ok: bool = True) -> M.CommonResponse:
        _require("table", table)
        d = self._delete(M.TableIn(database=database, table=table))
        return await self._drop(d, ServerErrorCode.TABLE_NOT_EXIST, missing_ok)

    async def add_field(self, database: str, table: str, fields: Iterable[M.FieldSchema]) -> M.CommonResponse:
        """Add scalar fields to an existing table."""
        fields = [_as_model(M.FieldSchema, f, "field") for f in fields]
        _require("fields", fields)
        for f in fields:
            _require("field_name", f.field_name)
            if f.field_type == M.FieldType.FLOAT_VECTOR.value:
                raise InvalidRequestError(f"only scalar fields can be added, got vector field {f.field_name!r}")
        body = M.AddFieldIn(database=database, table=table, table_schema=M.TableSchema(fields=fields))
        return await self.core.call(self._post("addField", body), M.CommonResponse)

    async def alias(self, database: str, table: str, alias: str) -> M.CommonResponse:
        _require("alias", alias)
        body = M.AliasIn(database=database, table=table, alias=alias)
        return await self.core.call(self._post("alias", body), M.CommonResponse)

    async def unalias(self, database: str, table: str, alias: str) -> M.CommonResponse:
        _require("alias", alias)
        body = M.AliasIn(database=database, table=table, alias=alias)
        return await self.core.call(self._post("unalias", body, idempotent=True), M.CommonResponse)


# ------------ Indexes ------------
class IndexResource(_Resource):
    resource = "index"

    async def create(
        self,
        database: str,
        table: str,
        indexes: M.IndexSchema | dict[str, Any] | Iterable[M.IndexSchema | dict[str, Any]],
        *,
        if_not_exists: bool = False,
    ) -> M.CommonResponse:
        if isinstance(indexes, (M.IndexSchema, dict)):
            indexes = [indexes]
        specs = [_as_model(M.IndexSchema, i, "index spec") for i in indexes]
        _require("indexes", specs)
        for spec in specs:
            check_index(spec)
        d = self._post("create", M.CreateIndexIn(database=database, table=table, indexes=specs), idempotent=if_not_exists)
        return await self._create(d, ServerErrorCode.INDEX_ALREADY_EXIST, if_not_exists)

    async def describe(self, database: str, table: str, index_name: str) -> M.IndexSchema:
        _require("index_name", index_name)
        d = self._post("desc", M.IndexIn(database=database, table=table, index_name=index_name), idempotent=True)
        return (await self.core.call(d, M.DescribeIndexResponse)).index

    async def list(self, database: str, table: str) -> list[M.IndexSchema]:
        return (await self.core.tables.describe(database, table)).table_schema.indexes

    async def rebuild(self, database: str, table: str, index_name: str) -> M.CommonResponse:
        """Rebuild a vector index."""
        _require("index_name", index_name)
        d = self._post("rebuild", M.IndexIn(database=database, table=table, index_name=index_name))
        return await self.core.call(d, M.CommonResponse)

    async def modify(self, database: str, table: str, index: M.IndexSchema | dict[str, Any]) -> M.CommonResponse:
        """Change auto-build settings of a vector index."""
        index = _as_model(M.IndexSchema, index, "index spec")
        _require("index_name", index.index_name)
        if index.auto_build_policy is not None and index.auto_build_policy.policy_type is not None:
            _check_member("auto build policy", index.auto_build_policy.policy_type, M.AutoBuildPolicyType)
        d = self._post("modify", M.ModifyIndexIn(database=database, table=table, index=index), idempotent=True)
        return await self.core.call(d, M.CommonResponse)

    async def drop(self, database: str, table: str, index_name: str, *, missing_ok: bool = True) -> M.CommonResponse:
        _require("index_name", index_name)
        d = self._delete(M.IndexIn(database=database, table=table, index_name=index_name))
        return await self._drop(d, ServerErrorCode.INDEX_NOT_EXIST, missing_ok)


# ------------ Rows ------------
def _search_params(
    params: M.SearchParams | dict[str, Any] | None,
    top_k: int | None,
    candidates: int | None,
) -> M.SearchParams:
    # a plain dict names PUCK search by carrying searchCoarseCount
    puck_dict = False
    if params is None:
        params = M.GenericSearchParams()
    elif isinstance(params, dict):
        puck_dict = "searchCoarseCount" in params
        params = M.GenericSearchParams.model_validate(params)
    update: dict[str, Any] = {}
    if top_k is not None:
        if top_k <= 0:
            raise InvalidRequestError("top_k must be > 0")
        update["limit"] = top_k
    if candidates is not None:
        if isinstance(params, M.PUCKSearchParams):
            update["search_coarse_count"] = candidates
        elif puck_dict:
            update["searchCoarseCount"] = candidates
        elif isinstance(params, M.FLATSearchParams):
            raise InvalidRequestError("FLAT search has no candidate list size")
        else:
            update["ef"] = candidates
    return params.model_copy(update=update) if update else params


def _check_read_consistency(value: Any) -> None:
    if value is not None:
        _check_member("read consistency", getattr(value, "value", value), M.ReadConsistency)


class RowResource(_Resource):
    resource = "row"

    async def insert(self, database: str, table: str, rows: Iterable[Any]) -> M.AffectedResponse:
        """Insert rows in one request; an existing primary key is an error. Not atomic across the batch."""
        rows = list(rows)
        _require("rows", rows)
        d = self._post("insert", M.RowsIn(database=database, table=table, rows=rows))
        return await self.core.call(d, M.AffectedResponse)

    async def upsert(self, database: str, table: str, rows: Iterable[Any]) -> M.AffectedResponse:
        """Insert rows, overwriting any row with the same primary key as a whole."""
        rows = list(rows)
        _require("rows", rows)
        d = self._post("upsert", M.RowsIn(database=database, table=table, rows=rows), idempotent=True)
        return await self.core.call(d, M.AffectedResponse)

    async def update(
        self,
        database: str,
        table: str,
        primary_key: dict[str, Any],
        update: dict[str, Any],
        *,
        partition_key: dict[str, Any] | None = None,
    ) -> M.CommonResponse:
        _require("primary_key", primary_key)
        _require("update", update)
        body = M.UpdateRowIn(
            database=database, table=table, primary_key=primary_key, partition_key=partition_key, update=update
        )
        return await self.core.call(self._post("update", body, idempotent=True), M.CommonResponse)

    async def delete(
        self,
        database: str,
        table: str,
        *,
        primary_key: dict[str, Any] | None = None,
        partition_key: dict[str, Any] | None = None,
        filter: str | None = None,
    ) -> M.CommonResponse:
        if not primary_key and not filter:
            raise InvalidRequestError("delete needs a primary_key or a filter")
        body = M.DeleteRowIn(
            database=database, table=table, primary_key=primary_key, partition_key=partition_key, filter=filter
        )
        return await self.core.call(self._post("delete", body, idempotent=True), M.CommonResponse)

    async def get(
        self,
        database: str,
        table: str,
        primary_key: dict[str, Any],
        *,
        partition_key: dict[str, Any] | None = None,
        projections: list[str] | None = None,
        retrieve_vector: bool | None = None,
        read_consistency: M.ReadConsistency | str | None = None,
    ) -> dict[str, Any]:
        _require("primary_key", primary_key)
        _check_read_consistency(read_consistency)
        body = M.QueryRowIn(
            database=database,
            table=table,
            primary_key=primary_key,
            partition_key=partition_key,
            projections=projections,
            retrieve_vector=retrieve_vector,
            read_consistency=read_consistency,
        )
        return (await self.core.call(self._post("query", body, idempotent=True), M.QueryRowResponse)).row

    async def search(
        self,
        database: str,
        table: str,
        vector: list[float],
        *,
        vector_field: str = "vector",
        params: M.SearchParams | dict[str, Any] | None = None,
        top_k: int | None = None,
        candidates: int | None = None,
        metric: M.MetricType | str | None = None,
        filter: str | None = None,
        projections: list[str] | None = None,
        retrieve_vector: bool | None = None,
        read_consistency: M.ReadConsistency | str | None = None,
        partition_key: dict[str, Any] | None = None,
    ) -> M.SearchRowsResponse:
        """ANN search over ``vector_field``; rows come back in the service's ranking order."""
        _require("vector", vector)
        _require("vector_field", vector_field)
        if metric is not None:
            _check_member("metric type", getattr(metric, "value", metric), M.MetricType)
        _check_read_consistency(read_consistency)
        anns = M.AnnsSearchParams(
            vector_field=vector_field,
            vector_floats=list(vector),
            params=_search_params(params, top_k, candidates),
            filter=filter,
            metric_type=metric,
        )
        body = M.SearchRowsIn(
            database=database,
            table=table,
            anns=anns,
            partition_key=partition_key,
            projections=projections,
            retrieve_vector=retrieve_vector,
            read_consistency=read_consistency,
        )
        return await self.core.call(self._post("search", body, idempotent=True), M.SearchRowsResponse)

    async def batch_search(
        self,
        database: str,
        table: str,
        vectors: Iterable[list[float]],
        *,
        vector_field: str = "vector",
        params: M.SearchParams | dict[str, Any] | None = None,
        top_k: int | None = None,
        candidates: int | None = None,
        metric: M.MetricType | str | None = None,
        filter: str | None = None,
        projections: list[str] | None = None,
        retrieve_vector: bool | None = None,
        read_consistency: M.ReadConsistency | str | None = None,
        partition_key: dict[str, Any] | None = None,
    ) -> M.BatchSearchRowsResponse:
        """One ANN search per input vector, answered in input order."""
        vectors = [list(v) for v in vectors]
        _require("vectors", vectors)
        for v in vectors:
            _require("vector", v)
        if metric is not None:
            _check_member("metric type", getattr(metric, "value", metric), M.MetricType)
        _check_read_consistency(read_consistency)
        anns = M.BatchAnnsSearchParams(
            vector_field=vector_field,
            vector_floats=vectors,
            params=_search_params(params, top_k, candidates),
            filter=filter,
            metric_type=metric,
        )
        body = M.BatchSearchRowsIn(
            database=database,
            table=table,
            anns=anns,
            partition_key=partition_key,
            projections=projections,
            retrieve_vector=retrieve_vector,
            read_consistency=read_consistency,
        )
        return await self.core.call(self._post("batchSearch", body, idempotent=True), M.BatchSearchRowsResponse)

    async def select(
        self,
        database: str,
        table: str,
        *,
        filter: str | None = None,
        limit: int | None = None,
        marker: Any = None,
        projections: list[str] | None = None,
        read_consistency: M.ReadConsistency | str | None = None,
    ) -> M.SelectRowsResponse:
        """Scalar-filtered scan, one page per call."""
        if limit is not None and limit <= 0:
            raise InvalidRequestError("limit must be > 0")
        _check_read_consistency(read_consistency)
        body = M.SelectRowsIn(
            database=database,
            table=table,
            filter=filter,
            marker=marker,
            limit=limit,
            projections=projections,
            read_consistency=read_consistency,
        )
        return await self.core.call(self._post("select", body, idempotent=True), M.SelectRowsResponse)

    async def select_all(
        self,
        database: str,
        table: str,
        *,
        filter: str | None = None,
        page_size: int | None = None,
        projections: list[str] | None = None,
        read_consistency: M.ReadConsistency | str | None = None,
    ) -> AsyncIterator[dict[str, Any]]:
        marker = None
        while True:
            page = await self.select(
                database, table, filter=filter, limit=page_size, marker=marker,
                projections=projections, read_consistency=read_consistency,
            )
            for row in page.rows:
                yield row
            if not page.is_truncated:
                return
            if page.next_marker is None or page.next_marker == marker:
                # following it would restart or repeat the scan
                raise DecodingError(
                    DecodingErrorKind.SCHEMA_MISMATCH,
                    f"truncated page without a new nextMarker (previous: {marker!r})",
                    path=self.core.path(self.resource) + "?select",
                    status=200,
                )
            marker = page.next_marker

    async def query(
        self,
        database: str,
        table: str,
        *,
        filter: str | None = None,
        vector: list[float] | None = None,
        top_k: int | None = None,
        params: M.SearchParams | dict[str, Any] | None = None,
        candidates: int | None = None,
        metric: M.MetricType | str | None = None,
        vector_field: str = "vector",
        projections: list[str] | None = None,
        retrieve_vector: bool | None = None,
        read_consistency: M.ReadConsistency | str | None = None,
        partition_key: dict[str, Any] | None = None,
        marker: Any = None,
    ) -> list[M.RowResult]:
        """
        Filter and/or vector query in one request. With ``vector`` this is an
        ANN search ranked by the service; without it a filtered select of at
        most ``top_k`` rows. Results keep the order the service returned.
        """
        if vector is None:
            if params is not None or candidates is not None or metric is not None:
                raise InvalidRequestError("search params, candidates and metric need a query vector")
            page = await self.select(
                database, table, filter=filter, limit=top_k, marker=marker,
                projections=projections, read_consistency=read_consistency,
            )
            return [M.RowResult(row=row) for row in page.rows]
        r = await self.search(
            database, table, vector,
            vector_field=vector_field, params=params, top_k=top_k, candidates=candidates,
            metric=metric, filter=filter, projections=projections,
            retrieve_vector=retrieve_vector, read_consistency=read_consistency,
            partition_key=partition_key,
        )
        return r.rows
