# tests/fake_service.py
"""In-memory stand-in for a Mochow service, served in-process over ASGI.

Covers the database/table/index/row verbs the client sends, the
{code, msg} error envelope and the Request-ID header. Search is a brute
force scan; filters understand ``field op value`` terms joined by AND.
"""
import itertools
import math
import re
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

ACCOUNT = "root"
API_KEY = "s3cr3t-api-key"


class MochowFault(Exception):
    def __init__(self, code: int, msg: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        self.code = code
        self.msg = msg
        self.status_code = status_code


def _not_found(code: int, msg: str) -> MochowFault:
    return MochowFault(code, msg, status.HTTP_404_NOT_FOUND)


def _conflict(code: int, msg: str) -> MochowFault:
    return MochowFault(code, msg, status.HTTP_409_CONFLICT)


# ------------ filters ------------
_TERM = re.compile(r"^\s*(\w+)\s*(==|=|!=|>=|<=|>|<)\s*(.+?)\s*$")


def _literal(raw: str) -> Any:
    if raw[:1] in ("'", '"'):
        return raw[1:-1]
    return float(raw) if "." in raw else int(raw)


def _matches(row: dict, expr: str | None) -> bool:
    if not expr:
        return True
    for term in re.split(r"\s+AND\s+", expr, flags=re.IGNORECASE):
        m = _TERM.match(term)
        if not m:
            raise MochowFault(2, f"cannot parse filter term {term!r}")
        name, op, value = m.group(1), m.group(2), _literal(m.group(3))
        left = row.get(name)
        if left is None:
            return False
        ok = {
            "=": left == value, "==": left == value, "!=": left != value,
            ">=": left >= value, "<=": left <= value, ">": left > value, "<": left < value,
        }[op]
        if not ok:
            return False
    return True


def _l2(a: list[float], b: list[float]) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def _cosine(a: list[float], b: list[float]) -> float:
    na = math.sqrt(sum(x * x for x in a))
    nb = math.sqrt(sum(y * y for y in b))
    return sum(x * y for x, y in zip(a, b)) / (na * nb) if na and nb else 0.0


class FakeMochow:
    def __init__(self):
        # db -> table -> {"desc": {...}, "rows": {pk tuple: row}}
        self.databases: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple[str, str, dict]] = []
        self.failures: list[int] = []
        self._request_ids = itertools.count(1)

    def fail_next(self, times: int, status_code: int = status.HTTP_503_SERVICE_UNAVAILABLE) -> None:
        self.failures.extend([status_code] * times)

    def next_request_id(self) -> str:
        return f"req-{next(self._request_ids)}"

    # ------------ lookups ------------
    def _db(self, name: str) -> dict:
        if name not in self.databases:
            raise _not_found(50, f"database {name} not exist")
        return self.databases[name]

    def _table(self, body: dict) -> dict:
        tables = self._db(body["database"])
        name = body["table"]
        for t in tables.values():
            if name in t["desc"]["aliases"]:
                return t
        if name not in tables:
            raise _not_found(69, f"table {name} not exist")
        return tables[name]

    @staticmethod
    def _pk_fields(t: dict) -> list[str]:
        return [f["fieldName"] for f in t["desc"]["schema"]["fields"] if f.get("primaryKey")]

    def _pk(self, t: dict, row: dict) -> tuple:
        try:
            return tuple(row[k] for k in self._pk_fields(t))
        except KeyError as exc:
            raise MochowFault(2, f"primary key field {exc.args[0]} missing") from exc

    @staticmethod
    def _project(row: dict, projections: list[str] | None, retrieve_vector: bool | None) -> dict:
        out = {k: v for k, v in row.items() if not projections or k in projections}
        if not retrieve_vector:
            out.pop("vector", None)
        return out

    # ------------ database ------------
    def database_create(self, body: dict) -> dict:
        if body["database"] in self.databases:
            raise _conflict(51, f"database {body['database']} already exist")
        self.databases[body["database"]] = {}
        return {}

    def database_list(self, body: dict) -> dict:
        return {"databases": list(self.databases)}

    def database_drop(self, body: dict) -> dict:
        if self._db(body["database"]):
            raise MochowFault(53, f"database {body['database']} not empty")
        del self.databases[body["database"]]
        return {}

    # ------------ table ------------
    def table_create(self, body: dict) -> dict:
        tables = self._db(body["database"])
        if body["table"] in tables:
            raise _conflict(70, f"table {body['table']} already exist")
        schema = body["schema"]
        for index in schema.get("indexes", []):
            index.setdefault("state", "NORMAL")
        tables[body["table"]] = {
            "desc": {
                "database": body["database"],
                "table": body["table"],
                "createTime": "2024-01-01T00:00:00Z",
                "description": body.get("description", ""),
                "replication": body.get("replication", 3),
                "partition": body.get("partition"),
                "enableDynamicField": body.get("enableDynamicField", False),
                "state": "NORMAL",
                "aliases": [],
                "schema": schema,
            },
            "rows": {},
        }
        return {}

    def table_list(self, body: dict) -> dict:
        return {"tables": list(self._db(body["database"]))}

    def table_desc(self, body: dict) -> dict:
        return {"table": self._table(body)["desc"]}

    def table_stats(self, body: dict) -> dict:
        rows = self._table(body)["rows"]
        return {"rowCount": len(rows), "memorySizeInByte": 64 * len(rows), "diskSizeInByte": 128 * len(rows)}

    def table_addfield(self, body: dict) -> dict:
        fields = self._table(body)["desc"]["schema"]["fields"]
        known = {f["fieldName"] for f in fields}
        for f in body["schema"]["fields"]:
            if f["fieldName"] in known:
                raise _conflict(81, f"field {f['fieldName']} already exist")
            fields.append(f)
        return {}

    def table_alias(self, body: dict) -> dict:
        aliases = self._table(body)["desc"]["aliases"]
        if body["alias"] in aliases:
            raise _conflict(74, f"alias {body['alias']} already exist")
        aliases.append(body["alias"])
        return {}

    def table_unalias(self, body: dict) -> dict:
        aliases = self._table(body)["desc"]["aliases"]
        if body["alias"] not in aliases:
            raise _not_found(73, f"alias {body['alias']} not exist")
        aliases.remove(body["alias"])
        return {}

    def table_drop(self, body: dict) -> dict:
        tables = self._db(body["database"])
        if body["table"] not in tables:
            raise _not_found(69, f"table {body['table']} not exist")
        del tables[body["table"]]
        return {}

    # ------------ index ------------
    def _indexes(self, body: dict) -> list[dict]:
        return self._table(body)["desc"]["schema"].setdefault("indexes", [])

    def _index(self, body: dict) -> dict:
        for index in self._indexes(body):
            if index["indexName"] == body["indexName"]:
                return index
        raise _not_found(91, f"index {body['indexName']} not exist")

    def index_create(self, body: dict) -> dict:
        indexes = self._indexes(body)
        known = {i["indexName"] for i in indexes}
        for index in body["indexes"]:
            if index["indexName"] in known:
                raise _conflict(92, f"index {index['indexName']} already exist")
            indexes.append({**index, "state": "BUILDING"})
        return {}

    def index_desc(self, body: dict) -> dict:
        return {"index": self._index(body)}

    def index_rebuild(self, body: dict) -> dict:
        self._index(body)["state"] = "BUILDING"
        return {}

    def index_modify(self, body: dict) -> dict:
        index = self._index({**body, "indexName": body["index"]["indexName"]})
        index.update({k: v for k, v in body["index"].items() if k in ("autoBuild", "autoBuildPolicy")})
        return {}

    def index_drop(self, body: dict) -> dict:
        indexes = self._indexes(body)
        index = self._index(body)
        indexes.remove(index)
        return {}

    # ------------ row ------------
    def row_insert(self, body: dict) -> dict:
        t = self._table(body)
        keys = [self._pk(t, r) for r in body["rows"]]
        for key in keys:
            if key in t["rows"]:
                raise _conflict(100, f"primary key {key} duplicated")
        for key, row in zip(keys, body["rows"]):
            t["rows"][key] = dict(row)
        return {"affectedCount": len(keys)}

    def row_upsert(self, body: dict) -> dict:
        t = self._table(body)
        for row in body["rows"]:
            t["rows"][self._pk(t, row)] = dict(row)
        return {"affectedCount": len(body["rows"])}

    def row_update(self, body: dict) -> dict:
        t = self._table(body)
        key = self._pk(t, body["primaryKey"])
        if key not in t["rows"]:
            raise _not_found(101, f"row {key} not found")
        t["rows"][key].update(body["update"])
        return {}

    def row_delete(self, body: dict) -> dict:
        t = self._table(body)
        if "primaryKey" in body:
            t["rows"].pop(self._pk(t, body["primaryKey"]), None)
        else:
            for key in [k for k, r in t["rows"].items() if _matches(r, body.get("filter"))]:
                del t["rows"][key]
        return {}

    def row_query(self, body: dict) -> dict:
        t = self._table(body)
        key = self._pk(t, body["primaryKey"])
        if key not in t["rows"]:
            raise _not_found(101, f"row {key} not found")
        return {"row": self._project(t["rows"][key], body.get("projections"), body.get("retrieveVector"))}

    def _ann(self, t: dict, anns: dict, vector: list[float], body: dict) -> list[dict]:
        metric = anns.get("metricType")
        if metric is None:
            vector_indexes = [i for i in t["desc"]["schema"].get("indexes", []) if i.get("field") == anns["vectorField"]]
            metric = vector_indexes[0].get("metricType", "L2") if vector_indexes else "L2"
        hits = []
        for row in t["rows"].values():
            if not _matches(row, anns.get("filter")):
                continue
            candidate = row.get(anns["vectorField"])
            if candidate is None:
                continue
            if metric == "L2":
                hits.append({"distance": _l2(vector, candidate), "row": row})
            else:
                score = _cosine(vector, candidate)
                hits.append({"distance": 1.0 - score, "score": score, "row": row})
        hits.sort(key=lambda h: h["distance"])
        limit = anns.get("params", {}).get("limit", 50)
        return [
            {**h, "row": self._project(h["row"], body.get("projections"), body.get("retrieveVector"))}
            for h in hits[:limit]
        ]

    def row_search(self, body: dict) -> dict:
        t = self._table(body)
        return {"rows": self._ann(t, body["anns"], body["anns"]["vectorFloats"], body)}

    def row_batchsearch(self, body: dict) -> dict:
        t = self._table(body)
        anns = body["anns"]
        return {"results": [
            {"searchVectorFloats": v, "rows": self._ann(t, anns, v, body)} for v in anns["vectorFloats"]
        ]}

    def row_select(self, body: dict) -> dict:
        t = self._table(body)
        keys = [k for k, r in t["rows"].items() if _matches(r, body.get("filter"))]
        start = 0
        if body.get("marker"):
            marker = self._pk(t, body["marker"])
            start = keys.index(marker) if marker in keys else len(keys)
        limit = body.get("limit", 10)
        page = keys[start:start + limit]
        truncated = start + limit < len(keys)
        out = {
            "rows": [self._project(t["rows"][k], body.get("projections"), True) for k in page],
            "isTruncated": truncated,
        }
        if truncated:
            out["nextMarker"] = dict(zip(self._pk_fields(t), keys[start + limit]))
        return out


def create_app(fake: FakeMochow) -> FastAPI:
    app = FastAPI(title="FakeMochow")
    expected = f"Bearer account={ACCOUNT}&api_key={API_KEY}"

    @app.middleware("http")
    async def request_id(request: Request, call_next):
        response = await call_next(request)
        response.headers["Request-ID"] = fake.next_request_id()
        return response

    @app.exception_handler(MochowFault)
    async def fault_handler(_: Request, exc: MochowFault):
        return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "msg": exc.msg})

    async def _handle(request: Request, resource: str, verb: str) -> JSONResponse:
        body = await request.json() if await request.body() else {}
        fake.calls.append((request.method, f"{resource}?{verb}", body))
        if fake.failures:
            code = fake.failures.pop(0)
            return JSONResponse(status_code=code, content={"code": 1, "msg": "service busy"})
        if request.headers.get("Authorization") != expected:
            raise MochowFault(24, "authentication failed", status.HTTP_401_UNAUTHORIZED)
        handler = getattr(fake, f"{resource}_{verb.lower()}", None)
        if handler is None:
            raise MochowFault(10, f"unsupported {request.method} {resource}?{verb}", status.HTTP_404_NOT_FOUND)
        return JSONResponse({"code": 0, "msg": "Success", **handler(body)})

    @app.post("/v1/{resource}")
    async def post(resource: str, request: Request):
        verb = next(iter(request.query_params), "")
        return await _handle(request, resource, verb)

    @app.delete("/v1/{resource}")
    async def delete(resource: str, request: Request):
        return await _handle(request, resource, "drop")

    return app
