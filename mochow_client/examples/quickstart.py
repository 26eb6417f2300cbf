# mochow_client/examples/quickstart.py
import asyncio

from pydantic import BaseModel, Field

from mochow_client import ClientConfig, MochowClient, models as M

DB, TABLE = "book", "book_segments"


class Segment(BaseModel):
    id: str
    book_name: str = Field(alias="bookName")
    author: str = ""
    page: int = 0
    vector: list[float] = []


async def main():
    cfg = ClientConfig.build("root", "your_api_key", "http://127.0.0.1:5287", deadline_s=60)
    async with MochowClient(cfg) as cli:
        # 1) database + table
        await cli.databases.create(DB, if_not_exists=True)
        schema = M.TableSchema(
            fields=[
                M.FieldSchema(field_name="id", field_type="STRING", primary_key=True, partition_key=True, not_null=True),
                M.FieldSchema(field_name="bookName", field_type="STRING", not_null=True),
                M.FieldSchema(field_name="author", field_type="STRING"),
                M.FieldSchema(field_name="page", field_type="UINT32"),
                M.FieldSchema(field_name="vector", field_type="FLOAT_VECTOR", not_null=True, dimension=3),
            ],
            indexes=[
                M.IndexSchema(index_name="book_name_idx", field="bookName", index_type="SECONDARY"),
                M.IndexSchema(
                    index_name="vector_idx", field="vector", index_type="HNSW", metric_type="L2",
                    params=M.HNSWParams(m=32, ef_construction=200),
                ),
            ],
        )
        await cli.tables.create(DB, TABLE, schema, partition=M.Partition(partition_num=3), if_not_exists=True)
        print("Table:", (await cli.tables.describe(DB, TABLE)).state)

        # 2) rows
        r = await cli.rows.upsert(DB, TABLE, [
            {"id": "0001", "bookName": "西游记", "author": "吴承恩", "page": 21, "vector": [0.2123, 0.24, 0.213]},
            {"id": "0002", "bookName": "西游记", "author": "吴承恩", "page": 22, "vector": [0.2123, 0.24, 0.213]},
        ])
        print("Upserted:", r.affected_count)

        # 3) vector query with a scalar filter
        hits = await cli.rows.query(
            DB, TABLE, vector=[0.3123, 0.43, 0.213], top_k=5,
            params=M.HNSWSearchParams(ef=200), filter="bookName = '西游记'",
        )
        print("Hits:", [(h.to(Segment).id, h.distance) for h in hits])

        # 4) filtered scan across pages
        async for row in cli.rows.select_all(DB, TABLE, filter="page >= 20", page_size=100):
            print("Row:", row["id"])


if __name__ == "__main__":
    asyncio.run(main())
