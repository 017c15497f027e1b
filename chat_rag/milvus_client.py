from __future__ import annotations

import asyncio
import threading
from typing import Any, Dict, List, Optional, Protocol

from pymilvus import (
    connections,
    FieldSchema,
    CollectionSchema,
    DataType,
    Collection,
    utility,
)

from . import config
from .errors import PersistenceError
from .models import Point, ScoredPoint
from .utils import get_logger


logger = get_logger(__name__)

VECTOR_FIELD = "vector"
SOURCE_FIELD = "source"
_HIDDEN_FIELDS = {"id", VECTOR_FIELD}


class VectorStore(Protocol):
    async def upsert(self, collection: str, points: List[Point]) -> None: ...

    async def search(self, collection: str, vector: List[float], limit: int, score_threshold: Optional[float]) -> List[ScoredPoint]: ...


class MilvusManager:
    def __init__(self, uri: str | None = None, token: str | None = None, db_name: str | None = None, alias: str = "default"):
        self.uri = uri or config.MILVUS_URI
        self.token = token or config.MILVUS_TOKEN or None
        self.db_name = db_name or config.MILVUS_DB_NAME or None
        self.alias = alias
        # Establish connection
        connections.connect(alias=self.alias, uri=self.uri, token=self.token, db_name=self.db_name)
        self._collections: Dict[str, Collection] = {}
        self._lock = threading.Lock()

    def get_collection(self, name: str, dim: Optional[int] = None) -> Optional[Collection]:
        """
        Loaded collection `name`. A missing collection is created when `dim`
        is known, otherwise None is returned.
        """
        coll = self._collections.get(name)
        if coll is not None:
            return coll
        with self._lock:
            coll = self._collections.get(name)
            if coll is not None:
                return coll
            if utility.has_collection(name, using=self.alias):
                coll = Collection(name, using=self.alias)
                coll.load()
            elif dim is None:
                return None
            else:
                coll = self._create_collection(name, dim)
            self._collections[name] = coll
            return coll

    def _create_collection(self, name: str, dim: int) -> Collection:
        fields = [
            FieldSchema(name="id", dtype=DataType.VARCHAR, is_primary=True, auto_id=False, max_length=config.POINT_ID_MAX_LEN),
            FieldSchema(name=VECTOR_FIELD, dtype=DataType.FLOAT_VECTOR, dim=dim),
            FieldSchema(name=SOURCE_FIELD, dtype=DataType.VARCHAR, max_length=config.SOURCE_MAX_LEN),
        ]
        schema = CollectionSchema(fields=fields, description="RAG document chunks", enable_dynamic_field=True)
        coll = Collection(name, schema, using=self.alias)

        # Create HNSW index over vector field with IP metric
        index_params = {"index_type": "HNSW", "metric_type": "IP", "params": {"M": 16, "efConstruction": 200}}
        coll.create_index(field_name=VECTOR_FIELD, index_params=index_params)
        coll.load()
        logger.info("Created collection %s (dim=%d)", name, dim)
        return coll

    def upsert_points(self, collection: str, points: List[Point]):
        if not points:
            return
        rows: List[Dict[str, Any]] = []
        for p in points:
            row = {k: v for k, v in p.payload.items() if k not in _HIDDEN_FIELDS}
            row["id"] = p.id
            row[VECTOR_FIELD] = p.vector
            source = str(p.payload.get(SOURCE_FIELD, ""))
            # VARCHAR max_length counts bytes
            size = len(source.encode("utf-8"))
            if size > config.SOURCE_MAX_LEN:
                raise PersistenceError(
                    f"Chunk {p.payload.get('chunk_index', p.id)} is {size} bytes, "
                    f"more than the {config.SOURCE_MAX_LEN} bytes the `{SOURCE_FIELD}` field holds."
                )
            row[SOURCE_FIELD] = source
            rows.append(row)
        coll = self.get_collection(collection, dim=len(points[0].vector))
        coll.upsert(rows)
        coll.flush()

    def search_points(self, collection: str, vector: List[float], limit: int, score_threshold: Optional[float] = None) -> List[ScoredPoint]:
        coll = self.get_collection(collection)
        if coll is None:
            logger.info("Collection %s does not exist yet", collection)
            return []

        # Search params for HNSW; radius turns it into a range search on the score
        search_params: Dict[str, Any] = {"ef": max(128, limit)}
        if score_threshold is not None:
            search_params["radius"] = score_threshold
        res = coll.search(
            data=[vector],
            anns_field=VECTOR_FIELD,
            param={"metric_type": "IP", "params": search_params},
            limit=limit,
            output_fields=["*"],
        )
        hits = res[0] if res else []
        out: List[ScoredPoint] = []
        for h in hits:
            entity = h.to_dict().get("entity", {}) or {}
            payload = {k: v for k, v in entity.items() if k not in _HIDDEN_FIELDS}
            out.append(ScoredPoint(score=float(h.distance), payload=payload))
        return out

    def ping(self) -> bool:
        utility.list_collections(using=self.alias)
        return True

    async def upsert(self, collection: str, points: List[Point]) -> None:
        await asyncio.to_thread(self.upsert_points, collection, points)

    async def search(self, collection: str, vector: List[float], limit: int, score_threshold: Optional[float] = None) -> List[ScoredPoint]:
        return await asyncio.to_thread(self.search_points, collection, vector, limit, score_threshold)
