"""Durable last-known-good cache, one batch per aggregation kind.

Both backends replace a kind's batch wholesale, so a reader only ever sees
the previous batch or the new one. Neither raises: reads degrade to `[]`,
writes return False.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from trendscope.core.config import Settings, settings as default_settings
from trendscope.core.logging import get_logger
from trendscope.models.base import Base
from trendscope.models.cached_batch import CachedBatch

log = get_logger("cache")


@dataclass
class CachedKind:
    kind: str
    record_count: int
    written_at: Optional[datetime]


class BatchCache(Protocol):
    backend: str

    def read(self, kind: str) -> List[Dict[str, Any]]: ...

    def write(self, kind: str, batch: List[Dict[str, Any]]) -> bool: ...

    def cached_kinds(self) -> List[CachedKind]: ...

    def ping(self) -> bool: ...


class SqlBatchCache:
    """Batches stored as JSON rows in the `cached_batches` table."""

    backend = "sql"

    def __init__(self, engine: Optional[Engine] = None, session_factory: Optional[sessionmaker] = None):
        if engine is None:
            from trendscope.core.db import engine as default_engine

            engine = default_engine
        self.engine = engine
        self.session_factory = session_factory or sessionmaker(
            bind=engine, autoflush=False, expire_on_commit=False
        )
        try:
            Base.metadata.create_all(bind=engine)
        except SQLAlchemyError as exc:
            log.error(f"Could not create cache tables: {exc}")

    def read(self, kind: str) -> List[Dict[str, Any]]:
        try:
            with self.session_factory() as session:
                row = session.get(CachedBatch, kind)
                payload = row.payload if row is not None else None
        except (SQLAlchemyError, ValueError) as exc:
            log.warning(f"Cache read for '{kind}' failed: {exc}")
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            log.warning(f"Cached batch for '{kind}' is not a list, ignoring it")
            return []
        return [record for record in payload if isinstance(record, dict)]

    def write(self, kind: str, batch: List[Dict[str, Any]]) -> bool:
        session: Session = self.session_factory()
        try:
            session.merge(
                CachedBatch(
                    kind=kind,
                    payload=list(batch),
                    record_count=len(batch),
                    written_at=datetime.now(timezone.utc),
                )
            )
            session.commit()
            log.debug(f"Cached {len(batch)} records for '{kind}'")
            return True
        except (SQLAlchemyError, TypeError, ValueError) as exc:
            session.rollback()
            log.error(f"Cache write for '{kind}' failed: {exc}")
            return False
        finally:
            session.close()

    def cached_kinds(self) -> List[CachedKind]:
        try:
            with self.session_factory() as session:
                rows = session.execute(
                    select(CachedBatch.kind, CachedBatch.record_count, CachedBatch.written_at).order_by(
                        CachedBatch.kind
                    )
                ).all()
        except (SQLAlchemyError, ValueError) as exc:
            log.warning(f"Listing cached kinds failed: {exc}")
            return []
        return [CachedKind(kind=k, record_count=c, written_at=w) for k, c, w in rows]

    def ping(self) -> bool:
        try:
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as exc:
            log.warning(f"Cache database unreachable: {exc}")
            return False


class FileBatchCache:
    """One JSON document per kind under `cache_dir`."""

    backend = "file"

    def __init__(self, cache_dir: str = "data/cache"):
        self.cache_dir = Path(cache_dir)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.error(f"Could not create cache directory {self.cache_dir}: {exc}")

    def _path(self, kind: str) -> Path:
        return self.cache_dir / f"{kind}.json"

    def _load(self, kind: str) -> Optional[dict]:
        path = self._path(kind)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
        return document if isinstance(document, dict) else None

    def read(self, kind: str) -> List[Dict[str, Any]]:
        try:
            document = self._load(kind)
        except (OSError, ValueError) as exc:
            log.warning(f"Cache file for '{kind}' unreadable: {exc}")
            return []
        if document is None:
            return []

        data = document.get("data")
        if not isinstance(data, list):
            log.warning(f"Cache file for '{kind}' has no batch list, ignoring it")
            return []
        return [record for record in data if isinstance(record, dict)]

    def write(self, kind: str, batch: List[Dict[str, Any]]) -> bool:
        document = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "count": len(batch),
            "data": list(batch),
        }
        tmp_name = None
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{kind}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_name, self._path(kind))
            return True
        except (OSError, TypeError, ValueError) as exc:
            log.error(f"Cache write for '{kind}' failed: {exc}")
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return False

    def cached_kinds(self) -> List[CachedKind]:
        kinds: List[CachedKind] = []
        for path in sorted(self.cache_dir.glob("*.json")):
            try:
                document = self._load(path.stem) or {}
            except (OSError, ValueError):
                continue
            stamp = document.get("timestamp")
            try:
                written_at = datetime.fromisoformat(stamp) if stamp else None
            except ValueError:
                written_at = None
            kinds.append(CachedKind(kind=path.stem, record_count=int(document.get("count") or 0), written_at=written_at))
        return kinds

    def ping(self) -> bool:
        return self.cache_dir.is_dir() and os.access(self.cache_dir, os.W_OK)


def build_cache(config: Settings = default_settings) -> BatchCache:
    if config.CACHE_BACKEND == "file":
        log.info(f"Using file cache at {config.CACHE_DIR}")
        return FileBatchCache(config.CACHE_DIR)
    log.info("Using SQL cache")
    if config is default_settings:
        return SqlBatchCache()
    from trendscope.core.db import build_engine

    return SqlBatchCache(engine=build_engine(config.DATABASE_URL))
