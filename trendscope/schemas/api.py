from datetime import datetime

from pydantic import BaseModel

from trendscope.schemas.domain import NewsItem, NormalizedAsset, Provenance, SocialSignal


class AssetResponse(BaseModel):
    request_id: str
    api_latency_ms: int
    kind: str
    provenance: Provenance
    count: int
    data: list[NormalizedAsset]


class SocialResponse(BaseModel):
    request_id: str
    api_latency_ms: int
    provenance: Provenance
    data: list[SocialSignal]


class NewsResponse(BaseModel):
    request_id: str
    api_latency_ms: int
    provenance: Provenance
    data: list[NewsItem]


class ProviderStatus(BaseModel):
    status: str
    note: str | None = None


class StatusResponse(BaseModel):
    timestamp: datetime
    services: dict[str, ProviderStatus]


class CachedKindOut(BaseModel):
    kind: str
    record_count: int
    written_at: datetime | None = None


class HealthResponse(BaseModel):
    cache_backend: str
    cache: str
    cached_kinds: list[CachedKindOut]
