from trendscope.models.base import Base
from trendscope.models.cached_batch import CachedBatch

__all__ = [
    "Base",
    "CachedBatch",
]
