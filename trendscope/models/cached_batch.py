"""Last-known-good batch per aggregation kind"""

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from trendscope.models.base import Base


class CachedBatch(Base):
    __tablename__ = "cached_batches"

    # trending | binance-fomo | alpha-lowcap | ...
    kind: Mapped[str] = mapped_column(String, primary_key=True)

    payload: Mapped[list] = mapped_column(JSON, nullable=False)

    record_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    written_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
