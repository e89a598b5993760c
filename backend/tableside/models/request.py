"""
SongRequest model: one diner's ask to play a song.

Key design decisions:
- Active requests (pending, playing) of a restaurant hold queue positions
  1..N. A partial unique index on (restaurant_id, queue_position) scoped to
  active statuses is the database-level safety net.
- Terminal requests (completed, cancelled) keep their last position for
  history and drop out of the index.
- Status is stored as its string value; transitions live in
  services.request_service.
"""

import enum

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Index, text
from sqlalchemy import Enum as SQLEnum

from tableside.db.base import Base, TimestampMixin, new_id, utcnow


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    PLAYING = "playing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (RequestStatus.PENDING, RequestStatus.PLAYING)
TERMINAL_STATUSES = (RequestStatus.COMPLETED, RequestStatus.CANCELLED)

_ACTIVE_CLAUSE = text("status IN ('pending', 'playing')")


class SongRequest(Base, TimestampMixin):
    __tablename__ = "requests"

    id = Column(String(36), primary_key=True, default=new_id)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    song_id = Column(String(36), ForeignKey("songs.id"), nullable=False, index=True)
    status = Column(
        SQLEnum(
            RequestStatus,
            name="request_status",
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    queue_position = Column(Integer, nullable=False)
    user_table = Column(String(50), nullable=True)
    requested_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_playing_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_requests_active_position",
            "restaurant_id",
            "queue_position",
            unique=True,
            postgresql_where=_ACTIVE_CLAUSE,
            sqlite_where=_ACTIVE_CLAUSE,
        ),
        # Daily quota lookups: WHERE user_id = ? AND requested_at >= ?
        Index("ix_requests_user_requested_at", "user_id", "requested_at"),
        Index("ix_requests_restaurant_status", "restaurant_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def __repr__(self) -> str:
        return (
            f"<SongRequest(id={self.id}, restaurant={self.restaurant_id}, "
            f"status={self.status}, position={self.queue_position})>"
        )
