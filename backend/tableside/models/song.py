"""
Song model: one entry of a restaurant's library.
"""

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, CheckConstraint

from tableside.db.base import Base, TimestampMixin, new_id


class Song(Base, TimestampMixin):
    __tablename__ = "songs"

    id = Column(String(36), primary_key=True, default=new_id)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    artist = Column(String(255), nullable=False)
    genre = Column(String(100), nullable=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)

    # Incremented only when a request for this song completes
    play_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("duration_seconds >= 0", name="check_song_duration_non_negative"),
        CheckConstraint("play_count >= 0", name="check_song_play_count_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Song(id={self.id}, title={self.title}, artist={self.artist})>"
