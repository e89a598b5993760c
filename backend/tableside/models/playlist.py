"""
Playlist and PlaylistEntry models.

- PlaylistEntry positions are dense 1..M per playlist, guarded by a unique
  constraint on (playlist_id, position).
- song_count and total_duration are denormalized and recomputed by the
  stats reconciler whenever membership changes.
"""

from sqlalchemy import Column, String, Boolean, Integer, DateTime, ForeignKey, UniqueConstraint

from tableside.db.base import Base, TimestampMixin, new_id, utcnow


class Playlist(Base, TimestampMixin):
    __tablename__ = "playlists"

    id = Column(String(36), primary_key=True, default=new_id)
    owner_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    is_collaborative = Column(Boolean, nullable=False, default=False)
    song_count = Column(Integer, nullable=False, default=0)
    total_duration = Column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Playlist(id={self.id}, name={self.name}, songs={self.song_count})>"


class PlaylistEntry(Base):
    __tablename__ = "playlist_entries"

    id = Column(String(36), primary_key=True, default=new_id)
    playlist_id = Column(String(36), ForeignKey("playlists.id", ondelete="CASCADE"), nullable=False, index=True)
    song_id = Column(String(36), ForeignKey("songs.id"), nullable=False)
    position = Column(Integer, nullable=False)
    added_by = Column(String(64), nullable=True)
    added_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("playlist_id", "position", name="uq_playlist_entry_position"),
    )

    def __repr__(self) -> str:
        return f"<PlaylistEntry(id={self.id}, playlist={self.playlist_id}, position={self.position})>"
