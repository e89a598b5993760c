"""Initial schema: restaurants, songs, reviews, requests, playlists and ordinal partitions.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_REQUEST = sa.text("status IN ('pending', 'playing')")


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "restaurants",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("max_requests_per_user", sa.Integer(), nullable=False, server_default=sa.text("2")),
        sa.Column("queue_limit", sa.Integer(), nullable=False, server_default=sa.text("50")),
        sa.Column("rating", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_reviews", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("max_requests_per_user > 0", name="check_max_requests_per_user_positive"),
        sa.CheckConstraint("queue_limit > 0", name="check_queue_limit_positive"),
    )
    op.create_index("ix_restaurants_slug", "restaurants", ["slug"], unique=True)

    op.create_table(
        "songs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("artist", sa.String(255), nullable=False),
        sa.Column("genre", sa.String(100), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("play_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("duration_seconds >= 0", name="check_song_duration_non_negative"),
        sa.CheckConstraint("play_count >= 0", name="check_song_play_count_non_negative"),
    )
    op.create_index("ix_songs_restaurant_id", "songs", ["restaurant_id"])

    op.create_table(
        "restaurant_reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="check_review_rating_range"),
    )
    op.create_index("ix_restaurant_reviews_restaurant_id", "restaurant_reviews", ["restaurant_id"])

    op.create_table(
        "requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("song_id", sa.String(36), sa.ForeignKey("songs.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("queue_position", sa.Integer(), nullable=False),
        sa.Column("user_table", sa.String(50), nullable=True),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("started_playing_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'playing', 'completed', 'cancelled')",
            name="request_status",
        ),
    )
    op.create_index("ix_requests_restaurant_id", "requests", ["restaurant_id"])
    op.create_index("ix_requests_user_id", "requests", ["user_id"])
    op.create_index("ix_requests_song_id", "requests", ["song_id"])
    # Safety net for queue density: no two active requests share a slot
    op.create_index(
        "uq_requests_active_position",
        "requests",
        ["restaurant_id", "queue_position"],
        unique=True,
        postgresql_where=ACTIVE_REQUEST,
    )
    # Daily quota lookups: WHERE user_id = ? AND requested_at >= ?
    op.create_index("ix_requests_user_requested_at", "requests", ["user_id", "requested_at"])
    op.create_index("ix_requests_restaurant_status", "requests", ["restaurant_id", "status"])

    op.create_table(
        "playlists",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_collaborative", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("song_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_duration", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_index("ix_playlists_owner_id", "playlists", ["owner_id"])

    op.create_table(
        "playlist_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "playlist_id",
            sa.String(36),
            sa.ForeignKey("playlists.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("song_id", sa.String(36), sa.ForeignKey("songs.id"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("added_by", sa.String(64), nullable=True),
        sa.Column("added_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("playlist_id", "position", name="uq_playlist_entry_position"),
    )
    op.create_index("ix_playlist_entries_playlist_id", "playlist_entries", ["playlist_id"])

    # One head row per ordered partition; locked FOR UPDATE by every reorder
    op.create_table(
        "ordinal_partitions",
        sa.Column("collection", sa.String(32), primary_key=True),
        sa.Column("partition_id", sa.String(36), primary_key=True),
        sa.Column("size", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("size >= 0", name="check_partition_size_non_negative"),
    )


def downgrade() -> None:
    op.drop_table("ordinal_partitions")
    op.drop_table("playlist_entries")
    op.drop_table("playlists")
    op.drop_table("requests")
    op.drop_table("restaurant_reviews")
    op.drop_table("songs")
    op.drop_table("restaurants")
