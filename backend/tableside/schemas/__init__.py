from tableside.schemas.request import (
    RequestCreate, RequestStatusUpdate, RequestResponse,
    QueueEntry, QueueResponse, UserRequestsResponse, RequestStatsResponse,
)
from tableside.schemas.playlist import (
    PlaylistCreate, PlaylistUpdate, PlaylistResponse, PlaylistDetailResponse,
    PlaylistEntryCreate, PlaylistEntryMove, PlaylistEntryResponse,
)

__all__ = [
    "RequestCreate", "RequestStatusUpdate", "RequestResponse",
    "QueueEntry", "QueueResponse", "UserRequestsResponse", "RequestStatsResponse",
    "PlaylistCreate", "PlaylistUpdate", "PlaylistResponse", "PlaylistDetailResponse",
    "PlaylistEntryCreate", "PlaylistEntryMove", "PlaylistEntryResponse",
]
