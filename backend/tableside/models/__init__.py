from tableside.models.restaurant import Restaurant
from tableside.models.song import Song
from tableside.models.review import Review
from tableside.models.request import SongRequest, RequestStatus, ACTIVE_STATUSES, TERMINAL_STATUSES
from tableside.models.playlist import Playlist, PlaylistEntry
from tableside.models.partition import OrdinalPartition

__all__ = [
    "Restaurant", "Song", "Review",
    "SongRequest", "RequestStatus", "ACTIVE_STATUSES", "TERMINAL_STATUSES",
    "Playlist", "PlaylistEntry",
    "OrdinalPartition",
]
