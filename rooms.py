# rooms.py
import threading
from typing import Dict, Set


class RoomRegistry:
    """
    In-memory room id -> connected session ids.

    Rooms are created on first join and dropped as soon as their last member
    leaves. One lock guards the whole map, so join/leave/lookups on any room
    are mutually exclusive. State lives only as long as the process.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def join(self, room_id: str, sid: str) -> None:
        with self._lock:
            self._rooms.setdefault(room_id, set()).add(sid)

    def leave(self, room_id: str, sid: str) -> None:
        with self._lock:
            members = self._rooms.get(room_id)
            if members is None:
                return
            members.discard(sid)
            if not members:
                del self._rooms[room_id]

    def members(self, room_id: str) -> Set[str]:
        with self._lock:
            return set(self._rooms.get(room_id, ()))

    def members_except(self, room_id: str, sid: str) -> Set[str]:
        with self._lock:
            return set(self._rooms.get(room_id, ())) - {sid}

    def rooms_of(self, sid: str) -> Set[str]:
        with self._lock:
            return {room_id for room_id, members in self._rooms.items() if sid in members}

    def __contains__(self, room_id: str) -> bool:
        with self._lock:
            return room_id in self._rooms

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)
