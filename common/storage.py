"""
In-memory repository for users, locations, status updates, family
connections and check-ins.

``MemStorage`` is an ordinary object: the API receives it through dependency
injection, and tests build a fresh one per test. Rows are create-only and
grouped per owner in append-only lists. "Latest" and "current" reads are
resolved by timestamp, never by insertion order.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from common.constants import DEFAULT_CHECKIN_LIMIT, DEFAULT_MOOD, DEFAULT_ROLE, DEFAULT_STATUS
from common.errors import DataIntegrityError, DuplicateUsernameError, UnknownUserError
from models.family_models import (
    CheckIn,
    FamilyCheckIn,
    FamilyConnection,
    FamilyMember,
    InsertCheckIn,
    InsertFamilyConnection,
    InsertLocation,
    InsertStatusUpdate,
    InsertUser,
    Location,
    StatusUpdate,
    User,
)

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(rows):
    return sorted(rows, key=lambda row: row.timestamp, reverse=True)


class MemStorage:
    """Owns every entity collection and its id counter."""

    def __init__(self):
        self._lock = threading.Lock()

        self.users: Dict[int, User] = {}
        self.locations: Dict[int, List[Location]] = {}
        self.status_updates: Dict[int, List[StatusUpdate]] = {}
        self.family_connections: Dict[int, List[FamilyConnection]] = {}
        self.check_ins: Dict[int, List[CheckIn]] = {}
        self.audit_logs: List[dict] = []

        self._next_ids = {
            "user": 1,
            "location": 1,
            "status": 1,
            "connection": 1,
            "check_in": 1,
        }

    def _next_id(self, kind: str) -> int:
        value = self._next_ids[kind]
        self._next_ids[kind] = value + 1
        return value

    def _require_user(self, user_id: int) -> None:
        if user_id not in self.users:
            raise UnknownUserError(user_id)

    # ========= Users =========

    def get_user(self, user_id: int) -> Optional[User]:
        return self.users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        for user in self.users.values():
            if user.username == username:
                return user
        return None

    def create_user(self, data: InsertUser) -> User:
        with self._lock:
            if self.get_user_by_username(data.username) is not None:
                raise DuplicateUsernameError(data.username)
            user = User(
                id=self._next_id("user"),
                username=data.username,
                password=data.password,
                name=data.name,
                role=data.role or DEFAULT_ROLE,
                created_at=utcnow(),
            )
            self.users[user.id] = user
        return user

    # ========= Locations =========

    def get_location(self, user_id: int) -> Optional[Location]:
        rows = self.locations.get(user_id)
        if not rows:
            return None
        return max(rows, key=lambda row: row.timestamp)

    def create_location(self, data: InsertLocation) -> Location:
        with self._lock:
            self._require_user(data.user_id)
            location = Location(
                id=self._next_id("location"),
                user_id=data.user_id,
                latitude=data.latitude,
                longitude=data.longitude,
                address=data.address or None,
                timestamp=data.timestamp or utcnow(),
            )
            self.locations.setdefault(data.user_id, []).append(location)
        return location

    def get_locations_in_time_range(
        self, user_id: int, start: datetime, end: datetime
    ) -> List[Location]:
        """Locations with ``start <= timestamp <= end``, newest first."""
        rows = self.locations.get(user_id, [])
        return _newest_first(row for row in rows if start <= row.timestamp <= end)

    # ========= Status updates =========

    def get_latest_status(self, user_id: int) -> Optional[StatusUpdate]:
        rows = self.status_updates.get(user_id)
        if not rows:
            return None
        return max(rows, key=lambda row: row.timestamp)

    def create_status_update(self, data: InsertStatusUpdate) -> StatusUpdate:
        with self._lock:
            self._require_user(data.user_id)
            update = StatusUpdate(
                id=self._next_id("status"),
                user_id=data.user_id,
                status=data.status or DEFAULT_STATUS,
                battery_level=data.battery_level,
                timestamp=data.timestamp or utcnow(),
            )
            self.status_updates.setdefault(data.user_id, []).append(update)
        return update

    # ========= Family =========

    def add_family_connection(self, data: InsertFamilyConnection) -> FamilyConnection:
        with self._lock:
            self._require_user(data.user_id)
            self._require_user(data.family_member_id)
            connection = FamilyConnection(
                id=self._next_id("connection"),
                user_id=data.user_id,
                family_member_id=data.family_member_id,
                relationship=data.relationship,
            )
            self.family_connections.setdefault(data.user_id, []).append(connection)
        return connection

    def get_family_members(self, user_id: int) -> List[FamilyMember]:
        """
        Join each outgoing connection with its target user and that user's
        latest status.

        Raises:
            DataIntegrityError: a connection points at a user that does not exist
        """
        members = []
        for connection in self.family_connections.get(user_id, []):
            member = self.get_user(connection.family_member_id)
            if member is None:
                raise DataIntegrityError(
                    f"Family member with ID {connection.family_member_id} not found"
                )
            latest = self.get_latest_status(member.id)
            members.append(
                FamilyMember(
                    **member.to_public().model_dump(),
                    relationship=connection.relationship,
                    last_seen=latest.timestamp if latest else utcnow(),
                )
            )
        return members

    def is_family_member(self, user_id: int, member_id: int) -> bool:
        return any(member.id == member_id for member in self.get_family_members(user_id))

    # ========= Check-ins =========

    def create_check_in(self, data: InsertCheckIn) -> CheckIn:
        with self._lock:
            self._require_user(data.user_id)
            check_in = CheckIn(
                id=self._next_id("check_in"),
                user_id=data.user_id,
                message=data.message or None,
                mood=data.mood or DEFAULT_MOOD,
                timestamp=data.timestamp or utcnow(),
            )
            self.check_ins.setdefault(data.user_id, []).append(check_in)
        return check_in

    def get_recent_check_ins(
        self, user_id: int, limit: int = DEFAULT_CHECKIN_LIMIT
    ) -> List[CheckIn]:
        return _newest_first(self.check_ins.get(user_id, []))[: max(limit, 0)]

    def get_family_check_ins(self, user_id: int) -> List[FamilyCheckIn]:
        """Latest check-in of every family member that has one, newest first."""
        entries = []
        for member in self.get_family_members(user_id):
            recent = self.get_recent_check_ins(member.id, 1)
            if not recent:
                continue
            entries.append(
                FamilyCheckIn(
                    member_id=member.id,
                    member_name=member.name,
                    relationship=member.relationship,
                    checkin=recent[0],
                    last_seen=member.last_seen,
                )
            )
        entries.sort(key=lambda entry: entry.checkin.timestamp, reverse=True)
        return entries

    # ========= Sample data =========

    def seed_sample_data(self) -> None:
        """Load the demo family: martha with her son, daughter and caregiver."""
        martha = self.create_user(
            InsertUser(username="martha", password="SafetyFirst2025!", name="Martha Johnson")
        )
        john = self.create_user(
            InsertUser(username="john", password="JohnGPS2025#", name="John Smith")
        )
        sarah = self.create_user(
            InsertUser(username="sarah", password="Sarah$Family2025", name="Sarah Johnson")
        )
        robert = self.create_user(
            InsertUser(
                username="robert",
                password="Care@Robert2025",
                name="Robert Wilson",
                role="caregiver",
            )
        )

        for member, relationship in ((john, "Son"), (sarah, "Daughter"), (robert, "Caregiver")):
            self.add_family_connection(
                InsertFamilyConnection(
                    user_id=martha.id,
                    family_member_id=member.id,
                    relationship=relationship,
                )
            )

        self.create_status_update(
            InsertStatusUpdate(user_id=martha.id, status="ok", battery_level=85)
        )
        self.create_location(
            InsertLocation(
                user_id=martha.id,
                latitude="40.7128",
                longitude="-74.0060",
                address="123 Main Street, Anytown",
            )
        )
        logger.info("Seeded sample data: %d users", len(self.users))
