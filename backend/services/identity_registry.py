# backend/services/identity_registry.py

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from core.config import settings
from core.errors import NotFoundError, ValidationError
from models.models import UserView

if TYPE_CHECKING:
    from services.connection_manager import Connection

logger = logging.getLogger(__name__)


@dataclass
class Identity:
    id: str
    name: str
    avatar: str = ""
    online: bool = True
    joined_at: float = field(default_factory=time.time)
    connection: Optional["Connection"] = field(default=None, repr=False)

    def view(self) -> UserView:
        return UserView(id=self.id, name=self.name, avatar=self.avatar, online=self.online)


# ============================================================================
# IDENTITY REGISTRY
# ============================================================================

class IdentityRegistry:
    """
    Ephemeral participants, keyed by a server-generated id.

    Entries are never deleted: on disconnect an identity is marked offline and
    loses its connection handle, so messages it already sent stay attributable.
    An offline identity is hidden from online listings and receives nothing.

    Attributes:
        identities: Maps identity_id -> Identity (insertion order = join order)
    """

    def __init__(self, max_name_length: int | None = None, max_avatar_length: int | None = None) -> None:
        self.identities: Dict[str, Identity] = {}
        self.max_name_length = settings.MAX_NAME_LENGTH if max_name_length is None else max_name_length
        self.max_avatar_length = settings.MAX_AVATAR_LENGTH if max_avatar_length is None else max_avatar_length

    def register(self, name: str, avatar: str = "") -> Identity:
        """
        Create a new identity with a fresh id.

        Raises:
            ValidationError: name is blank after trimming, or name/avatar too long
        """
        name = (name or "").strip()
        avatar = (avatar or "").strip()
        if not name:
            raise ValidationError("name is required")
        if len(name) > self.max_name_length:
            raise ValidationError(f"name must be at most {self.max_name_length} characters")
        if len(avatar) > self.max_avatar_length:
            raise ValidationError(f"avatar must be at most {self.max_avatar_length} characters")

        identity = Identity(id=uuid.uuid4().hex, name=name, avatar=avatar)
        self.identities[identity.id] = identity
        logger.info("✓ Registered %s (%s). Online: %d", identity.name, identity.id, self.online_count)
        return identity

    def bind(self, identity_id: str, connection: "Connection") -> Identity:
        identity = self.identities.get(identity_id)
        if identity is None:
            raise NotFoundError("identity not found")
        identity.connection = connection
        identity.online = True
        return identity

    def lookup(self, identity_id: str) -> Optional[Identity]:
        return self.identities.get(identity_id)

    def unregister(self, identity_id: str) -> Optional[Identity]:
        """
        Mark an identity offline and drop its connection handle.

        Returns the entry so the caller can announce the departure, or None when
        the identity is unknown or already offline (repeated calls are no-ops).
        """
        identity = self.identities.get(identity_id)
        if identity is None or not identity.online:
            return None
        identity.online = False
        identity.connection = None
        logger.info("✗ %s (%s) went offline. Online: %d", identity.name, identity.id, self.online_count)
        return identity

    def list_online(self) -> List[UserView]:
        return [i.view() for i in self.identities.values() if i.online]

    def list_others(self, excluding_id: str) -> List[UserView]:
        return [i.view() for i in self.identities.values() if i.online and i.id != excluding_id]

    def live_connections(self, excluding_id: str | None = None) -> List["Connection"]:
        """Snapshot of the live connection handles, for fan-out."""
        return [
            i.connection
            for i in list(self.identities.values())
            if i.online and i.connection is not None and i.id != excluding_id
        ]

    @property
    def online_count(self) -> int:
        return sum(1 for i in self.identities.values() if i.online)
