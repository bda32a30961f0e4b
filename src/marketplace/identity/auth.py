"""Authenticated actor context and the identity collaborator that produces it.

The engine never inspects raw credentials. An ``IdentityResolver`` turns a
credential into an ``AuthContext`` once, at the edge, and that value is passed
into every engine call.
"""

import threading
from abc import ABC, abstractmethod
from enum import Enum

from protean.fields import String

from marketplace.domain import marketplace
from marketplace.errors import Unauthenticated


class Role(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


class VerificationStatus(Enum):
    UNVERIFIED = "unverified"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


@marketplace.value_object
class AuthContext:
    """Who is calling: user id, role, and KYC verification status.

    Only sellers whose verification has completed are trusted to move orders
    through fulfilment.
    """

    uid = String(required=True, max_length=128)
    role = String(required=True, choices=Role)
    verification_status = String(
        choices=VerificationStatus,
        default=VerificationStatus.UNVERIFIED.value,
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    @property
    def is_buyer(self) -> bool:
        return self.role == Role.BUYER.value

    @property
    def is_seller(self) -> bool:
        return self.role == Role.SELLER.value

    @property
    def is_verified_seller(self) -> bool:
        return self.is_seller and self.verification_status == VerificationStatus.VERIFIED.value


class IdentityResolver(ABC):
    @abstractmethod
    def resolve(self, credential: str | None) -> AuthContext:
        """Return the actor behind ``credential`` or raise ``Unauthenticated``."""


class InMemoryIdentityResolver(IdentityResolver):
    """Token registry standing in for the identity provider."""

    def __init__(self):
        self._lock = threading.Lock()
        self._actors: dict[str, AuthContext] = {}

    def register(self, credential: str, actor: AuthContext) -> None:
        with self._lock:
            self._actors[credential] = actor

    def revoke(self, credential: str) -> None:
        with self._lock:
            self._actors.pop(credential, None)

    def resolve(self, credential: str | None) -> AuthContext:
        if not credential:
            raise Unauthenticated("Missing credential")

        with self._lock:
            actor = self._actors.get(credential)
        if actor is None:
            raise Unauthenticated("Unknown or expired credential")
        return actor


def actor_fields(actor: AuthContext | None) -> dict:
    """Flatten ``actor`` into the actor fields carried by commands."""
    if actor is None:
        return {}
    return {
        "actor_id": actor.uid,
        "actor_role": actor.role,
        "actor_verification_status": actor.verification_status,
    }


def actor_from(command) -> AuthContext | None:
    """Rebuild the calling actor from a command, or None when it carries none."""
    if not command.actor_id:
        return None
    return AuthContext(
        uid=command.actor_id,
        role=command.actor_role,
        verification_status=command.actor_verification_status or VerificationStatus.UNVERIFIED.value,
    )
