"""Community and user directories."""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator

from werkzeug.security import check_password_hash, generate_password_hash

from .errors import CommunityNotFoundError, UserNotFoundError, ValidationError
from .locking import KeyedLocks
from .models import Community, Role, User, _generate_id

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260_000


def hash_password(password: str) -> str:
    """Salted PBKDF2-SHA256 hash of a password."""
    if not password:
        raise ValidationError("must not be empty", field="password")
    return generate_password_hash(password, method=f"pbkdf2:sha256:{PBKDF2_ITERATIONS}")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        # unsupported hash method
        return False


class CommunityDirectory:
    """Manages delivery zones."""

    def __init__(self) -> None:
        self._communities: dict[str, Community] = {}
        self._lock = threading.Lock()
        self._locks = KeyedLocks("communities")

    @contextmanager
    def lock(self, community_ids: Iterable[str | None]) -> Iterator[None]:
        """
        Hold exclusive locks on communities while attaching to or removing them.

        None entries are ignored.
        """
        with self._locks.hold(c for c in community_ids if c is not None):
            yield

    def list_communities(self) -> list[Community]:
        with self._lock:
            return [c.copy() for c in self._communities.values()]

    def get_community(self, community_id: str) -> Community:
        """
        Get a community by ID.

        Raises:
            CommunityNotFoundError: If the community doesn't exist.
        """
        with self._lock:
            community = self._communities.get(community_id)
        if community is None:
            raise CommunityNotFoundError(community_id)
        return community.copy()

    def __contains__(self, community_id: object) -> bool:
        with self._lock:
            return community_id in self._communities

    def add_community(self, community: Community) -> Community:
        """
        Add a community.

        Raises:
            ValidationError: If it is malformed or the ID is taken.
        """
        community.validate()
        with self._lock:
            if community.id in self._communities:
                raise ValidationError(f"community {community.id} already exists", field="id")
            self._communities[community.id] = community.copy()
        logger.info("community %s (%s) added", community.name, community.id)
        return community.copy()

    def update_community(self, community_id: str, **changes: Any) -> Community:
        """
        Change a community's name or address.

        Raises:
            CommunityNotFoundError: If the community doesn't exist.
            ValidationError: If a field is unknown or the result is malformed.
        """
        unknown = set(changes) - {"name", "address"}
        if unknown:
            raise ValidationError(f"cannot edit {', '.join(sorted(unknown))}", field="community")
        with self._lock:
            current = self._communities.get(community_id)
            if current is None:
                raise CommunityNotFoundError(community_id)
            updated = current.copy()
            for name, value in changes.items():
                setattr(updated, name, value)
            updated.validate()
            self._communities[community_id] = updated
        logger.info("community %s updated", community_id)
        return updated.copy()

    def remove_community(self, community_id: str) -> Community:
        """
        Remove a community. Reference checks are done by the caller.

        Raises:
            CommunityNotFoundError: If the community doesn't exist.
        """
        with self._lock:
            community = self._communities.pop(community_id, None)
        if community is None:
            raise CommunityNotFoundError(community_id)
        logger.info("community %s (%s) removed", community.name, community_id)
        return community


class UserDirectory:
    """Manages accounts and checks credentials."""

    def __init__(self, communities: CommunityDirectory):
        self.communities = communities
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()

    def list_users(self) -> list[User]:
        with self._lock:
            return [u.copy() for u in self._users.values()]

    def users_by_role(self, role: "str | Role") -> list[User]:
        try:
            wanted = Role(role)
        except ValueError:
            raise ValidationError(f"unknown role {role!r}", field="role") from None
        return [u for u in self.list_users() if u.role == wanted]

    def users_in_community(self, community_id: str) -> list[User]:
        return [u for u in self.list_users() if u.community_id == community_id]

    def get_user(self, user_id: str) -> User:
        """
        Get a user by ID.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        with self._lock:
            user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user.copy()

    def _check_community(self, user: User) -> None:
        if user.community_id is not None and user.community_id not in self.communities:
            raise CommunityNotFoundError(user.community_id)

    def add_user(
        self,
        username: str,
        password: str,
        role: "str | Role",
        name: str,
        phone: str | None = None,
        address: str | None = None,
        community_id: str | None = None,
        user_id: str | None = None,
    ) -> User:
        """
        Register a new account.

        Raises:
            ValidationError: If a field is malformed or the username is taken.
            CommunityNotFoundError: If community_id doesn't exist.
        """
        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f"unknown role {role!r}", field="role") from None
        user = User(
            id=user_id or _generate_id(),
            username=username,
            password_hash=hash_password(password),
            role=role,
            name=name,
            phone=phone,
            address=address,
            community_id=community_id,
        )
        user.validate()
        with self.communities.lock([user.community_id]):
            self._check_community(user)
            with self._lock:
                if user.id in self._users:
                    raise ValidationError(f"user {user.id} already exists", field="id")
                if any(u.username == username for u in self._users.values()):
                    raise ValidationError(f"username {username!r} is taken", field="username")
                self._users[user.id] = user
        logger.info("user %s (%s, %s) added", username, user.id, role.value)
        return user.copy()

    def update_user(self, user_id: str, **changes: Any) -> User:
        """
        Edit an account. A 'password' change is re-hashed.

        Raises:
            UserNotFoundError: If the user doesn't exist.
            ValidationError: If a field is unknown or the result is malformed.
            CommunityNotFoundError: If a new community_id doesn't exist.
        """
        allowed = {"username", "password", "role", "name", "phone", "address", "community_id"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValidationError(f"cannot edit {', '.join(sorted(unknown))}", field="user")
        if "password" in changes:
            changes["password_hash"] = hash_password(changes.pop("password"))
        if "role" in changes:
            try:
                changes["role"] = Role(changes["role"])
            except ValueError:
                raise ValidationError(f"unknown role {changes['role']!r}", field="role") from None

        current_community = self.get_user(user_id).community_id
        with self.communities.lock([current_community, changes.get("community_id")]):
            with self._lock:
                current = self._users.get(user_id)
                if current is None:
                    raise UserNotFoundError(user_id)
                updated = current.copy()
                for name, value in changes.items():
                    setattr(updated, name, value)
                updated.validate()
                self._check_community(updated)
                if any(
                    u.username == updated.username and u.id != user_id
                    for u in self._users.values()
                ):
                    raise ValidationError(f"username {updated.username!r} is taken", field="username")
                self._users[user_id] = updated
        logger.info("user %s updated", user_id)
        return updated.copy()

    def remove_user(self, user_id: str) -> User:
        """
        Remove an account. Orders keep their customer snapshot.

        Raises:
            UserNotFoundError: If the user doesn't exist.
        """
        with self._lock:
            user = self._users.pop(user_id, None)
        if user is None:
            raise UserNotFoundError(user_id)
        logger.info("user %s (%s) removed", user.username, user_id)
        return user

    def authenticate(self, username: str, password: str) -> User | None:
        """Return the user matching the credentials, or None."""
        with self._lock:
            user = next((u for u in self._users.values() if u.username == username), None)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning("failed login for %r", username)
            return None
        return user.copy()
