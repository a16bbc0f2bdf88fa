"""
Identity and session management.

The user registry lives under the ``users`` key. The signed-in user is held
by a :class:`SessionContext`, which mirrors it into ``current_user`` /
``is_authenticated`` and keeps the bearer token used for catalog writes in
``auth_token``.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Union

from jose import jwt
from passlib.context import CryptContext

import config
from database import KeyValueStore, get_documents, save_documents
from errors import DuplicateEmail, Forbidden, InvalidCredentials, NotFound, SelfRoleChange, ValidationError
from schemas import ROLES, Role, User

logger = logging.getLogger(__name__)

USERS_KEY = "users"
CURRENT_USER_KEY = "current_user"
IS_AUTHENTICATED_KEY = "is_authenticated"
AUTH_TOKEN_KEY = "auth_token"

ADMIN_ROLES = frozenset({"admin", "superuser"})

DEFAULT_PASSWORD = "password123"
DEFAULT_USERS = [
    ("Super Admin", "super@example.com", "superuser"),
    ("Admin User", "admin@example.com", "admin"),
    ("Regular User", "user@example.com", "user"),
]

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password):
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


class SessionContext:
    """The process-wide pointer to the signed-in user."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @property
    def user(self) -> Optional[User]:
        data = self.store.get(CURRENT_USER_KEY)
        return User.model_validate(data) if data else None

    @property
    def token(self) -> Optional[str]:
        return self.store.get(AUTH_TOKEN_KEY)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.store.get(IS_AUTHENTICATED_KEY, False))

    def begin(self, user: User, token: str) -> None:
        self.store.set(CURRENT_USER_KEY, user.model_dump(mode="json"))
        self.store.set(IS_AUTHENTICATED_KEY, True)
        self.store.set(AUTH_TOKEN_KEY, token)

    def refresh(self, user: User) -> None:
        self.store.set(CURRENT_USER_KEY, user.model_dump(mode="json"))

    def end(self) -> None:
        for key in (CURRENT_USER_KEY, IS_AUTHENTICATED_KEY, AUTH_TOKEN_KEY):
            self.store.remove(key)


class IdentityService:
    def __init__(self, store: KeyValueStore, session: Optional[SessionContext] = None):
        self.store = store
        self.session = session or SessionContext(store)

    # Registry

    def _load_users(self) -> List[User]:
        if not self.store.has(USERS_KEY):
            self._seed_users()
        return [User.model_validate(doc) for doc in get_documents(self.store, USERS_KEY)]

    def _save_users(self, users: List[User]) -> None:
        save_documents(self.store, USERS_KEY, [u.model_dump(mode="json") for u in users])

    def _seed_users(self) -> None:
        now = datetime.now(timezone.utc)
        users = [
            User(id=i, name=name, email=email, password_hash=get_password_hash(DEFAULT_PASSWORD), role=role, created_at=now)
            for i, (name, email, role) in enumerate(DEFAULT_USERS, start=1)
        ]
        self._save_users(users)
        logger.info(f"Seeded user registry with {len(users)} default accounts")

    def list_users(self) -> List[User]:
        return self._load_users()

    def get_user(self, user_id: int) -> Optional[User]:
        return next((u for u in self._load_users() if u.id == user_id), None)

    def register(self, name: str, email: str, password: str) -> User:
        with self.store.locked():
            users = self._load_users()
            if any(u.email == email for u in users):
                raise DuplicateEmail()
            user = User(
                id=max((u.id for u in users), default=0) + 1,
                name=name,
                email=email,
                password_hash=get_password_hash(password),
                role="user",
                created_at=datetime.now(timezone.utc),
            )
            users.append(user)
            self._save_users(users)
        logger.info(f"New user registered with ID: {user.id} and email: {email}")
        return user

    # Session

    def login(self, email: str, password: str) -> User:
        user = next((u for u in self._load_users() if u.email == email), None)
        if not user or not verify_password(password, user.password_hash):
            logger.warning(f"Auth failed for email {email}")
            raise InvalidCredentials()
        token = create_access_token({"sub": str(user.id), "role": user.role})
        self.session.begin(user, token)
        logger.info(f"User {user.id} signed in")
        return user

    def current_session(self) -> Optional[User]:
        return self.session.user

    def logout(self) -> None:
        self.session.end()

    def has_role(self, required: Union[Role, Iterable[Role]]) -> bool:
        current = self.session.user
        if current is None:
            return False
        if isinstance(required, str):
            return current.role == required
        return current.role in set(required)

    def is_admin(self) -> bool:
        return self.has_role(ADMIN_ROLES)

    def is_superuser(self) -> bool:
        return self.has_role("superuser")

    # Mutations

    def change_role(self, target_user_id: int, new_role: Role) -> User:
        current = self.session.user
        if current is None or current.role != "superuser":
            logger.warning(f"Permission denied: role change for user {target_user_id}")
            raise Forbidden()
        if target_user_id == current.id:
            raise SelfRoleChange()
        if new_role not in ROLES:
            raise ValidationError("role", f"Unknown role: {new_role}")
        with self.store.locked():
            users = self._load_users()
            target = next((u for u in users if u.id == target_user_id), None)
            if target is None:
                raise NotFound("User not found")
            target.role = new_role
            self._save_users(users)
        logger.info(f"Superuser {current.id} changed role for user {target_user_id} to {new_role}")
        return target

    def change_password(self, user_id: int, old_password: str, new_password: str) -> None:
        with self.store.locked():
            users = self._load_users()
            user = next((u for u in users if u.id == user_id), None)
            if user is None:
                raise NotFound("User not found")
            if not verify_password(old_password, user.password_hash):
                raise InvalidCredentials("Current password is incorrect")
            user.password_hash = get_password_hash(new_password)
            self._save_users(users)
        current = self.session.user
        if current is not None and current.id == user_id:
            self.session.refresh(user)
        logger.info(f"Password changed for user {user_id}")
