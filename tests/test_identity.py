import pytest
from jose import jwt

import config
from errors import DuplicateEmail, Forbidden, InvalidCredentials, NotFound, SelfRoleChange, ValidationError
from identity import IdentityService


def test_registry_is_seeded_with_default_accounts(core):
    users = core.identity.list_users()
    assert [(u.id, u.email, u.role) for u in users] == [
        (1, "super@example.com", "superuser"),
        (2, "admin@example.com", "admin"),
        (3, "user@example.com", "user"),
    ]


def test_register_appends_with_unique_ids(core):
    ann = core.identity.register("Ann", "ann@example.com", "secret1")
    bob = core.identity.register("Bob", "bob@example.com", "secret2")

    assert (ann.id, bob.id) == (4, 5)
    assert ann.role == "user"
    assert len(core.identity.list_users()) == 5
    assert core.identity.current_session() is None


def test_register_duplicate_email(core):
    core.identity.register("Ann", "ann@example.com", "secret1")
    with pytest.raises(DuplicateEmail):
        core.identity.register("Someone Else", "ann@example.com", "other-password")
    assert len(core.identity.list_users()) == 4


def test_email_match_is_case_sensitive(core):
    core.identity.register("Ann", "ann@example.com", "secret1")
    other = core.identity.register("Ann Upper", "Ann@example.com", "secret1")
    assert other.id == 5


def test_register_on_empty_registry_starts_at_one(store):
    store.set("users", [])
    user = IdentityService(store).register("First", "first@example.com", "secret1")
    assert user.id == 1


def test_login_sets_session_and_token(core, store):
    user = core.identity.login("user@example.com", "password123")

    assert core.identity.current_session().id == user.id
    assert store.get("is_authenticated") is True
    claims = jwt.decode(store.get("auth_token"), config.SECRET_KEY, algorithms=[config.ALGORITHM])
    assert claims["sub"] == str(user.id)
    assert claims["role"] == "user"


@pytest.mark.parametrize("email,password", [
    ("user@example.com", "wrong"),
    ("nobody@example.com", "password123"),
])
def test_login_invalid_credentials(core, store, email, password):
    with pytest.raises(InvalidCredentials):
        core.identity.login(email, password)
    assert core.identity.current_session() is None
    assert not store.has("is_authenticated")


def test_logout_is_idempotent(core, store, admin):
    core.identity.logout()
    core.identity.logout()

    assert core.identity.current_session() is None
    assert not store.has("is_authenticated")
    assert not store.has("auth_token")


def test_has_role(core, admin):
    assert core.identity.has_role("admin")
    assert not core.identity.has_role("superuser")
    assert core.identity.has_role({"admin", "superuser"})
    assert core.identity.is_admin()
    assert not core.identity.is_superuser()


def test_has_role_without_session(core):
    assert not core.identity.has_role("user")
    assert not core.identity.has_role(["user", "admin", "superuser"])


def test_superuser_changes_role(core, superuser):
    updated = core.identity.change_role(3, "admin")

    assert updated.role == "admin"
    assert core.identity.get_user(3).role == "admin"


def test_superuser_cannot_change_own_role(core, superuser):
    with pytest.raises(SelfRoleChange):
        core.identity.change_role(superuser.id, "admin")
    assert core.identity.get_user(superuser.id).role == "superuser"


def test_admin_cannot_change_roles(core, admin):
    with pytest.raises(Forbidden):
        core.identity.change_role(admin.id, "superuser")
    with pytest.raises(Forbidden):
        core.identity.change_role(3, "admin")


def test_change_role_without_session(core):
    with pytest.raises(Forbidden):
        core.identity.change_role(3, "admin")


def test_change_role_unknown_user(core, superuser):
    with pytest.raises(NotFound):
        core.identity.change_role(42, "admin")


def test_change_role_rejects_unknown_role(core, superuser):
    with pytest.raises(ValidationError):
        core.identity.change_role(3, "owner")


def test_change_password_updates_registry_and_session(core):
    user = core.identity.login("user@example.com", "password123")
    old_hash = core.identity.current_session().password_hash

    core.identity.change_password(user.id, "password123", "new-password")

    assert core.identity.current_session().password_hash != old_hash
    core.identity.logout()
    with pytest.raises(InvalidCredentials):
        core.identity.login("user@example.com", "password123")
    assert core.identity.login("user@example.com", "new-password").id == user.id


def test_change_password_leaves_other_session_alone(core, admin):
    core.identity.change_password(3, "password123", "new-password")
    assert core.identity.current_session().id == admin.id


def test_change_password_wrong_old_password(core):
    with pytest.raises(InvalidCredentials):
        core.identity.change_password(3, "nope", "new-password")


def test_change_password_unknown_user(core):
    with pytest.raises(NotFound):
        core.identity.change_password(99, "password123", "new-password")
