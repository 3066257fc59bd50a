import asyncio

import pytest

from uema_data.schemas.models import SectorType, UserRole
from uema_data.services.auth import AuthService
from uema_data.utils.cache import AUTHENTICATED_KEY, CHATS_KEY, USER_KEY, LocalCacheStore
from uema_data.utils.remote import RemoteClient
from uema_data.utils.security import hash_password


def _service(settings, postgrest=None):
    transport = postgrest.transport() if postgrest is not None else None
    return AuthService(LocalCacheStore(settings.cache_dir), RemoteClient(settings, transport=transport))


def _seed_user(postgrest, password="segredo123"):
    postgrest.seed(
        "users",
        {
            "id": "u2",
            "name": "Maria Santos",
            "email": "gestor@uema.br",
            "role": "manager",
            "sector": "PROPLAD",
            "password_hash": hash_password(password),
        },
    )


def test_login_caches_user_and_flag(remote_settings, postgrest):
    _seed_user(postgrest)
    auth = _service(remote_settings, postgrest)

    async def run():
        user = await auth.login(" Gestor@UEMA.br ", "segredo123")
        return user, await auth.get_user(), await auth.is_authenticated()

    user, cached, authenticated = asyncio.run(run())

    assert user.id == "u2"
    assert user.role is UserRole.MANAGER
    assert user.sector is SectorType.PROPLAD
    assert cached == user
    assert authenticated
    assert postgrest.requests[0].url.params["email"] == "eq.gestor@uema.br"


def test_bad_password_leaves_cache_untouched(remote_settings, postgrest):
    _seed_user(postgrest)
    auth = _service(remote_settings, postgrest)

    async def run():
        user = await auth.login("gestor@uema.br", "errada123")
        return user, await auth.cache.get(USER_KEY), await auth.cache.get(AUTHENTICATED_KEY)

    assert asyncio.run(run()) == (None, None, None)


def test_stored_plaintext_password_is_not_accepted(remote_settings, postgrest):
    postgrest.seed("users", {"id": "u9", "email": "legado@uema.br", "password_hash": "segredo123"})
    auth = _service(remote_settings, postgrest)

    assert asyncio.run(auth.login("legado@uema.br", "segredo123")) is None


def test_login_failures_are_absent_results(remote_settings, offline_settings, postgrest):
    postgrest.failing_tables.add("users")
    auth = _service(remote_settings, postgrest)

    assert asyncio.run(auth.login("gestor@uema.br", "segredo123")) is None
    assert asyncio.run(auth.login("", "segredo123")) is None
    assert asyncio.run(_service(offline_settings).login("gestor@uema.br", "segredo123")) is None


def test_logout_clears_session_keys(remote_settings, postgrest):
    _seed_user(postgrest)
    auth = _service(remote_settings, postgrest)

    async def run():
        await auth.login("gestor@uema.br", "segredo123")
        await auth.cache.set(CHATS_KEY, '[{"id": "c1"}]')
        await auth.logout()
        return await auth.get_user(), await auth.is_authenticated(), await auth.cache.get(CHATS_KEY)

    assert asyncio.run(run()) == (None, False, None)


def test_register_then_login(remote_settings, postgrest):
    auth = _service(remote_settings, postgrest)

    async def run():
        created = await auth.register("Ana Costa", "Ana@uema.br", "segredo123", role=UserRole.VIEWER)
        logged_in = await auth.login("ana@uema.br", "segredo123")
        return created, logged_in

    created, logged_in = asyncio.run(run())

    assert created.email == "ana@uema.br"
    stored = postgrest.rows("users")[0]
    assert stored["role"] == "Viewer"
    assert stored["password_hash"].startswith("$2b$")
    assert "segredo123" not in stored["password_hash"]
    assert logged_in.id == created.id


def test_register_validation(remote_settings, postgrest):
    _seed_user(postgrest)
    auth = _service(remote_settings, postgrest)

    with pytest.raises(ValueError):
        asyncio.run(auth.register("Curta", "curta@uema.br", "123"))
    with pytest.raises(ValueError):
        asyncio.run(auth.register("Sem arroba", "sem-arroba", "segredo123"))
    with pytest.raises(ValueError):
        asyncio.run(auth.register("Maria", "gestor@uema.br", "segredo123"))


def test_register_without_backend_returns_none(offline_settings):
    assert asyncio.run(_service(offline_settings).register("Ana", "ana@uema.br", "segredo123")) is None
