import asyncio

import pytest

from uema_data.schemas.models import (
    ChatSession,
    Document,
    DocumentStatus,
    Process,
    ProcessStatus,
    SectorType,
    UserSettings,
)
from uema_data.services.data_service import advance_process, build_data_service
from uema_data.utils.cache import AUTHENTICATED_KEY, USER_KEY
from uema_data.utils.observability import get_metrics
from uema_data.utils.security import hash_password


def _seed_admin(postgrest):
    postgrest.seed(
        "users",
        {
            "id": "u1",
            "name": "Luis Guilherme",
            "email": "admin@uema.br",
            "role": "admin",
            "sector": "PROGEP",
            "password_hash": hash_password("uema2025"),
        },
    )


@pytest.mark.smoke
def test_offline_document_save_then_read_is_empty(offline_settings):
    service = build_data_service(offline_settings)
    document = Document(id="d1", title="Edital 01/2025", sector=SectorType.PROGEP)

    async def run():
        await service.save_document(document)
        await service.delete_document("d1")
        return await service.get_documents(), await service.get_processes(), await service.get_process("p1")

    assert asyncio.run(run()) == ([], [], None)
    assert get_metrics().counter("remote_skip::unconfigured") >= 4


@pytest.mark.smoke
def test_process_steps_round_trip_through_the_store(remote_settings, postgrest):
    service = build_data_service(remote_settings, transport=postgrest.transport())
    process = Process(
        id="p1",
        number="PROC-2025-00128",
        title="Aquisição de Equipamentos de TI",
        current_step=3,
        total_steps=5,
        status=ProcessStatus.COMPLETED,
    )

    async def run():
        await service.save_process(process)
        return await service.get_process("p1"), await service.get_processes()

    fetched, listed = asyncio.run(run())

    assert fetched.current_step == 3
    assert fetched.total_steps == 5
    assert fetched.status is ProcessStatus.COMPLETED
    assert postgrest.rows("processes")[0]["status"] == "Approved"
    assert [item.id for item in listed] == ["p1"]


def test_documents_are_listed_newest_first(remote_settings, postgrest):
    postgrest.seed(
        "documents",
        {"id": "d1", "title": "Antigo", "created_at": "2025-09-20", "status": "published"},
        {"id": "d2", "name": "Novo", "created_at": "2025-10-18", "status": "pending"},
        {"title": "sem id"},
    )
    service = build_data_service(remote_settings, transport=postgrest.transport())

    documents = asyncio.run(service.get_documents())

    assert [doc.id for doc in documents] == ["d2", "d1"]
    assert documents[0].title == "Novo"
    assert documents[0].status is DocumentStatus.DRAFT
    assert postgrest.requests[0].url.params["order"] == "created_at.desc"


def test_malformed_rows_do_not_break_listings(remote_settings, postgrest):
    postgrest.seed(
        "documents",
        {"id": "d1", "title": "Edital", "created_at": "2025-10-01"},
        {"id": "d2", "title": "Portaria", "content_text": 5, "created_at": "2025-10-02"},
    )
    postgrest.seed("processes", {"id": "p1", "title": "Compra", "description": {"x": 1}}, {"id": "p2", "title": "Obra"})
    service = build_data_service(remote_settings, transport=postgrest.transport())

    async def run():
        return await service.get_documents(), await service.get_processes()

    documents, processes = asyncio.run(run())

    assert [doc.id for doc in documents] == ["d2", "d1"]
    assert documents[0].content == "5"
    assert sorted(proc.id for proc in processes) == ["p1", "p2"]


def test_remote_failure_reads_as_empty(remote_settings, postgrest):
    postgrest.failing_tables.update({"documents", "processes"})
    service = build_data_service(remote_settings, transport=postgrest.transport())

    async def run():
        await service.save_document(Document(id="d1", title="x"))
        return await service.get_documents(), await service.get_processes()

    assert asyncio.run(run()) == ([], [])


def test_failed_login_does_not_touch_cache(remote_settings, postgrest):
    _seed_admin(postgrest)
    service = build_data_service(remote_settings, transport=postgrest.transport())

    async def run():
        user = await service.login("admin@uema.br", "senha-errada")
        return user, await service.is_authenticated(), await service.cache.get(USER_KEY)

    assert asyncio.run(run()) == (None, False, None)
    assert asyncio.run(service.cache.get(AUTHENTICATED_KEY)) is None


def test_chat_session_flow_prefers_remote_after_login(remote_settings, postgrest):
    _seed_admin(postgrest)
    postgrest.seed("documents", *({"id": f"d{i}", "title": f"Doc {i}", "created_at": f"2025-10-{i + 10}"} for i in range(9)))
    service = build_data_service(remote_settings, transport=postgrest.transport())

    async def run():
        offline_session = await service.send_message(ChatSession(id="c0"), "olá")
        await service.login("admin@uema.br", "uema2025")
        session = await service.send_message(ChatSession(id="c1"), "quais documentos existem?")
        return offline_session, session, await service.get_chat_sessions()

    offline_session, session, sessions = asyncio.run(run())

    assert len(offline_session.messages) == 2
    reply = session.messages[-1].content
    assert "Encontrei 9 documento(s):" in reply
    assert "• Doc 8" in reply
    assert "• Doc 3" not in reply
    assert "...e mais 4 documento(s)" in reply
    # only the session saved while logged in was mirrored
    assert [item.id for item in sessions] == ["c1"]
    assert [message.role.value for message in sessions[0].messages] == ["user", "assistant"]


def test_logout_clears_user_and_local_chats(offline_settings):
    service = build_data_service(offline_settings)

    async def run():
        await service.save_chat_session(ChatSession(id="c1"))
        await service.logout()
        return await service.get_user(), await service.is_authenticated(), await service.get_chat_sessions()

    assert asyncio.run(run()) == (None, False, [])


def test_delete_chat_session(offline_settings):
    service = build_data_service(offline_settings)

    async def run():
        await service.save_chat_session(ChatSession(id="c1"))
        await service.save_chat_session(ChatSession(id="c2"))
        await service.delete_chat_session("c1")
        return await service.get_chat_sessions()

    assert [session.id for session in asyncio.run(run())] == ["c2"]


def test_settings_and_notifications_for_logged_in_user(remote_settings, postgrest):
    _seed_admin(postgrest)
    postgrest.seed(
        "notifications",
        {"id": "n1", "user_id": "u1", "title": "Processo aprovado", "read": False, "created_at": "2025-10-01"},
        {"id": "n2", "user_id": "u1", "title": "Novo edital", "read": False, "created_at": "2025-10-05"},
        {"id": "n3", "user_id": "u1", "title": "Antiga", "read": True, "created_at": "2025-09-01"},
        {"id": "n4", "user_id": "u2", "title": "Outro usuário", "read": False, "created_at": "2025-10-06"},
    )
    service = build_data_service(remote_settings, transport=postgrest.transport())

    async def run():
        assert await service.get_settings() is None
        assert await service.get_unread_notifications() == []
        await service.login("admin@uema.br", "uema2025")
        await service.save_settings(UserSettings(theme="dark", notifications=False))
        unread_before = await service.get_unread_notifications()
        await service.mark_notification_read("n2")
        unread_after = await service.get_unread_notifications()
        return await service.get_settings(), unread_before, unread_after

    settings, unread_before, unread_after = asyncio.run(run())

    assert settings.theme == "dark"
    assert settings.notifications is False
    assert postgrest.rows("settings")[0]["user_id"] == "u1"
    posted = [request for request in postgrest.requests if request.method == "POST"]
    assert posted[0].url.params["on_conflict"] == "user_id"
    assert [item.id for item in unread_before] == ["n2", "n1"]
    assert [item.id for item in unread_after] == ["n1"]


def test_permissions_and_offline_helpers(offline_settings):
    service = build_data_service(offline_settings)

    assert service.has_permission("Operator", "canCreateDocument")
    assert not service.has_permission("Viewer", "canCreateDocument")
    assert service.chat("olá", []) == service.chat("olá", [Document(id="d1", title="x")])
    assert service.generate_tags("Relatório Financeiro Trimestral") == ["relatório", "financeiro", "trimestral"]
    assert service.generate_summary("Ata", "curta").startswith("Documento: Ata. curta")


def test_advance_process():
    process = Process(id="p1", title="Compra", current_step=4, total_steps=5, status=ProcessStatus.IN_PROGRESS)

    step_five = advance_process(process)
    finished = advance_process(step_five)

    assert step_five.current_step == 5
    assert step_five.status is ProcessStatus.IN_PROGRESS
    assert finished.current_step == 5
    assert finished.status is ProcessStatus.COMPLETED
    assert process.current_step == 4
