from __future__ import annotations

import argparse
import asyncio
import os
from pathlib import Path
from typing import Any, Dict

import yaml

from uema_data.schemas.models import SectorType, UserRole
from uema_data.schemas.permissions import CAPABILITIES, role_description
from uema_data.services.data_service import DataService, build_data_service
from uema_data.utils.env import load_env_file
from uema_data.utils.logging import get_logger

load_env_file()
log = get_logger(__name__)


def _load_config(path: str | None) -> Dict[str, Any]:
    if not path:
        return {}
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise SystemExit(f"Config file not found: {path}")
    with cfg_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise SystemExit(f"Config file must contain a mapping: {path}")
    return data


def _apply_config(config: Dict[str, Any]) -> None:
    remote_cfg = config.get("remote") or {}
    env_map = {
        "url": "SUPABASE_URL",
        "timeout_seconds": "UEMA_REMOTE_TIMEOUT_SECONDS",
        "max_attempts": "UEMA_REMOTE_MAX_ATTEMPTS",
        "backoff_min_seconds": "UEMA_REMOTE_BACKOFF_MIN_SECONDS",
        "backoff_max_seconds": "UEMA_REMOTE_BACKOFF_MAX_SECONDS",
    }
    for key, env_var in env_map.items():
        value = remote_cfg.get(key)
        if value is not None and value != "":
            os.environ[env_var] = str(value)
    if "anon_key" in remote_cfg or "key" in remote_cfg:
        log.warning("config_remote_key_ignored", msg="Use .env for SUPABASE_ANON_KEY")

    cache_cfg = config.get("cache") or {}
    if directory := cache_cfg.get("dir"):
        os.environ["UEMA_CACHE_DIR"] = str(directory)


def cmd_documents(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        documents = await service.get_documents()
        if not documents:
            print("No documents.")
            return
        for doc in documents:
            print(f"{doc.id} | {doc.title} | {doc.type.value} | {doc.sector.value} | {doc.status.value} | {doc.size}")

    asyncio.run(run())


def cmd_processes(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        processes = await service.get_processes()
        if not processes:
            print("No processes.")
            return
        for proc in processes:
            print(
                f"{proc.id} | {proc.number or '-'} | {proc.title} | "
                f"step {proc.current_step}/{proc.total_steps} | {proc.status.value} | {proc.priority.value}"
            )

    asyncio.run(run())


def cmd_process(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        proc = await service.get_process(args.process_id)
        if proc is None:
            print("Process not found.")
            return
        print(f"Process: {proc.title} ({proc.number or proc.id})")
        print(f"Status: {proc.status.value}")
        print(f"Step: {proc.current_step}/{proc.total_steps}")
        print(f"Sector: {proc.sector.value}")
        print(f"Priority: {proc.priority.value}")
        if proc.assigned_to:
            print(f"Assigned to: {proc.assigned_to}")
        if proc.description:
            print(f"Description: {proc.description}")

    asyncio.run(run())


def cmd_sessions(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        if args.delete:
            await service.delete_chat_session(args.delete)
            print(f"Deleted session {args.delete}")
            return
        sessions = await service.get_chat_sessions()
        if not sessions:
            print("No chat sessions.")
            return
        for session in sessions:
            print(f"{session.id} | {session.title} | messages={len(session.messages)} | updated={session.updated_at}")

    asyncio.run(run())


def cmd_login(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        user = await service.login(args.email, args.password)
        if user is None:
            print("Invalid credentials.")
            raise SystemExit(1)
        print(f"Logged in as {user.name} <{user.email}> ({user.role.value}, {user.sector.value})")

    asyncio.run(run())


def cmd_logout(args: argparse.Namespace, service: DataService) -> None:
    asyncio.run(service.logout())
    print("Logged out.")


def cmd_whoami(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        user = await service.get_user()
        if user is None or not await service.is_authenticated():
            print("Not logged in.")
            return
        print(f"{user.name} <{user.email}>")
        print(f"Role: {user.role.value} ({role_description(user.role)})")
        print(f"Sector: {user.sector.value}")

    asyncio.run(run())


def cmd_register(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        try:
            user = await service.register(
                args.name,
                args.email,
                args.password,
                role=UserRole(args.role),
                sector=SectorType(args.sector),
            )
        except ValueError as exc:
            raise SystemExit(str(exc)) from exc
        if user is None:
            print("Registration failed; check the remote configuration.")
            raise SystemExit(1)
        log.info("register_complete", user_id=user.id)
        print(f"Registered {user.email} ({user.role.value})")

    asyncio.run(run())


def cmd_can(args: argparse.Namespace, service: DataService) -> None:
    allowed = service.has_permission(args.role, args.capability)
    print("yes" if allowed else "no")
    if not allowed:
        raise SystemExit(1)


def cmd_ask(args: argparse.Namespace, service: DataService) -> None:
    async def run() -> None:
        documents = await service.get_documents()
        print(service.chat(args.utterance, documents))

    asyncio.run(run())


def main() -> None:
    parser = argparse.ArgumentParser(description="UEMA Digital data layer CLI")
    parser.add_argument("--config", help="Path to YAML config", default=None)
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_docs = sub.add_parser("documents", help="List documents from the remote store")
    p_docs.set_defaults(func=cmd_documents)

    p_procs = sub.add_parser("processes", help="List administrative processes")
    p_procs.set_defaults(func=cmd_processes)

    p_proc = sub.add_parser("process", help="Show a single process")
    p_proc.add_argument("process_id")
    p_proc.set_defaults(func=cmd_process)

    p_sessions = sub.add_parser("sessions", help="List or delete chat sessions")
    p_sessions.add_argument("--delete", metavar="SESSION_ID", help="Delete the given session")
    p_sessions.set_defaults(func=cmd_sessions)

    p_login = sub.add_parser("login", help="Authenticate and cache the user locally")
    p_login.add_argument("email")
    p_login.add_argument("password")
    p_login.set_defaults(func=cmd_login)

    p_logout = sub.add_parser("logout", help="Clear the cached user, authenticated flag and local chats")
    p_logout.set_defaults(func=cmd_logout)

    p_whoami = sub.add_parser("whoami", help="Show the cached user")
    p_whoami.set_defaults(func=cmd_whoami)

    p_reg = sub.add_parser("register", help="Create a remote user account")
    p_reg.add_argument("name")
    p_reg.add_argument("email")
    p_reg.add_argument("password")
    p_reg.add_argument("--role", choices=[role.value for role in UserRole], default=UserRole.OPERATOR.value)
    p_reg.add_argument("--sector", choices=[sector.value for sector in SectorType], default=SectorType.PROGEP.value)
    p_reg.set_defaults(func=cmd_register)

    p_can = sub.add_parser("can", help="Check whether a role holds a capability")
    p_can.add_argument("role")
    p_can.add_argument("capability", help=f"One of: {', '.join(CAPABILITIES)}")
    p_can.set_defaults(func=cmd_can)

    p_ask = sub.add_parser("ask", help="Ask the offline assistant")
    p_ask.add_argument("utterance")
    p_ask.set_defaults(func=cmd_ask)

    args = parser.parse_args()
    config = _load_config(args.config)
    _apply_config(config)
    service = build_data_service()
    args.func(args, service)


if __name__ == "__main__":
    main()
