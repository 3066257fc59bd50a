"""Push the demo documents, processes and accounts into a configured Supabase project."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Dict, List

from uema_data.schemas.models import (
    Document,
    DocumentStatus,
    DocumentType,
    Priority,
    Process,
    ProcessStatus,
    SectorType,
    User,
    UserRole,
)
from uema_data.utils.env import load_env_file
from uema_data.utils.normalizer import document_to_row, process_to_row, user_to_row
from uema_data.utils.remote import RemoteClient
from uema_data.utils.security import hash_password, validate_password
from uema_data.utils.settings import load_settings

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_ENV = REPO_ROOT / ".env"
DEFAULT_PASSWORD = "uema2025"

DEMO_DOCUMENTS: List[Document] = [
    Document(
        id="d1",
        title="Edital de Concurso Docente 01/2025",
        type=DocumentType.PDF,
        sector=SectorType.PROGEP,
        status=DocumentStatus.PUBLISHED,
        tags=["Concurso", "Docente", "Efetivo"],
        summary="Documento regulamenta o processo seletivo para 40 vagas de professor efetivo.",
        author="Maria Silva",
        size="2.4 MB",
    ),
    Document(
        id="d2",
        title="Relatório Financeiro Q3 2025",
        type=DocumentType.XLSX,
        sector=SectorType.PROPLAD,
        status=DocumentStatus.DRAFT,
        tags=["Financeiro", "Orçamento", "Q3"],
        summary="Análise preliminar dos gastos e empenhos do terceiro trimestre.",
        author="João Souza",
        size="850 KB",
    ),
    Document(
        id="d3",
        title="Projeto de Extensão: UEMA Comunidade",
        type=DocumentType.DOCX,
        sector=SectorType.PROEXAE,
        status=DocumentStatus.PUBLISHED,
        tags=["Extensão", "Comunidade", "Bolsas"],
        author="Ana Pereira",
        size="1.2 MB",
    ),
    Document(
        id="d4",
        title="Ata de Reunião CONSUN",
        type=DocumentType.PDF,
        sector=SectorType.PROTOCOLO,
        status=DocumentStatus.ARCHIVED,
        tags=["Conselho", "Decisões", "Administrativo"],
        author="Secretaria Geral",
        size="500 KB",
    ),
    Document(
        id="d5",
        title="Plano de Cargos e Salários",
        type=DocumentType.PDF,
        sector=SectorType.PROGEP,
        status=DocumentStatus.PUBLISHED,
        tags=["RH", "Salários", "Plano"],
        author="Carlos Alberto",
        size="3.1 MB",
    ),
]

DEMO_PROCESSES: List[Process] = [
    Process(
        id="p1",
        number="PROC-2025-00128",
        title="Aquisição de Equipamentos de TI",
        description="Análise Orçamentária",
        current_step=3,
        total_steps=5,
        status=ProcessStatus.IN_PROGRESS,
        sector=SectorType.PROPLAD,
        assigned_to="PROPLAD",
        priority=Priority.HIGH,
    ),
    Process(
        id="p2",
        number="PROC-2025-00145",
        title="Progressão Funcional - Dept. História",
        description="Validação Documental",
        current_step=1,
        total_steps=4,
        status=ProcessStatus.PENDING,
        sector=SectorType.PROGEP,
        assigned_to="PROGEP",
        priority=Priority.MEDIUM,
    ),
    Process(
        id="p3",
        number="PROC-2025-00099",
        title="Reformulação PPC Engenharia Civil",
        description="Concluído",
        current_step=5,
        total_steps=5,
        status=ProcessStatus.COMPLETED,
        sector=SectorType.PROG,
        assigned_to="PROG",
        priority=Priority.LOW,
    ),
]

DEMO_USERS: List[User] = [
    User(id="u1", name="Luis Guilherme", email="admin@uema.br", role=UserRole.ADMIN, sector=SectorType.PROGEP),
    User(id="u2", name="Maria Santos", email="gestor@uema.br", role=UserRole.MANAGER, sector=SectorType.PROPLAD),
    User(id="u3", name="João Silva", email="usuario@uema.br", role=UserRole.OPERATOR, sector=SectorType.PROTOCOLO),
    User(id="u4", name="Ana Costa", email="visitante@uema.br", role=UserRole.VIEWER, sector=SectorType.PROG),
]


async def seed(client: RemoteClient, *, password: str, skip_users: bool) -> Dict[str, bool]:
    results = {
        "documents": await client.upsert("documents", [document_to_row(doc) for doc in DEMO_DOCUMENTS]),
        "processes": await client.upsert("processes", [process_to_row(proc) for proc in DEMO_PROCESSES]),
    }
    if not skip_users:
        rows = [user_to_row(user, password_hash=hash_password(password)) for user in DEMO_USERS]
        results["users"] = await client.upsert("users", rows)
    return results


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo documents, processes and users into Supabase")
    parser.add_argument(
        "--env-path",
        type=Path,
        default=DEFAULT_ENV,
        help="Path to the .env file holding SUPABASE_URL / SUPABASE_ANON_KEY (default: repository .env).",
    )
    parser.add_argument(
        "--password",
        default=DEFAULT_PASSWORD,
        help=f"Password assigned to every demo account (default: {DEFAULT_PASSWORD}).",
    )
    parser.add_argument("--skip-users", action="store_true", help="Only seed documents and processes.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    validate_password(args.password)
    if args.env_path.exists():
        load_env_file(args.env_path)
    settings = load_settings()
    if not settings.remote_configured:
        raise SystemExit("[ERROR] SUPABASE_URL / SUPABASE_ANON_KEY are missing or placeholders.")
    results = asyncio.run(seed(RemoteClient(settings), password=args.password, skip_users=args.skip_users))
    for table, ok in results.items():
        print(f"[{'INFO' if ok else 'WARN'}] {table}: {'seeded' if ok else 'failed (see logs)'}")
    if not args.skip_users:
        print("[INFO] Demo accounts: " + ", ".join(user.email for user in DEMO_USERS))


if __name__ == "__main__":
    main()
