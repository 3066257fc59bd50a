import pytest

from uema_data.schemas.models import Document, SectorType
from uema_data.services.responder import (
    GREETING_REPLY,
    HELP_REPLY,
    PROCESSES_REPLY,
    RuleBasedResponder,
    generate_summary,
    generate_tags,
)


def _docs(count):
    return [
        Document(id=f"d{index}", title=f"Documento {index}", sector=SectorType.PROGEP if index % 2 else SectorType.PROG)
        for index in range(count)
    ]


@pytest.mark.parametrize("context_size", [0, 3, 12])
def test_greeting_ignores_context(context_size):
    responder = RuleBasedResponder()

    assert responder.respond("Olá!", _docs(context_size)) == GREETING_REPLY
    assert responder.respond("  bom dia ", _docs(context_size)) == GREETING_REPLY


def test_document_listing_reports_overflow_count():
    reply = RuleBasedResponder().respond("quais documentos existem?", _docs(8))

    assert reply.startswith("Encontrei 8 documento(s):")
    assert "• Documento 4 (PROG)" in reply
    assert "Documento 5" not in reply
    assert "...e mais 3 documento(s)" in reply


def test_document_listing_at_exactly_five_items():
    reply = RuleBasedResponder().respond("listar documentos", _docs(5))

    assert "...e mais 0 documento(s)" in reply


def test_document_listing_without_overflow():
    reply = RuleBasedResponder().respond("me mostre os documentos", _docs(2))

    assert reply.count("•") == 2
    assert "e mais" not in reply


def test_document_listing_accepts_plain_mappings():
    reply = RuleBasedResponder().respond("documentos", [{"title": "Ata CONSUN", "sector": "PROTOCOLO"}])

    assert "• Ata CONSUN (PROTOCOLO)" in reply


def test_empty_context_document_reply():
    assert "Não encontrei documentos" in RuleBasedResponder().respond("documentos")


def test_rule_order_and_fixed_replies():
    responder = RuleBasedResponder()

    assert responder.respond("preciso de ajuda") == HELP_REPLY
    assert responder.respond("como está o processo 128?") == PROCESSES_REPLY
    assert responder.match("me dê um resumo geral").name == "summary"
    assert responder.match("obrigado!").name == "gratitude"
    assert responder.match("mudar o tema").name == "settings"
    assert responder.match("quero pesquisar").name == "search"
    assert responder.match("ver relatórios").name == "reports"


def test_summary_groups_by_sector():
    reply = RuleBasedResponder().respond("resumo", _docs(3))

    assert reply == "Resumo do acervo: 3 documento(s) no contexto. Por setor: PROG (2), PROGEP (1)."


def test_fallback_echoes_truncated_utterance():
    responder = RuleBasedResponder()
    utterance = "xyzzy qualquer coisa completamente aleatória"

    reply = responder.respond(utterance)

    assert reply.startswith('Não entendi "xyzzy qualquer coisa completam..."')
    assert responder.respond(utterance) == reply
    assert responder.respond("").startswith('Não entendi ""')


def test_generate_tags_and_summary():
    tags = generate_tags("Edital de Concurso Docente", "processo seletivo para vagas de professor efetivo")

    assert tags == ["edital", "concurso", "docente", "seletivo", "vagas"]
    assert generate_tags("UEMA documento") == []
    assert generate_summary("Ata", "x" * 200) == f"Documento: Ata. {'x' * 150}..."
