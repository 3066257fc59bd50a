from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, List, Mapping, Sequence, Tuple, Union

from uema_data.schemas.models import Document

MAX_CONTEXT_ITEMS = 5
MAX_ECHO_CHARS = 30
MAX_TAGS = 5
SUMMARY_PREVIEW_CHARS = 150

ContextItem = Union[Document, Mapping[str, Any]]

GREETING_REPLY = (
    "Olá! 👋 Sou o assistente do UEMA Digital. Posso ajudar com documentos, processos, "
    "relatórios e configurações. Como posso ajudar?"
)
GRATITUDE_REPLY = "Por nada! Se precisar de mais alguma coisa, é só perguntar."
HELP_REPLY = (
    "Posso ajudar com:\n"
    "• Documentos: listar os documentos disponíveis\n"
    "• Processos: acompanhar etapas e prioridades\n"
    "• Relatórios: indicadores por setor\n"
    "• Configurações: tema, notificações e conta\n"
    'Experimente perguntar "quais documentos existem?"'
)
PROCESSES_REPLY = (
    "Para acompanhar processos, acesse a aba Processos. Lá você encontra a etapa atual, "
    "o setor responsável e a prioridade de cada processo."
)
REPORTS_REPLY = (
    "A aba Relatórios reúne indicadores de documentos e processos por setor. "
    "Gestores e administradores também podem exportar os dados."
)
SETTINGS_REPLY = "Em Configurações você pode ajustar tema, idioma, notificações e os dados da sua conta."
SEARCH_REPLY = (
    "Para buscar, use a pesquisa da aba Documentos: é possível filtrar por título, setor ou tag."
)
NO_DOCUMENTS_REPLY = (
    "Não encontrei documentos disponíveis no momento. Você pode cadastrar um novo documento na aba Documentos."
)
NO_SUMMARY_REPLY = "Ainda não há documentos no contexto para resumir."

_STOP_WORDS = frozenset(
    {"documento", "uema", "processo", "de", "da", "do", "das", "dos", "para", "com", "em", "o", "a", "os", "as"}
)


def _field(item: ContextItem, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _context_label(item: ContextItem) -> str:
    title = str(_field(item, "title") or "Sem título")
    sector = _field(item, "sector")
    sector_text = getattr(sector, "value", sector)
    return f"{title} ({sector_text})" if sector_text else title


def _documents_reply(utterance: str, context: Sequence[ContextItem]) -> str:
    if not context:
        return NO_DOCUMENTS_REPLY
    shown = context[:MAX_CONTEXT_ITEMS]
    lines = [f"Encontrei {len(context)} documento(s):"]
    lines.extend(f"• {_context_label(item)}" for item in shown)
    if len(context) >= MAX_CONTEXT_ITEMS:
        lines.append(f"...e mais {len(context) - MAX_CONTEXT_ITEMS} documento(s) não listado(s).")
    return "\n".join(lines)


def _summary_reply(utterance: str, context: Sequence[ContextItem]) -> str:
    if not context:
        return NO_SUMMARY_REPLY
    sectors = Counter()
    for item in context:
        sector = _field(item, "sector")
        sectors[str(getattr(sector, "value", sector) or "Sem setor")] += 1
    breakdown = ", ".join(f"{name} ({count})" for name, count in sorted(sectors.items()))
    return f"Resumo do acervo: {len(context)} documento(s) no contexto. Por setor: {breakdown}."


def _fixed(reply: str) -> Callable[[str, Sequence[ContextItem]], str]:
    def respond(utterance: str, context: Sequence[ContextItem]) -> str:
        return reply

    return respond


@dataclass(frozen=True)
class ResponseRule:
    name: str
    pattern: re.Pattern[str]
    respond: Callable[[str, Sequence[ContextItem]], str]

    def matches(self, normalized: str) -> bool:
        return self.pattern.search(normalized) is not None


def _rule(name: str, pattern: str, respond: Callable[[str, Sequence[ContextItem]], str]) -> ResponseRule:
    return ResponseRule(name=name, pattern=re.compile(pattern), respond=respond)


# Evaluated top to bottom; the first rule whose pattern matches answers.
RULES: Tuple[ResponseRule, ...] = (
    _rule("greeting", r"\b(ol[aá]|oi|bom dia|boa tarde|boa noite|hello|hi|hey)\b", _fixed(GREETING_REPLY)),
    _rule("gratitude", r"\b(obrigad[oa]s?|valeu|agrade[cç]\w*|thanks|thank you)\b", _fixed(GRATITUDE_REPLY)),
    _rule("help", r"\b(ajuda|ajude|help|socorro|o que voc[eê] (faz|pode))\b", _fixed(HELP_REPLY)),
    _rule(
        "documents",
        r"\b(documentos?|edita(l|is)|arquivos?|pdf|docx|xlsx|portarias?)\b",
        _documents_reply,
    ),
    _rule("processes", r"\b(processos?|protocolos?|tramita\w*|andamento)\b", _fixed(PROCESSES_REPLY)),
    _rule(
        "reports",
        r"\b(relat[oó]rios?|estat[ií]stica\w*|indicador\w*|dashboard|gr[aá]fico\w*)\b",
        _fixed(REPORTS_REPLY),
    ),
    _rule("summary", r"\b(resumo|resumir|resuma|status|situa[cç][aã]o|vis[aã]o geral)\b", _summary_reply),
    _rule(
        "settings",
        r"\b(configura\w*|ajustes?|tema|senha|notifica\w*|prefer[eê]ncias?)\b",
        _fixed(SETTINGS_REPLY),
    ),
    _rule(
        "search",
        r"\b(buscar?|procur\w*|pesquis\w*|encontrar|localizar)\b",
        _fixed(SEARCH_REPLY),
    ),
)


def normalize_utterance(utterance: str) -> str:
    return utterance.strip().lower()


def _echo(utterance: str) -> str:
    trimmed = utterance.strip()
    if len(trimmed) <= MAX_ECHO_CHARS:
        return trimmed
    return f"{trimmed[:MAX_ECHO_CHARS]}..."


def fallback_reply(utterance: str) -> str:
    return (
        f'Não entendi "{_echo(utterance)}". '
        "Tente perguntar sobre documentos, processos ou relatórios, ou digite \"ajuda\"."
    )


class RuleBasedResponder:
    """Deterministic keyword responder; the same utterance and context always yield the same reply."""

    def __init__(self, rules: Sequence[ResponseRule] = RULES) -> None:
        self.rules = tuple(rules)

    def match(self, utterance: str) -> ResponseRule | None:
        normalized = normalize_utterance(utterance)
        if not normalized:
            return None
        for rule in self.rules:
            if rule.matches(normalized):
                return rule
        return None

    def respond(self, utterance: str, context: Sequence[ContextItem] = ()) -> str:
        rule = self.match(utterance)
        if rule is None:
            return fallback_reply(utterance)
        return rule.respond(utterance, list(context))


def generate_tags(title: str, text: str = "") -> List[str]:
    words = re.findall(r"\w+", f"{title} {text}".lower())
    tags: List[str] = []
    for word in words:
        if len(word) <= 3 or word in _STOP_WORDS or word in tags:
            continue
        tags.append(word)
        if len(tags) == MAX_TAGS:
            break
    return tags


def generate_summary(title: str, text: str = "") -> str:
    return f"Documento: {title}. {text[:SUMMARY_PREVIEW_CHARS]}..."
