import re
import unicodedata
from enum import Enum
from typing import Iterable, Optional

COMPLETION_MARKER = re.compile(r"[?？¿]")


class Command(str, Enum):
    START = "start"
    QUESTION = "question"
    ADVISOR = "advisor"
    HANDOFF = "handoff"
    SIMULATOR = "simulator"


# Navigation commands are always sent as an isolated message.
COMMAND_VARIANTS = {
    Command.START: ("comecar", "começar", "menu", "inicio", "início"),
    Command.QUESTION: ("duvida", "duvidas"),
    Command.ADVISOR: ("gestora",),
    Command.HANDOFF: ("falar com humano", "falar com atendente"),
    Command.SIMULATOR: ("simular", "simulador", "simulacao"),
}

GREETING_PATTERNS = [
    re.compile(pattern)
    for pattern in (
        r"^oi$",
        r"^ola$",
        r"^hey$",
        r"^ei$",
        r"^eai$",
        r"^tudo (bem|bom)$",
        r"^como (vai|esta|estas)$",
        r"^e (ai|voce)$",
        r"^bom dia$",
        r"^boa (tarde|noite)$",
        r"^(oi|ola) tudo (bem|bom)$",
    )
]


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: Optional[str]) -> str:
    """Diacritics stripped, case folded, whitespace collapsed and trimmed."""
    if not text:
        return ""
    return " ".join(strip_accents(text).casefold().split())


def normalize_phrase(text: Optional[str]) -> str:
    """normalize_text without leading/trailing punctuation: "Boa sorte!" -> "boa sorte"."""
    normalized = normalize_text(text)
    return re.sub(r"^[^\w]+|[^\w]+$", "", normalized)


def matches_any(text: Optional[str], phrases: Iterable[str]) -> bool:
    normalized = normalize_text(text)
    if not normalized:
        return False
    return any(normalized == normalize_text(phrase) for phrase in phrases)


def detect_command(text: Optional[str], *, handler_name: Optional[str] = None) -> Optional[Command]:
    """Recognise a navigation command. "FALAR COM <handler_name>" also requests the human."""
    normalized = normalize_phrase(text)
    if not normalized:
        return None
    if handler_name and normalized == normalize_text(f"falar com {handler_name}"):
        return Command.HANDOFF
    for command, variants in COMMAND_VARIANTS.items():
        if any(normalized == normalize_text(variant) for variant in variants):
            return command
    return None


def has_completion_marker(text: Optional[str]) -> bool:
    return bool(text and COMPLETION_MARKER.search(text))


def is_greeting(text: Optional[str]) -> bool:
    normalized = normalize_phrase(text)
    if not normalized:
        return False
    normalized = re.sub(r"[?!.,]+", "", normalized).strip()
    return any(pattern.match(normalized) for pattern in GREETING_PATTERNS)


def meaningful_length(text: Optional[str]) -> int:
    """Number of letters and digits, ignoring punctuation and spaces."""
    return sum(1 for ch in text or "" if ch.isalnum())


def first_name(full_name: Optional[str]) -> Optional[str]:
    if not full_name:
        return None
    parts = full_name.strip().split()
    return parts[0] if parts else None
