import pytest

from leadflow.services.intent_service import (
    Command,
    detect_command,
    first_name,
    has_completion_marker,
    is_greeting,
    matches_any,
    meaningful_length,
    normalize_phrase,
    normalize_text,
)


class TestNormalization:
    def test_accents_case_and_spaces(self):
        assert normalize_text("  Olá,   Gostaria de AJUDA ") == "ola, gostaria de ajuda"

    def test_phrase_strips_edge_punctuation(self):
        assert normalize_phrase("Boa sorte!") == "boa sorte"

    def test_trigger_phrase_matches_with_accent_variation(self):
        trigger = "Ola, gostaria de ajuda para conseguir meu credito habitação em portugal"
        assert matches_any("Olá, gostaria de ajuda para conseguir meu crédito habitação em Portugal", [trigger])
        assert not matches_any("Olá, gostaria de ajuda", [trigger])


class TestDetectCommand:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("COMEÇAR", Command.START),
            ("comecar", Command.START),
            ("DUVIDA", Command.QUESTION),
            ("Dúvidas", Command.QUESTION),
            ("GESTORA", Command.ADVISOR),
            ("falar com humano", Command.HANDOFF),
            ("FALAR COM RAFA", Command.HANDOFF),
            ("simular", Command.SIMULATOR),
        ],
    )
    def test_commands(self, text, expected):
        assert detect_command(text, handler_name="Rafa") == expected

    def test_command_inside_sentence_is_not_a_command(self):
        assert detect_command("tenho uma duvida sobre a gestora") is None

    def test_handler_name_needs_configuration(self):
        assert detect_command("FALAR COM RAFA") is None


class TestHelpers:
    def test_completion_marker(self):
        assert has_completion_marker("qual a taxa?")
        assert has_completion_marker("¿taxa")
        assert not has_completion_marker("qual a taxa")

    def test_greetings(self):
        assert is_greeting("Oi")
        assert is_greeting("Bom dia!")
        assert is_greeting("oi, tudo bem?")
        assert not is_greeting("oi, qual a taxa?")

    def test_meaningful_length(self):
        assert meaningful_length(" ? ! ") == 0
        assert meaningful_length("ok?") == 2

    def test_first_name(self):
        assert first_name("  Ana Maria Silva ") == "Ana"
        assert first_name("") is None
