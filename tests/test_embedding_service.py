from leadflow.services.embedding_service import (
    EmbeddingService,
    canonicalize,
    parse_embedding,
    serialize_embedding,
)
from tests.fakes import FakeProvider


class TestParseEmbedding:
    def test_list(self):
        assert parse_embedding([1, 2.5]) == [1.0, 2.5]

    def test_json_string(self):
        assert parse_embedding("[0.1, 0.2]") == [0.1, 0.2]

    def test_bytes(self):
        assert parse_embedding(b"[1, 0]") == [1.0, 0.0]

    def test_unusable_values(self):
        assert parse_embedding(None) is None
        assert parse_embedding("") is None
        assert parse_embedding("[]") is None
        assert parse_embedding("not json") is None
        assert parse_embedding('{"a": 1}') is None
        assert parse_embedding(["x", "y"]) is None

    def test_serialize_is_parseable(self):
        assert parse_embedding(serialize_embedding([0.25, -1.0])) == [0.25, -1.0]


class TestCanonicalize:
    def test_collapses_whitespace(self):
        assert canonicalize("  qual   a\ntaxa? ") == "qual a taxa?"

    def test_none(self):
        assert canonicalize(None) == ""


class TestEmbeddingService:
    def test_unavailable_without_provider(self):
        service = EmbeddingService(None)
        assert service.available is False
        assert service.embed("qual a taxa?") is None

    def test_embed_failure_returns_none(self):
        service = EmbeddingService(FakeProvider(fail=True))
        assert service.embed("qual a taxa?") is None

    def test_embed_uses_canonical_text(self):
        provider = FakeProvider({"qual a taxa?": [1.0, 0.0]})
        service = EmbeddingService(provider)
        assert service.embed("  qual  a taxa? ") == [1.0, 0.0]
        assert provider.embed_calls == ["qual a taxa?"]

    def test_normalize_is_idempotent_without_rewrite(self):
        service = EmbeddingService(FakeProvider(), rewrite_enabled=False)
        once = service.normalize_question("  Olá,   qual a taxa? ")
        assert once == "Olá, qual a taxa?"
        assert service.normalize_question(once) == once

    def test_rewrite_failure_falls_back_to_canonical(self):
        class BrokenRewrite(FakeProvider):
            def generate(self, messages, model=None, temperature=0.2, max_tokens=300):
                raise RuntimeError("timeout")

        service = EmbeddingService(BrokenRewrite(), rewrite_enabled=True)
        assert service.normalize_question("qual  a taxa?") == "qual a taxa?"

    def test_rewrite_strips_quotes(self):
        class QuotingRewrite(FakeProvider):
            def generate(self, messages, model=None, temperature=0.2, max_tokens=300):
                from leadflow.services.llm.base import LLMResponse

                return LLMResponse(content='"Qual é a taxa de juro?"', model="fake")

        service = EmbeddingService(QuotingRewrite(), rewrite_enabled=True)
        assert service.normalize_question("oi, qual a taxa??") == "Qual é a taxa de juro?"
