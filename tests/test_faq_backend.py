from unittest.mock import MagicMock, Mock, patch

import httpx

from leadflow.services.faq_backend import FaqBackendClient


def _mock_http(mock_client_class):
    mock_client = MagicMock()
    mock_client_class.return_value.__enter__.return_value = mock_client
    return mock_client


def _response(status_code=200, payload=None):
    response = Mock(status_code=status_code, text="")
    response.json.return_value = payload
    return response


class TestGetEntry:
    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_answer_with_replies(self, mock_client_class):
        mock_client = _mock_http(mock_client_class)
        mock_client.get.return_value = _response(
            payload={
                "pergunta": {"texto": " Qual a taxa? "},
                "respostas": [{"gestora_nome": "Ana", "texto": "Depende."}, {"gestora_nome": None, "texto": " "}],
            }
        )

        result = FaqBackendClient("http://faq.local/").get_entry(7)

        assert result.ok
        assert result.value.question == "Qual a taxa?"
        assert [(r.manager_name, r.text) for r in result.value.replies] == [("Ana", "Depende.")]
        assert mock_client.get.call_args[0][0] == "http://faq.local/api/faq/perguntas/7"

    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_not_found(self, mock_client_class):
        _mock_http(mock_client_class).get.return_value = _response(404)
        assert FaqBackendClient("http://faq.local").get_entry(7).error_code == "not_found"

    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_no_answers(self, mock_client_class):
        _mock_http(mock_client_class).get.return_value = _response(payload={"pergunta": {"texto": "x"}, "respostas": []})
        assert FaqBackendClient("http://faq.local").get_entry(7).error_code == "no_answers"

    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_unreachable(self, mock_client_class):
        _mock_http(mock_client_class).get.side_effect = httpx.ConnectError("refused")
        assert FaqBackendClient("http://faq.local").get_entry(7).error_code == "faq_backend_error"


class TestCreatePending:
    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_posts_question(self, mock_client_class):
        mock_client = _mock_http(mock_client_class)
        mock_client.post.return_value = _response(201, {"id": "12", "texto": "Qual a taxa?"})

        result = FaqBackendClient("http://faq.local").create_pending("351911111111", 4, " Qual a taxa? ")

        assert result.ok
        assert result.value.entry_id == 12
        assert mock_client.post.call_args[1]["json"] == {
            "contacto_whatsapp": "351911111111",
            "lead_id": 4,
            "texto": "Qual a taxa?",
            "origem": "evo",
        }

    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_non_numeric_id_still_counts_as_created(self, mock_client_class):
        _mock_http(mock_client_class).post.return_value = _response(201, {"id": "a1b2", "texto": "Qual a taxa?"})

        result = FaqBackendClient("http://faq.local").create_pending("351911111111", 4, "Qual a taxa?")

        assert result.ok
        assert result.value.entry_id is None
        assert result.value.text == "Qual a taxa?"

    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_backend_error(self, mock_client_class):
        _mock_http(mock_client_class).post.return_value = _response(500)
        result = FaqBackendClient("http://faq.local").create_pending("351911111111", 4, "Qual a taxa?")
        assert not result.ok
        assert result.error_code == "faq_backend_error"

    @patch("leadflow.services.faq_backend.httpx.Client")
    def test_increment_usage_failure_is_false(self, mock_client_class):
        _mock_http(mock_client_class).post.side_effect = httpx.ConnectError("refused")
        assert FaqBackendClient("http://faq.local").increment_usage(7) is False
