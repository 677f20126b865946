from leadflow.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success("test value")
        assert result.ok is True
        assert result.value == "test value"
        assert result.error is None
        assert bool(result) is True


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("FAQ backend unreachable", "faq_backend_error")
        assert result.ok is False
        assert result.error == "FAQ backend unreachable"
        assert result.error_code == "faq_backend_error"
        assert result.value is None
        assert bool(result) is False

    def test_failure_default_code(self):
        assert Result.failure("Error message").error_code == "unknown"
