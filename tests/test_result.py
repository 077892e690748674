from kijumbe.services.result import AUTH, Result


class TestResult:
    def test_success(self):
        result = Result.success({"idMessage": "abc"})
        assert result.ok is True
        assert result.value == {"idMessage": "abc"}
        assert result.error is None

    def test_failure_carries_code_and_status(self):
        result = Result.failure("unauthorized", AUTH, status_code=401)
        assert result.ok is False
        assert result.error_code == AUTH
        assert result.status_code == 401

    def test_failure_default_code(self):
        result = Result.failure("boom")
        assert result.error_code == "unknown"
