"""Tests for ServiceResult and ServiceError."""

import json

from envie.domain.errors import DependencyError
from envie.services.result import ServiceError, ServiceResult


class TestServiceResult:
    def test_success_construction(self) -> None:
        result = ServiceResult(ok=True, op="plan", data={"service": "api"})
        assert result.ok is True
        assert result.op == "plan"
        assert result.data == {"service": "api"}
        assert result.warnings == []
        assert result.error is None
        assert result.meta is None

    def test_error_construction(self) -> None:
        error = ServiceError(code="VALIDATION_ERROR", message="Unknown service")
        result = ServiceResult(ok=False, op="show_service", error=error)
        assert result.ok is False
        assert result.error is not None
        assert result.error.code == "VALIDATION_ERROR"

    def test_json_serialization(self) -> None:
        result = ServiceResult(
            ok=True,
            op="output",
            data={"outputs": {"vpc_id": "vpc-1"}},
            meta={"duration_ms": 42},
        )
        parsed = json.loads(result.model_dump_json())
        assert parsed["ok"] is True
        assert parsed["data"]["outputs"]["vpc_id"] == "vpc-1"
        assert parsed["meta"]["duration_ms"] == 42

    def test_frozen(self) -> None:
        result = ServiceResult(ok=True, op="test")
        try:
            result.ok = False  # type: ignore[misc]
            raise AssertionError("Should have raised")
        except Exception:
            pass  # Expected — frozen model


class TestFailure:
    def test_from_exception(self) -> None:
        exc = DependencyError("Dependency cycle detected: a -> b -> a", cycle=["a", "b", "a"])
        result = ServiceResult.failure("plan", exc)
        assert result.ok is False
        assert result.error is not None
        assert result.error.code == "DEPENDENCY_ERROR"
        assert result.error.detail == {"cycle": ["a", "b", "a"]}
        assert result.data == {}

    def test_keeps_partial_data_and_warnings(self) -> None:
        exc = DependencyError("boom")
        result = ServiceResult.failure(
            "deploy", exc, data={"applied": ["network/vpc"]}, warnings=["careful"]
        )
        assert result.data == {"applied": ["network/vpc"]}
        assert result.warnings == ["careful"]


class TestServiceError:
    def test_default_detail(self) -> None:
        error = ServiceError(code="E001", message="bad")
        assert error.detail == {}
