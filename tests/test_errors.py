"""Unit tests for notifyhub.engine.errors — Error hierarchy & serialization."""

import json

import pytest

from notifyhub.engine.errors import (
    RelayAuthenticationError,
    RelayConfigError,
    RelayError,
    RelayIntegrationError,
    RelayPreconditionError,
    RelaySecurityError,
    RelayValidationError,
)


class TestRelayError:
    def test_basic_creation(self):
        err = RelayError("something broke")
        assert err.message == "something broke"
        assert str(err) == "something broke"
        assert err.error_type == "RelayError"
        assert err.context == {}

    def test_context_kept(self):
        err = RelayError("fail", topic="task-events", partition=3)
        assert err.context == {"topic": "task-events", "partition": 3}

    def test_to_dict(self):
        err = RelayError("fail", topic="task-events")
        d = err.to_dict()
        assert d["error_type"] == "RelayError"
        assert d["message"] == "fail"
        assert d["context"] == {"topic": "task-events"}
        assert "timestamp" in d

    def test_to_json(self):
        parsed = json.loads(RelayError("fail").to_json())
        assert parsed["message"] == "fail"

    def test_repr(self):
        assert repr(RelayConfigError("bad")) == "RelayConfigError: bad"


class TestSubclasses:
    @pytest.mark.parametrize("cls", [
        RelayConfigError,
        RelayValidationError,
        RelayPreconditionError,
        RelayIntegrationError,
        RelayAuthenticationError,
        RelaySecurityError,
    ])
    def test_all_inherit_base(self, cls):
        err = cls("x")
        assert isinstance(err, RelayError)
        assert err.error_type == cls.__name__

    def test_validation_errors_field(self):
        err = RelayValidationError("invalid", validation_errors=[{"loc": ["task_id"]}])
        assert err.validation_errors == [{"loc": ["task_id"]}]
        assert err.to_dict()["validation_errors"] == [{"loc": ["task_id"]}]

    def test_integration_fields(self):
        err = RelayIntegrationError(
            "Zalo API error",
            connected_system="zalo",
            status_code=200,
            error_code=-216,
            response_body={"error": -216},
        )
        assert err.connected_system == "zalo"
        assert err.status_code == 200
        assert err.error_code == -216
        assert err.response_body == {"error": -216}
        d = err.to_dict()
        assert d["connected_system"] == "zalo"
        assert d["error_code"] == -216

    def test_integration_fields_default_none(self):
        err = RelayIntegrationError("boom")
        assert err.error_code is None
        assert err.status_code is None
