"""Tests for configuration, the error taxonomy and logging helpers."""

import asyncio
import json
import logging

import pytest
from pydantic import ValidationError as PydanticValidationError

from agenthub.config import Settings
from agenthub.enhanced_logging import configure_logging, track_performance
from agenthub.exceptions_unified import (
    AgentHubException,
    ErrorCategory,
    NoAgentAvailableError,
    PlanInvalidError,
    RequestTimeoutError,
    UnsupportedActionError,
    error_type_of,
)


# --- Settings ---


def test_settings_defaults():
    settings = Settings()
    assert settings.max_concurrent_tasks == 5
    assert settings.backpressure_policy == "reject"
    assert settings.workflow_execution_mode == "dependency_graph"
    assert settings.route_timeout_ms == 30000
    assert settings.stale_threshold_seconds == 300


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("AGENTHUB_MAX_CONCURRENT_TASKS", "7")
    monkeypatch.setenv("AGENTHUB_BACKPRESSURE_POLICY", "drop_oldest")
    settings = Settings()
    assert settings.max_concurrent_tasks == 7
    assert settings.backpressure_policy == "drop_oldest"


def test_settings_log_level_is_normalized():
    settings = Settings(log_level="debug")
    assert settings.log_level == "DEBUG"
    assert settings.get_log_level() == logging.DEBUG


@pytest.mark.parametrize(
    "field,value",
    [
        ("backpressure_policy", "block"),
        ("workflow_execution_mode", "parallel"),
        ("environment", "qa"),
        ("max_concurrent_tasks", 0),
        ("log_format", "xml"),
    ],
)
def test_settings_reject_invalid_values(field, value):
    with pytest.raises(PydanticValidationError):
        Settings(**{field: value})


# --- Exceptions ---


def test_no_agent_available():
    error = NoAgentAvailableError("pricing_calculations")
    assert str(error) == "No agents available for capability: pricing_calculations"
    assert error.error_type == "NoAgentAvailable"
    assert error.category == ErrorCategory.ROUTING
    data = error.to_dict()
    assert data["error_type"] == "NoAgentAvailable"
    assert data["details"] == {"capability": "pricing_calculations"}


def test_timeout_and_unsupported_carry_worker():
    timeout = RequestTimeoutError("lead_agent", 5000)
    assert timeout.category == ErrorCategory.TIMEOUT
    assert "5000ms" in str(timeout)

    unsupported = UnsupportedActionError("fly", "lead_agent")
    assert str(unsupported) == "Action 'fly' not supported by agent lead_agent"
    assert unsupported.is_recoverable is False


def test_plan_invalid_details():
    error = PlanInvalidError("cycle", cycle=["a", "b", "a"])
    assert error.details["cycle"] == ["a", "b", "a"]
    assert error.unknown_dependencies == {}


def test_error_type_of():
    assert error_type_of(NoAgentAvailableError("x")) == "NoAgentAvailable"
    assert error_type_of(TimeoutError()) == "RequestTimeout"
    assert error_type_of(ValueError("x")) == "ExecutionFailure"
    assert error_type_of(AgentHubException("x")) == "AgentHubError"


def test_error_context_timestamp_is_utc_aware():
    error = RequestTimeoutError("lead_agent", 5000)
    assert error.context.timestamp.tzinfo is not None
    assert error.context.timestamp.utcoffset().total_seconds() == 0
    assert error.to_dict()["timestamp"].endswith("+00:00")


# --- Logging ---


@pytest.fixture
def json_logging(capsys):
    logger = configure_logging(level="INFO", log_format="json")
    yield logger
    for handler in list(logger.handlers):
        if getattr(handler, "_agenthub_handler", False):
            logger.removeHandler(handler)


def test_json_logging(json_logging, capsys):
    logging.getLogger("agenthub.tests").info("worker ready", extra={"worker_id": "lead_agent"})

    line = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(line)
    assert record["message"] == "worker ready"
    assert record["level"] == "INFO"
    assert record["logger"] == "agenthub.tests"
    assert record["worker_id"] == "lead_agent"


def test_configure_logging_replaces_handler(json_logging):
    logger = configure_logging(level="INFO", log_format="text")
    ours = [h for h in logger.handlers if getattr(h, "_agenthub_handler", False)]
    assert len(ours) == 1


def test_track_performance_sync_and_async():
    @track_performance
    def add(a, b):
        return a + b

    @track_performance(operation="multiply")
    async def multiply(a, b):
        return a * b

    assert add(2, 3) == 5
    assert asyncio.run(multiply(2, 3)) == 6
    assert add.__name__ == "add"
