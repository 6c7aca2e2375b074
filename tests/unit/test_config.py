from __future__ import annotations

import textwrap

import pytest

from node_planner.config import ConfigError, PlannerConfig, load_config, parse_duration
from node_planner.models.errors import LLMTransportError


def _write(tmp_path, body: str):
    path = tmp_path / "planner.yaml"
    path.write_text(textwrap.dedent(body).lstrip(), encoding="utf-8")
    return path


def test_defaults_match_documented_values() -> None:
    config = load_config(environ={"PLANNER_LLM_PROVIDER": "offline"})

    assert config.llm.max_tokens == 4096
    assert config.llm.temperature == 0.0
    assert config.llm.retry.max_attempts == 3
    assert config.llm.retry.initial_delay == 1.0
    assert config.llm.retry.max_delay == 10.0
    assert config.llm.retry.multiplier == 2.0
    assert config.planning.max_iterations == 3
    assert config.planning.max_nodes == 50
    assert config.planning.prompt_path == "./prompts"


def test_environment_overrides_yaml(tmp_path) -> None:
    path = _write(
        tmp_path,
        """
        llm:
          provider: openai
          api_key: from-file
          model: gpt-4o
          timeout: 30s
          retry:
            max_attempts: 5
            initial_delay: 500ms
        planning:
          max_iterations: 2
        logging:
          format: console
        """,
    )

    config = load_config(path, environ={"PLANNER_LLM_MODEL": "gpt-4o-mini", "PLANNER_MAX_ITERATIONS": "4"})

    assert config.llm.provider == "openai"
    assert config.llm.api_key == "from-file"
    assert config.llm.model == "gpt-4o-mini"
    assert config.llm.timeout == 30.0
    assert config.llm.retry.max_attempts == 5
    assert config.llm.retry.initial_delay == 0.5
    assert config.planning.max_iterations == 4
    assert config.logging.format == "console"


def test_provider_key_variable_is_a_fallback() -> None:
    config = load_config(environ={"ANTHROPIC_API_KEY": "sk-ant"})
    assert config.llm.api_key == "sk-ant"

    explicit = load_config(environ={"ANTHROPIC_API_KEY": "sk-ant", "PLANNER_LLM_API_KEY": "sk-planner"})
    assert explicit.llm.api_key == "sk-planner"


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(ConfigError, match="API key"):
        load_config(environ={})


@pytest.mark.parametrize(
    "body, message",
    [
        ("llm:\n  provider: mystery\n", "unsupported LLM provider"),
        ("planning:\n  max_iterations: 0\n", "max iterations"),
        ("llm:\n  retry:\n    multiplier: 1\n", "multiplier"),
        ("logging:\n  level: loud\n", "invalid log level"),
        ("planning:\n  max_nodes: many\n", "planning.max_nodes"),
        ("- just\n- a list\n", "mapping"),
    ],
)
def test_invalid_configuration_is_reported(tmp_path, body, message) -> None:
    path = tmp_path / "planner.yaml"
    path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError, match=message):
        load_config(path, environ={"PLANNER_LLM_API_KEY": "k"})


def test_parse_duration_units() -> None:
    assert parse_duration("500ms") == 0.5
    assert parse_duration("2s") == 2.0
    assert parse_duration("1m") == 60.0
    assert parse_duration("1h") == 3600.0
    assert parse_duration(3) == 3.0
    assert parse_duration("1.5") == 1.5
    with pytest.raises(ConfigError):
        parse_duration("soon")
    with pytest.raises(ConfigError):
        parse_duration(True)


def test_to_dict_masks_secrets() -> None:
    config = PlannerConfig()
    config.llm.api_key = "sk-secret"
    assert config.to_dict()["llm"]["api_key"] == "****"
    assert config.to_dict(mask_secrets=False)["llm"]["api_key"] == "sk-secret"


def test_retry_all_errors_off_fails_fast_on_permanent_errors() -> None:
    config = PlannerConfig()
    config.llm.retry.retry_all_errors = False
    policy = config.llm.retry.build_policy()
    calls: list[int] = []

    def operation():
        calls.append(1)
        raise LLMTransportError("HTTP 401", transient=False, status=401)

    with pytest.raises(LLMTransportError):
        policy.call(operation)
    assert calls == [1]
