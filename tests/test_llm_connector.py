import pytest

from app.core.exceptions import ExternalProviderFailure
from app.llm.llm_connector import parse_json_object
from app.models.prompt import PromptContext


@pytest.fixture
def prompt(prompt_builder):
    return prompt_builder.build_clarification_prompt(["name"], PromptContext(mode="universe"))


def test_raw_connector_errors_become_provider_failures(make_llm, prompt):
    connector = make_llm(error=ConnectionError("connection reset by peer"))

    with pytest.raises(ExternalProviderFailure) as info:
        connector.complete_json(prompt)

    assert info.value.provider == "fake"
    assert isinstance(info.value.cause, ConnectionError)
    assert isinstance(info.value.__cause__, ConnectionError)


def test_provider_failures_pass_through_unchanged(make_llm, prompt):
    with pytest.raises(ExternalProviderFailure) as info:
        make_llm(fail=True).complete_prompt(prompt)
    assert isinstance(info.value.cause, RuntimeError)


def test_fenced_json_is_parsed():
    assert parse_json_object('Sure:\n```json\n{"a": 1}\n```') == {"a": 1}


def test_non_object_reply_is_a_failure():
    with pytest.raises(ExternalProviderFailure):
        parse_json_object("[1, 2]")
