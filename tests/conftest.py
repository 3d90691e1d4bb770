import pytest

from app.core.entity_validator import EntityValidator
from app.core.exceptions import ExternalProviderFailure
from app.core.field_extractor import FieldExtractor
from app.core.incremental_editor import IncrementalEditor
from app.core.intent_classifier import IntentClassifier
from app.core.orchestrator import Orchestrator
from app.core.phase_engine import PhaseEngine
from app.llm.llm_connector import LLMConnector
from app.prompts.builder import PromptBuilder


# Scripted stand-in for a provider: returns queued replies, or fails when told to
class FakeLLMConnector(LLMConnector):
    provider_name = "fake"

    def __init__(self, replies=None, fail=False, error=None):
        self.replies = list(replies or [])
        self.fail = fail
        self.error = error
        self.calls = []

    def complete(self, system_prompt, user_prompt, max_tokens=500, temperature=0.7, json_mode=False):
        self.calls.append({"system": system_prompt, "user": user_prompt, "json_mode": json_mode})
        if self.error is not None:
            raise self.error
        if self.fail:
            raise ExternalProviderFailure(self.provider_name, RuntimeError("provider down"))
        if not self.replies:
            return "{}"
        return self.replies.pop(0)


@pytest.fixture
def extractor():
    return FieldExtractor()


@pytest.fixture
def classifier(extractor):
    return IntentClassifier(extractor=extractor)


@pytest.fixture
def validator():
    return EntityValidator()


@pytest.fixture
def editor():
    return IncrementalEditor(entity_type="universe")


@pytest.fixture
def phase_engine(extractor):
    return PhaseEngine(extractor)


@pytest.fixture
def prompt_builder():
    return PromptBuilder()


@pytest.fixture
def orchestrator():
    return Orchestrator()


@pytest.fixture
def universe():
    return {
        "id": "u1",
        "name": "Tierra Media",
        "description": "Un mundo de fantasía con magia antigua y reinos en guerra.",
        "theme": "fantasy",
        "isPublic": False,
        "initialPoints": 100,
        "statDefinitions": {
            "strength": {
                "name": "Fuerza",
                "abbreviation": "STR",
                "icon": "barbell-outline",
                "color": "#e74c3c",
                "minValue": 0,
                "maxValue": 100,
                "category": "primary",
            },
            "agility": {
                "name": "Agilidad",
                "abbreviation": "AGI",
                "icon": "flash-outline",
                "color": "#2ecc71",
                "minValue": 0,
                "maxValue": 100,
                "category": "primary",
            },
        },
        "progressionRules": [
            {
                "id": "r1",
                "keywords": ["entrenar", "pelear"],
                "affectedStats": ["strength", "agility"],
                "maxChangePerAction": 3,
                "description": "Combate",
            }
        ],
    }


@pytest.fixture
def make_llm():
    return FakeLLMConnector
