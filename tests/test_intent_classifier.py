import pytest

from app.core.intent_classifier import IntentClassifier
from app.models.intent import IntentDetectorConfig


def test_spanish_create_with_quoted_name_and_theme(classifier):
    intent = classifier.classify('Crear un universo llamado "Tierra Media" de fantasía')
    assert intent.action == "create"
    assert intent.target == "universe"
    assert intent.language == "es"
    assert intent.confidence == 0.8
    assert intent.get_field("name").value == "Tierra Media"
    assert intent.get_field("theme").value == "fantasy"
    assert intent.needs_clarification is False


def test_create_without_name_asks_for_it(classifier):
    intent = classifier.classify("Quiero crear un universo")
    assert intent.action == "create"
    assert intent.target == "universe"
    assert intent.needs_clarification is True
    assert intent.clarification_questions == ["¿Cómo te gustaría llamar a este universo?"]


def test_english_character_creation(classifier):
    intent = classifier.classify("I want to create a new character named Aragorn")
    assert intent.language == "en"
    assert intent.action == "create"
    assert intent.target == "character"
    assert intent.get_field("name").value == "Aragorn"


def test_empty_text_is_unknown(classifier):
    intent = classifier.classify("   ")
    assert intent.action == "unknown"
    assert intent.confidence == 0.0
    assert intent.needs_clarification is True


def test_unmatched_text_defaults_to_low_confidence_query(classifier):
    intent = classifier.classify("Tierra Media", contextual_target="universe")
    assert intent.action == "query"
    assert intent.confidence == 0.3
    assert intent.matched_keywords == []


@pytest.mark.parametrize(
    "text,action",
    [
        ("cambia la descripción por algo más oscuro", "edit"),
        ("sí, de acuerdo", "confirm"),
        ("cancelar", "cancel"),
        ("borra la raza de los orcos", "delete"),
        ("siguiente fase", "navigate"),
        ("muestra el progreso", "query"),
        ("go ahead", "confirm"),
        ("remove the rule", "delete"),
    ],
)
def test_rule_actions(classifier, text, action):
    assert classifier.classify(text).action == action


def test_edit_keeps_contextual_target(classifier):
    intent = classifier.classify("cambia el tono", contextual_target="character")
    assert intent.action == "edit"
    assert intent.target == "character"


def test_target_refined_by_earliest_keyword(classifier):
    assert classifier.refine_target("quiero anadir una raza al universo", "universe") == "race"


def test_language_detection(classifier):
    assert classifier.detect_language("Quiero crear un personaje con magia") == "es"
    assert classifier.detect_language("I want to create a world with magic") == "en"


def test_spanish_preposition_a_is_not_english(classifier):
    assert classifier.detect_language("Quiero rangos de E a SSS") == "es"
    assert classifier.detect_language("Rangos de E a SSS") == "es"


def test_language_tie_keeps_current_language(classifier):
    assert classifier.detect_language("Rangos de E a SSS", current_language="en") == "en"
    assert classifier.classify("E a SSS", current_language="en").language == "en"
    # A clear signal still wins
    assert classifier.detect_language("Quiero crear un mundo", current_language="en") == "es"


def test_language_detection_can_be_disabled():
    classifier = IntentClassifier(IntentDetectorConfig(auto_detect_language=False, default_language="en"))
    assert classifier.detect_language("Quiero crear un personaje") == "en"


def test_target_label():
    assert IntentClassifier.target_label("race", "es") == "raza"
    assert IntentClassifier.target_label("race", "en") == "race"
