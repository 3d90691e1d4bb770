import json

import pytest

from app.models.progression import ProgressionRule
from app.services.progression_analyzer import ProgressionAnalyzer

CHARACTER = {"name": "Aragorn", "stats": {"strength": 10, "agility": 8}, "progression": {"level": 2}}


@pytest.fixture
def analyzer():
    return ProgressionAnalyzer()


def test_rules_only_match(analyzer, universe):
    result = analyzer.analyze_with_rules_only("Hoy fui a entrenar con la espada", universe["progressionRules"])

    assert result.analysis == "Análisis basado en reglas: Combate"
    assert [(c.stat, c.change) for c in result.stat_changes] == [("strength", 3), ("agility", 2)]
    assert result.stat_changes[0].reason == 'Keyword detectada: "entrenar"'
    assert result.confidence == 0.6


def test_keywords_match_without_accents(analyzer):
    rules = [ProgressionRule(id="r", keywords=["meditación"], affectedStats=["wisdom"], maxChangePerAction=2)]
    result = analyzer.analyze_with_rules_only("Pasó la noche en meditacion", rules)
    assert result.stat_changes[0].stat == "wisdom"


def test_overlapping_rules_stay_capped(analyzer, universe):
    rules = universe["progressionRules"] + [
        {"id": "r2", "keywords": ["magia"], "affectedStats": ["agility", "magic"], "maxChangePerAction": 2}
    ]
    result = analyzer.analyze_with_rules_only("entrenar magia", rules)
    assert [(c.stat, c.change) for c in result.stat_changes] == [("strength", 3), ("agility", 2), ("magic", 1)]


def test_at_most_four_suggestions(analyzer):
    rule = ProgressionRule(keywords=["todo"], affectedStats=list("abcdef"), maxChangePerAction=10)
    result = analyzer.analyze_with_rules_only("lo entreno todo", [rule])
    assert [c.change for c in result.stat_changes] == [10, 9, 8, 7]


def test_no_match(analyzer, universe):
    result = analyzer.analyze_with_rules_only("Durmió toda la tarde", universe["progressionRules"])
    assert result.stat_changes == []
    assert result.confidence == 0.0
    assert result.analysis == "No se encontraron coincidencias con las reglas de progresión"

    english = analyzer.analyze_with_rules_only("slept", universe["progressionRules"], language="en")
    assert english.analysis == "No progression rule matched this action"


def test_without_connector_uses_rules(analyzer, universe):
    assert analyzer.available_provider() == "rules-only"
    outcome = analyzer.analyze_action("entrenar", CHARACTER, universe["progressionRules"])
    assert outcome.provider == "rules-only"


def test_llm_suggestions_are_filtered_and_capped(make_llm, universe):
    reply = {
        "analysis": "Entrenó duro",
        "stat_changes": [
            {"stat": "strength", "change": 9, "reason": "Levantó peso"},
            {"stat": "mana", "change": 2},
            {"stat": "agility", "change": 0},
        ],
        "confidence": 0.9,
    }
    connector = make_llm(replies=[json.dumps(reply)])
    analyzer = ProgressionAnalyzer(llm_connector=connector)

    outcome = analyzer.analyze_action("entrené toda la mañana", CHARACTER, universe["progressionRules"])

    assert outcome.provider == "llm"
    changes = outcome.result.stat_changes
    assert [(c.stat, c.change) for c in changes] == [("strength", 3), ("agility", 1)]
    assert changes[1].reason == "Sin razón especificada"
    assert outcome.result.confidence == 0.9
    assert "Aragorn" in connector.calls[0]["user"]


def test_malformed_llm_reply_falls_back(make_llm, universe):
    analyzer = ProgressionAnalyzer(llm_connector=make_llm(replies=['{"foo": 1}']))
    outcome = analyzer.analyze_action("entrenar", CHARACTER, universe["progressionRules"])
    assert outcome.provider == "rules-only"
    assert outcome.result.stat_changes[0].stat == "strength"


def test_provider_failure_falls_back(make_llm, universe):
    analyzer = ProgressionAnalyzer(llm_connector=make_llm(fail=True))
    outcome = analyzer.analyze_action("entrenar", CHARACTER, universe["progressionRules"])
    assert outcome.provider == "rules-only"


def test_forced_rules_only_skips_llm(make_llm, universe):
    connector = make_llm()
    analyzer = ProgressionAnalyzer(llm_connector=connector)
    outcome = analyzer.analyze_action("entrenar", CHARACTER, universe["progressionRules"], force_provider="rules-only")
    assert outcome.provider == "rules-only"
    assert connector.calls == []


def test_connector_crash_falls_back(make_llm, universe):
    analyzer = ProgressionAnalyzer(llm_connector=make_llm(error=TimeoutError("read timed out")))
    outcome = analyzer.analyze_action("entrenar", CHARACTER, universe["progressionRules"])
    assert outcome.provider == "rules-only"
    assert outcome.result.stat_changes[0].stat == "strength"
