from typing import List, Literal

from pydantic import BaseModel, Field

AnalysisProvider = Literal["llm", "rules-only"]


class ProgressionRule(BaseModel):
    """Keyword-triggered stat growth rule stored in a universe's `progressionRules`."""
    id: str = ""
    keywords: List[str] = Field(default_factory=list)
    affectedStats: List[str] = Field(default_factory=list)
    maxChangePerAction: int = Field(1, ge=1, le=100)
    description: str = ""


class StatSuggestion(BaseModel):
    stat: str
    change: int
    reason: str = ""


class ActionAnalysis(BaseModel):
    analysis: str
    stat_changes: List[StatSuggestion] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)


class AnalysisOutcome(BaseModel):
    result: ActionAnalysis
    provider: AnalysisProvider
