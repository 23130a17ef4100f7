"""
Rule tables for the verification scorers.

Each scoring policy is an ordered list of rule groups. Within a group the
first rule whose predicate holds fires; groups are independent and their
deltas are summed, so the order of groups never changes the result.
"""

from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, Sequence, TypeVar, Union

T = TypeVar("T")

FactorText = Union[str, Callable[[T], str]]


@dataclass(frozen=True)
class ScoringRule(Generic[T]):
    """One policy row: predicate, score/risk deltas and the explanation it emits."""
    name: str
    predicate: Callable[[T], bool]
    score_delta: float
    risk_delta: float
    factor: FactorText
    corroborating: bool = False

    def applies(self, context: T) -> bool:
        return bool(self.predicate(context))

    def describe(self, context: T) -> str:
        if callable(self.factor):
            return self.factor(context)
        return self.factor


@dataclass(frozen=True)
class RuleGroup(Generic[T]):
    """Mutually exclusive rules; the first match wins."""
    name: str
    rules: Sequence[ScoringRule[T]]

    def first_match(self, context: T) -> Optional[ScoringRule[T]]:
        for rule in self.rules:
            if rule.applies(context):
                return rule
        return None


@dataclass
class RuleOutcome:
    """Summed contribution of every rule that fired."""
    score_delta: float = 0.0
    risk_delta: float = 0.0
    corroborations: int = 0
    factors: List[str] = field(default_factory=list)
    fired: List[str] = field(default_factory=list)


def evaluate_rule_groups(groups: Sequence[RuleGroup[T]], context: T) -> RuleOutcome:
    """
    Evaluate rule groups against a context.

    Args:
        groups: Rule groups in reporting order
        context: Object handed to every predicate and factor builder

    Returns:
        RuleOutcome with summed deltas and the factor of every fired rule
    """
    outcome = RuleOutcome()
    for group in groups:
        rule = group.first_match(context)
        if rule is None:
            continue
        outcome.score_delta += rule.score_delta
        outcome.risk_delta += rule.risk_delta
        if rule.corroborating:
            outcome.corroborations += 1
        outcome.factors.append(rule.describe(context))
        outcome.fired.append(f"{group.name}.{rule.name}")
    return outcome


def clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    """Clamp a score into [lower, upper]."""
    return max(lower, min(upper, value))
