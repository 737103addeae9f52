"""
Production variance policy.

Expected output comes from the item's baseline ratio (baseline_output per
baseline_input). An entry is classified by its relative loss against the
tolerance bands, and the shortfall is priced as the input it should have taken.
Missing or degenerate baselines give an explicit unknown result, never zero.
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional


DEFAULT_TOLERANCE_GREEN = 0.03
DEFAULT_TOLERANCE_YELLOW = 0.06


class Classification(str, Enum):
    green = "green"
    yellow = "yellow"
    red = "red"
    unknown = "unknown"


@dataclass(frozen=True)
class Baseline:
    baseline_input: Optional[float]
    baseline_output: Optional[float]
    value_per_unit: Optional[float] = 0.0
    tolerance_green: Optional[float] = DEFAULT_TOLERANCE_GREEN
    tolerance_yellow: Optional[float] = DEFAULT_TOLERANCE_YELLOW

    @classmethod
    def from_item(cls, item) -> "Baseline":
        return cls(
            baseline_input=item.baseline_input,
            baseline_output=item.baseline_output,
            value_per_unit=item.value_per_unit,
            tolerance_green=item.tolerance_green,
            tolerance_yellow=item.tolerance_yellow,
        )


@dataclass(frozen=True)
class VarianceResult:
    expected_output: Optional[float]
    actual_output: float
    shortfall: Optional[float]
    loss_pct: Optional[float]
    classification: Classification
    waste_cost: Optional[float]

    @property
    def insufficient_data(self) -> bool:
        return self.expected_output is None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["classification"] = self.classification.value
        data["insufficient_data"] = self.insufficient_data
        return data


def expected_output(baseline: Baseline, input_used: float) -> Optional[float]:
    if baseline.baseline_input is None or baseline.baseline_output is None:
        return None
    if baseline.baseline_input == 0:
        return None
    return input_used * baseline.baseline_output / baseline.baseline_input


def waste_cost(baseline: Baseline, expected: float, actual: float) -> Optional[float]:
    if baseline.baseline_input is None or baseline.baseline_output is None:
        return None
    if baseline.baseline_output == 0:
        return None
    short = expected - actual
    if short <= 0:
        return 0.0
    wasted_input = short * (baseline.baseline_input / baseline.baseline_output)
    return wasted_input * (baseline.value_per_unit or 0.0)


def classify(baseline: Baseline, expected: float, actual: float) -> Classification:
    """Band the relative loss. Meeting or beating expectation is always green."""
    green = baseline.tolerance_green if baseline.tolerance_green is not None else DEFAULT_TOLERANCE_GREEN
    yellow = baseline.tolerance_yellow if baseline.tolerance_yellow is not None else DEFAULT_TOLERANCE_YELLOW
    short = expected - actual
    if short <= 0:
        return Classification.green
    if expected <= 0:
        return Classification.unknown
    loss_pct = short / expected
    if loss_pct <= green:
        return Classification.green
    if loss_pct <= yellow:
        return Classification.yellow
    return Classification.red


def evaluate(baseline: Baseline, input_used: float, output_count: float) -> VarianceResult:
    expected = expected_output(baseline, input_used)
    if expected is None:
        return VarianceResult(
            expected_output=None,
            actual_output=output_count,
            shortfall=None,
            loss_pct=None,
            classification=Classification.unknown,
            waste_cost=None,
        )
    short = max(0.0, expected - output_count)
    loss_pct = short / expected if expected > 0 else None
    return VarianceResult(
        expected_output=expected,
        actual_output=output_count,
        shortfall=short,
        loss_pct=loss_pct,
        classification=classify(baseline, expected, output_count),
        waste_cost=waste_cost(baseline, expected, output_count),
    )


def evaluate_entry(item, entry) -> VarianceResult:
    return evaluate(Baseline.from_item(item), entry.input_used, entry.output_count)
