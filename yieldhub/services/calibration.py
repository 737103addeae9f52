"""
Calibration feedback for training readings.
"""
from typing import Dict, Iterable, List, Optional

from ..models.models import CalibrationStandard


FEEDBACK_UNKNOWN = "unknown"
FEEDBACK_IN_RANGE = "in_range"
FEEDBACK_BELOW = "below_range"
FEEDBACK_ABOVE = "above_range"


def feedback_for(value: Optional[float], min_value: Optional[float], max_value: Optional[float]) -> str:
    if value is None or min_value is None or max_value is None:
        return FEEDBACK_UNKNOWN
    if value < min_value:
        return FEEDBACK_BELOW
    if value > max_value:
        return FEEDBACK_ABOVE
    return FEEDBACK_IN_RANGE


def standards_by_item(standards: Iterable[CalibrationStandard]) -> Dict[str, CalibrationStandard]:
    """Latest active standard per tracked item."""
    result: Dict[str, CalibrationStandard] = {}
    for s in standards:
        if not s.active:
            continue
        key = str(s.tracked_item_id)
        current = result.get(key)
        if current is None or (s.updated_at and current.updated_at and s.updated_at > current.updated_at):
            result[key] = s
    return result


def grade_readings(readings: Iterable[dict], standards: Dict[str, CalibrationStandard]) -> List[dict]:
    graded = []
    for r in readings:
        item_id = str(r.get("tracked_item_id"))
        value = r.get("value")
        std = standards.get(item_id)
        graded.append({
            "tracked_item_id": item_id,
            "value": value,
            "feedback": feedback_for(value, std.min_value, std.max_value) if std else FEEDBACK_UNKNOWN,
        })
    return graded
