"""Behavior categories and the score → category classifier.

The classifier is a pure function of (risk, anomaly).  Categories are never
stored: anything that needs one asks classify() with the current scores.
"""

from enum import IntEnum


class BehaviorCategory(IntEnum):
    NORMAL = 0
    SUSPICIOUS = 1
    BOT_LIKE = 2
    EXPLOIT_ATTEMPT = 3
    ADVANCED_EXPLOIT = 4


# Upper bounds (exclusive) of the combined score for each category.
# Hand-tuned; override through ProfileConfig.category_thresholds.
DEFAULT_THRESHOLDS = (0.2, 0.4, 0.6, 0.8)


def classify(risk_score: float, anomaly_score: float,
             thresholds: tuple[float, ...] = DEFAULT_THRESHOLDS) -> tuple[BehaviorCategory, float]:
    """Return (category, confidence) for the given scores.

    confidence is the combined score, except for NORMAL where it is the
    confidence in normalcy (1 - combined).
    """
    combined = (risk_score + anomaly_score) / 2
    for level, upper in enumerate(thresholds):
        if combined < upper:
            category = BehaviorCategory(level)
            break
    else:
        category = BehaviorCategory.ADVANCED_EXPLOIT

    if category is BehaviorCategory.NORMAL:
        return category, 1.0 - combined
    return category, combined
