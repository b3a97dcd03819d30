from __future__ import annotations

from enum import Enum


class ConfidenceLevel(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def confidence_level(confidence: float, high: float = 0.8, medium: float = 0.5) -> ConfidenceLevel:
    if confidence >= high:
        return ConfidenceLevel.HIGH
    if confidence >= medium:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# Keyword hits map onto [0.4, 0.9]: no hit is the 0.4 floor, each hit adds 0.1
# on top of 0.5 until the 0.9 ceiling.
NO_MATCH_CONFIDENCE = 0.4


def keyword_confidence(hits: int, base: float = 0.5, step: float = 0.1, ceiling: float = 0.9) -> float:
    if hits <= 0:
        return NO_MATCH_CONFIDENCE
    return round(min(ceiling, base + hits * step), 2)
