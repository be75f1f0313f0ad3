from typing import Iterable, Optional, Tuple


def letter_grade(percentage: float) -> str:
    if percentage >= 90:
        return "A"
    if percentage >= 80:
        return "B"
    if percentage >= 70:
        return "C"
    if percentage >= 60:
        return "D"
    return "F"


def overall_percentage(scores: Iterable[Tuple[Optional[float], float]]) -> Optional[float]:
    """Points-weighted percentage over (earned, total) pairs; ungraded pairs are ignored"""
    earned = 0.0
    total = 0.0
    for points_earned, total_points in scores:
        if points_earned is None or not total_points:
            continue
        earned += points_earned
        total += total_points
    if total == 0:
        return None
    return round(earned / total * 100, 2)
