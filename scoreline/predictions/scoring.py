"""Aggregate scoring for settled predictions.

ROI is normalized by the total number of outcomes, so undecided outcomes add
nothing to the numerator but still count in the denominator.
"""

from typing import Any, Iterable, Optional

from scoreline.etl.normalize import to_int

# MVP bonuses layered on top of the per-outcome points
OUTCOME_BONUS = 2
EXACT_SCORE_BONUS = 5

_OUTCOME_ALIASES = {
    "1": "1", "П1": "1", "W1": "1", "HOME": "1",
    "X": "X", "Х": "X", "DRAW": "X", "0": "X",
    "2": "2", "П2": "2", "W2": "2", "AWAY": "2",
}


def profit(result: str, coefficient: float) -> float:
    if result == "won":
        return coefficient - 1
    if result == "lost":
        return -1.0
    return 0.0


def summarize(details: Iterable[dict]) -> dict:
    """total/won/lost/undecided counts, hit_rate = won/total and roi = sum(profit)/total."""
    details = list(details)
    total = len(details)
    won = sum(1 for d in details if d["result"] == "won")
    lost = sum(1 for d in details if d["result"] == "lost")
    undecided = total - won - lost
    profit_sum = sum(profit(d["result"], float(d.get("coefficient") or 0)) for d in details)
    return {
        "total": total,
        "won": won,
        "lost": lost,
        "undecided": undecided,
        "hit_rate": won / total if total else 0.0,
        "roi": profit_sum / total if total else 0.0,
    }


def normalize_outcome_guess(value: Any) -> Optional[str]:
    if value is None:
        return None
    return _OUTCOME_ALIASES.get(str(value).strip().upper())


def parse_score_guess(value: Any) -> Optional[tuple[int, int]]:
    """'2-1', '2:1' or {'home': 2, 'away': 1} -> (2, 1)."""
    if isinstance(value, dict):
        home, away = to_int(value.get("home")), to_int(value.get("away"))
    elif isinstance(value, str):
        text = value.replace(":", "-").replace(" ", "")
        parts = text.split("-")
        if len(parts) != 2:
            return None
        home, away = to_int(parts[0]), to_int(parts[1])
    else:
        return None
    if home is None or away is None:
        return None
    return home, away


def mvp_bonus(prediction: Optional[dict], match: Any) -> dict:
    """
    Points for the two special legacy fields of a prediction.

    ``outcome`` ('1', 'X', '2') earns OUTCOME_BONUS when it matches the result;
    ``score`` ('2-1') earns EXACT_SCORE_BONUS when it is the exact final score.
    """
    breakdown = {"outcome": 0, "score": 0}
    if not prediction or match is None or match.get("status") != "finished":
        return breakdown
    home, away = match.get("home_score"), match.get("away_score")
    if home is None or away is None:
        return breakdown

    guess = normalize_outcome_guess(prediction.get("outcome"))
    if guess is not None:
        actual = "1" if home > away else "2" if home < away else "X"
        if guess == actual:
            breakdown["outcome"] = OUTCOME_BONUS

    score = parse_score_guess(prediction.get("score"))
    if score is not None and score == (home, away):
        breakdown["score"] = EXACT_SCORE_BONUS
    return breakdown


def compute_scoring(details: Iterable[dict], prediction: Optional[dict] = None, match: Any = None) -> dict:
    """One point per won outcome plus the MVP bonuses."""
    details = list(details)
    won_points = sum(1 for d in details if d["result"] == "won")
    bonus = mvp_bonus(prediction, match)
    return {
        "points": won_points + bonus["outcome"] + bonus["score"],
        "breakdown": {"outcomes": won_points, **bonus},
    }
