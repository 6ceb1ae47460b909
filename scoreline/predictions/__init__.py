"""Prediction evaluation and settlement."""

from scoreline.predictions.evaluator import Verdict, evaluate, evaluate_many
from scoreline.predictions.rules import OutcomeRule

__all__ = ["OutcomeRule", "Verdict", "evaluate", "evaluate_many"]
