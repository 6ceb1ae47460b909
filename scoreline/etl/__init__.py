"""ETL module: LiveScore client, normalization and the history sync engine."""

from scoreline.etl.drivers import run_backward, run_forward
from scoreline.etl.history_sync import HistorySync, PeriodResult, process_history_period
from scoreline.etl.livescore import LiveScoreClient, get_request_budget_status, set_request_budget

__all__ = [
    "LiveScoreClient",
    "HistorySync",
    "PeriodResult",
    "process_history_period",
    "run_backward",
    "run_forward",
    "get_request_budget_status",
    "set_request_budget",
]
