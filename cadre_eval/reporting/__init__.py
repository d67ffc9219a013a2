"""Reports over persisted evaluation runs."""

from cadre_eval.reporting.results_reporter import (
    ResponseDetail,
    ResultsReporter,
    RunComparison,
    RunReport,
)

__all__ = ["ResponseDetail", "ResultsReporter", "RunComparison", "RunReport"]
