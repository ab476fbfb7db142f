"""CLI summaries of runs, grant profiles and submissions."""

from .summary import RunSummaryReporter, format_grant_profiles, format_run, format_submission

__all__ = ["RunSummaryReporter", "format_grant_profiles", "format_run", "format_submission"]
