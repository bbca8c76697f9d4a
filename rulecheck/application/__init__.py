"""Application services."""

from .analysis import AnalysisService, configure_analysis_service, get_analysis_service, reset_analysis_state

__all__ = [
    "AnalysisService",
    "configure_analysis_service",
    "get_analysis_service",
    "reset_analysis_state",
]
