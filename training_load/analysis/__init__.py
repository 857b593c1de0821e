"""Analysis module for training load calculations."""

from .model import BanisterModel, LoadSeriesCache, compute_load_series, weekly_statistics
from .peaks import PeakCurveAnalyzer, compute_peak_curves
from .performance import estimate_vo2max, estimate_vo2max_detail
from .pipeline import PipelineResult, run_pipeline
from .readiness import compute_readiness, simulate_wellness
from .stress import annotate_tss, compute_tss

__all__ = [
    "BanisterModel",
    "LoadSeriesCache",
    "PeakCurveAnalyzer",
    "PipelineResult",
    "annotate_tss",
    "compute_load_series",
    "compute_peak_curves",
    "compute_readiness",
    "compute_tss",
    "estimate_vo2max",
    "estimate_vo2max_detail",
    "run_pipeline",
    "simulate_wellness",
    "weekly_statistics",
]
