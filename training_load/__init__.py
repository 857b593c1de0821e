"""Training load engine: stress scores, fitness/fatigue modelling, peak curves and readiness."""

__version__ = "0.1.0"
