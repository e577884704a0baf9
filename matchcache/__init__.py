"""Time-aware cache of precomputed match analyses and the jobs that maintain it."""

__version__ = "0.1.0"
