"""Conformance harness - accuracy and latency checks over the shipped fixtures."""
from .harness import (
    keyword_accuracy,
    load_keyword_regression,
    load_scenarios,
    run_scenarios,
    summarize,
)

__all__ = [
    'keyword_accuracy', 'load_keyword_regression', 'load_scenarios',
    'run_scenarios', 'summarize',
]
