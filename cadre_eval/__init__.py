"""CADRE evaluation engine.

Benchmarks language models against a fixed question set: generates
responses, grades them with a judge model, and aggregates scores with
bootstrap confidence intervals and consistency metrics.
"""

__version__ = "0.3.0"
