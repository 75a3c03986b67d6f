"""Token estimation."""

from ramus.tokens.estimator import TokenEstimator

__all__ = ["TokenEstimator"]
