# Rule-based pre-filter
from archlog.sieve.scorer import SIEVE_THRESHOLD, SieveResult, score

__all__ = ["SIEVE_THRESHOLD", "SieveResult", "score"]
