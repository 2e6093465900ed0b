"""Function-usage tracking for JCBot."""

from .runtime import seen_functions, t

__all__ = ["t", "seen_functions"]
