from .error_handling_metrics import ErrorHandlingMetrics

__all__ = ["ErrorHandlingMetrics"]
