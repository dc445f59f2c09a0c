"""
Custom exceptions for the connect error metrics package.

Recording paths never raise; these surface only from construction and
from the substrate's removal step (where callers log and absorb them).
"""


class ConnectMetricsError(Exception):
    """Base error for the metrics substrate."""

    pass


class MetricsConfigurationError(ConnectMetricsError):
    """Malformed group, tag or metric name configuration."""

    pass


class MetricRemovalError(ConnectMetricsError):
    """A metric could not be removed from the collector registry."""

    pass
