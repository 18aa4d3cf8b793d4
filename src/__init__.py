"""Plan Engine — declarative plan execution for managed cluster workloads."""

__version__ = "0.4.0"
