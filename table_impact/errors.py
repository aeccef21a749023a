"""Exceptions raised by the impact analysis pipeline."""


class ImpactAnalysisError(Exception):
    """Base class for analyzer errors."""


class AnalyzerNotInitializedError(ImpactAnalysisError):
    """Raised when a query is issued before ``ImpactAnalyzer.initialize`` completed."""

    def __init__(self, operation: str = "analyze_table_impact"):
        super().__init__(f"ImpactAnalyzer is not initialized: call initialize() before {operation}()")
        self.operation = operation


class IndexingCancelledError(ImpactAnalysisError):
    """Raised when the initialization scan is cancelled through its cancel event."""
