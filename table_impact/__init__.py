"""Static table impact analysis for multi-module Java monoliths using MyBatis/iBatis mappers."""
from table_impact.analyzer import ImpactAnalyzer
from table_impact.errors import AnalyzerNotInitializedError, ImpactAnalysisError, IndexingCancelledError
from table_impact.models import CallChain, ImpactAnalysisResult
from table_impact.settings import ConfigManager

__version__ = "0.1.0"

__all__ = [
    'AnalyzerNotInitializedError',
    'CallChain',
    'ConfigManager',
    'ImpactAnalysisError',
    'ImpactAnalysisResult',
    'ImpactAnalyzer',
    'IndexingCancelledError',
]
