"""Reference analysis engine used by the Codesense daemon."""

from .engine import AnalysisEngine, EngineError, LibrarySymbol
from .source import SourceFile

__all__ = [
    "AnalysisEngine",
    "EngineError",
    "LibrarySymbol",
    "SourceFile",
]
