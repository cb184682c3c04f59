"""External service clients for the cafe ledger."""

from cafe_ledger.clients.gemini import (
    AnalysisResult,
    GeminiImageAnalyzer,
    ImageAnalysisError,
    parse_analysis_payload,
)

__all__ = [
    "AnalysisResult",
    "GeminiImageAnalyzer",
    "ImageAnalysisError",
    "parse_analysis_payload",
]
