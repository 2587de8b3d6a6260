"""
Analysis Provider Base - Abstract base for all AI analysis providers.
"""

from abc import ABC, abstractmethod
from typing import Dict, Any

from ..models import AIAnalysis, AIAnalysisType


class AnalysisProvider(ABC):
    """
    Abstract base class for AI analysis providers.
    The orchestrator only depends on this interface, so new providers can be
    added without touching its control flow.
    """

    def __init__(self, name: str, cost_per_request: float, timeout: float):
        """
        Initialize provider.

        Args:
            name: Provider name used in analyses and the cost ledger
            cost_per_request: USD charged per successful request
            timeout: Seconds allowed per request
        """
        self.name = name
        self.cost_per_request = cost_per_request
        self.timeout = timeout

    @abstractmethod
    async def analyze(self, payload: Dict[str, Any], analysis_type: AIAnalysisType) -> AIAnalysis:
        """
        Analyze a record payload.

        Args:
            payload: Record payload and context to analyze
            analysis_type: Kind of analysis requested

        Returns:
            AIAnalysis produced by this provider
        """
        pass
