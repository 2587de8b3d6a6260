"""AI module - analysis providers, cost ledger and orchestrator."""

from .base import AnalysisProvider
from .openai_compatible import OpenAICompatibleProvider
from .factory import create_analysis_provider, build_providers
from .cost_ledger import CostLedger
from .orchestrator import AIOrchestrator

__all__ = [
    'AnalysisProvider', 'OpenAICompatibleProvider', 'create_analysis_provider',
    'build_providers', 'CostLedger', 'AIOrchestrator',
]
