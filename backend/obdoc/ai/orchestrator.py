"""
AI Analysis Orchestrator - ordered provider fallback under a shared cost ceiling.

Flow:
1. Serve from cache when the same payload was analyzed recently
2. Check the cost ledger before calling anything
3. Try providers in preference order, each bounded by its own timeout
4. Record the cost of the first success and flag low confidence
"""

import asyncio
import hashlib
import json
import logging
import time
from typing import Optional, List, Dict, Any, Tuple

from ..core.exceptions import AIServiceUnavailable
from ..models import AIAnalysis, AIAnalysisType
from .base import AnalysisProvider
from .cost_ledger import CostLedger

logger = logging.getLogger(__name__)


class AIOrchestrator:
    """
    Calls interchangeable analysis providers with fallback.

    Providers are tried in the configured fallback order, re-ranked per
    analysis type when a preference list exists for that type.
    """

    def __init__(
        self,
        providers: List[AnalysisProvider],
        ledger: CostLedger,
        confidence_threshold: float = 0.7,
        type_preferences: Optional[Dict[str, List[str]]] = None,
        cache_ttl: float = 3600,
        cache_max_entries: int = 1000,
    ):
        self.providers = list(providers)
        self.ledger = ledger
        self.confidence_threshold = confidence_threshold
        self.type_preferences = type_preferences or {}
        self.cache_ttl = cache_ttl
        self.cache_max_entries = cache_max_entries
        self._cache: Dict[Tuple[str, str], Tuple[float, AIAnalysis]] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.providers)

    def provider_order(self, analysis_type: AIAnalysisType) -> List[AnalysisProvider]:
        """Providers in the order they will be tried for analysis_type."""
        preferred = self.type_preferences.get(analysis_type.value)
        if not preferred:
            return list(self.providers)

        rank = {name: index for index, name in enumerate(preferred)}
        # Stable sort keeps the fallback order for providers without a preference
        return sorted(self.providers, key=lambda p: rank.get(p.name, len(rank)))

    @staticmethod
    def _fingerprint(payload: Dict[str, Any]) -> str:
        body = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(body.encode("utf-8")).hexdigest()

    def _cached(self, key: Tuple[str, str]) -> Optional[AIAnalysis]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, analysis = entry
        if time.monotonic() - stored_at > self.cache_ttl:
            del self._cache[key]
            return None
        return analysis

    def _remember(self, key: Tuple[str, str], analysis: AIAnalysis) -> None:
        """Cache an analysis, dropping expired entries and then the oldest ones when full."""
        now = time.monotonic()
        expired = [k for k, (stored_at, _) in self._cache.items() if now - stored_at > self.cache_ttl]
        for k in expired:
            del self._cache[k]

        self._cache.pop(key, None)
        while self._cache and len(self._cache) >= self.cache_max_entries:
            # dicts keep insertion order, so the first key is the oldest
            del self._cache[next(iter(self._cache))]
        if self.cache_max_entries > 0:
            self._cache[key] = (now, analysis)

    async def analyze(self, payload: Dict[str, Any], analysis_type: AIAnalysisType) -> AIAnalysis:
        """
        Run an analysis through the provider chain.

        Args:
            payload: Record payload and context
            analysis_type: Kind of analysis requested

        Returns:
            AIAnalysis from the first provider that succeeded

        Raises:
            CostLimitExceeded: If the daily or monthly ceiling is reached
            AIServiceUnavailable: If every provider failed
        """
        key = (analysis_type.value, self._fingerprint(payload))
        cached = self._cached(key)
        if cached is not None:
            logger.debug(f"AI analysis cache hit for {analysis_type.value}")
            return cached.model_copy(update={"cost": 0.0, "processing_time": 0.0})

        self.ledger.check()

        attempted: List[str] = []
        for provider in self.provider_order(analysis_type):
            attempted.append(provider.name)
            try:
                analysis = await asyncio.wait_for(
                    provider.analyze(payload, analysis_type),
                    timeout=provider.timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"AI provider {provider.name} timed out after {provider.timeout}s, trying next",
                    extra={"extra_fields": {"provider": provider.name, "analysis_type": analysis_type.value}}
                )
                continue
            except Exception as e:
                logger.warning(
                    f"AI provider {provider.name} failed: {str(e)}, trying next",
                    extra={"extra_fields": {
                        "provider": provider.name,
                        "analysis_type": analysis_type.value,
                        "error": str(e),
                    }}
                )
                continue

            cost = analysis.cost if analysis.cost is not None else provider.cost_per_request
            await self.ledger.record(provider.name, cost, analysis_type.value)

            analysis = analysis.model_copy(update={
                "cost": cost,
                "low_confidence": analysis.confidence < self.confidence_threshold,
            })
            if analysis.low_confidence:
                logger.info(
                    f"Low-confidence analysis from {provider.name} "
                    f"({analysis.confidence:.2f} < {self.confidence_threshold})"
                )

            self._remember(key, analysis)
            return analysis

        logger.error(
            f"All AI providers failed for {analysis_type.value}",
            extra={"extra_fields": {"attempted": attempted}}
        )
        raise AIServiceUnavailable(attempted=attempted)
