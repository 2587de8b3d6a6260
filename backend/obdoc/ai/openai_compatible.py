"""
OpenAI-compatible Analysis Provider.
Talks to any chat/completions endpoint that follows the OpenAI format
(OpenAI itself, Anthropic's and Google's OpenAI compatibility endpoints).
"""

import httpx
import json
import logging
import time
from typing import Optional, Dict, Any, List

from ..models import AIAnalysis, AIAnalysisType
from .base import AnalysisProvider

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a clinical nutrition assistant supporting doctors who manage obesity. "
    "Answer with a single JSON object of the form "
    '{"result": {...}, "confidence": <number between 0 and 1>} and nothing else.'
)

TASK_PROMPTS = {
    AIAnalysisType.FOOD_RECOGNITION: (
        "Identify the foods in this record. Return result.foods as a list of "
        "{name, color, estimated_calories}."
    ),
    AIAnalysisType.DII_CALCULATION: (
        "Estimate the Dietary Inflammatory Index of this day's meals. Return "
        "result.daily_dii (number) and result.recommendations (list of strings)."
    ),
    AIAnalysisType.HEALTH_ASSESSMENT: (
        "Assess the patient's state from this record. Return result.summary and "
        "result.concerns (list of strings)."
    ),
    AIAnalysisType.RISK_DETECTION: (
        "Look for warning signs in this fasting report (symptoms, low condition "
        "score). Return result.risk_level (low|medium|high) and result.signals "
        "(list of strings)."
    ),
}


class OpenAICompatibleProvider(AnalysisProvider):
    """
    Provider for OpenAI-style chat/completions APIs.
    Requests a JSON object and converts it into an AIAnalysis.
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        model: str,
        base_url: str,
        cost_per_request: float = 0.002,
        timeout: float = 10.0,
        temperature: float = 0.2,
        max_tokens: int = 1024,
    ):
        super().__init__(name, cost_per_request, timeout)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _get_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _build_messages(self, payload: Dict[str, Any], analysis_type: AIAnalysisType) -> List[Dict[str, str]]:
        task = TASK_PROMPTS[analysis_type]
        body = json.dumps(payload, ensure_ascii=False, default=str)
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": f"{task}\n\nRecord:\n{body}"},
        ]

    @staticmethod
    def _parse_content(content: str) -> Dict[str, Any]:
        """Parse the model's JSON answer, tolerating a fenced code block."""
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            if text.startswith("json"):
                text = text[4:]
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("analysis response is not a JSON object")
        return data

    async def analyze(self, payload: Dict[str, Any], analysis_type: AIAnalysisType) -> AIAnalysis:
        """Send the record to the chat/completions endpoint and parse the analysis."""
        start_time = time.time()
        url = f"{self.base_url}/chat/completions"
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(payload, analysis_type),
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                f"AI analysis starting: provider={self.name}, model={self.model}, "
                f"analysis_type={analysis_type.value}"
            )

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=request, headers=self._get_headers())
                resp.raise_for_status()
                data = resp.json()

            content = data["choices"][0]["message"]["content"]
            parsed = self._parse_content(content)
            confidence = float(parsed.get("confidence", 0.0))
            result = parsed.get("result", {})
            if not isinstance(result, dict):
                result = {"value": result}
            duration_ms = (time.time() - start_time) * 1000
            usage = data.get("usage", {})

            logger.info(
                f"AI analysis completed",
                extra={"extra_fields": {
                    "provider": self.name,
                    "model": data.get("model", self.model),
                    "analysis_type": analysis_type.value,
                    "confidence": confidence,
                    "total_tokens": usage.get("total_tokens", 0),
                    "duration_ms": round(duration_ms, 2),
                }}
            )

            return AIAnalysis(
                provider=self.name,
                analysis_type=analysis_type,
                result=result,
                confidence=min(1.0, max(0.0, confidence)),
                processing_time=round(duration_ms, 2),
                cost=self.cost_per_request,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                f"AI analysis failed: {str(e)}",
                extra={"extra_fields": {
                    "provider": self.name,
                    "model": self.model,
                    "analysis_type": analysis_type.value,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(e),
                }}
            )
            raise
