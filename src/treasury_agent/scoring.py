"""
Language-model scoring of creator coins.

Talks to any OpenAI-compatible ``/chat/completions`` endpoint and asks for
a JSON object back.
"""

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

import httpx

from .config import ConfigurationError, LLMConfig

logger = logging.getLogger(__name__)

ASSET_SYSTEM_PROMPT = """You are the investment analyst for a DAO that buys Zora creator coins.

Decide whether the coin described by the user belongs to a real, active
creator worth adding to the DAO's proposal queue. Creator coins are early
and volumes are small, so modest traction counts. Reject only coins that
look fake, inactive or spammy.

Respond with a single JSON object:
{"reason": "<2-3 sentences>", "confidenceScore": <0..1>, "suggestedAllocationUsd": <number or null>}"""

PICK_SYSTEM_PROMPT = """You are the investment agent for a DAO that buys Zora creator coins.

From the coins provided (already filtered to exclude coins the DAO holds or
recently proposed), pick exactly one coin to buy now. Only express high
confidence (0.7+) when you have real conviction.

Respond with a single JSON object:
{"coinId": "<address from the list>", "reason": "<short explanation>", "confidenceScore": <0..1>, "suggestedAllocationUsd": <number or null>}"""


class ScoringError(Exception):
    """The scoring model failed or replied with something unusable."""


@dataclass
class ScoreResult:
    """Model judgment on a single coin."""

    reason: str
    confidence_score: float
    suggested_allocation_usd: float | None = None


@dataclass
class Pick:
    """Model's choice from a list of candidates."""

    coin_address: str
    reason: str
    confidence_score: float
    suggested_allocation_usd: float | None = None


def clamp_confidence(value: float) -> float:
    """Force a confidence into [0, 1]; NaN reads as no confidence."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def _allocation(data: dict[str, Any]) -> float | None:
    value = data.get("suggestedAllocationUsd")
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return float(value)


def _confidence(data: dict[str, Any]) -> float:
    value = data.get("confidenceScore")
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ScoringError(f"Reply has no numeric confidenceScore: {data!r}")
    # json.loads accepts bare NaN and Infinity tokens
    if not math.isfinite(value):
        raise ScoringError(f"Reply has a non-finite confidenceScore: {data!r}")
    return float(value)


class ScoringClient:
    """Client for the scoring model."""

    def __init__(self, config: LLMConfig):
        self.config = config
        self.url = f"{config.base_url.rstrip('/')}/chat/completions"
        self.timeout = config.timeout_seconds

    async def _complete(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        api_key = self.config.get_api_key()
        if not api_key and self.config.provider == "openai":
            raise ConfigurationError("llm.api_key (or its environment variable) is not set")

        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        payload = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "response_format": {"type": "json_object"},
            "temperature": self.config.temperature,
        }

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPError as e:
                raise ScoringError(f"Scoring request failed: {e}") from e
            except ValueError as e:
                raise ScoringError(f"Scoring endpoint returned invalid JSON: {e}") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ScoringError("Scoring reply has no message content") from e
        if not content:
            raise ScoringError("Scoring reply was empty")

        try:
            parsed = json.loads(content)
        except ValueError as e:
            raise ScoringError(f"Scoring reply is not JSON: {content[:200]}") from e
        if not isinstance(parsed, dict):
            raise ScoringError("Scoring reply is not a JSON object")
        return parsed

    async def score_asset(self, context: dict[str, Any]) -> ScoreResult:
        """Judge one coin. ``context`` describes the coin and DAO exposure."""
        user_prompt = (
            "Analyze this creator coin:\n\n"
            f"{json.dumps(context, indent=2)}\n\n"
            "Is this a real creator worth supporting?"
        )
        data = await self._complete(ASSET_SYSTEM_PROMPT, user_prompt)

        reason = data.get("reason")
        if not isinstance(reason, str):
            raise ScoringError(f"Reply has no reason string: {data!r}")

        result = ScoreResult(
            reason=reason,
            confidence_score=_confidence(data),
            suggested_allocation_usd=_allocation(data),
        )
        logger.info(f"Scored coin at {result.confidence_score:.2f}")
        return result

    async def pick_best(self, candidates: list[dict[str, Any]]) -> Pick:
        """Ask the model to choose one coin from ``candidates`` summaries."""
        user_prompt = (
            "Pick the single best coin to buy now from these candidates:\n\n"
            f"{json.dumps(candidates, indent=2)}\n\n"
            "Output valid JSON only."
        )
        data = await self._complete(PICK_SYSTEM_PROMPT, user_prompt)

        coin_id = data.get("coinId")
        if not isinstance(coin_id, str) or not coin_id:
            raise ScoringError(f"Reply has no coinId: {data!r}")

        return Pick(
            coin_address=coin_id,
            reason=str(data.get("reason") or ""),
            confidence_score=clamp_confidence(_confidence(data)),
            suggested_allocation_usd=_allocation(data),
        )
