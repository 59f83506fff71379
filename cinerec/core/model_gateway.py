"""Translate (history, candidates) into a model pick and back.

This is a pure backend-translation boundary: it builds the prompt, calls the LLM,
parses the structured reply and clamps the confidence. Whether the chosen movie is
actually one of the candidates is checked by the generator.
"""

import json
import re

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from cinerec.core.contracts import Candidate, HistoryEntry, ModelRecommendation, clamp_confidence
from cinerec.llm.adapter import LLMAdapter
from cinerec.llm.prompts import SYSTEM_PROMPT, build_prompt
from cinerec.logging import get_logger

logger = get_logger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ModelResponseError(Exception):
    """Raised when the model reply is empty or not the expected JSON object."""

    def __init__(self, message: str, raw_reply: str = ""):
        super().__init__(message)
        self.raw_reply = raw_reply


class ModelReply(BaseModel):
    """Shape of the JSON object the system prompt asks for."""

    item_id: str = Field(validation_alias=AliasChoices("item_id", "movie_id"))
    item_title: str = Field(default="", validation_alias=AliasChoices("item_title", "movie_title"))
    reason: str = ""
    confidence_score: float = 0.0


def parse_reply(raw_reply: str) -> ModelReply:
    """Parse the model's text into a ``ModelReply``.

    A single surrounding markdown code fence is tolerated; anything else that is not
    a JSON object with an ``item_id`` is rejected.

    Raises:
        ModelResponseError: If the reply cannot be parsed
    """
    text = raw_reply.strip()
    if not text:
        raise ModelResponseError("Empty model reply", raw_reply)

    fenced = _CODE_FENCE_RE.match(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelResponseError(f"Model reply is not valid JSON: {e}", raw_reply) from e

    if not isinstance(data, dict):
        raise ModelResponseError("Model reply is not a JSON object", raw_reply)

    try:
        return ModelReply.model_validate(data)
    except ValidationError as e:
        raise ModelResponseError(f"Model reply has unexpected shape: {e}", raw_reply) from e


class RecommendationModel:
    """Gateway from the recommendation pipeline to the generative backend."""

    def __init__(self, adapter: LLMAdapter) -> None:
        self.adapter = adapter

    async def recommend(
        self,
        history: list[HistoryEntry],
        candidates: list[Candidate],
    ) -> ModelRecommendation:
        """Ask the model to pick exactly one candidate.

        Args:
            history: Unique movies the user has booked, in first-booking order
            candidates: Unique upcoming movies, in schedule order

        Returns:
            The parsed pick with confidence clamped to [0, 1]

        Raises:
            ValueError: If ``candidates`` is empty (checked before any network call)
            LLMError: On backend failure
            ModelResponseError: On an empty or malformed reply
        """
        if not candidates:
            raise ValueError("no upcoming movies available")

        prompt = build_prompt(history, candidates)
        logger.info(
            f"Requesting recommendation from {self.adapter.model} "
            f"({len(history)} history, {len(candidates)} candidates)"
        )

        raw_reply = await self.adapter.chat(SYSTEM_PROMPT, prompt)
        logger.debug(f"Model reply: {raw_reply}")

        reply = parse_reply(raw_reply)

        return ModelRecommendation(
            movie_id=reply.item_id,
            movie_title=reply.item_title,
            reason=reply.reason,
            confidence_score=clamp_confidence(reply.confidence_score),
            raw_reply=raw_reply,
        )
