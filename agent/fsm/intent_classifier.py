"""
Intent Classifier - LLM-based classification of free-text messages at IDLE.

The FSM only consults the classifier when the caller writes free text with no
active booking conversation. Everything else is driven by interactive replies
and deterministic transitions.

    LLM (NLU)   → BOOKING | GENERAL | HANDOFF + suggested reply
    FSM Control → decides the next state and the outbound messages
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from agent.fsm.models import Intent, IntentType
from shared.config import get_settings

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "Disculpe, ¿podría repetir su consulta de otra forma?"

_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


class IntentClassifier(ABC):
    """Maps a free-text message to an Intent. Implementations never raise."""

    @abstractmethod
    async def classify(self, message: str, patient_name: str) -> Intent:
        ...


def fallback_intent() -> Intent:
    return Intent(type=IntentType.GENERAL, say=FALLBACK_REPLY)


def parse_classifier_response(content: str) -> Intent:
    """
    Parse the LLM JSON answer into an Intent.

    Tolerates markdown code fences around the JSON.

    Raises:
        ValueError: content is not valid JSON or intent is unknown
    """
    cleaned = _FENCE_PATTERN.sub("", content).strip()
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"Expected JSON object, got {type(data).__name__}")

    intent_type = IntentType(str(data.get("intent", "")).upper())
    say = str(data.get("say") or "")
    if intent_type == IntentType.GENERAL and not say:
        say = FALLBACK_REPLY
    return Intent(type=intent_type, say=say)


def _build_prompt(message: str, patient_name: str, center_name: str) -> str:
    return (
        f'Eres el asistente formal de "{center_name}".\n'
        f"Paciente: {patient_name}.\n"
        f'Mensaje: "{message}"\n\n'
        "Analiza la intención del usuario.\n"
        'Si quiere agendar, usa intent:"BOOKING".\n'
        'Si pide hablar con un humano o parece frustrado, usa intent:"HANDOFF".\n'
        'Si es una duda general, usa intent:"GENERAL" y responde formalmente en máximo 3 frases.\n\n'
        "RESPONDE ÚNICAMENTE CON ESTE JSON:\n"
        '{"intent":"BOOKING|GENERAL|HANDOFF", "say":"..."}'
    )


def _get_llm_client() -> ChatOpenAI:
    """LLM client via OpenRouter with low temperature for deterministic classification."""
    settings = get_settings()

    return ChatOpenAI(
        model=settings.LLM_MODEL,
        api_key=settings.OPENROUTER_API_KEY,
        base_url="https://openrouter.ai/api/v1",
        temperature=0.1,
        request_timeout=15.0,
        max_retries=2,
        default_headers={
            "HTTP-Referer": settings.SITE_URL,
            "X-Title": settings.SITE_NAME,
        },
    )


class LLMIntentClassifier(IntentClassifier):
    """Intent classification through an OpenRouter-hosted chat model."""

    def __init__(self, llm: ChatOpenAI | None = None, center_name: str | None = None):
        self._llm = llm
        self._center_name = center_name or get_settings().CENTER_NAME

    @property
    def llm(self) -> ChatOpenAI:
        if self._llm is None:
            self._llm = _get_llm_client()
        return self._llm

    async def classify(self, message: str, patient_name: str) -> Intent:
        """
        Classify a free-text message.

        Returns GENERAL with a generic "please rephrase" reply on any error
        (timeout, provider failure, malformed JSON); never raises.
        """
        start_time = time.time()
        logger.info(f"Classifying intent | message={message[:50]}...")

        try:
            response = await self.llm.ainvoke(
                [
                    SystemMessage(content="Eres un analizador de intenciones. Responde SOLO en JSON."),
                    HumanMessage(content=_build_prompt(message, patient_name, self._center_name)),
                ]
            )
            intent = parse_classifier_response(response.content)

            latency_ms = (time.time() - start_time) * 1000
            logger.info(f"Intent classified | type={intent.type.value} | latency={latency_ms:.0f}ms")
            return intent

        except Exception as e:
            latency_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Intent classification failed | error={str(e)} | latency={latency_ms:.0f}ms",
                exc_info=True,
            )
            return fallback_intent()
