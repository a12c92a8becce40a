from __future__ import annotations

import logging
import os

from dotenv import load_dotenv
from langchain_openai import ChatOpenAI
from openai import AsyncOpenAI

load_dotenv()

logger = logging.getLogger(__name__)

_API_KEY_PLACEHOLDER = "sk-placeholder"
_DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"


def _get_api_key() -> str:
    key = os.getenv("OPENROUTER_API_KEY", _API_KEY_PLACEHOLDER)
    if key == _API_KEY_PLACEHOLDER:
        logger.warning(
            "OPENROUTER_API_KEY is not set. API calls will fail. "
            "Set the variable in your .env file or environment."
        )
    return key


def _base_url() -> str:
    return os.getenv("OPENROUTER_BASE_URL", _DEFAULT_BASE_URL)


def get_event_model() -> ChatOpenAI:
    return ChatOpenAI(
        model=os.getenv("EVENT_MODEL", "google/gemini-2.5-pro"),
        api_key=_get_api_key(),
        base_url=_base_url(),
        temperature=0.9,
        max_tokens=4096,
    )


def get_message_model() -> ChatOpenAI:
    return ChatOpenAI(
        model=os.getenv("MESSAGE_MODEL", "google/gemini-2.0-flash-001"),
        api_key=_get_api_key(),
        base_url=_base_url(),
        temperature=0.9,
        max_tokens=512,
    )


def get_image_client() -> AsyncOpenAI:
    return AsyncOpenAI(api_key=_get_api_key(), base_url=_base_url())


def image_model_name() -> str:
    return os.getenv("IMAGE_MODEL", "google/gemini-2.5-flash-image-preview")


def generation_timeout() -> float | None:
    """Seconds allowed per collaborator call, or None for no limit."""
    raw = os.getenv("GENERATION_TIMEOUT", "90")
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid GENERATION_TIMEOUT=%r", raw)
        return None
    return value if value > 0 else None
