"""
Language-model providers and the ordered fallback chain.

Every provider speaks the OpenAI chat-completions protocol (Groq, Gemini and
Mistral all expose compatible endpoints), so one client class covers them,
configured per provider with its own base URL, model and key.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol

from openai import OpenAI, OpenAIError

from .config import ProviderSettings, Settings
from .errors import ProviderChainExhausted, ProviderError
from .models import ImagePart

logger = logging.getLogger(__name__)

Message = dict[str, Any]


class ChatProvider(Protocol):
    name: str
    vision: bool

    def complete(self, messages: List[Message], image_parts: Optional[List[ImagePart]] = None) -> str: ...


@dataclass(frozen=True)
class ProviderOutcome:
    text: str
    provider_label: str


def embedded_error(text: str) -> Optional[str]:
    """Error message when a provider returned an error payload as its reply."""
    stripped = (text or "").strip()
    if not stripped.startswith("{") or '"error"' not in stripped:
        return None
    try:
        data = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict) or not data.get("error"):
        return None
    err = data["error"]
    if isinstance(err, dict):
        return err.get("message") or json.dumps(err)
    return str(err)


def _with_images(messages: List[Message], image_parts: List[ImagePart]) -> List[Message]:
    """Attach images to the last user message as data URLs."""
    out = list(messages)
    for i in range(len(out) - 1, -1, -1):
        if out[i].get("role") == "user":
            parts: List[dict] = [
                {"type": "image_url", "image_url": {"url": f"data:{p.mime_type};base64,{p.data}"}}
                for p in image_parts
            ]
            parts.append({"type": "text", "text": out[i].get("content", "")})
            out[i] = {"role": "user", "content": parts}
            break
    return out


class OpenAICompatibleProvider:
    def __init__(self, config: ProviderSettings, timeout: float = 60.0):
        self.config = config
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def vision(self) -> bool:
        return self.config.vision

    def complete(self, messages: List[Message], image_parts: Optional[List[ImagePart]] = None) -> str:
        if not self.config.api_key:
            raise ProviderError(self.name, "API key is not set on the server.")
        payload = _with_images(messages, image_parts) if image_parts and self.vision else messages
        logger.info("[llm:%s] IN messages=%d images=%d", self.name, len(messages), len(image_parts or []))
        client = OpenAI(api_key=self.config.api_key, base_url=self.config.base_url, timeout=self.timeout)
        try:
            response = client.chat.completions.create(model=self.config.model, messages=payload)
        except OpenAIError as e:
            raise ProviderError(self.name, str(e)) from e

        msg = response.choices[0].message if response.choices else None
        # Some reasoning models leave content empty and answer in reasoning_content
        out = (getattr(msg, "content", None) or getattr(msg, "reasoning_content", None) or "").strip()
        if not out:
            raise ProviderError(self.name, "empty response")
        logger.info("[llm:%s] OUT response_len=%d", self.name, len(out))
        return out


class ProviderChain:
    """
    Tries providers in priority order from a start provider to the end of
    the list. Never wraps around to providers before the start.
    """

    def __init__(self, providers: List[ChatProvider], default: Optional[str] = None):
        self.providers = list(providers)
        names = self.names
        self.default = default if default in names else (names[0] if names else None)

    @property
    def names(self) -> List[str]:
        return [p.name for p in self.providers]

    def first_vision(self) -> Optional[str]:
        for p in self.providers:
            if p.vision:
                return p.name
        return None

    def is_vision(self, name: Optional[str]) -> bool:
        return any(p.name == name and p.vision for p in self.providers)

    def complete(
        self,
        messages: List[Message],
        start: Optional[str] = None,
        image_parts: Optional[List[ImagePart]] = None,
    ) -> ProviderOutcome:
        names = self.names
        start_name = start if start in names else self.default
        chain = self.providers[names.index(start_name):] if start_name else []

        last_error: Optional[Exception] = None
        for provider in chain:
            try:
                text = provider.complete(messages, image_parts)
                err = embedded_error(text)
                if err:
                    raise ProviderError(provider.name, err)
            except Exception as e:
                logger.warning("[Mobius] %s failed: %s", provider.name, e)
                last_error = e
                continue
            label = provider.name if provider.name == start_name else f"{provider.name} (fallback from {start_name})"
            return ProviderOutcome(text=text, provider_label=label)

        raise ProviderChainExhausted([p.name for p in chain], last_error)


def build_chain(settings: Settings) -> ProviderChain:
    providers = [OpenAICompatibleProvider(cfg, timeout=settings.provider_timeout) for cfg in settings.providers()]
    return ProviderChain(providers, default=settings.default_provider)
