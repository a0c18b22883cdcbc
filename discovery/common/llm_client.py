"""
LLM client for the probabilistic extraction stage.

One blocking ``generate`` call over Google Gemini (the default), Anthropic or
OpenAI. SDKs are imported only for the configured provider; a missing package
or key leaves the client unavailable and the extractor runs on rules alone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .config import LLMConfig

logger = logging.getLogger("discovery.common.llm_client")

# provider -> distribution to install for it
SDK_PACKAGES = {
    "google": "google-generativeai",
    "anthropic": "anthropic",
    "openai": "openai",
}


def _connect(provider: str, api_key: str):
    """SDK handle for ``provider``. Raises ImportError when its package is missing."""
    if provider == "anthropic":
        import anthropic
        return anthropic.Anthropic(api_key=api_key)
    if provider == "openai":
        from openai import OpenAI
        return OpenAI(api_key=api_key)
    import google.generativeai as genai
    genai.configure(api_key=api_key)
    return genai  # models are built per system prompt


class LLMClient:
    """Text generation against whichever provider the config names."""

    def __init__(
        self,
        provider: str = "google",
        model: str = "",
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "google").lower()
        self.model = model
        self._client = None
        self._gemini_models: Dict[str, object] = {}

        keys = {
            "google": google_api_key,
            "anthropic": anthropic_api_key,
            "openai": openai_api_key,
        }
        if self.provider not in keys:
            logger.warning("Unsupported LLM provider: %s", self.provider)
            return
        if not keys[self.provider]:
            logger.info("%s API key not provided, LLM client unavailable", self.provider)
            return

        try:
            self._client = _connect(self.provider, keys[self.provider])
        except ImportError:
            logger.warning("%s package not installed", SDK_PACKAGES[self.provider])
        except Exception as e:
            logger.warning("Failed to initialize %s client: %s", self.provider, e)

    @classmethod
    def from_config(cls, config: "LLMConfig") -> "LLMClient":
        """Build a client for the configured provider and its model."""
        provider = (config.provider or "google").lower()
        models = {
            "google": config.google_model,
            "anthropic": config.anthropic_model,
            "openai": config.openai_model,
        }
        return cls(
            provider=provider,
            model=models.get(provider, ""),
            anthropic_api_key=config.anthropic_api_key,
            openai_api_key=config.openai_api_key,
            google_api_key=config.google_api_key,
        )

    @property
    def is_available(self) -> bool:
        return self._client is not None

    def generate(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        max_tokens: int = 512,
        timeout: float = 10.0,
    ) -> str:
        """
        Complete ``prompt`` and return the stripped text.

        Raises:
            RuntimeError: client unavailable
            Exception: whatever the provider SDK raises (callers fall back)
        """
        if not self.is_available:
            raise RuntimeError("LLM client is not available")

        if self.provider == "anthropic":
            text = self._anthropic(prompt, system, max_tokens, timeout)
        elif self.provider == "openai":
            text = self._openai(prompt, system, max_tokens, timeout)
        else:
            text = self._gemini(prompt, system, max_tokens, timeout)
        return (text or "").strip()

    def _anthropic(self, prompt, system, max_tokens, timeout):
        extra = {"system": system} if system else {}
        response = self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=[{"role": "user", "content": prompt}],
            timeout=timeout,
            **extra,
        )
        return response.content[0].text

    def _openai(self, prompt, system, max_tokens, timeout):
        messages = [{"role": "system", "content": system}] if system else []
        messages.append({"role": "user", "content": prompt})
        response = self._client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            messages=messages,
            timeout=timeout,
        )
        return response.choices[0].message.content

    def _gemini(self, prompt, system, max_tokens, timeout):
        # Gemini binds the system prompt to the model object
        key = system or ""
        model = self._gemini_models.get(key)
        if model is None:
            options = {"model_name": self.model}
            if system:
                options["system_instruction"] = system
            model = self._client.GenerativeModel(**options)
            self._gemini_models[key] = model
        response = model.generate_content(
            prompt,
            generation_config={"max_output_tokens": max_tokens, "temperature": 0},
            request_options={"timeout": timeout},
        )
        return response.text
