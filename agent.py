import asyncio
import logging
import os
from typing import Optional

from exceptions import LLMError

logger = logging.getLogger(__name__)


class LLMClient:
    """Text completion over one configured provider: complete(system, user) -> text."""

    def __init__(self, provider: str = "openai", timeout: float = 20.0):
        self.provider = provider.lower()
        self.timeout = timeout

        if self.provider == "anthropic":
            self._init_anthropic()
        elif self.provider == "gemini":
            self._init_gemini()
        elif self.provider == "openai":
            self._init_openai()
        else:
            raise ValueError(
                f"Unknown AI_PROVIDER '{self.provider}'. "
                "Set AI_PROVIDER to 'anthropic', 'openai', or 'gemini'."
            )

    # ── Provider Init ─────────────────────────────────────────────────────

    def _init_anthropic(self):
        import anthropic

        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError("ANTHROPIC_API_KEY is not set.")
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self.timeout)
        self.model = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-6")
        logger.info("AI Provider: Anthropic | Model: %s", self.model)

    def _init_gemini(self):
        import google.generativeai as genai

        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise EnvironmentError("GEMINI_API_KEY is not set.")
        genai.configure(api_key=api_key)
        self.model = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.client = genai.GenerativeModel(self.model)
        logger.info("AI Provider: Gemini | Model: %s", self.model)

    def _init_openai(self):
        from openai import AsyncOpenAI

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise EnvironmentError("OPENAI_API_KEY is not set.")
        self.client = AsyncOpenAI(api_key=api_key, timeout=self.timeout)
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
        logger.info("AI Provider: OpenAI | Model: %s", self.model)

    # ── Complete ──────────────────────────────────────────────────────────

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 300,
        json_mode: bool = False,
    ) -> str:
        """Return the completion text. Any provider failure or timeout raises LLMError."""
        if self.provider == "anthropic":
            call = self._call_anthropic(system_prompt, user_prompt, temperature, max_tokens)
        elif self.provider == "gemini":
            call = self._call_gemini(
                system_prompt, user_prompt, temperature, max_tokens, json_mode
            )
        else:
            call = self._call_openai(
                system_prompt, user_prompt, temperature, max_tokens, json_mode
            )

        try:
            text = await asyncio.wait_for(call, self.timeout)
        except asyncio.TimeoutError as e:
            raise LLMError(f"{self.provider} timed out after {self.timeout}s") from e
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"{self.provider} completion failed: {e}") from e

        if not text or not text.strip():
            raise LLMError(f"{self.provider} returned an empty completion")
        return text.strip()

    async def _call_anthropic(
        self, system: str, user: str, temperature: float, max_tokens: int
    ) -> str:
        message = await self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        return message.content[0].text

    async def _call_gemini(
        self, system: str, user: str, temperature: float, max_tokens: int, json_mode: bool
    ) -> str:
        config = {"temperature": temperature, "max_output_tokens": max_tokens}
        if json_mode:
            config["response_mime_type"] = "application/json"
        response = await self.client.generate_content_async(
            f"{system}\n\n{user}", generation_config=config
        )
        return response.text

    async def _call_openai(
        self, system: str, user: str, temperature: float, max_tokens: int, json_mode: bool
    ) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs,
        )
        return response.choices[0].message.content or ""


def build_llm_client(provider: Optional[str], timeout: float = 20.0) -> Optional[LLMClient]:
    """The LLM client, or None when no provider is configured or it cannot start."""
    if not provider:
        logger.info("No AI provider configured; using deterministic parsing and templates")
        return None
    try:
        return LLMClient(provider, timeout=timeout)
    except Exception as e:
        logger.warning("AI features disabled: %s", e)
        return None
