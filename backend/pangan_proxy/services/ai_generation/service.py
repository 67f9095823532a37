"""AI generation proxy: NekoLabs (primary) + Google Gemini (chat fallback).

NekoLabs exposes free GET endpoints for Imagen image generation and for
Gemini / OpenAI text generation. Chat completion tries NekoLabs first and
falls back to Google Gemini through the ``google-genai`` SDK when a
``GOOGLE_GEMINI_API_KEY`` is configured.

Responses are not cached: prompts are effectively unique and sessions are
stateful upstream.
"""

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from pangan_proxy.models import (
    InvalidParameter,
    MissingParameter,
    ProxyError,
    UpstreamError,
    UpstreamTimeout,
)
from pangan_proxy.services.upstream import UpstreamClient

logger = logging.getLogger(__name__)

IMAGE_RATIOS = ("1:1", "16:9", "3:4", "4:3", "9:16")
IMAGE_VERSIONS = ("3.0", "4.0")
TEXT_VERSIONS = ("v1", "v2")
GEMINI_MODELS = ("gemini-2.5-flash", "gemini-2.5-flash-lite")


def _text_params(
    text: Optional[str],
    system_prompt: Optional[str],
    image_url: Optional[str],
    session_id: Optional[str],
) -> dict[str, str]:
    if not text:
        raise MissingParameter("text")
    params = {"text": text}
    if system_prompt:
        params["systemPrompt"] = system_prompt
    if image_url:
        params["imageUrl"] = image_url
    if session_id:
        params["sessionId"] = session_id
    return params


# ═══════════════════════════════════════════════════════════════════════
# Fallback: Google Gemini (google-genai SDK)
# ═══════════════════════════════════════════════════════════════════════

class GeminiChatFallback:
    """Direct Google Gemini chat, used when NekoLabs is down."""

    def __init__(self, api_key: str, timeout_seconds: float = 60.0) -> None:
        from google import genai

        if not api_key:
            raise ValueError("GOOGLE_GEMINI_API_KEY not provided")
        self._client = genai.Client(api_key=api_key)
        self._timeout = timeout_seconds
        logger.info("[AI] Gemini fallback ready")

    async def complete(
        self,
        messages: list[dict[str, Any]],
        model: str = "gemini-2.5-flash",
        system_prompt: Optional[str] = None,
    ) -> dict:
        from google.genai import errors as genai_errors
        from google.genai import types

        model = model if model in GEMINI_MODELS else "gemini-2.5-flash"
        contents = [
            types.Content(
                role="model" if m.get("role") == "assistant" else m.get("role", "user"),
                parts=[types.Part(text=str(m.get("content", "")))],
            )
            for m in messages
        ]
        config = types.GenerateContentConfig(
            temperature=0.7,
            max_output_tokens=2048,
            system_instruction=system_prompt or None,
        )
        try:
            resp = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=model, contents=contents, config=config
                ),
                timeout=self._timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.warning(f"[Gemini] Timeout after {self._timeout}s")
            raise UpstreamTimeout("Google Gemini request timed out") from e
        except genai_errors.APIError as e:
            logger.error(f"[Gemini] API error {e.code}: {e.message}")
            raise UpstreamError(
                e.message or str(e), status_code=e.code or None, body=e.details
            ) from e
        except httpx.RequestError as e:
            logger.error(f"[Gemini] Request failed: {type(e).__name__}: {e}")
            raise UpstreamError(f"Google Gemini request failed: {e}") from e

        usage = resp.usage_metadata.model_dump(mode="json") if resp.usage_metadata else None
        return {
            "success": True,
            "source": "google-gemini",
            "model": model,
            "result": resp.text or "",
            "usage": usage,
        }


# ═══════════════════════════════════════════════════════════════════════
# Primary: NekoLabs
# ═══════════════════════════════════════════════════════════════════════

class NekoLabsService(UpstreamClient):
    """NekoLabs image/text generation and CORS image proxy."""

    NAME = "NEKOLABS"
    API_BASE = "https://api.nekolabs.web.id"
    HEADERS = {
        "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    }

    def __init__(
        self,
        base_url: str = API_BASE,
        timeout: float = 30.0,
        fallback: Optional[GeminiChatFallback] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(base_url, timeout, headers=self.HEADERS, transport=transport)
        self._fallback = fallback

    async def generate_image(
        self, prompt: Optional[str], ratio: str = "1:1", version: str = "4.0"
    ) -> Any:
        """Imagen ``{version}-fast`` image for ``prompt``."""
        if not prompt:
            raise MissingParameter("prompt")
        if ratio not in IMAGE_RATIOS:
            raise InvalidParameter(f"Invalid ratio. Use one of: {', '.join(IMAGE_RATIOS)}")
        if version not in IMAGE_VERSIONS:
            raise InvalidParameter(f"Invalid version. Use: {' or '.join(IMAGE_VERSIONS)}")

        return await self.get_json(
            f"/image-generation/imagen/{version}-fast",
            params={"prompt": prompt, "ratio": ratio},
        )

    async def generate_text_gemini(
        self,
        text: Optional[str],
        system_prompt: Optional[str] = None,
        image_url: Optional[str] = None,
        session_id: Optional[str] = None,
        version: str = "v1",
    ) -> Any:
        params = _text_params(text, system_prompt, image_url, session_id)
        if version not in TEXT_VERSIONS:
            raise InvalidParameter(f"Invalid version. Use: {' or '.join(TEXT_VERSIONS)}")
        return await self.get_json(
            f"/text-generation/gemini/2.5-flash/{version}", params=params
        )

    async def generate_text_openai(
        self,
        text: Optional[str],
        system_prompt: Optional[str] = None,
        image_url: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> Any:
        params = _text_params(text, system_prompt, image_url, session_id)
        return await self.get_json("/text-generation/openai/o3", params=params)

    async def chat_completion(
        self,
        messages: Optional[list[dict[str, Any]]],
        model: str = "gemini-2.5-flash",
        system_prompt: Optional[str] = None,
        session_id: Optional[str] = None,
        version: str = "v1",
    ) -> dict:
        """Answer the latest user message, NekoLabs first then Gemini.

        Raises:
            MissingParameter: No messages were sent.
            InvalidParameter: None of the messages is from the user.
            UpstreamError: NekoLabs failed and either no fallback is configured
                or the fallback failed too.
            UpstreamTimeout: The Gemini fallback timed out.
        """
        if not messages:
            raise MissingParameter("messages")
        last_user = next((m for m in reversed(messages) if m.get("role") == "user"), None)
        if last_user is None:
            raise InvalidParameter("At least one message from the user is required")

        api_version = version if version in TEXT_VERSIONS else "v1"
        params = _text_params(str(last_user.get("content") or ""), system_prompt, None, session_id)
        try:
            data = await self.get_json(
                f"/text-generation/gemini/2.5-flash/{api_version}", params=params
            )
            body = data if isinstance(data, dict) else {"result": data}
            return {"success": True, "source": "nekolabs", "version": api_version, **body}
        except ProxyError as e:
            if self._fallback is None:
                raise
            logger.warning(f"[NEKOLABS] Chat failed, trying Gemini fallback: {e}")

        return await self._fallback.complete(messages, model=model, system_prompt=system_prompt)

    async def fetch_image(self, url: Optional[str]) -> tuple[bytes, str]:
        """Fetch an arbitrary image so browsers can load it without CORS limits."""
        if not url:
            raise MissingParameter("url")
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise InvalidParameter("Invalid URL")

        content, content_type = await self.get_bytes(url)
        return content, content_type or "image/png"
