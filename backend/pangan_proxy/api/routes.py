"""API routes for the Pangan proxy.

PROXY ARCHITECTURE:
- BMKG: weather forecasts, cached per query (cache-aside, TTL)
- Badan Pangan: provinces / cities / price tables, one cache per endpoint
- ipgeolocation.io: daily-quota key rotation with offline MaxMind fallback
- NekoLabs: AI text / image generation, Gemini fallback for chat

Routes stay thin: services validate parameters and raise ProxyError
subclasses, which the application-level handler renders.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field

from pangan_proxy.dependencies import (
    get_geolocation_service,
    get_nekolabs_service,
    get_pangan_service,
    get_weather_service,
)
from pangan_proxy.models import ProxyError, UpstreamError
from pangan_proxy.services.ai_generation import NekoLabsService
from pangan_proxy.services.geolocation import GeolocationService
from pangan_proxy.services.pangan import PanganPriceService
from pangan_proxy.services.weather import BmkgWeatherService

logger = logging.getLogger(__name__)

router = APIRouter()


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer address."""
    forwarded = [
        part.strip()
        for part in request.headers.get("x-forwarded-for", "").split(",")
        if part.strip()
    ]
    if forwarded:
        return forwarded[0]
    host = request.client.host if request.client else ""
    return host.replace("::ffff:", "")


# ─── Weather (BMKG) ───

@router.get("/weather-proxy")
async def weather_proxy(
    adm4: Optional[str] = None,
    weather: BmkgWeatherService = Depends(get_weather_service),
) -> dict:
    """Current weather for a village code: location, temperature, humidity, weather."""
    return await weather.get_current_weather(adm4)


@router.get("/bmkg/prakiraan-cuaca")
async def bmkg_forecast(
    request: Request,
    weather: BmkgWeatherService = Depends(get_weather_service),
) -> Any:
    """Raw BMKG forecast, passed through with all query parameters."""
    return await weather.get_forecast(dict(request.query_params))


# ─── Food prices (Badan Pangan) ───

@router.get("/pangan-proxy/provinces")
async def pangan_provinces(
    search: Optional[str] = None,
    pangan: PanganPriceService = Depends(get_pangan_service),
) -> list:
    return await pangan.get_provinces(search)


@router.get("/pangan-proxy/cities")
async def pangan_cities(
    province_id: Optional[str] = None,
    provinceId: Optional[str] = None,
    pangan: PanganPriceService = Depends(get_pangan_service),
) -> list:
    return await pangan.get_cities(province_id or provinceId)


@router.get("/pangan-proxy/harga")
async def pangan_prices(
    request: Request,
    pangan: PanganPriceService = Depends(get_pangan_service),
) -> list:
    """Price table; every query parameter is forwarded, ``level_harga_id`` is required."""
    return await pangan.get_prices(dict(request.query_params))


# ─── Geolocation ───

@router.get("/location")
async def location(
    request: Request,
    ip: Optional[str] = None,
    geolocation: GeolocationService = Depends(get_geolocation_service),
) -> JSONResponse:
    """GeoJSON Feature for ``ip`` (or the caller's address).

    Answers 429 with an offline ``fallback`` Feature once every API key has
    used up its daily quota.
    """
    result = await geolocation.locate(ip or get_client_ip(request))
    return JSONResponse(status_code=result.status_code, content=result.body)


# ─── AI generation (NekoLabs) ───

def _ai_error(exc: ProxyError) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": exc.message}
    if isinstance(exc, UpstreamError) and exc.body is not None:
        if isinstance(exc.body, dict) and isinstance(exc.body.get("error"), str):
            content["error"] = exc.body["error"]
        content["details"] = exc.body
    return JSONResponse(status_code=exc.status_code, content=content)


@router.get("/nekolabs/image")
async def nekolabs_image(
    prompt: Optional[str] = None,
    ratio: str = "1:1",
    version: str = "4.0",
    nekolabs: NekoLabsService = Depends(get_nekolabs_service),
) -> Any:
    try:
        return await nekolabs.generate_image(prompt, ratio=ratio, version=version)
    except ProxyError as e:
        return _ai_error(e)


@router.get("/nekolabs/text/gemini")
async def nekolabs_text_gemini(
    text: Optional[str] = None,
    systemPrompt: Optional[str] = None,
    imageUrl: Optional[str] = None,
    sessionId: Optional[str] = None,
    version: str = "v1",
    nekolabs: NekoLabsService = Depends(get_nekolabs_service),
) -> Any:
    try:
        return await nekolabs.generate_text_gemini(
            text, systemPrompt, imageUrl, sessionId, version=version
        )
    except ProxyError as e:
        return _ai_error(e)


@router.get("/nekolabs/text/openai")
async def nekolabs_text_openai(
    text: Optional[str] = None,
    systemPrompt: Optional[str] = None,
    imageUrl: Optional[str] = None,
    sessionId: Optional[str] = None,
    nekolabs: NekoLabsService = Depends(get_nekolabs_service),
) -> Any:
    try:
        return await nekolabs.generate_text_openai(text, systemPrompt, imageUrl, sessionId)
    except ProxyError as e:
        return _ai_error(e)


class ChatMessage(BaseModel):
    role: str
    content: Any = ""


class ChatCompletionRequest(BaseModel):
    """Body for chat completion; field names match the public JSON API."""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    messages: Optional[list[ChatMessage]] = None
    model: str = "gemini-2.5-flash"
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")
    session_id: Optional[str] = Field(None, alias="sessionId")
    version: str = "v1"


@router.post("/nekolabs/chat")
async def nekolabs_chat(
    body: ChatCompletionRequest,
    nekolabs: NekoLabsService = Depends(get_nekolabs_service),
) -> Any:
    messages = [m.model_dump() for m in body.messages] if body.messages else None
    try:
        return await nekolabs.chat_completion(
            messages,
            model=body.model,
            system_prompt=body.system_prompt,
            session_id=body.session_id,
            version=body.version,
        )
    except ProxyError as e:
        return _ai_error(e)


@router.get("/nekolabs/proxy-image")
async def nekolabs_proxy_image(
    url: Optional[str] = None,
    nekolabs: NekoLabsService = Depends(get_nekolabs_service),
) -> Response:
    """Relay an image so browsers can load it cross-origin."""
    try:
        content, content_type = await nekolabs.fetch_image(url)
    except ProxyError as e:
        return _ai_error(e)
    return Response(
        content=content,
        media_type=content_type,
        headers={
            "Cache-Control": "public, max-age=86400",
            "Access-Control-Allow-Origin": "*",
        },
    )
