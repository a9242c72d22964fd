"""OpenAI Images client wrapper and provider error normalization."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import openai
from fastapi import HTTPException
from openai import AsyncOpenAI

from config import require_openai_api_key, settings
from services.prompt_safety import is_payload_too_large_message, is_safety_error_message

logger = logging.getLogger(__name__)

PROVIDER_QUALITIES = {"auto", "low", "medium", "high"}


class ImageProviderError(Exception):
    """Paid-for external work did not complete."""

    code = "IMAGE_PROVIDER_ERROR"
    status_code = 502

    def __init__(self, message: str, *, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.request_id = request_id


class ImageTimeoutError(ImageProviderError):
    code = "GENERATION_TIMEOUT"
    status_code = 504


class ContentPolicyError(ImageProviderError):
    code = "CONTENT_POLICY"
    status_code = 400


class PayloadTooLargeError(ImageProviderError):
    code = "PAYLOAD_TOO_LARGE"
    status_code = 413


class EmptyResultError(ImageProviderError):
    code = "NO_IMAGES"
    status_code = 502


@dataclass
class ImageFile:
    filename: str
    content: bytes
    content_type: str


@dataclass
class GenerateParams:
    prompt: str
    size: str = "1024x1024"
    n: int = 1
    quality: str = "standard"
    background: str = "auto"


@dataclass
class EditParams:
    prompt: str
    image: ImageFile
    mask: Optional[ImageFile] = None
    size: str = "1024x1024"
    quality: str = "standard"
    background: str = "auto"


def map_quality(quality: str) -> str:
    """Translate client quality tiers into values the images endpoint accepts."""
    value = (quality or "standard").lower()
    if value == "hd":
        return "high"
    if value == "standard":
        return "medium"
    if value in PROVIDER_QUALITIES:
        return value
    return "auto"


def _extract_images(response) -> List[str]:
    data = getattr(response, "data", None) or []
    return [item.b64_json for item in data if getattr(item, "b64_json", None)]


def translate_provider_error(exc: Exception) -> ImageProviderError:
    """Map SDK exceptions onto the provider error taxonomy."""
    if isinstance(exc, ImageProviderError):
        return exc
    if isinstance(exc, openai.APITimeoutError):
        return ImageTimeoutError("The image request took too long and was cancelled.")

    message = str(getattr(exc, "message", "") or exc or "Image request failed.")
    status_code = getattr(exc, "status_code", None)
    request_id = getattr(exc, "request_id", None)
    if status_code == 413 or is_payload_too_large_message(message):
        return PayloadTooLargeError(message, request_id=request_id)
    if is_safety_error_message(message):
        return ContentPolicyError(message, request_id=request_id)
    if isinstance(status_code, int) and 400 <= status_code <= 599:
        return ImageProviderError(message, status_code=status_code, request_id=request_id)
    return ImageProviderError(message, request_id=request_id)


class OpenAIImageProvider:
    """Thin async facade over the OpenAI images endpoints."""

    def __init__(self, client: AsyncOpenAI, model: str):
        self.client = client
        self.model = model

    async def generate(self, params: GenerateParams) -> List[str]:
        try:
            response = await self.client.images.generate(
                model=self.model,
                prompt=params.prompt,
                size=params.size,
                n=params.n,
                background=params.background,
                quality=map_quality(params.quality),
            )
        except openai.OpenAIError as exc:
            raise translate_provider_error(exc) from exc
        return _extract_images(response)

    async def edit(self, params: EditParams) -> List[str]:
        image = (params.image.filename, params.image.content, params.image.content_type)
        mask = None
        if params.mask is not None:
            mask = (params.mask.filename, params.mask.content, params.mask.content_type)
        kwargs = {
            "model": self.model,
            "image": image,
            "prompt": params.prompt,
            "size": params.size,
            "background": params.background,
            "quality": map_quality(params.quality),
        }
        if mask is not None:
            kwargs["mask"] = mask
        try:
            response = await self.client.images.edit(**kwargs)
        except openai.OpenAIError as exc:
            raise translate_provider_error(exc) from exc
        return _extract_images(response)


_provider: Optional[OpenAIImageProvider] = None


def get_image_provider() -> OpenAIImageProvider:
    """Return the process-wide provider, creating the client on first use."""
    global _provider
    if _provider is None:
        try:
            api_key = require_openai_api_key()
        except ValueError as exc:
            raise HTTPException(status_code=503, detail="Image generation is not configured.") from exc
        client = AsyncOpenAI(api_key=api_key, max_retries=0)
        _provider = OpenAIImageProvider(client, settings.OPENAI_IMAGE_MODEL)
        logger.info("OpenAI image provider initialised (model=%s)", settings.OPENAI_IMAGE_MODEL)
    return _provider
