"""Credit-gated image generation and editing router."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pydantic import AliasChoices, BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.billing import no_store_json
from routers.rate_limit import rate_limit
from services.billing import BilledOutcome, InsufficientCredits, run_billed_action
from services.image_provider import (
    EditParams,
    GenerateParams,
    ImageFile,
    ImageProviderError,
    OpenAIImageProvider,
    get_image_provider,
    map_quality,
)
from services.pricing import ACTION_EDIT, ACTION_GENERATE, ChargeRequest
from services.prompt_safety import sanitize_prompt
from services.storage import MediaStorage, get_media_storage, upload_images_best_effort
from services.usage import list_generations, record_generation, record_usage, run_best_effort

router = APIRouter()
logger = logging.getLogger(__name__)

SUPPORTED_SIZES = ("1024x1024", "1024x1536", "1536x1024")
DEFAULT_SIZE = "1024x1024"
EDIT_QUALITIES = {"standard", "hd", "auto", "low", "medium", "high"}
BACKGROUNDS = {"auto", "transparent", "opaque"}

FAILURE_MESSAGES = {
    "GENERATION_TIMEOUT": (
        "The request took too long and was cancelled. Try again with 1024x1024 and one image at a time."
    ),
    "CONTENT_POLICY": (
        "The request was blocked by the safety system. Describe the scene neutrally, "
        "with adults (18+) and no focus on the body."
    ),
    "PAYLOAD_TOO_LARGE": "The request or result was too large. Use a smaller image or generate one image at a time.",
    "NO_IMAGES": "No images were returned.",
}


class GenerateImageRequest(BaseModel):
    prompt: str = Field(min_length=3, max_length=2000)
    size: Literal["1024x1024", "1024x1536", "1536x1024"] = DEFAULT_SIZE
    quantity: int = Field(default=1, ge=1, validation_alias=AliasChoices("quantity", "n"))
    quality: Literal["standard", "hd"] = "standard"
    background: Literal["auto", "transparent", "opaque"] = "auto"

    @field_validator("quantity")
    @classmethod
    def _within_request_limit(cls, value: int) -> int:
        limit = max(int(settings.MAX_IMAGES_PER_REQUEST), 1)
        if value > limit:
            raise ValueError(f"quantity must be at most {limit}")
        return value


def normalize_size(raw: Optional[str]) -> str:
    """Accept '1024', '1024×1024' and similar; anything unsupported falls back to the square size."""
    value = (raw or DEFAULT_SIZE).strip().replace("×", "x")
    if re.fullmatch(r"\d+", value):
        value = f"{value}x{value}"
    if value not in SUPPORTED_SIZES:
        return DEFAULT_SIZE
    return value


def provider_failure_response(exc: ImageProviderError):
    payload: Dict[str, Any] = {
        "ok": False,
        "code": exc.code,
        "error": FAILURE_MESSAGES.get(exc.code, exc.message),
        "charged": {"credits": 0},
    }
    if exc.request_id:
        payload["request_id"] = exc.request_id
    status_code = exc.status_code if 400 <= int(exc.status_code) <= 599 else 502
    return no_store_json(payload, status_code=status_code)


async def _finish_billed_request(
    db: AsyncSession,
    storage: MediaStorage,
    *,
    user_id: str,
    kind: str,
    outcome: BilledOutcome,
    prompt: str,
    size: str,
    quality: str,
    usage_meta: Dict[str, Any],
    extra: Optional[Dict[str, Any]] = None,
):
    """Persist results best-effort and build the success payload. Nothing here reverses the charge."""
    uploaded = await upload_images_best_effort(storage, user_id, outcome.images)
    results: List[Dict[str, Any]] = (
        [item.as_dict() for item in uploaded] if uploaded else [{"b64": image} for image in outcome.images]
    )

    await run_best_effort(
        db,
        record_generation(
            db,
            user_id=user_id,
            kind=kind,
            prompt=prompt,
            size=size,
            quality=quality,
            n=len(outcome.images),
            results=results,
        ),
        timeout_seconds=settings.HISTORY_WRITE_TIMEOUT_SECONDS,
        label="generation history",
    )
    await run_best_effort(
        db,
        record_usage(
            db,
            user_id=user_id,
            action=kind,
            credits_used=outcome.cost,
            meta=usage_meta,
            model=settings.OPENAI_IMAGE_MODEL,
            size=size,
            quality=quality,
            n=len(outcome.images),
        ),
        timeout_seconds=settings.USAGE_WRITE_TIMEOUT_SECONDS,
        label="usage log",
    )

    payload: Dict[str, Any] = {
        "ok": True,
        "charged": {"credits": outcome.cost},
        "balance": outcome.balance_after,
        "uploaded": [item.as_dict() for item in uploaded] if uploaded else None,
        "images_b64": None if uploaded else outcome.images,
        "prompt_used": prompt,
    }
    if extra:
        payload.update(extra)
    return no_store_json(payload)


@router.post("/generate")
async def generate_image(
    request: GenerateImageRequest,
    auth: AuthContext = Depends(get_auth_context),
    _rate_limit: None = Depends(rate_limit("image_generate", limit=60, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
    provider: OpenAIImageProvider = Depends(get_image_provider),
    storage: MediaStorage = Depends(get_media_storage),
):
    safe_prompt = sanitize_prompt(request.prompt)
    params = GenerateParams(
        prompt=safe_prompt,
        size=request.size,
        n=request.quantity,
        quality=request.quality,
        background=request.background,
    )
    charge_request = ChargeRequest(ACTION_GENERATE, request.quantity, request.quality)

    try:
        outcome = await run_billed_action(
            db,
            user_id=auth.user_id,
            charge_request=charge_request,
            work=lambda: provider.generate(params),
            timeout_seconds=settings.IMAGE_GENERATE_TIMEOUT_SECONDS,
        )
    except InsufficientCredits as exc:
        return no_store_json(exc.as_payload(), status_code=402)
    except ImageProviderError as exc:
        logger.warning("Image generation failed for %s: %s (%s)", auth.user_id, exc.code, exc.message)
        return provider_failure_response(exc)

    return await _finish_billed_request(
        db,
        storage,
        user_id=auth.user_id,
        kind=ACTION_GENERATE,
        outcome=outcome,
        prompt=safe_prompt,
        size=request.size,
        quality=request.quality,
        usage_meta={
            "n": request.quantity,
            "size": request.size,
            "quality": request.quality,
            "background": request.background,
        },
    )


async def _read_upload(upload: UploadFile, max_bytes: int, label: str) -> bytes:
    try:
        data = await upload.read(max_bytes + 1)
    finally:
        await upload.close()
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"{label} too large. Max size is {max_bytes // (1024 * 1024)}MB.",
        )
    return data


@router.post("/edit")
async def edit_image(
    http_request: Request,
    prompt: str = Form(...),
    image: Optional[UploadFile] = File(default=None),
    mask: Optional[UploadFile] = File(default=None),
    size: Optional[str] = Form(default=DEFAULT_SIZE),
    quality: str = Form(default="standard"),
    background: str = Form(default="auto"),
    auth: AuthContext = Depends(get_auth_context),
    _rate_limit: None = Depends(rate_limit("image_edit", limit=60, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
    provider: OpenAIImageProvider = Depends(get_image_provider),
    storage: MediaStorage = Depends(get_media_storage),
):
    # Everything below is validated before the debit so rejected uploads never cost credits.
    content_length = int(http_request.headers.get("content-length") or 0)
    if content_length and content_length > settings.MAX_EDIT_REQUEST_BYTES:
        raise HTTPException(status_code=413, detail="Upload too large. Use a smaller image (ideally ~2MB).")

    prompt = (prompt or "").strip()
    if len(prompt) < 3 or len(prompt) > 2000:
        raise HTTPException(status_code=422, detail="prompt must be between 3 and 2000 characters.")
    quality = (quality or "standard").strip().lower()
    if quality not in EDIT_QUALITIES:
        raise HTTPException(status_code=422, detail=f"quality must be one of {sorted(EDIT_QUALITIES)}.")
    background = (background or "auto").strip().lower()
    if background not in BACKGROUNDS:
        raise HTTPException(status_code=422, detail=f"background must be one of {sorted(BACKGROUNDS)}.")
    normalized_size = normalize_size(size)

    if image is None:
        raise HTTPException(status_code=400, detail="Send the base image.")
    image_bytes = await _read_upload(image, settings.MAX_EDIT_IMAGE_BYTES, "Image")
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Send the base image.")
    mask_file = None
    if mask is not None:
        mask_bytes = await _read_upload(mask, settings.MAX_EDIT_IMAGE_BYTES, "Mask")
        if mask_bytes:
            mask_file = ImageFile(mask.filename or "mask.png", mask_bytes, mask.content_type or "image/png")

    safe_prompt = sanitize_prompt(prompt)
    params = EditParams(
        prompt=safe_prompt,
        image=ImageFile(image.filename or "image.jpg", image_bytes, image.content_type or "image/jpeg"),
        mask=mask_file,
        size=normalized_size,
        quality=quality,
        background=background,
    )
    charge_request = ChargeRequest(ACTION_EDIT, 1, quality)

    try:
        outcome = await run_billed_action(
            db,
            user_id=auth.user_id,
            charge_request=charge_request,
            work=lambda: provider.edit(params),
            timeout_seconds=settings.IMAGE_EDIT_TIMEOUT_SECONDS,
        )
    except InsufficientCredits as exc:
        return no_store_json(exc.as_payload(), status_code=402)
    except ImageProviderError as exc:
        logger.warning("Image edit failed for %s: %s (%s)", auth.user_id, exc.code, exc.message)
        return provider_failure_response(exc)

    provider_quality = map_quality(quality)
    return await _finish_billed_request(
        db,
        storage,
        user_id=auth.user_id,
        kind=ACTION_EDIT,
        outcome=outcome,
        prompt=safe_prompt,
        size=normalized_size,
        quality=quality,
        usage_meta={
            "size": normalized_size,
            "quality": provider_quality,
            "background": background,
            "images": len(outcome.images),
        },
        extra={"used": {"size": normalized_size, "quality": provider_quality, "background": background}},
    )


@router.get("/history")
async def generation_history(
    limit: int = Query(default=20, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    items = await list_generations(auth.user_id, db, limit=limit)
    return no_store_json({"ok": True, "items": items})
