"""
FastAPI layer exposing RMBG background removal.

Endpoints:
 - GET /health
 - POST /remove-bg        raw image body -> image/png
 - POST /remove-bg/url    {"imageUrl": ...} -> uploaded cutout URL
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import NoReturn, Optional
from urllib.parse import urljoin
import uuid

import boto3
from botocore.client import Config as BotoConfig
from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from pydantic import BaseModel, HttpUrl
import requests

from . import config
from .compositing import encode_png
from .errors import BackgroundRemovalError, DecodeError, ModelNotInitialized
from .model_context import ModelContext, init_model_or_warn
from .pipeline import remove_background, remove_background_from_image
from .preprocessing import decode_image

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)


class RemoveBgUrlRequest(BaseModel):
    imageUrl: HttpUrl


class RemoveBgUrlResponse(BaseModel):
    outputUrl: str
    width: int
    height: int


def _raise_http(exc: BackgroundRemovalError) -> NoReturn:
    if isinstance(exc, DecodeError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, ModelNotInitialized):
        raise HTTPException(status_code=503, detail="Background removal model is not loaded") from exc
    logger.exception("Background removal failed: %s", exc)
    raise HTTPException(status_code=500, detail="Background removal failed") from exc


def _get_s3_client(app_settings: config.Settings):
    if not app_settings.storage_configured:
        raise RuntimeError("R2 configuration is incomplete; check env vars.")
    session = boto3.session.Session()
    return session.client(
        service_name="s3",
        aws_access_key_id=app_settings.r2_access_key_id,
        aws_secret_access_key=app_settings.r2_secret_access_key,
        endpoint_url=app_settings.r2_endpoint,
        config=BotoConfig(signature_version="s3v4"),
    )


def upload_png(png_bytes: bytes, app_settings: config.Settings) -> str:
    """Store a cutout in R2 and return a URL the caller can fetch it from."""
    key = f"rmbg/{uuid.uuid4()}.png"
    client = _get_s3_client(app_settings)
    client.put_object(
        Bucket=app_settings.r2_bucket_name,
        Key=key,
        Body=png_bytes,
        ContentType="image/png",
    )
    if app_settings.r2_public_base_url:
        return urljoin(app_settings.r2_public_base_url.rstrip("/") + "/", key)
    return client.generate_presigned_url(
        "get_object",
        Params={"Bucket": app_settings.r2_bucket_name, "Key": key},
        ExpiresIn=3600,
    )


def _download_image(url: str, app_settings: config.Settings) -> bytes:
    """Fetch a remote image, reading at most ``max_upload_bytes``."""
    limit = app_settings.max_upload_bytes
    too_large = ValueError(f"Remote image exceeds {limit} bytes")
    with requests.get(url, timeout=(5, app_settings.request_timeout_seconds), stream=True) as resp:
        resp.raise_for_status()
        declared = resp.headers.get("Content-Length")
        if declared and declared.isdigit() and int(declared) > limit:
            raise too_large
        body = bytearray()
        for chunk in resp.iter_content(chunk_size=64 * 1024):
            body.extend(chunk)
            if len(body) > limit:
                raise too_large
    return bytes(body)


def create_app(context: Optional[ModelContext] = None, app_settings: Optional[config.Settings] = None) -> FastAPI:
    """
    Build the application around one ``ModelContext``.

    Without an explicit context, one is created and the model is loaded from
    ``RMBG_MODEL_PATH`` at startup; a failed load leaves the service up with
    removal endpoints answering 503.
    """
    app_settings = app_settings or settings
    owns_context = context is None
    model_context = context or ModelContext()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if owns_context and not model_context.is_ready:
            await run_in_threadpool(init_model_or_warn, model_context, app_settings.rmbg_model_path, app_settings)
        yield

    app = FastAPI(title="RMBG Background Removal Service", version="0.1.0", lifespan=lifespan)
    app.state.model_context = model_context
    app.state.settings = app_settings

    @app.get("/health")
    def health():
        return {"status": "ok", "model_loaded": model_context.is_ready}

    @app.post("/remove-bg")
    async def remove_bg(request: Request):
        body = await request.body()
        if len(body) > app_settings.max_upload_bytes:
            raise HTTPException(status_code=413, detail="Image too large")
        try:
            # Resize/normalize/composite are CPU bound; keep them off the event loop.
            png_bytes = await run_in_threadpool(remove_background, body, model_context, app_settings)
        except BackgroundRemovalError as exc:
            _raise_http(exc)
        return Response(content=png_bytes, media_type="image/png")

    @app.post("/remove-bg/url", response_model=RemoveBgUrlResponse)
    def remove_bg_url(body: RemoveBgUrlRequest):
        if not model_context.is_ready:
            _raise_http(ModelNotInitialized("RMBG model not initialized"))
        try:
            image_bytes = _download_image(str(body.imageUrl), app_settings)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to download image: %s", exc)
            raise HTTPException(status_code=400, detail="Could not download image") from exc

        try:
            image = decode_image(image_bytes)
            result = remove_background_from_image(image, model_context, settings=app_settings)
            png_bytes = encode_png(result)
        except BackgroundRemovalError as exc:
            _raise_http(exc)

        try:
            output_url = upload_png(png_bytes, app_settings)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Failed to upload cutout to R2: %s", exc)
            raise HTTPException(status_code=500, detail="Upload to storage failed") from exc

        return RemoveBgUrlResponse(outputUrl=output_url, width=result.width, height=result.height)

    return app


app = create_app()
