"""
FastAPI layer for the background-removal comparison tool.

Endpoints:
 - GET  /health
 - GET  /api/config
 - GET  /api/models
 - GET  /api/categories
 - POST /api/analyze-image
 - POST /api/compare
 - POST /api/manual/pick-color
 - POST /api/manual/remove
 - GET/POST /api/records, GET/DELETE /api/records/{id}
 - PUT/DELETE /api/api-key
 - ANY  /replicate/{path}
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
import requests
from starlette.concurrency import run_in_threadpool
import uvicorn

from . import config, proxy
from .analysis import analyze_image
from .comparison import ComparisonOrchestrator
from .errors import CreationError, JobFailed, ProxyError, StorageError
from .image_io import decode_image, encode_png_data_uri, load_image_bytes
from .manual_removal import apply_removal, pick_reference
from .models import CATEGORIES, MODELS, ModelJob, ModelSpec, Record, ReferenceColor, get_model
from .replicate_client import PredictionClient
from .storage import CredentialStore, JsonFileKeyValueStore, KeyValueStore, RecordStore

settings = config.get_settings()
logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger(__name__)

app = FastAPI(title="BG Compare", version="0.1.0")

_kv_store: Optional[KeyValueStore] = None
_http_session: Optional[requests.Session] = None


def get_app_settings() -> config.Settings:
    return config.get_settings()


def get_http_session() -> requests.Session:
    global _http_session
    if _http_session is None:
        _http_session = requests.Session()
    return _http_session


def get_kv_store(app_settings: config.Settings = Depends(get_app_settings)) -> KeyValueStore:
    global _kv_store
    if _kv_store is None:
        _kv_store = JsonFileKeyValueStore(app_settings.records_path)
    return _kv_store


def get_record_store(kv: KeyValueStore = Depends(get_kv_store)) -> RecordStore:
    return RecordStore(kv)


def get_credential_store(kv: KeyValueStore = Depends(get_kv_store)) -> CredentialStore:
    return CredentialStore(kv)


def resolve_api_key(
    explicit: Optional[str],
    credentials: CredentialStore,
    app_settings: config.Settings,
) -> Optional[str]:
    """Request key first, then the user's saved key, then the server default."""
    if explicit:
        return explicit
    try:
        stored = credentials.get()
    except StorageError as exc:
        logger.warning("Could not read stored API key: %s", exc)
        stored = None
    return stored or app_settings.replicate_api_key


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


class ConfigResponse(BaseModel):
    apiKey: Optional[str]
    hasServerKey: bool


class AnalyzeRequest(BaseModel):
    imageUrl: str
    replicateApiKey: Optional[str] = None


class AnalyzeResponse(BaseModel):
    analysis: str


class CompareRequest(BaseModel):
    imageUrl: str
    replicateApiKey: Optional[str] = None
    models: Optional[List[str]] = None  # defaults to every registered model


class CompareResponse(BaseModel):
    results: Dict[str, ModelJob]


class PickColorRequest(BaseModel):
    imageUrl: str
    clickX: float
    clickY: float
    displayWidth: float
    displayHeight: float


class PickColorResponse(BaseModel):
    color: Optional[ReferenceColor]


class ManualRemoveRequest(BaseModel):
    imageUrl: str
    color: ReferenceColor
    tolerance: int = Field(default_factory=lambda: config.get_settings().default_tolerance, ge=0, le=200)


class ManualRemoveResponse(BaseModel):
    resultUrl: str


class ApiKeyRequest(BaseModel):
    apiKey: str = Field(min_length=1)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/config", response_model=ConfigResponse)
def get_config(app_settings: config.Settings = Depends(get_app_settings)):
    return ConfigResponse(
        apiKey=app_settings.replicate_api_key,
        hasServerKey=bool(app_settings.replicate_api_key),
    )


@app.get("/api/models", response_model=List[ModelSpec])
def list_models():
    return MODELS


@app.get("/api/categories")
def list_categories():
    return [c.model_dump() for c in CATEGORIES]


@app.post("/api/analyze-image", response_model=AnalyzeResponse)
def analyze(
    body: AnalyzeRequest,
    app_settings: config.Settings = Depends(get_app_settings),
    session: requests.Session = Depends(get_http_session),
    credentials: CredentialStore = Depends(get_credential_store),
):
    api_key = resolve_api_key(body.replicateApiKey, credentials, app_settings)
    if not api_key:
        return _error(400, "Replicate API key not provided")

    client = PredictionClient.from_settings(api_key, app_settings, session=session)
    try:
        analysis = analyze_image(
            client,
            body.imageUrl,
            version=app_settings.vision_model_version,
            max_tokens=app_settings.analysis_max_tokens,
        )
    except CreationError as exc:
        logger.error("Replicate API error: %s", exc.body)
        return _error(exc.status_code or 500, "Failed to create analysis")
    except JobFailed as exc:
        logger.warning("Image analysis failed: %s", exc.details)
        return _error(500, "Analysis failed")
    except Exception as exc:  # noqa: BLE001
        logger.exception("Image analysis error: %s", exc)
        return _error(500, "Internal server error")

    return AnalyzeResponse(analysis=analysis)


@app.post("/api/compare", response_model=CompareResponse)
def compare(
    body: CompareRequest,
    app_settings: config.Settings = Depends(get_app_settings),
    session: requests.Session = Depends(get_http_session),
    credentials: CredentialStore = Depends(get_credential_store),
):
    api_key = resolve_api_key(body.replicateApiKey, credentials, app_settings)
    if not api_key:
        return _error(400, "Replicate API key not provided")

    if body.models is None:
        selected = list(MODELS)
    else:
        selected = []
        for model_id in body.models:
            spec = get_model(model_id)
            if spec is None:
                raise HTTPException(status_code=400, detail=f"Unknown model '{model_id}'")
            selected.append(spec)

    client = PredictionClient.from_settings(api_key, app_settings, session=session)
    results = ComparisonOrchestrator(client).run_all(selected, body.imageUrl)
    return CompareResponse(results=results)


def _load_buffer(image_url: str, app_settings: config.Settings, session: requests.Session):
    try:
        image_bytes = load_image_bytes(
            image_url, timeout_seconds=app_settings.request_timeout_seconds, session=session
        )
    except requests.RequestException as exc:
        logger.exception("Failed to download image: %s", exc)
        raise HTTPException(status_code=400, detail="Could not download image") from exc
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve
    try:
        return decode_image(image_bytes)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve


@app.post("/api/manual/pick-color", response_model=PickColorResponse)
def manual_pick_color(
    body: PickColorRequest,
    app_settings: config.Settings = Depends(get_app_settings),
    session: requests.Session = Depends(get_http_session),
):
    buffer = _load_buffer(body.imageUrl, app_settings, session)
    color = pick_reference(buffer, body.clickX, body.clickY, body.displayWidth, body.displayHeight)
    return PickColorResponse(color=color)


@app.post("/api/manual/remove", response_model=ManualRemoveResponse)
def manual_remove(
    body: ManualRemoveRequest,
    app_settings: config.Settings = Depends(get_app_settings),
    session: requests.Session = Depends(get_http_session),
):
    buffer = _load_buffer(body.imageUrl, app_settings, session)
    try:
        result = apply_removal(buffer, body.color, body.tolerance)
    except ValueError as ve:
        raise HTTPException(status_code=400, detail=str(ve)) from ve
    return ManualRemoveResponse(resultUrl=encode_png_data_uri(result))


@app.get("/api/records", response_model=List[Record])
def list_records(store: RecordStore = Depends(get_record_store)):
    try:
        return store.list()
    except StorageError as exc:
        logger.error("Failed to list records: %s", exc)
        return _error(503, exc.message)


@app.post("/api/records", response_model=Record, status_code=201)
def create_record(body: Record, store: RecordStore = Depends(get_record_store)):
    try:
        return store.create(body)
    except StorageError as exc:
        logger.error("Failed to save record: %s", exc)
        return _error(503, exc.message)


@app.get("/api/records/{record_id}", response_model=Record)
def get_record(record_id: str, store: RecordStore = Depends(get_record_store)):
    try:
        record = store.get(record_id)
    except StorageError as exc:
        logger.error("Failed to read record %s: %s", record_id, exc)
        return _error(503, exc.message)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@app.delete("/api/records/{record_id}", status_code=204)
def delete_record(record_id: str, store: RecordStore = Depends(get_record_store)):
    try:
        deleted = store.delete(record_id)
    except StorageError as exc:
        logger.error("Failed to delete record %s: %s", record_id, exc)
        return _error(503, exc.message)
    if not deleted:
        raise HTTPException(status_code=404, detail="Record not found")
    return None


@app.put("/api/api-key", status_code=204)
def save_api_key(body: ApiKeyRequest, credentials: CredentialStore = Depends(get_credential_store)):
    try:
        credentials.set(body.apiKey)
    except StorageError as exc:
        logger.error("Failed to store API key: %s", exc)
        return _error(503, exc.message)
    return None


@app.delete("/api/api-key", status_code=204)
def clear_api_key(credentials: CredentialStore = Depends(get_credential_store)):
    try:
        credentials.clear()
    except StorageError as exc:
        logger.error("Failed to clear API key: %s", exc)
        return _error(503, exc.message)
    return None


@app.api_route("/replicate/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"])
async def replicate_proxy(
    path: str,
    request: Request,
    app_settings: config.Settings = Depends(get_app_settings),
    session: requests.Session = Depends(get_http_session),
):
    body = await request.body()
    try:
        status_code, data = await run_in_threadpool(
            proxy.forward,
            request.method,
            request.url.path,
            dict(request.headers),
            body,
            request.url.query,
            base_url=app_settings.replicate_base_url,
            session=session,
            timeout_seconds=app_settings.request_timeout_seconds,
        )
    except ProxyError as exc:
        return _error(500, exc.message, details=exc.details.get("details"))
    if request.method == "HEAD":
        return Response(status_code=status_code)
    return JSONResponse(status_code=status_code, content=data)


def main() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    app_settings = config.get_settings()
    uvicorn.run(
        "bgcompare.api:app",
        host=app_settings.host,
        port=app_settings.port,
        log_level=app_settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
