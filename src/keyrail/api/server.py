"""
KEYRAIL - FastAPI Server

HTTP surface over the lifecycle orchestrator. Byte values travel as hex.

Endpoints:
- GET  /health, /suites, /metrics
- POST /keys - Create a key
- GET  /agents/{agent_id}/keys - List an agent's keys
- POST /agents/{agent_id}/rotate - Rotate an agent's keys
- GET  /agents/{agent_id}/profile - Crypto profile
- POST /keys/{key_id}/sign, /keys/{key_id}/verify, /keys/{key_id}/deactivate
- GET  /keys/{key_id}, /keys/{key_id}/public-key
- POST /keys/import - Import a verify-only public key
- POST /hybrid/sign, /hybrid/verify
- POST /bundles/export, /bundles/import
- GET/POST/DELETE /storage - Persisted public keys
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .. import __version__, build_core
from ..config import Settings
from ..core import KeyEncoding, LifecycleOrchestrator
from ..errors import (
    HybridSignError,
    KeyNotFound,
    KeyrailError,
    PolicyViolation,
    PrimitiveFault,
    SuiteError,
    ValidationError,
)
from ..log_config import configure_logging
from ..persistence import Database, KeyRecordRepository

logger = structlog.get_logger()


# ============================================================================
# Pydantic Models
# ============================================================================

class MessagePayload(BaseModel):
    """A message given either as UTF-8 text or as hex bytes."""
    message: Optional[str] = Field(None, description="UTF-8 message text")
    message_hex: Optional[str] = Field(None, description="Message bytes as hex")

    def message_bytes(self) -> bytes:
        if (self.message is None) == (self.message_hex is None):
            raise HTTPException(status_code=400, detail="Provide exactly one of message or message_hex")
        if self.message is not None:
            return self.message.encode("utf-8")
        try:
            return bytes.fromhex(self.message_hex)
        except ValueError:
            raise HTTPException(status_code=400, detail="message_hex is not valid hex")


class CreateKeyRequest(BaseModel):
    agent_id: str = Field(..., description="Owning agent identifier")
    suite_id: str = Field(..., description="Signature suite, e.g. classical-secp256k1 or ml-dsa-65")


class VerifyRequest(MessagePayload):
    signature: str = Field(..., description="Signature bytes as hex")


class ImportKeyRequest(BaseModel):
    public_key: str = Field(..., description="Encoded public key")
    suite_id: str
    encoding: str = Field(default="hex", description="hex or base64")
    agent_id: Optional[str] = None


class HybridSignRequest(MessagePayload):
    key_ids: List[str] = Field(..., min_length=1)


class HybridVerifyRequest(MessagePayload):
    key_ids: List[str] = Field(..., min_length=1)
    signatures: List[str] = Field(..., min_length=1)


class BundleExportRequest(BaseModel):
    key_ids: List[str]


class BundleImportRequest(BaseModel):
    bundle: str = Field(..., description="JSON public key bundle")


class StorageSaveRequest(BaseModel):
    agent_id: Optional[str] = Field(None, description="Only save this agent's keys")


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    suites: int
    keys: int
    uptime_seconds: float


# ============================================================================
# Application State
# ============================================================================

class AppState:
    """Application state container."""

    def __init__(self, settings: Settings, core: Optional[LifecycleOrchestrator] = None):
        self.settings = settings
        self.core = core or build_core(settings)
        self.repository = KeyRecordRepository(Database(settings.database_url))
        self.start_time = datetime.now(timezone.utc)


def _status_for(error: KeyrailError) -> int:
    if isinstance(error, HybridSignError):
        return _status_for(error.cause) if isinstance(error.cause, KeyrailError) else 500
    if isinstance(error, KeyNotFound):
        return 404
    if isinstance(error, (SuiteError, ValidationError)):
        return 400
    if isinstance(error, PolicyViolation):
        return 409
    if isinstance(error, PrimitiveFault):
        return 500
    return 400


# ============================================================================
# Application Factory
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("keyrail_starting", version=__version__)
    yield
    app.state.keyrail.repository.db.close()
    logger.info("keyrail_stopping")


def create_app(
    settings: Optional[Settings] = None,
    core: Optional[LifecycleOrchestrator] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)

    application = FastAPI(
        title="Keyrail",
        description="Key lifecycle and hybrid classical/post-quantum signing.",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.keyrail = AppState(settings, core)

    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(KeyrailError)
    async def keyrail_error_handler(request: Request, exc: KeyrailError):
        body: Dict[str, Any] = {"error": type(exc).__name__, "detail": str(exc)}
        if isinstance(exc, HybridSignError):
            body.update(index=exc.index, key_id=exc.key_id, suite_id=exc.suite_id,
                        cause=type(exc.cause).__name__)
        return JSONResponse(status_code=_status_for(exc), content=body)

    application.include_router(_build_router())
    return application


# ============================================================================
# Dependencies
# ============================================================================

def get_state(request: Request) -> AppState:
    """Get application state."""
    return request.app.state.keyrail


def verify_api_key(
    request: Request,
    x_api_key: str = Header(..., alias="X-API-Key"),
) -> str:
    """Verify API key."""
    if x_api_key != request.app.state.keyrail.settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid API key")
    return x_api_key


def _hex_bytes(value: str, field_name: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{field_name} is not valid hex")


# ============================================================================
# Endpoints
# ============================================================================

def _build_router():
    router = APIRouter()

    @router.get("/health", response_model=HealthResponse, tags=["System"])
    async def health_check(state: AppState = Depends(get_state)):
        """Health check endpoint."""
        uptime = (datetime.now(timezone.utc) - state.start_time).total_seconds()
        return HealthResponse(
            status="healthy",
            version=__version__,
            suites=len(state.core.registry),
            keys=len(state.core.store),
            uptime_seconds=uptime,
        )

    @router.get("/suites", tags=["Suites"])
    async def list_suites(state: AppState = Depends(get_state)):
        registry = state.core.registry
        suites = []
        for descriptor in sorted(registry.supported_suites(), key=lambda d: d.suite_id):
            entry = descriptor.to_dict()
            entry["aliases"] = registry.aliases_for(descriptor.suite_id)
            suites.append(entry)
        return {"suites": suites}

    @router.get("/metrics", tags=["Monitoring"])
    async def get_metrics(
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        return state.core.get_metrics()

    # Keys ------------------------------------------------------------------

    @router.post("/keys", status_code=201, tags=["Keys"])
    def create_key(
        request: CreateKeyRequest,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        record = state.core.create_key(request.agent_id, request.suite_id)
        return record.to_dict()

    @router.post("/keys/import", status_code=201, tags=["Keys"])
    def import_key(
        request: ImportKeyRequest,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        try:
            encoding = KeyEncoding(request.encoding)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid encoding: {request.encoding}")
        if encoding == KeyEncoding.RAW:
            raise HTTPException(status_code=400, detail="Raw encoding is not available over HTTP")

        kwargs = {"agent_id": request.agent_id} if request.agent_id else {}
        key_id = state.core.import_public_key(request.public_key, request.suite_id, encoding, **kwargs)
        return state.core.get_key(key_id).to_dict()

    @router.get("/keys/{key_id}", tags=["Keys"])
    async def get_key(key_id: str, state: AppState = Depends(get_state)):
        return state.core.get_key(key_id).to_dict()

    @router.get("/keys/{key_id}/public-key", tags=["Keys"])
    async def export_public_key(
        key_id: str,
        encoding: str = "hex",
        state: AppState = Depends(get_state),
    ):
        """Export a public key for sharing with verifiers."""
        try:
            key_encoding = KeyEncoding(encoding)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid encoding: {encoding}")
        if key_encoding == KeyEncoding.RAW:
            raise HTTPException(status_code=400, detail="Raw encoding is not available over HTTP")

        record = state.core.get_key(key_id)
        return {
            "key_id": key_id,
            "suite_id": record.suite_id,
            "encoding": key_encoding.value,
            "public_key": state.core.export_public_key(key_id, key_encoding),
            "public_key_size": len(record.public_key),
        }

    @router.post("/keys/{key_id}/deactivate", tags=["Keys"])
    def deactivate_key(
        key_id: str,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        return state.core.deactivate(key_id).to_dict()

    @router.post("/keys/{key_id}/sign", tags=["Signing"])
    def sign(
        key_id: str,
        request: MessagePayload,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        return state.core.sign(key_id, request.message_bytes()).to_dict()

    @router.post("/keys/{key_id}/verify", tags=["Signing"])
    def verify(
        key_id: str,
        request: VerifyRequest,
        state: AppState = Depends(get_state),
    ):
        signature = _hex_bytes(request.signature, "signature")
        valid = state.core.verify(key_id, request.message_bytes(), signature)
        return {"key_id": key_id, "valid": valid}

    # Agents ----------------------------------------------------------------

    @router.get("/agents/{agent_id}/keys", tags=["Agents"])
    async def list_keys(
        agent_id: str,
        active_only: bool = False,
        state: AppState = Depends(get_state),
    ):
        records = state.core.list_keys(agent_id, active_only=active_only)
        return {"agent_id": agent_id, "total": len(records), "keys": [r.to_dict() for r in records]}

    @router.post("/agents/{agent_id}/rotate", tags=["Agents"])
    def rotate(
        agent_id: str,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        created = state.core.rotate(agent_id)
        return {"agent_id": agent_id, "created": [r.to_dict() for r in created]}

    @router.get("/agents/{agent_id}/profile", tags=["Agents"])
    async def profile(agent_id: str, state: AppState = Depends(get_state)):
        return state.core.profile(agent_id).to_dict()

    # Hybrid ----------------------------------------------------------------

    @router.post("/hybrid/sign", tags=["Signing"])
    def hybrid_sign(
        request: HybridSignRequest,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        signatures = state.core.hybrid_sign(request.key_ids, request.message_bytes())
        return {"signatures": [s.to_dict() for s in signatures]}

    @router.post("/hybrid/verify", tags=["Signing"])
    def hybrid_verify(request: HybridVerifyRequest, state: AppState = Depends(get_state)):
        signatures = [_hex_bytes(s, "signatures") for s in request.signatures]
        valid = state.core.hybrid_verify(request.key_ids, request.message_bytes(), signatures)
        return {"key_ids": request.key_ids, "valid": valid}

    # Bundles ---------------------------------------------------------------

    @router.post("/bundles/export", tags=["Keys"])
    async def export_bundle(request: BundleExportRequest, state: AppState = Depends(get_state)):
        return {"bundle": state.core.export_bundle(request.key_ids)}

    @router.post("/bundles/import", status_code=201, tags=["Keys"])
    def import_bundle(
        request: BundleImportRequest,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        return {"key_ids": state.core.import_bundle(request.bundle)}

    # Storage ---------------------------------------------------------------

    @router.get("/storage", tags=["Storage"])
    def list_storage(state: AppState = Depends(get_state)):
        stored = state.repository.list_all()
        return {"total": len(stored), "keys": [s.to_dict() for s in stored]}

    @router.post("/storage", tags=["Storage"])
    def save_storage(
        request: StorageSaveRequest,
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        if request.agent_id:
            records = state.core.list_keys(request.agent_id)
        else:
            records = state.core.store.list_all()
        return {"saved": state.repository.save_all(records)}

    @router.post("/storage/restore", tags=["Storage"])
    def restore_storage(
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        return {"restored": state.repository.restore(state.core.store)}

    @router.delete("/storage", tags=["Storage"])
    def clear_storage(
        state: AppState = Depends(get_state),
        api_key: str = Depends(verify_api_key),
    ):
        return {"cleared": state.repository.clear()}

    return router


def run(settings: Optional[Settings] = None, host: str = "0.0.0.0", reload: bool = False):
    """Run the server."""
    import uvicorn

    settings = settings or Settings.from_env()
    if reload:
        uvicorn.run("keyrail.api.server:create_app", factory=True,
                    host=host, port=settings.port, reload=True)
    else:
        uvicorn.run(create_app(settings), host=host, port=settings.port)
