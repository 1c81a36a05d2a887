"""
FastAPI routes for the reservation portal backend.

Endpoints:
- GET    /forms                         - list registered form kinds
- GET    /forms/{form_kind}             - full form definition
- POST   /sessions                      - mount a form session
- GET    /sessions/{session_id}         - current session snapshot
- POST   /sessions/{session_id}/fields  - apply field edits
- POST   /sessions/{session_id}/files/{key} - attach an uploaded file
- POST   /sessions/{session_id}/validate - validate without submitting
- POST   /sessions/{session_id}/submit  - validate and submit
- DELETE /sessions/{session_id}         - discard a session
- GET    /profile                       - signed-in organization profile
- GET    /health                        - health check
"""

import logging
from typing import Any

from fastapi import APIRouter, File, Header, HTTPException, UploadFile
from pydantic import BaseModel, Field

from reservations.config import PortalContext
from reservations.core.errors import ConfigurationError, TransportError, ValidationFailure
from reservations.core.registry import get_schema, list_form_kinds
from reservations.core.schema import FileRef
from reservations.core.session import Session
from reservations.core.submission import SubmissionCoordinator

logger = logging.getLogger(__name__)

router = APIRouter()

# These will be injected by the app factory
_session_store = None
_context = None
_transport = None


def configure_routes(session_store, context, transport=None):
    """Inject the session store, portal context, and transport into the routes module.

    Called by the app factory during startup.
    """
    global _session_store, _context, _transport
    _session_store = session_store
    _context = context
    _transport = transport


# --- Request / Response Models ---


class CreateSessionRequest(BaseModel):
    """Request body for POST /sessions."""

    form_kind: str
    session_id: str | None = None
    values: dict[str, Any] = Field(default_factory=dict)


class FieldChangeRequest(BaseModel):
    """Request body for POST /sessions/{id}/fields. Edits apply in order."""

    values: dict[str, Any]


class SessionResponse(BaseModel):
    """A session snapshot as returned by every session endpoint."""

    session_id: str
    session: dict[str, Any]
    reset_keys: list[str] = Field(default_factory=list)


class ValidateResponse(BaseModel):
    valid: bool
    errors: dict[str, Any]
    session: dict[str, Any]


class SubmitResponse(BaseModel):
    """Response body for a successful submission."""

    payload: dict[str, Any]
    response: dict[str, Any]
    navigation: dict[str, Any] | None
    session: dict[str, Any]


# --- Helpers ---


def _require_store():
    if _session_store is None:
        raise HTTPException(status_code=500, detail="Server not properly configured")
    return _session_store


def _load_session(session_id: str) -> Session:
    session = _require_store().get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return session


def _apply_values(session: Session, values: dict[str, Any]) -> list[str]:
    try:
        return session.form.set_values(values)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))


_UPLOAD_CHUNK_BYTES = 64 * 1024


async def _read_upload(file: UploadFile) -> bytes:
    limit = (_context or PortalContext()).max_upload_bytes
    chunks = []
    total = 0
    while True:
        chunk = await file.read(_UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            logger.warning("Upload %s rejected: larger than %d bytes", file.filename, limit)
            raise HTTPException(
                status_code=413,
                detail=f"File exceeds the upload limit of {limit} bytes",
            )
        chunks.append(chunk)
    return b"".join(chunks)


# --- Endpoints ---


@router.get("/forms")
async def list_forms():
    """List the registered form kinds."""
    forms = []
    for form_kind in list_form_kinds():
        schema = get_schema(form_kind)
        forms.append({
            "form_kind": schema.form_kind,
            "title": schema.title,
            "operation": schema.operation,
        })
    return {"forms": forms}


@router.get("/forms/{form_kind}")
async def describe_form(form_kind: str):
    """Get the full definition of a form kind."""
    try:
        schema = get_schema(form_kind)
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return schema.model_dump(mode="json", exclude_none=True)


@router.post("/sessions", response_model=SessionResponse)
async def create_session(request: CreateSessionRequest):
    """Mount a form session, optionally pre-filled with values."""
    store = _require_store()
    try:
        session_id, session = store.create_session(
            form_kind=request.form_kind,
            session_id=request.session_id,
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))

    reset_keys = []
    if request.values:
        try:
            reset_keys = session.form.set_values(request.values)
        except ConfigurationError as e:
            store.delete_session(session_id)
            raise HTTPException(status_code=400, detail=str(e))

    logger.info("Session %s created for form '%s'", session_id, request.form_kind)
    return SessionResponse(
        session_id=session_id,
        session=session.form.snapshot(),
        reset_keys=reset_keys,
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str):
    session = _load_session(session_id)
    return SessionResponse(session_id=session_id, session=session.form.snapshot())


@router.post("/sessions/{session_id}/fields", response_model=SessionResponse)
async def change_fields(session_id: str, request: FieldChangeRequest):
    """Apply one or more field edits and return the resolved session."""
    session = _load_session(session_id)
    reset_keys = _apply_values(session, request.values)
    return SessionResponse(
        session_id=session_id,
        session=session.form.snapshot(),
        reset_keys=reset_keys,
    )


@router.post("/sessions/{session_id}/files/{key}", response_model=SessionResponse)
async def upload_file(session_id: str, key: str, file: UploadFile = File(...)):
    """Attach an uploaded file to a file field.

    The file is kept in memory until the session is submitted or discarded.
    Uploads larger than the configured limit are rejected with 413.
    """
    session = _load_session(session_id)
    content = await _read_upload(file)
    ref = FileRef(
        name=file.filename or key,
        size=len(content),
        content_type=file.content_type or "application/octet-stream",
        content=content,
    )
    reset_keys = _apply_values(session, {key: ref})
    return SessionResponse(
        session_id=session_id,
        session=session.form.snapshot(),
        reset_keys=reset_keys,
    )


@router.post("/sessions/{session_id}/validate", response_model=ValidateResponse)
async def validate_session(session_id: str):
    """Validate the session's current values without submitting them."""
    session = _load_session(session_id)
    errors = session.form.validate()
    return ValidateResponse(
        valid=not errors,
        errors={k: e.model_dump() for k, e in errors.items()},
        session=session.form.snapshot(),
    )


@router.post("/sessions/{session_id}/submit", response_model=SubmitResponse)
async def submit_session(session_id: str):
    """Validate and submit the session through the transport.

    Returns 422 with the error map when the form is invalid and 502 when
    the backend could not be reached or rejected the request.
    """
    if _transport is None:
        raise HTTPException(status_code=500, detail="Server not properly configured")

    session = _load_session(session_id)
    coordinator = SubmissionCoordinator(_transport)

    try:
        outcome = await coordinator.submit(session.form)
    except ValidationFailure as e:
        raise HTTPException(
            status_code=422,
            detail={
                "message": str(e),
                "errors": {k: err.model_dump() for k, err in e.errors.items()},
            },
        )
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TransportError as e:
        raise HTTPException(
            status_code=502,
            detail={"message": e.message, "status_code": e.status_code},
        )

    return SubmitResponse(
        payload=outcome.payload.model_dump(mode="json"),
        response=outcome.response,
        navigation=outcome.navigation.model_dump() if outcome.navigation else None,
        session=session.form.snapshot(),
    )


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str):
    """Discard a form session."""
    deleted = _require_store().delete_session(session_id)
    return {
        "success": deleted,
        "message": "Session deleted" if deleted else "Session not found",
    }


@router.get("/profile")
async def get_profile(authorization: str | None = Header(default=None)):
    """Fetch the signed-in organization's profile with the caller's bearer token."""
    if _transport is None or not hasattr(_transport, "fetch_profile"):
        raise HTTPException(status_code=500, detail="Server not properly configured")

    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[len("bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Bearer token required")

    try:
        return await _transport.fetch_profile(token)
    except TransportError as e:
        raise HTTPException(
            status_code=502,
            detail={"message": e.message, "status_code": e.status_code},
        )


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    session_count = _session_store.count() if _session_store else 0
    by_form = _session_store.count_by_form() if _session_store else {}
    return {
        "status": "healthy",
        "active_sessions": session_count,
        "sessions_by_form": by_form,
        "forms": list_form_kinds(),
    }
