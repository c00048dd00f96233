import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel
from qrcode.exceptions import DataOverflowError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool
from starlette.middleware.sessions import SessionMiddleware

from playable_backend.config import (
    LOG_LEVEL,
    LOGIN_RATE_LIMIT,
    SESSION_MAX_AGE_SECONDS,
    UPLOAD_RATE_LIMIT,
    Settings,
)
from playable_backend.errors import InvalidId, PathEscape, PlayableError
from playable_backend.pages import (
    is_mobile,
    render_admin,
    render_desktop_viewer,
    render_login,
    render_mobile_viewer,
    render_qr_svg,
    view_url,
)
from playable_backend.security import normalize_playable_id
from playable_backend.serving import ContentServer
from playable_backend.workspace import ContentStore
from playable_backend.zip_utils import ArchiveExtractor, check_upload_type, spool_upload


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("playable_preview")

CONTENT_SECURITY_POLICY = "; ".join(
    [
        "default-src 'self'",
        "style-src 'self' 'unsafe-inline' fonts.googleapis.com",
        "font-src 'self' fonts.gstatic.com",
        "script-src 'self' 'unsafe-inline'",
        "frame-src 'self'",
        "img-src 'self' data:",
    ]
)


class PlayableOut(BaseModel):
    id: str
    has_html: bool
    view_url: str


class DeleteResult(BaseModel):
    success: bool
    error: Optional[str] = None


# Rate limiter configuration
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> ContentStore:
    return request.app.state.store


def get_content_server(request: Request) -> ContentServer:
    return request.app.state.content_server


def _is_authenticated(request: Request) -> bool:
    return bool(request.session.get("authenticated"))


def _http_error(exc: PlayableError) -> HTTPException:
    # Only the error kind's generic message reaches the client.
    return HTTPException(status_code=exc.status_code, detail=exc.detail)


@router.get("/")
async def index() -> RedirectResponse:
    return RedirectResponse("/admin", status_code=302)


@router.get("/login", response_class=HTMLResponse)
async def login_page(error: Optional[str] = None) -> HTMLResponse:
    return HTMLResponse(render_login(error=error == "1"))


@router.post("/login")
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    password: str = Form(""),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    if secrets.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8")):
        request.session["authenticated"] = True
        return RedirectResponse("/admin", status_code=303)
    logger.warning("Failed login from %s", getattr(request.client, "host", "unknown"))
    return RedirectResponse("/login?error=1", status_code=303)


@router.get("/logout")
async def logout(request: Request) -> RedirectResponse:
    request.session.clear()
    return RedirectResponse("/login", status_code=302)


@router.get("/admin", response_class=HTMLResponse)
async def admin(
    request: Request,
    store: ContentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> Response:
    if not _is_authenticated(request):
        return RedirectResponse("/login", status_code=302)
    playables = await run_in_threadpool(store.list)
    return HTMLResponse(render_admin(playables, settings.base_url))


@router.get("/api/playables", response_model=list[PlayableOut])
async def list_playables(
    request: Request,
    store: ContentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> list[PlayableOut]:
    if not _is_authenticated(request):
        raise HTTPException(status_code=401, detail="Unauthorized")
    playables = await run_in_threadpool(store.list)
    return [
        PlayableOut(
            id=p.playable_id,
            has_html=p.has_entry_html,
            view_url=view_url(settings.base_url, p.playable_id),
        )
        for p in playables
    ]


@router.post("/admin/upload")
@limiter.limit(UPLOAD_RATE_LIMIT)
async def upload_playable(
    request: Request,
    playable: Optional[UploadFile] = File(None),
    store: ContentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> RedirectResponse:
    """Store an uploaded .html file or extract a .zip into a new playable."""
    if not _is_authenticated(request):
        return RedirectResponse("/login", status_code=303)
    if playable is None or not playable.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    original_filename = playable.filename
    try:
        check_upload_type(original_filename, playable.content_type)
        spooled = await spool_upload(playable, settings.temp_dir, settings.max_upload_bytes)
    except PlayableError as e:
        logger.warning("Upload of %r rejected: %s", original_filename, e.detail)
        raise _http_error(e)

    extractor: ArchiveExtractor = request.app.state.extractor
    try:
        content = await run_in_threadpool(store.ingest, spooled, original_filename, extractor)
    except PlayableError as e:
        logger.warning("Upload of %r failed: %s", original_filename, e.detail, exc_info=e.status_code >= 500)
        raise _http_error(e)
    finally:
        spooled.unlink(missing_ok=True)

    logger.info("Uploaded %r as %s", original_filename, content.playable_id)
    return RedirectResponse("/admin", status_code=303)


@router.delete("/admin/delete/{playable_id}", response_model=DeleteResult)
async def delete_playable(
    playable_id: str,
    request: Request,
    store: ContentStore = Depends(get_store),
) -> JSONResponse:
    if not _is_authenticated(request):
        return JSONResponse({"success": False, "error": "Unauthorized"}, status_code=401)
    try:
        await run_in_threadpool(store.delete, playable_id)
    except InvalidId:
        return JSONResponse({"success": False, "error": "Invalid ID"}, status_code=400)
    except PathEscape:
        return JSONResponse({"success": False, "error": "Invalid path"}, status_code=400)
    except OSError:
        logger.exception("Delete of %s failed", playable_id)
        return JSONResponse({"success": False, "error": "Delete failed"}, status_code=500)
    # Idempotent: deleting a missing playable is treated as success.
    return JSONResponse({"success": True})


@router.get("/view/{playable_id}", response_class=HTMLResponse)
async def view_playable(
    playable_id: str,
    request: Request,
    device: Optional[str] = None,
    store: ContentStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> HTMLResponse:
    try:
        sid = normalize_playable_id(playable_id)
        store.get(sid)
    except PlayableError as e:
        raise _http_error(e)

    entry = await run_in_threadpool(store.find_entry_html, sid)
    if entry is None:
        raise HTTPException(status_code=404, detail="HTML file not found in playable")

    if is_mobile(request.headers.get("user-agent")):
        return HTMLResponse(render_mobile_viewer(sid, entry))
    return HTMLResponse(render_desktop_viewer(sid, entry, device, settings.base_url))


@router.get("/api/qr")
async def qr_code(url: Optional[str] = None) -> Response:
    if not url:
        raise HTTPException(status_code=400, detail="URL required")
    try:
        svg = render_qr_svg(url)
    except DataOverflowError:
        raise HTTPException(status_code=400, detail="URL too long")
    return Response(content=svg, media_type="image/svg+xml")


@router.get("/playable/{playable_id}/{file_path:path}")
async def serve_playable_file(
    playable_id: str,
    file_path: str,
    content_server: ContentServer = Depends(get_content_server),
) -> FileResponse:
    """Serve a file out of a playable's content directory.

    Security:
    - playable_id must be a safe identifier
    - file_path must be relative with no '..'
    - the resolved file must stay inside the playable's directory
    - only allow-listed content types are sent, with nosniff
    """
    try:
        served = content_server.resolve(playable_id, file_path)
    except PlayableError as e:
        if e.status_code == 403:
            logger.warning("Refused %r from playable %r: %s", file_path, playable_id, e.detail)
        raise _http_error(e)

    return FileResponse(
        served.path,
        media_type=served.media_type,
        headers={"X-Content-Type-Options": "nosniff", "Cache-Control": "no-cache"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    store = ContentStore(settings.uploads_root)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        purged = await run_in_threadpool(store.purge_tombstones)
        if purged:
            logger.info("Removed %d unfinished deletions", purged)
        logger.info("Serving playables from %s", store.root)
        yield

    app = FastAPI(lifespan=lifespan)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.state.settings = settings
    app.state.store = store
    app.state.content_server = ContentServer(store)
    app.state.extractor = ArchiveExtractor(
        max_entries=settings.max_archive_entries,
        max_entry_bytes=settings.max_entry_bytes,
    )

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        max_age=SESSION_MAX_AGE_SECONDS,
        same_site="lax",
        https_only=settings.secure_cookies,
    )

    @app.middleware("http")
    async def _security_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", CONTENT_SECURITY_POLICY)
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    # Convenience: python server.py
    import uvicorn

    port = int(os.environ.get("PORT", "3000"))
    uvicorn.run("server:app", host="0.0.0.0", port=port, reload=False)
