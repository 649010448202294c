"""HTTP layer: JSON API, server-rendered studio and the public share page.

Routes:
    GET  /                    upload studio
    POST /studio              process + publish an uploaded batch, show QR code
    POST /api/pages           process an uploaded batch, return the page sequence
    POST /api/albums          publish a client-assembled page list
    GET  /api/albums/{slug}   album record as JSON
    GET  /album/{slug}        public flipbook page (404 page when unknown)
    GET  /health              liveness probe

The storage backend is chosen once in create_app() and kept on app.state.
"""
import logging
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.templating import Jinja2Templates

from models.album import CreateAlbumPayload
from models.events import ProcessingStatus
from models.upload import UploadedFile
from pipeline import stage4_assemble, stage5_publish
from pipeline.errors import ProcessingError
from pipeline.stage5_publish import Store
from pipeline.studio import Studio
from settings import Settings
from utils.storage import select_store

logger = logging.getLogger(__name__)

# Path (relative to the package root) where Jinja2 looks for templates
_TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

templates = Jinja2Templates(directory=str(_TEMPLATE_DIR))
templates.env.filters["datetime"] = lambda value: value.strftime("%b %d, %Y %H:%M")

router = APIRouter()

_PUBLISH_FAILED = ProcessingStatus(
    state="error", label="Unable to publish", sublabel="Please try again later", tone="error"
)


def create_app(settings: Settings | None = None, store: Store | None = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="Flipbook Studio")
    app.state.settings = settings
    app.state.store = store if store is not None else select_store(settings)
    app.include_router(router)
    return app


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> Store:
    return request.app.state.store


# ---------------------------------------------------------------------------
# JSON API
# ---------------------------------------------------------------------------

@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/api/albums")
def create_album(
    payload: CreateAlbumPayload,
    settings: Settings = Depends(get_settings),
    store: Store = Depends(get_store),
):
    if not payload.pages:
        return JSONResponse({"error": "At least one page is required"}, status_code=400)
    try:
        return stage5_publish.publish(settings, store, payload)
    except Exception:
        logger.exception("Failed to create album")
        return JSONResponse({"error": "Failed to create album"}, status_code=500)


@router.get("/api/albums/{slug}")
def get_album(slug: str, store: Store = Depends(get_store)):
    record = stage5_publish.read(store, slug)
    if record is None:
        return JSONResponse({"error": "Album not found"}, status_code=404)
    return record


@router.post("/api/pages")
def process_pages(
    files: list[UploadFile] = File(...),
    include_ocr: bool = Form(False),
    settings: Settings = Depends(get_settings),
):
    try:
        return stage4_assemble.run(settings, _read_uploads(files), include_ocr=include_ocr)
    except ProcessingError as exc:
        logger.error("Processing failed: %s", exc)
        return JSONResponse({"error": "Processing failed"}, status_code=422)


# ---------------------------------------------------------------------------
# HTML pages
# ---------------------------------------------------------------------------

@router.get("/")
def studio_page(request: Request):
    return templates.TemplateResponse(request, "studio.html.j2", {"status": None, "title": ""})


@router.post("/studio")
def studio_submit(
    request: Request,
    files: list[UploadFile] = File(...),
    title: str = Form(""),
    include_ocr: bool = Form(False),
    settings: Settings = Depends(get_settings),
    store: Store = Depends(get_store),
):
    studio = Studio(settings, store, include_ocr=include_ocr)
    studio.process(_read_uploads(files))

    if studio.state == "error" or not studio.sequence.pages:
        return templates.TemplateResponse(
            request,
            "studio.html.j2",
            {"status": studio.status, "title": title},
            status_code=422 if studio.state == "error" else 200,
        )

    try:
        result = studio.publish(title)
    except Exception:
        logger.exception("Failed to publish album")
        return templates.TemplateResponse(
            request,
            "studio.html.j2",
            {"status": _PUBLISH_FAILED, "title": title},
            status_code=500,
        )
    return templates.TemplateResponse(
        request, "published.html.j2", {"result": result, "sequence": studio.sequence}
    )


@router.get("/album/{slug}")
def album_page(request: Request, slug: str, store: Store = Depends(get_store)):
    record = stage5_publish.read(store, slug)
    if record is None:
        return templates.TemplateResponse(request, "not_found.html.j2", {}, status_code=404)
    return templates.TemplateResponse(request, "album.html.j2", {"album": record})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_uploads(files: list[UploadFile]) -> list[UploadedFile]:
    """Convert multipart uploads; browsers send an unnamed empty part for no file."""
    return [
        UploadedFile(
            name=upload.filename,
            content_type=upload.content_type or "",
            data=upload.file.read(),
        )
        for upload in files
        if upload.filename
    ]
