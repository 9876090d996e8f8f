import mimetypes
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import uvicorn
from fastapi import APIRouter, FastAPI, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from anyshare import config
from anyshare.logger_config import setup_logger
from anyshare.services.errors import InvalidInputError, ShareError
from anyshare.services.identifiers import IdentifierAllocator
from anyshare.services.object_store import FileObjectStore
from anyshare.services.persistence import SnapshotGateway
from anyshare.services.registry import ObjectRegistry
from anyshare.services.share_service import ShareService, parse_ttl

UPLOAD_CHUNK_SIZE = 64 * 1024

# Logger setup
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Snapshot load errors propagate and abort startup
    store = FileObjectStore(Path(config.DATA_DIR), Path(config.TEMP_DIR))
    await store.initialize()
    gateway = SnapshotGateway(Path(config.SNAPSHOT_PATH))
    index = await gateway.load()

    registry = ObjectRegistry(index, IdentifierAllocator(config.ID_LENGTH, config.ID_ALPHABET))
    service = ShareService(registry, store, max_payload_size=config.MAX_FILE_SIZE)
    await service.startup()
    app.state.share_service = service
    yield
    # uvicorn runs this on SIGINT/SIGTERM; a failed save propagates
    await service.shutdown(gateway)


def setup_exception_handlers(app: FastAPI):
    """Register the handler that turns registry errors into JSON rejections."""

    @app.exception_handler(ShareError)
    async def share_error_handler(request: Request, exc: ShareError):
        logger.warning(f"{exc.error_code} on {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": {"code": exc.error_code, "message": exc.message}},
        )


router = APIRouter(prefix=config.URL_PREFIX)


def get_service(request: Request) -> ShareService:
    return request.app.state.share_service


def content_disposition(filename: str) -> str:
    try:
        filename.encode('ascii')
        return f'attachment; filename="{filename}"'
    except UnicodeEncodeError:
        return f"attachment; filename*=UTF-8''{quote(filename)}"


async def read_upload(file: UploadFile, max_size: int) -> bytes:
    """Read the upload in chunks, giving up as soon as it exceeds ``max_size``."""
    chunks = []
    total = 0
    while chunk := await file.read(UPLOAD_CHUNK_SIZE):
        total += len(chunk)
        if total > max_size:
            raise InvalidInputError(f"Content size exceeds maximum allowed size ({max_size} bytes)")
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/upload")
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    expired_time: Optional[str] = Query(None),
):
    """Store an uploaded file and return its new id."""
    service = get_service(request)
    logger.info(f"Receiving upload request for file: {file.filename}")

    ttl = parse_ttl(expired_time)
    data = await read_upload(file, service.max_payload_size)
    record = await service.create_from_upload(data, file.filename or "", ttl)
    return {"success": True, "id": record.id}


@router.api_route("/text", methods=["GET", "POST"])
async def share_text(
    request: Request,
    text: str = Query(""),
    expired_time: Optional[str] = Query(None),
):
    """Store a text snippet and return its new id."""
    service = get_service(request)
    ttl = parse_ttl(expired_time)
    record = await service.create_from_text(text, ttl)
    return {"success": True, "id": record.id}


@router.get("/download")
async def download_file(request: Request, id: str = Query("")):
    """Return the stored bytes as an attachment, or the stored text."""
    if not id:
        raise InvalidInputError("Missing param id")
    service = get_service(request)
    logger.info(f"Receiving download request for id: {id}")

    result = await service.fetch(id)
    if result.record.is_inline:
        return PlainTextResponse(result.content)

    filename = result.record.display_name or id
    content_type, _ = mimetypes.guess_type(filename)
    return Response(
        content=result.content,
        media_type=content_type or "application/octet-stream",
        headers={"content-disposition": content_disposition(filename)},
    )


@router.get("/info")
async def object_info(request: Request, id: str = Query("")):
    """Return the metadata of a live object."""
    if not id:
        raise InvalidInputError("Missing param id")
    record = await get_service(request).describe(id)
    return {
        **record.model_dump(by_alias=True, exclude={"inline_text"}),
        "expires_at": record.expires_at,
    }


# Create FastAPI app with lifespan
app = FastAPI(title="anyShare", lifespan=lifespan)
setup_exception_handlers(app)
app.include_router(router)


def run():
    logger.info("Starting anyShare server...")
    logger.info(f"Data directory: {config.DATA_DIR}")
    logger.info(f"Snapshot file: {config.SNAPSHOT_PATH}")
    logger.info(f"Maximum upload size: {config.MAX_FILE_SIZE / (1000*1000):.2f} MB")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    run()
