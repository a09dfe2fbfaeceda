import mimetypes
import posixpath
import secrets
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import uvicorn
from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from starlette.background import BackgroundTask

import config
from fileshare.errors import (
    FileShareError,
    InvalidPath,
    IsADirectory,
    NotADirectory,
    NotFound,
    StorageIOError,
)
from fileshare.models import UploadItem
from fileshare.schemas import FileEntryOut, UploadedFileOut, UploadResponse
from fileshare.services.file_repository import LocalFileRepository
from fileshare.services.path_resolver import url_to_relative
from fileshare.services.upload_service import UploadService
from logger_config import setup_logger

# Logger setup
logger = setup_logger()

security = HTTPBasic(auto_error=False)

# Checked in order, so subclasses come before their parents
ERROR_STATUS = [
    (InvalidPath, 403),
    (NotFound, 404),
    (NotADirectory, 400),
    (IsADirectory, 409),
    (StorageIOError, 500),
]


def build_repository(root: Optional[Path] = None) -> LocalFileRepository:
    """Create the repository from the current configuration."""
    root = Path(root or config.ROOT_DIR)
    if not root.is_dir():
        raise RuntimeError(f"Root directory does not exist: {root}")
    return LocalFileRepository(
        root,
        archive_suffix=config.ARCHIVE_SUFFIX,
        chunk_size=config.CHUNK_SIZE,
        archive_capacity=config.ARCHIVE_PIPE_CAPACITY,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.repository = build_repository()
    app.state.upload_service = UploadService(app.state.repository)
    logger.info(f"Serving files from {app.state.repository.root}")
    yield


def require_auth(credentials: Optional[HTTPBasicCredentials] = Depends(security)):
    """Enforce HTTP Basic auth when it is enabled in config."""
    if not config.AUTH_ENABLED:
        return
    if credentials is not None:
        user_ok = secrets.compare_digest(credentials.username.encode("utf8"), config.USERNAME.encode("utf8"))
        password_ok = secrets.compare_digest(credentials.password.encode("utf8"), config.PASSWORD.encode("utf8"))
        if user_ok and password_ok:
            return
    raise HTTPException(
        status_code=401,
        detail="Unauthorized",
        headers={"WWW-Authenticate": 'Basic realm="Restricted"'},
    )


# Create FastAPI app with lifespan
app = FastAPI(title="File Share Server", lifespan=lifespan, dependencies=[Depends(require_auth)])


@app.exception_handler(FileShareError)
async def file_share_error_handler(request: Request, exc: FileShareError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def get_repository(request: Request) -> LocalFileRepository:
    return request.app.state.repository


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def content_disposition(filename: str) -> str:
    """Attachment header that survives non-ASCII file names."""
    fallback = filename.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def iter_stream(stream, label: str):
    """Yield chunks from a blocking stream, closing it however the transfer ends."""
    try:
        while chunk := stream.read(config.CHUNK_SIZE):
            yield chunk
    except FileShareError as exc:
        logger.error(f"Stream for {label} aborted: {exc}")
        raise
    finally:
        stream.close()


def file_response(repository: LocalFileRepository, relative: str) -> StreamingResponse:
    served = repository.serve_file(relative)
    logger.info(f"Serving file: {relative}")

    content_type, _ = mimetypes.guess_type(served.name)
    return StreamingResponse(
        iter_stream(served.stream, relative),
        media_type=content_type or "application/octet-stream",
        headers={"content-disposition": content_disposition(served.name)},
        background=BackgroundTask(served.stream.close),
    )


def archive_response(repository: LocalFileRepository, relative: str) -> StreamingResponse:
    stream = repository.zip_directory(relative)
    filename = repository.archive_name(relative)
    logger.info(f"Streaming archive of '{relative or '/'}' as {filename}")

    return StreamingResponse(
        iter_stream(stream, filename),
        media_type="application/zip",
        headers={"content-disposition": content_disposition(filename)},
        background=BackgroundTask(stream.close),
    )


def listing(repository: LocalFileRepository, relative: str) -> List[FileEntryOut]:
    entries = repository.list_directory(relative)
    logger.debug(f"Listed {len(entries)} entries in '{relative or '/'}'")
    return [FileEntryOut.from_entry(entry) for entry in entries]


@app.get("/api/files", response_model=List[FileEntryOut])
def list_files(path: str = "", repository: LocalFileRepository = Depends(get_repository)):
    """List the immediate children of a directory."""
    return listing(repository, url_to_relative(path))


@app.get("/api/files/download")
def download_file(path: str, repository: LocalFileRepository = Depends(get_repository)):
    """Download a single file."""
    return file_response(repository, url_to_relative(path))


@app.get("/api/files/archive")
def download_archive(path: str = "", repository: LocalFileRepository = Depends(get_repository)):
    """Download a directory as a ZIP archive built on the fly."""
    return archive_response(repository, url_to_relative(path))


@app.post("/api/upload", response_model=UploadResponse)
async def upload_files(
    request: Request,
    files: List[UploadFile] = File(...),
    path: Optional[str] = Form(None),
    upload_service: UploadService = Depends(get_upload_service),
):
    """Upload one or more files, optionally below a destination directory.

    The destination comes from the ``path`` form field or query parameter.
    """
    prefix = url_to_relative(path or request.query_params.get("path", ""))
    items = []
    for file in files:
        name = file.filename or ""
        if name and prefix:
            name = posixpath.join(prefix, name)
        items.append(UploadItem(name=name, content=file))

    logger.info(f"Receiving upload of {len(items)} file(s) into '{prefix or '/'}'")
    result = await upload_service.execute(items)

    for failure in result.failures:
        logger.warning(f"Upload of {failure.name} failed: {failure.error}")
    if result.error is not None:
        raise result.error

    logger.info(f"Stored {len(result.successes)} file(s)")
    return UploadResponse(
        success=bool(result.successes),
        count=len(result.successes),
        uploaded=[UploadedFileOut.from_upload(upload) for upload in result.successes],
        failed=[failure.name for failure in result.failures],
    )


@app.get("/{path:path}")
def browse(path: str, repository: LocalFileRepository = Depends(get_repository)):
    """Directory listing, file download or ``<dir>.zip`` archive, depending on the path."""
    relative = url_to_relative(path)
    suffix = repository.archive_suffix

    if relative.endswith(suffix) and not repository.exists(relative):
        return archive_response(repository, relative[:-len(suffix)])
    if repository.is_directory(relative):
        return listing(repository, relative)
    return file_response(repository, relative)


if __name__ == "__main__":
    logger.info("Starting File Share Server...")
    logger.info(f"Root directory: {config.ROOT_DIR}")
    logger.info(f"Basic auth: {'enabled' if config.AUTH_ENABLED else 'disabled'}")
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        ssl_certfile=config.TLS_CERT_FILE,
        ssl_keyfile=config.TLS_KEY_FILE,
    )
