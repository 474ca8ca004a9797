from fastapi import FastAPI, File, Query, UploadFile, status
import os
import logging
from datetime import datetime
from typing import List, Optional
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware

from consolidation import XLSX_MEDIA_TYPE, Consolidator
from ingestion import MAX_FILE_SIZE
from models import ErrorResponse, PreviewResponse, UploadedFile
from preview import Previewer
from utils.log_context import new_request_id


# Create logs directory if it doesn't exist
log_dir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
os.makedirs(log_dir, exist_ok=True)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Add file handler to the root logger so every module's records reach the log file
log_file_path = os.path.join(log_dir, f"app_{datetime.now().strftime('%Y%m%d')}.log")
file_handler = logging.FileHandler(log_file_path)
file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
logging.getLogger().addHandler(file_handler)

NO_FILES_ERROR = "No files provided"
PREVIEW_SERVER_ERROR = "Internal server error during file preview"
CONSOLIDATE_SERVER_ERROR = "Internal server error during file processing"


# Initialize FastAPI app with metadata
app = FastAPI(
    title="Excel Consolidator API",
    description="API for previewing, validating and consolidating Excel files",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # The upload UI is served from a different origin
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)


async def read_upload(upload: UploadFile) -> UploadedFile:
    """
    Read an uploaded file into memory, never more than MAX_FILE_SIZE + 1 bytes.

    Args:
        upload: Multipart file part

    Returns:
        UploadedFile; its content is left empty when the file exceeds the cap
    """
    filename = upload.filename or ""
    declared_size = upload.size

    if declared_size is not None and declared_size > MAX_FILE_SIZE:
        logger.warning(f"Skipping read of oversized upload {filename} ({declared_size} bytes)")
        return UploadedFile(filename=filename, content=b"", size=declared_size)

    content = await upload.read(MAX_FILE_SIZE + 1)
    if len(content) > MAX_FILE_SIZE:
        return UploadedFile(filename=filename, content=b"", size=len(content))
    return UploadedFile(filename=filename, content=content, size=len(content))


async def read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedFile]:
    return [await read_upload(upload) for upload in files or []]


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


# API Endpoints
@app.post(
    "/preview",
    tags=["Excel Consolidation"],
    response_model=PreviewResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}}
)
async def preview_files(files: Optional[List[UploadFile]] = File(None)):
    """
    Preview uploaded Excel files before consolidating them.

    Each file is checked against the first file's column headers. Files that
    cannot be read are reported as invalid entries; they never fail the request.

    Returns:
        dict: JSON response with:
            - previews: per file columns, sampleRows, totalRows, isValid and errors
            - summary: totalFiles, validFiles, totalRows and allColumns
    """
    request_id = new_request_id()
    if not files:
        logger.warning("Preview requested without files")
        return error_response(status.HTTP_400_BAD_REQUEST, NO_FILES_ERROR)

    try:
        uploads = await read_uploads(files)
        logger.info(f"[{request_id}] Previewing {len(uploads)} file(s): {[u.filename for u in uploads]}")
        response = Previewer.preview(uploads, request_id=request_id)
        return JSONResponse(status_code=status.HTTP_200_OK, content=response.model_dump(by_alias=True))
    except Exception as e:
        logger.exception(f"[{request_id}] Error in preview: {str(e)}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, PREVIEW_SERVER_ERROR)


@app.post(
    "/consolidate",
    tags=["Excel Consolidation"],
    response_class=Response,
    responses={
        200: {"content": {XLSX_MEDIA_TYPE: {}}},
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    }
)
async def consolidate_files(
    files: Optional[List[UploadFile]] = File(None),
    include_source_file: bool = Query(False, alias="includeSourceFile")
):
    """
    Merge uploaded Excel files into one workbook.

    The first file's headers define the output columns; rows from all files
    are sorted by the first column. Any unreadable file fails the request with
    a 400 naming that file.

    Returns:
        The consolidated .xlsx file as an attachment
    """
    request_id = new_request_id()
    if not files:
        logger.warning("Consolidation requested without files")
        return error_response(status.HTTP_400_BAD_REQUEST, NO_FILES_ERROR)

    try:
        uploads = await read_uploads(files)
        logger.info(f"[{request_id}] Consolidating {len(uploads)} file(s): {[u.filename for u in uploads]}")
        result = Consolidator.consolidate(uploads, include_source_file=include_source_file, request_id=request_id)
    except Exception as e:
        logger.exception(f"[{request_id}] Error in consolidation: {str(e)}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, CONSOLIDATE_SERVER_ERROR)

    if result.is_failure():
        logger.warning(f"[{request_id}] Consolidation failed: {result}")
        return JSONResponse(status_code=result.status_code.value, content=result.to_dict())

    workbook = result.data
    return Response(
        content=workbook.content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{workbook.filename}"'}
    )


# Run the application if executed directly
if __name__ == "__main__":
    import uvicorn
    logger.info("Starting Excel Consolidator API in development mode.")
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
