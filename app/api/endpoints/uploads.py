from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from supabase import Client

from app.core.exceptions import NotFoundError, ValidationError
from app.core.plans import get_plan_limits, validate_file
from app.integrations.supabase_connect import get_supabase_client, get_upload_bucket_name
from app.schemas.uploads import UploadQueuedOut, UploadStatusOut
from app.services.auth_services import CurrentUser, get_current_user
from app.services.upload_service import process_upload, queue_upload, read_upload
from app.services.upload_tracker import COMPLETED, FAILED, PENDING, UploadStatusTracker, get_upload_tracker

router = APIRouter()


@router.post("/uploads", status_code=status.HTTP_202_ACCEPTED)
async def queue_async_upload(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
    tracker: UploadStatusTracker = Depends(get_upload_tracker),
):
    """
    Accept a file, register it in the upload status map and store it in the
    background. Poll /upload-status/{uploadId} for the outcome.
    """
    file_name = file.filename or "upload"

    # Type and declared size first, so a rejected file is never buffered
    result = validate_file(file.size or 0, file.content_type or "", current_user.plan)
    if not result.is_valid:
        raise ValidationError(result.error)
    content = await read_upload(file, get_plan_limits(current_user.plan).max_file_size_bytes)

    upload_id = queue_upload(tracker, file_name)
    background_tasks.add_task(
        process_upload,
        supabase,
        tracker,
        get_upload_bucket_name(),
        upload_id,
        current_user.id,
        file_name,
        content,
        file.content_type,
    )

    queued = UploadQueuedOut(uploadId=upload_id, status=PENDING, fileName=file_name)
    return JSONResponse(content=jsonable_encoder(queued), status_code=status.HTTP_202_ACCEPTED)


@router.get("/upload-status")
@router.get("/upload-status/")
async def upload_status_without_id(current_user: CurrentUser = Depends(get_current_user)):
    raise ValidationError("Upload ID is required")


@router.get("/upload-status/{upload_id}")
async def read_upload_status(
    upload_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    tracker: UploadStatusTracker = Depends(get_upload_tracker),
):
    if not upload_id.strip():
        raise ValidationError("Upload ID is required")

    record = tracker.get(upload_id)
    if record is None:
        raise NotFoundError("Upload not found")

    response = UploadStatusOut(
        uploadId=record.upload_id,
        status=record.status,
        fileName=record.file_name,
        createdAt=datetime.fromtimestamp(record.created_at, tz=timezone.utc),
    )
    if record.status == FAILED:
        response.error = record.error
    if record.status == COMPLETED:
        response.message = "Upload completed successfully"

    return JSONResponse(content=jsonable_encoder(response, exclude_none=True), status_code=status.HTTP_200_OK)


@router.post("/upload")
async def chunked_upload(current_user: CurrentUser = Depends(get_current_user)):
    # Chunk offsets are undefined until a TUS server is wired in.
    return JSONResponse(
        content={"error": "Chunked (TUS) upload endpoint is not implemented", "status": "pending"},
        status_code=status.HTTP_501_NOT_IMPLEMENTED,
    )
