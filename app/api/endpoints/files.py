from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, RedirectResponse
from supabase import Client

from app.core.config import settings
from app.core.exceptions import NotFoundError
from app.database.crud import list_user_files, mark_user_file_downloaded
from app.integrations.supabase_connect import get_supabase_client, get_upload_bucket_name
from app.schemas.files import MarkDownloadedRequest, UserFileOut
from app.services.auth_services import CurrentUser, get_current_user
from app.services.file_service import (
    create_signed_url,
    get_downloadable_file,
    remove_user_file,
    time_remaining_ms,
)

router = APIRouter()


@router.get("/user-files")
async def read_user_files(
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
):
    """Stored files the user can still download, newest first, each with a fresh signed URL."""
    bucket = get_upload_bucket_name()
    files = [
        UserFileOut(
            id=user_file.id,
            fileName=user_file.file_name,
            fileSize=user_file.file_size,
            contentType=user_file.content_type,
            status=user_file.status,
            createdAt=user_file.created_at,
            expiresAt=user_file.expires_at,
            downloadUrl=create_signed_url(supabase, bucket, user_file.file_path, settings.LIST_URL_TTL_SECONDS),
            timeRemaining=time_remaining_ms(user_file),
        )
        for user_file in list_user_files(supabase, current_user.id)
    ]
    return JSONResponse(
        content=jsonable_encoder({"files": files, "count": len(files)}),
        status_code=status.HTTP_200_OK,
    )


@router.post("/user-files/mark-downloaded")
async def mark_downloaded(
    request: MarkDownloadedRequest,
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
):
    if mark_user_file_downloaded(supabase, current_user.id, request.fileId) is None:
        raise NotFoundError("File not found")
    return {"message": "File marked as downloaded"}


@router.delete("/user-files/{file_id}")
async def delete_file(
    file_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
):
    remove_user_file(supabase, get_upload_bucket_name(), current_user.id, file_id)
    return {"message": "File deleted successfully"}


@router.get("/download/{file_id}")
async def download_file(
    file_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    supabase: Client = Depends(get_supabase_client),
):
    user_file = get_downloadable_file(supabase, current_user.id, file_id)
    url = create_signed_url(supabase, get_upload_bucket_name(), user_file.file_path, settings.DOWNLOAD_URL_TTL_SECONDS)
    return RedirectResponse(url=url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
