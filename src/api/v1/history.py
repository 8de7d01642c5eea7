"""Saved generation history of the signed-in user."""

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from crud import history as history_crud
from dependencies.auth import CurrentUser
from dependencies.db import DbSession
from schemas.api import ApiResponse
from schemas.codegen import HistoryRecordRead, HistoryRenameRequest
from services.codegen.exceptions import InvalidInput
from services.codegen.files import download_filename


router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=ApiResponse[list[HistoryRecordRead]])
async def list_history(
    db: DbSession,
    current_user: CurrentUser,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> ApiResponse[list[HistoryRecordRead]]:
    """List saved generations, newest first."""
    records = await history_crud.list_records(
        db, current_user.id, limit=limit, offset=offset
    )
    return ApiResponse(
        success=True,
        data=[HistoryRecordRead.model_validate(r) for r in records],
        message="History retrieved",
    )


@router.get("/{record_id}", response_model=ApiResponse[HistoryRecordRead])
async def get_history_record(
    record_id: UUID, db: DbSession, current_user: CurrentUser
) -> ApiResponse[HistoryRecordRead]:
    record = await history_crud.get_record(db, record_id, current_user.id)
    return ApiResponse(
        success=True,
        data=HistoryRecordRead.model_validate(record),
        message="History record retrieved",
    )


@router.patch("/{record_id}", response_model=ApiResponse[HistoryRecordRead])
async def rename_history_record(
    record_id: UUID,
    payload: HistoryRenameRequest,
    db: DbSession,
    current_user: CurrentUser,
) -> ApiResponse[HistoryRecordRead]:
    """Rename a record; the prompt doubles as its title in history lists."""
    new_prompt = payload.prompt.strip()
    if not new_prompt:
        raise InvalidInput("New name must not be blank")
    record = await history_crud.rename_record(
        db, record_id, current_user.id, new_prompt
    )
    return ApiResponse(
        success=True,
        data=HistoryRecordRead.model_validate(record),
        message="History record renamed",
    )


@router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_history_record(
    record_id: UUID, db: DbSession, current_user: CurrentUser
) -> Response:
    await history_crud.delete_record(db, record_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{record_id}/download")
async def download_history_record(
    record_id: UUID, db: DbSession, current_user: CurrentUser
) -> Response:
    """Download the saved code as ``generated-code.<ext>``."""
    record = await history_crud.get_record(db, record_id, current_user.id)
    filename = download_filename(record.language)
    return Response(
        content=record.code,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
