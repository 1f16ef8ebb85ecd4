"""File manager and public share-link router."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.rate_limit import rate_limit
from services.files import (
    create_folder,
    create_share_link,
    delete_file,
    delete_folder,
    get_file,
    list_files,
    list_folders,
    resolve_shared_file,
    toggle_favorite,
    update_file,
)

router = APIRouter()


class FileUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    folder_id: Optional[str] = None
    move_to_root: bool = False


class FolderCreateRequest(BaseModel):
    name: str = Field(max_length=120)


@router.get("/files")
async def files_index(
    folder_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return {"files": await list_files(auth.user_id, db, folder_id=folder_id)}


@router.get("/files/{file_id}")
async def file_detail(
    file_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_file(auth.user_id, file_id, db)


@router.patch("/files/{file_id}")
async def file_update(
    file_id: str,
    request: FileUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await update_file(
        auth.user_id,
        file_id,
        db,
        name=request.name,
        folder_id=request.folder_id,
        move_to_root=request.move_to_root,
    )


@router.delete("/files/{file_id}", status_code=204)
async def file_delete(
    file_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await delete_file(auth.user_id, file_id, db)
    return Response(status_code=204)


@router.post("/files/{file_id}/favorite")
async def file_favorite(
    file_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await toggle_favorite(auth.user_id, file_id, db)


@router.post("/files/{file_id}/share")
async def file_share(
    file_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_share_link(auth.user_id, file_id, db)


@router.get("/folders")
async def folders_index(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return {"folders": await list_folders(auth.user_id, db)}


@router.post("/folders")
async def folder_create(
    request: FolderCreateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await create_folder(auth.user_id, request.name, db)


@router.delete("/folders/{folder_id}", status_code=204)
async def folder_delete(
    folder_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    await delete_folder(auth.user_id, folder_id, db)
    return Response(status_code=204)


@router.get("/shared/{share_token}")
async def shared_file(
    share_token: str,
    _rate_limit: None = Depends(rate_limit("shared_file", limit=240, window_seconds=3600)),
    db: AsyncSession = Depends(get_db),
):
    return await resolve_shared_file(share_token=share_token, db=db)
