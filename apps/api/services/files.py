"""File manager helpers: generated content, folders, favorites and share links."""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.content import Content
from models.favorite import Favorite
from models.folder import Folder
from models.shared_file import SharedFile
from models.user import User
from services.errors import InvalidRequest, NotFound


def _serialize_file(row: Content, is_favorite: bool = False) -> Dict[str, Any]:
    return {
        "id": row.id,
        "name": row.title,
        "content": row.content,
        "type": row.type,
        "folder": row.folder_id,
        "visualization_data": row.visualization_data,
        "user_id": row.user_id,
        "is_favorite": is_favorite,
        "created_at": row.created_at.isoformat() if row.created_at else None,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


def _serialize_folder(row: Folder) -> Dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "user_id": row.user_id,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


async def _favorite_ids(user_id: str, db: AsyncSession) -> set:
    result = await db.execute(select(Favorite.file_id).where(Favorite.user_id == user_id))
    return set(result.scalars().all())


async def _get_owned_file(user_id: str, file_id: str, db: AsyncSession) -> Content:
    result = await db.execute(
        select(Content)
        .where(Content.id == file_id, Content.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if not row:
        raise NotFound("File not found")
    return row


async def _get_owned_folder(user_id: str, folder_id: str, db: AsyncSession) -> Folder:
    result = await db.execute(select(Folder).where(Folder.id == folder_id, Folder.user_id == user_id))
    row = result.scalar_one_or_none()
    if not row:
        raise NotFound("Folder not found")
    return row


async def list_files(user_id: str, db: AsyncSession, *, folder_id: Optional[str] = None) -> List[Dict[str, Any]]:
    query = select(Content).where(Content.user_id == user_id)
    if folder_id:
        query = query.where(Content.folder_id == folder_id)
    result = await db.execute(query.order_by(Content.created_at.desc()))
    favorites = await _favorite_ids(user_id, db)
    return [_serialize_file(row, row.id in favorites) for row in result.scalars().all()]


async def get_file(user_id: str, file_id: str, db: AsyncSession) -> Dict[str, Any]:
    row = await _get_owned_file(user_id, file_id, db)
    favorites = await _favorite_ids(user_id, db)
    return _serialize_file(row, row.id in favorites)


async def update_file(
    user_id: str,
    file_id: str,
    db: AsyncSession,
    *,
    name: Optional[str] = None,
    folder_id: Optional[str] = None,
    move_to_root: bool = False,
) -> Dict[str, Any]:
    row = await _get_owned_file(user_id, file_id, db)
    if name is not None:
        title = name.strip()
        if not title:
            raise InvalidRequest("name must not be empty")
        row.title = title
    if move_to_root:
        row.folder_id = None
    elif folder_id:
        await _get_owned_folder(user_id, folder_id, db)
        row.folder_id = folder_id
    await db.commit()
    return await get_file(user_id, file_id, db)


async def delete_file(user_id: str, file_id: str, db: AsyncSession) -> None:
    row = await _get_owned_file(user_id, file_id, db)
    await db.execute(delete(SharedFile).where(SharedFile.file_id == row.id))
    await db.execute(delete(Favorite).where(Favorite.file_id == row.id))
    await db.delete(row)
    await db.commit()


async def toggle_favorite(user_id: str, file_id: str, db: AsyncSession) -> Dict[str, Any]:
    await _get_owned_file(user_id, file_id, db)
    result = await db.execute(
        select(Favorite).where(Favorite.user_id == user_id, Favorite.file_id == file_id)
    )
    existing = result.scalar_one_or_none()
    if existing:
        await db.delete(existing)
        is_favorite = False
    else:
        db.add(Favorite(id=str(uuid.uuid4()), user_id=user_id, file_id=file_id))
        is_favorite = True
    await db.commit()
    return {"file_id": file_id, "is_favorite": is_favorite}


async def list_folders(user_id: str, db: AsyncSession) -> List[Dict[str, Any]]:
    result = await db.execute(
        select(Folder).where(Folder.user_id == user_id).order_by(Folder.name.asc())
    )
    return [_serialize_folder(row) for row in result.scalars().all()]


async def create_folder(user_id: str, name: str, db: AsyncSession) -> Dict[str, Any]:
    folder_name = str(name or "").strip()
    if not folder_name:
        raise InvalidRequest("Folder name is required")
    row = Folder(id=str(uuid.uuid4()), user_id=user_id, name=folder_name)
    db.add(row)
    await db.commit()
    result = await db.execute(
        select(Folder).where(Folder.id == row.id).execution_options(populate_existing=True)
    )
    return _serialize_folder(result.scalar_one())


async def delete_folder(user_id: str, folder_id: str, db: AsyncSession) -> None:
    row = await _get_owned_folder(user_id, folder_id, db)
    await db.execute(
        update(Content)
        .where(Content.folder_id == row.id, Content.user_id == user_id)
        .values(folder_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(row)
    await db.commit()


def _share_url(token: str) -> str:
    return f"{settings.PUBLIC_APP_URL.rstrip('/')}/shared/{token}"


async def create_share_link(user_id: str, file_id: str, db: AsyncSession) -> Dict[str, Any]:
    await _get_owned_file(user_id, file_id, db)
    result = await db.execute(
        select(SharedFile).where(SharedFile.file_id == file_id, SharedFile.shared_by == user_id)
    )
    existing = result.scalar_one_or_none()
    if existing:
        return {"file_id": file_id, "share_token": existing.share_token, "share_url": _share_url(existing.share_token)}

    token = secrets.token_urlsafe(24)
    row = SharedFile(
        id=str(uuid.uuid4()),
        file_id=file_id,
        shared_by=user_id,
        share_token=token,
    )
    db.add(row)
    await db.commit()
    return {"file_id": file_id, "share_token": token, "share_url": _share_url(token)}


async def resolve_shared_file(*, share_token: str, db: AsyncSession) -> Dict[str, Any]:
    token = str(share_token or "").strip()
    if not token:
        raise InvalidRequest("share_token is required")

    result = await db.execute(select(SharedFile).where(SharedFile.share_token == token))
    link = result.scalar_one_or_none()
    if not link:
        raise NotFound("This shared file link is invalid or has expired")

    file_result = await db.execute(select(Content).where(Content.id == link.file_id))
    row = file_result.scalar_one_or_none()
    if not row:
        raise NotFound("Unable to load the shared file")

    sharer_result = await db.execute(select(User).where(User.id == link.shared_by))
    sharer = sharer_result.scalar_one_or_none()

    link.last_accessed_at = datetime.now(timezone.utc)
    await db.commit()

    payload = _serialize_file(row)
    payload.pop("is_favorite", None)
    payload.pop("user_id", None)
    payload["shared_by_name"] = (sharer.display_name or sharer.email) if sharer else None
    return payload
