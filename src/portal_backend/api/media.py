import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from portal_backend.cache import keys
from portal_backend.cache.middleware import cached
from portal_backend.database import get_db
from portal_backend.interface.media import (
    MediaAccessKey,
    MediaFolderCreate,
    MediaFolderGet,
    MediaGet,
    MediaListResponse,
    MediaQuery,
    MediaStatistics,
    MediaUpdate,
)
from portal_backend.permissions.auth import require_permissions
from portal_backend.permissions.principal import Principal
from portal_backend.services.media import MANAGE_MEDIA_PERMISSION, MediaService, media_url, to_media_get

logger = logging.getLogger(__name__)

media_router = APIRouter()

# served without authentication, the access key or public flag is the guard
media_files_router = APIRouter()


def _list_scope(principal: Principal, all_users: bool) -> Optional[str]:
    if all_users and not principal.is_delegated and principal.permitted(MANAGE_MEDIA_PERMISSION):
        return None
    return principal.user_id


@media_router.post("/upload", response_model=MediaGet, status_code=status.HTTP_201_CREATED)
async def upload_media(
    permissions: Annotated[Principal, Depends(require_permissions("add_upload"))],
    file: UploadFile = File(...),
    folder: Optional[str] = Form(None),
    is_public: bool = Form(False),
    title: Optional[str] = Form(None),
    alt_text: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    db: Session = Depends(get_db),
):
    media = await MediaService(db).upload(
        permissions, file,
        folder=folder, is_public=is_public, title=title, alt_text=alt_text, description=description,
    )
    return to_media_get(media)


@media_router.get("", response_model=MediaListResponse)
async def list_media(
    permissions: Annotated[Principal, Depends(require_permissions("view_media"))],
    response: Response,
    params: MediaQuery = Depends(),
    all_users: bool = False,
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    scope = _list_scope(permissions, all_users)
    key = keys.media_list_key(
        scope or "all",
        folder=params.folder,
        mime_type=params.mime_type,
        search=params.search,
        limit=params.limit,
        offset=params.offset,
    )

    async def fetch():
        items, total = MediaService(db).list(scope, params)
        return {"media": items, "total": total}

    # lists across all users are never cached, no single owner invalidates them
    if scope is None:
        result = await fetch()
    else:
        result = await cached(key, fetch, "medium", force_refresh=refresh)

    response.headers["X-Total-Count"] = str(result["total"])
    return result


@media_router.get("/folders", response_model=List[MediaFolderGet])
async def list_folders(
    permissions: Annotated[Principal, Depends(require_permissions("view_media"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return MediaService(db).folders(permissions.user_id)

    return await cached(keys.media_folders_key(permissions.user_id), fetch, "medium", force_refresh=refresh)


@media_router.post("/folders", response_model=MediaFolderGet, status_code=status.HTTP_201_CREATED)
async def create_folder(
    permissions: Annotated[Principal, Depends(require_permissions("add_upload"))],
    entity: MediaFolderCreate,
    db: Session = Depends(get_db),
):
    return await MediaService(db).create_folder(permissions.user_id, entity.name)


@media_router.delete("/folders/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(
    permissions: Annotated[Principal, Depends(require_permissions("delete_upload"))],
    name: str,
    db: Session = Depends(get_db),
):
    await MediaService(db).delete_folder(permissions.user_id, name)


@media_router.get("/statistics", response_model=MediaStatistics)
async def media_statistics(
    permissions: Annotated[Principal, Depends(require_permissions("view_media"))],
    refresh: bool = Query(False, alias="_refresh"),
    db: Session = Depends(get_db),
):
    async def fetch():
        return MediaService(db).statistics(permissions.user_id)

    return await cached(keys.media_statistics_key(permissions.user_id), fetch, "medium", force_refresh=refresh)


@media_router.get("/{media_id}", response_model=MediaGet)
async def get_media(
    permissions: Annotated[Principal, Depends(require_permissions("view_media"))],
    media_id: str,
    db: Session = Depends(get_db),
):
    return to_media_get(MediaService(db).get_for(media_id, permissions))


@media_router.patch("/{media_id}", response_model=MediaGet)
async def update_media(
    permissions: Annotated[Principal, Depends(require_permissions("add_upload", "manage_media"))],
    media_id: str,
    entity: MediaUpdate,
    db: Session = Depends(get_db),
):
    return to_media_get(await MediaService(db).update(media_id, entity, permissions))


@media_router.delete("/{media_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_media(
    permissions: Annotated[Principal, Depends(require_permissions("delete_upload"))],
    media_id: str,
    db: Session = Depends(get_db),
):
    await MediaService(db).delete(media_id, permissions)


@media_router.post("/{media_id}/access-key", response_model=MediaAccessKey)
async def rotate_access_key(
    permissions: Annotated[Principal, Depends(require_permissions("add_upload", "manage_media"))],
    media_id: str,
    db: Session = Depends(get_db),
):
    media = await MediaService(db).rotate_access_key(media_id, permissions)
    return MediaAccessKey(media_id=media.id, access_key=media.access_key, access_url=media_url(media))


@media_files_router.get("/media/public/{file_name}")
async def serve_public_media(file_name: str, db: Session = Depends(get_db)):
    media, path = MediaService(db).resolve_public(file_name)
    return FileResponse(path, media_type=media.mime_type, filename=media.original_name)


@media_files_router.get("/media/{media_id}/access/{access_key}")
async def serve_private_media(media_id: str, access_key: str, db: Session = Depends(get_db)):
    media, path = MediaService(db).resolve_access(media_id, access_key)
    return FileResponse(path, media_type=media.mime_type, filename=media.original_name)
