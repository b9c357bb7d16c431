import hashlib
import logging
import os
import secrets
import shutil
import uuid
from pathlib import Path
from typing import List, Optional, Tuple

from fastapi import UploadFile
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import (
    BadRequestException,
    ConflictException,
    InternalServerException,
    NotFoundException,
    PayloadTooLargeException,
)
from portal_backend.cache.invalidation import invalidate_media_cache
from portal_backend.interface.media import MediaGet, MediaQuery, MediaUpdate
from portal_backend.model.media import Media, MediaFolder
from portal_backend.permissions.principal import Principal
from portal_backend.settings import settings
from portal_backend.storage_security import (
    check_file_content_security,
    classify_file_type,
    sanitize_filename,
    validate_file_extension,
)
from portal_backend.utils import slugify_folder, utc_now

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
MANAGE_MEDIA_PERMISSION = "manage_media"


def uploads_root() -> Path:
    return Path(settings.API_LOCAL_STORAGE_DIR) / "uploads"


def media_url(media: Media) -> str:
    if media.is_public:
        return f"{settings.MEDIA_PUBLIC_BASE_URL.rstrip('/')}/{media.file_name}"
    return f"/media/{media.id}/access/{media.access_key}"


def to_media_get(media: Media) -> MediaGet:
    result = MediaGet.model_validate(media)
    result.url = media_url(media)
    return result


class MediaService:

    def __init__(self, db: Session):
        self.db = db

    def _commit(self):
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _path(self, media: Media) -> Path:
        return uploads_root() / media.storage_path

    def stored_files(self, user_id: str) -> List[Path]:
        return [
            uploads_root() / storage_path
            for (storage_path,) in self.db.query(Media.storage_path).filter(Media.user_id == user_id).all()
        ]

    @staticmethod
    def remove_files(paths: List[Path]):
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove media file {path}: {e}")

    def _can_manage(self, media: Media, principal: Principal) -> bool:
        return media.user_id == principal.user_id or (
            not principal.is_delegated and principal.permitted(MANAGE_MEDIA_PERMISSION)
        )

    async def upload(
        self,
        principal: Principal,
        upload: UploadFile,
        folder: Optional[str] = None,
        is_public: bool = False,
        title: Optional[str] = None,
        alt_text: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Media:
        original_name = sanitize_filename(upload.filename or "")
        valid, error = validate_file_extension(original_name)
        if not valid:
            raise BadRequestException(detail=error)

        folder = slugify_folder(folder)
        extension = os.path.splitext(original_name)[1].lower()
        file_name = f"{uuid.uuid4().hex}{extension}"
        relative_path = Path(folder) / file_name
        target = uploads_root() / relative_path
        target.parent.mkdir(parents=True, exist_ok=True)

        digest = hashlib.sha256()
        size = 0
        try:
            with open(target, "wb") as out:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    if size == 0:
                        safe, error = check_file_content_security(chunk[:16], original_name)
                        if not safe:
                            raise BadRequestException(detail=error)
                    size += len(chunk)
                    if size > settings.MEDIA_MAX_UPLOAD_BYTES:
                        raise PayloadTooLargeException(
                            detail=f"File exceeds the maximum upload size of {settings.MEDIA_MAX_UPLOAD_BYTES} bytes"
                        )
                    digest.update(chunk)
                    out.write(chunk)
            if size == 0:
                raise BadRequestException(detail="Empty files are not allowed")
        except OSError as e:
            target.unlink(missing_ok=True)
            logger.error(f"Failed to store upload {original_name}: {e}")
            raise InternalServerException(detail="Could not store the uploaded file")
        except Exception:
            target.unlink(missing_ok=True)
            raise

        mime_type = upload.content_type or "application/octet-stream"
        media = Media(
            user_id=principal.user_id,
            file_name=file_name,
            original_name=original_name,
            file_type=classify_file_type(mime_type, extension),
            mime_type=mime_type,
            file_extension=extension.lstrip("."),
            file_size=size,
            storage_path=relative_path.as_posix(),
            folder=folder,
            is_public=is_public,
            access_key=None if is_public else secrets.token_urlsafe(24),
            title=title,
            alt_text=alt_text,
            description=description,
            checksum_sha256=digest.hexdigest(),
        )
        try:
            self.db.add(media)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            target.unlink(missing_ok=True)
            raise

        self.db.refresh(media)
        logger.info(f"Stored upload {original_name} as {relative_path} ({size} bytes)")
        await invalidate_media_cache(principal.user_id)
        return media

    def list(self, user_id: Optional[str], params: MediaQuery) -> Tuple[List[dict], int]:
        query = self.db.query(Media)
        if user_id is not None:
            query = query.filter(Media.user_id == user_id)
        if params.folder:
            query = query.filter(Media.folder == slugify_folder(params.folder))
        if params.mime_type:
            query = query.filter(Media.mime_type.ilike(f"{params.mime_type}%"))
        if params.search:
            term = f"%{params.search.strip()}%"
            query = query.filter(or_(Media.original_name.ilike(term), Media.title.ilike(term)))

        total = query.order_by(None).count()
        rows = query.order_by(Media.created_at.desc()).limit(params.limit).offset(params.offset).all()
        return [to_media_get(m).model_dump(mode="json") for m in rows], total

    def get_for(self, media_id: str, principal: Principal) -> Media:
        media = self.db.query(Media).filter(Media.id == media_id).first()
        if media is None or not self._can_manage(media, principal):
            raise NotFoundException(detail=f"Media with id [{media_id}] not found")
        return media

    async def update(self, media_id: str, payload: MediaUpdate, principal: Principal) -> Media:
        media = self.get_for(media_id, principal)
        changes = payload.model_dump(exclude_unset=True)

        moved_from = None
        if "folder" in changes:
            folder = slugify_folder(changes.pop("folder"))
            if folder != media.folder:
                moved_from = self._path(media)
                old_location = (media.folder, media.storage_path)
                media.folder = folder
                media.storage_path = (Path(folder) / media.file_name).as_posix()

        if "is_public" in changes:
            media.is_public = changes.pop("is_public")
            if not media.is_public and media.access_key is None:
                media.access_key = secrets.token_urlsafe(24)

        for key, value in changes.items():
            setattr(media, key, value)

        self._commit()

        if moved_from is not None:
            target = self._path(media)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(moved_from), str(target))
            except OSError as e:
                logger.error(f"Failed to move media {media.id} to {target}: {e}")
                media.folder, media.storage_path = old_location
                self._commit()
                raise InternalServerException(detail="Could not move the media file")

        self.db.refresh(media)
        await invalidate_media_cache(media.user_id)
        return media

    async def delete(self, media_id: str, principal: Principal):
        media = self.get_for(media_id, principal)
        path = self._path(media)
        owner_id = media.user_id

        self.db.delete(media)
        self._commit()

        path.unlink(missing_ok=True)
        logger.info(f"Deleted media {media_id}")
        await invalidate_media_cache(owner_id)

    async def rotate_access_key(self, media_id: str, principal: Principal) -> Media:
        media = self.get_for(media_id, principal)
        media.access_key = secrets.token_urlsafe(24)
        self._commit()
        await invalidate_media_cache(media.user_id)
        return media

    def resolve_access(self, media_id: str, access_key: str) -> Tuple[Media, Path]:
        media = self.db.query(Media).filter(Media.id == media_id).first()
        if media is None or media.access_key is None or not secrets.compare_digest(media.access_key, access_key):
            raise NotFoundException(detail="Media not found")
        return self._touch(media)

    def resolve_public(self, file_name: str) -> Tuple[Media, Path]:
        media = self.db.query(Media).filter(Media.file_name == file_name, Media.is_public.is_(True)).first()
        if media is None:
            raise NotFoundException(detail="Media not found")
        return self._touch(media)

    def _touch(self, media: Media) -> Tuple[Media, Path]:
        path = self._path(media)
        if not path.is_file():
            logger.error(f"Media {media.id} is missing on disk at {path}")
            raise NotFoundException(detail="Media file not found")
        media.last_accessed = utc_now()
        self._commit()
        return media, path

    def folders(self, user_id: str) -> List[dict]:
        usage = {
            folder: {"name": folder, "file_count": count, "total_size": int(size or 0)}
            for folder, count, size in (
                self.db.query(Media.folder, func.count(Media.id), func.sum(Media.file_size))
                .filter(Media.user_id == user_id)
                .group_by(Media.folder)
                .all()
            )
        }
        for (name,) in self.db.query(MediaFolder.name).filter(MediaFolder.user_id == user_id).all():
            usage.setdefault(name, {"name": name, "file_count": 0, "total_size": 0})
        return sorted(usage.values(), key=lambda f: f["name"])

    async def create_folder(self, user_id: str, name: str) -> dict:
        folder = slugify_folder(name)
        try:
            self.db.add(MediaFolder(user_id=user_id, name=folder))
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictException(detail=f"Folder '{folder}' already exists")
        await invalidate_media_cache(user_id)
        return {"name": folder, "file_count": 0, "total_size": 0}

    async def delete_folder(self, user_id: str, name: str):
        folder = slugify_folder(name)
        if self.db.query(Media.id).filter(Media.user_id == user_id, Media.folder == folder).first() is not None:
            raise BadRequestException(detail=f"Folder '{folder}' is not empty")
        deleted = (
            self.db.query(MediaFolder)
            .filter(MediaFolder.user_id == user_id, MediaFolder.name == folder)
            .delete(synchronize_session=False)
        )
        if not deleted:
            raise NotFoundException(detail=f"Folder '{folder}' not found")
        self._commit()
        await invalidate_media_cache(user_id)

    def statistics(self, user_id: Optional[str]) -> dict:
        def scoped(query):
            return query.filter(Media.user_id == user_id) if user_id is not None else query

        total_files, total_size = scoped(self.db.query(func.count(Media.id), func.sum(Media.file_size))).one()
        by_type = dict(scoped(self.db.query(Media.file_type, func.count(Media.id))).group_by(Media.file_type).all())
        by_folder = dict(scoped(self.db.query(Media.folder, func.count(Media.id))).group_by(Media.folder).all())
        return {
            "total_files": total_files or 0,
            "total_size": int(total_size or 0),
            "by_type": by_type,
            "by_folder": by_folder,
        }
