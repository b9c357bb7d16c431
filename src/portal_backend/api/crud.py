import logging
from typing import Any, Optional, Type

from pydantic import BaseModel
from sqlalchemy import exc
from sqlalchemy.orm import Session

from portal_backend.api.exceptions import BadRequestException, ConflictException, NotFoundException, integrity_error_message

logger = logging.getLogger(__name__)


def get_id_db(db: Session, id: str, db_type: Any):
    try:
        item = db.query(db_type).filter(db_type.id == id).first()
    except exc.StatementError as e:
        raise BadRequestException(detail=str(e.orig) if e.orig else str(e))

    if item is None:
        raise NotFoundException(detail=f"{db_type.__name__} with id [{id}] not found")
    return item


def create_db(db: Session, entity: BaseModel | dict, db_type: Any, exclude: Optional[set] = None, commit: bool = True, **extra):
    model_dump = entity.model_dump(exclude_unset=False, exclude=exclude) if isinstance(entity, BaseModel) else dict(entity)
    model_dump.update(extra)

    try:
        db_item = db_type(**model_dump)
        db.add(db_item)
        if commit:
            db.commit()
            db.refresh(db_item)
        else:
            db.flush()
        return db_item
    except exc.IntegrityError as e:
        db.rollback()
        raise ConflictException(detail=integrity_error_message(e))
    except exc.SQLAlchemyError:
        db.rollback()
        raise


def update_db(db: Session, db_item: Any, entity: BaseModel | dict, exclude: Optional[set] = None):
    changes = entity.model_dump(exclude_unset=True, exclude=exclude) if isinstance(entity, BaseModel) else dict(entity)

    try:
        for key, value in changes.items():
            setattr(db_item, key, value)
        db.commit()
        db.refresh(db_item)
        return db_item
    except exc.IntegrityError as e:
        db.rollback()
        raise ConflictException(detail=integrity_error_message(e))
    except exc.SQLAlchemyError:
        db.rollback()
        raise


def delete_db(db: Session, db_item: Any):
    try:
        db.delete(db_item)
        db.commit()
    except exc.IntegrityError as e:
        db.rollback()
        raise ConflictException(detail=integrity_error_message(e))
    except exc.SQLAlchemyError:
        db.rollback()
        raise


def to_dict(model: Type[BaseModel], item: Any) -> dict:
    """Cache friendly representation of an ORM row through its DTO."""
    return model.model_validate(item).model_dump(mode="json")
