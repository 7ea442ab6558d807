import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..core.errors import AuthorizationDenied, NotFound, ValidationFailure
from ..models.models import Document, Meeting, User
from ..schemas.schemas import DocumentCreate, UploadTargetRequest
from .access import (
    get_member_for_user,
    is_admin_membership,
    member_unit_names,
    require_admin,
    require_membership,
    visibility_allows,
    visibility_columns,
    visibility_descriptor,
)
from .audit import record_audit_best_effort
from .storage import UploadTarget, storage_service

logger = logging.getLogger(__name__)


def document_read(document: Document, url: Optional[str] = None) -> dict[str, Any]:
    return {
        "id": document.id,
        "association_id": document.association_id,
        "title": document.title,
        "description": document.description,
        "category": document.category,
        "file_name": document.file_name,
        "file_size": document.file_size,
        "content_type": document.content_type,
        "is_public": document.is_public,
        "visibility": visibility_descriptor(document.visibility, document.allowed_units),
        "meeting_id": document.meeting_id,
        "uploaded_by_member_id": document.uploaded_by_member_id,
        "uploaded_at": document.uploaded_at,
        "url": url,
    }


def _can_view(document: Document, *, is_admin: bool, unit_names: list[str]) -> bool:
    if document.is_public:
        return True
    return visibility_allows(document.visibility, document.allowed_units, is_admin=is_admin, unit_names=unit_names)


def _viewer_scope(db: Session, user: User, association_id: int) -> tuple[bool, list[str]]:
    membership = require_membership(db, user, association_id)
    is_admin = is_admin_membership(membership)
    if is_admin:
        return True, []
    return False, member_unit_names(db, get_member_for_user(db, association_id, user))


def _get_document(db: Session, association_id: int, document_id: int) -> Document:
    document = db.get(Document, document_id)
    if not document or document.association_id != association_id:
        raise NotFound("Document not found")
    return document


def create_upload_target(db: Session, user: User, association_id: int, payload: UploadTargetRequest) -> UploadTarget:
    require_admin(db, user, association_id)
    return storage_service.create_upload_target(association_id, payload.file_name, payload.content_type)


def create_document(db: Session, user: User, association_id: int, payload: DocumentCreate) -> Document:
    require_admin(db, user, association_id)
    expected_prefix = f"associations/{association_id}/"
    if not payload.file_reference.lstrip("/").startswith(expected_prefix):
        raise ValidationFailure("File reference does not belong to this association")
    if payload.meeting_id is not None:
        meeting = db.get(Meeting, payload.meeting_id)
        if not meeting or meeting.association_id != association_id:
            raise NotFound("Meeting not found")

    member = get_member_for_user(db, association_id, user)
    kind, units = visibility_columns(payload.visibility)
    document = Document(
        association_id=association_id,
        title=payload.title.strip(),
        description=payload.description,
        category=payload.category.strip(),
        file_reference=payload.file_reference.lstrip("/"),
        file_name=payload.file_name,
        content_type=payload.content_type,
        file_size=payload.file_size,
        is_public=payload.is_public,
        visibility=kind,
        allowed_units=units,
        meeting_id=payload.meeting_id,
        uploaded_by_member_id=member.id if member else None,
        uploaded_by_user_id=user.id,
    )
    db.add(document)
    db.commit()
    db.refresh(document)

    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=member.id if member else None,
        action="document_uploaded",
        entity_type="document",
        entity_id=document.id,
        description=f"Uploaded document {document.title}",
        metadata={"category": document.category, "visibility": kind.value, "units": units},
    )
    return document


def list_documents(
    db: Session,
    user: User,
    association_id: int,
    category: Optional[str] = None,
) -> list[dict[str, Any]]:
    is_admin, unit_names = _viewer_scope(db, user, association_id)
    query = db.query(Document).filter(Document.association_id == association_id)
    if category:
        query = query.filter(Document.category == category)
    documents = query.order_by(Document.uploaded_at.desc(), Document.id.desc()).all()
    return [
        document_read(document, storage_service.public_url(document.file_reference))
        for document in documents
        if _can_view(document, is_admin=is_admin, unit_names=unit_names)
    ]


def get_document_url(db: Session, user: User, association_id: int, document_id: int) -> str:
    is_admin, unit_names = _viewer_scope(db, user, association_id)
    document = _get_document(db, association_id, document_id)
    if not _can_view(document, is_admin=is_admin, unit_names=unit_names):
        raise AuthorizationDenied("Access denied")
    return storage_service.public_url(document.file_reference)


def delete_document(db: Session, user: User, association_id: int, document_id: int) -> None:
    require_admin(db, user, association_id)
    document = _get_document(db, association_id, document_id)
    title = document.title
    storage_service.delete_file(document.file_reference)
    db.delete(document)
    db.commit()

    member = get_member_for_user(db, association_id, user)
    record_audit_best_effort(
        db,
        association_id=association_id,
        user_id=user.id,
        member_id=member.id if member else None,
        action="document_deleted",
        entity_type="document",
        entity_id=document_id,
        description=f"Deleted document {title}",
    )


def list_categories(db: Session, user: User, association_id: int) -> list[str]:
    require_membership(db, user, association_id)
    rows = (
        db.query(Document.category)
        .filter(Document.association_id == association_id)
        .distinct()
        .order_by(Document.category.asc())
        .all()
    )
    return [row.category for row in rows if row.category]
