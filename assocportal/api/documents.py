from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..auth.jwt import get_current_user
from ..core.errors import NotFound, ValidationFailure
from ..models.models import User
from ..schemas.schemas import (
    DocumentCreate,
    DocumentRead,
    DocumentUrlRead,
    UploadTargetRead,
    UploadTargetRequest,
)
from ..services import documents as document_service
from ..services.access import require_admin
from ..services.storage import StorageBackend, storage_service

router = APIRouter(prefix="/associations/{association_id}/documents", tags=["documents"])
storage_router = APIRouter(prefix="/storage", tags=["storage"])


@router.post("/upload-target", response_model=UploadTargetRead)
def create_upload_target(
    association_id: int,
    payload: UploadTargetRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UploadTargetRead:
    target = document_service.create_upload_target(db, user, association_id, payload)
    return UploadTargetRead(
        file_reference=target.file_reference,
        upload_url=target.upload_url,
        method=target.method,
        headers=target.headers,
        expires_in=target.expires_in,
    )


@router.post("", response_model=DocumentRead, status_code=201)
def create_document(
    association_id: int,
    payload: DocumentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DocumentRead:
    document = document_service.create_document(db, user, association_id, payload)
    return DocumentRead(**document_service.document_read(document, storage_service.public_url(document.file_reference)))


@router.get("", response_model=list[DocumentRead])
def list_documents(
    association_id: int,
    category: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[DocumentRead]:
    return [DocumentRead(**item) for item in document_service.list_documents(db, user, association_id, category)]


@router.get("/categories", response_model=list[str])
def list_categories(
    association_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[str]:
    return document_service.list_categories(db, user, association_id)


@router.get("/{document_id}/url", response_model=DocumentUrlRead)
def get_document_url(
    association_id: int,
    document_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DocumentUrlRead:
    return DocumentUrlRead(url=document_service.get_document_url(db, user, association_id, document_id))


@router.delete("/{document_id}", status_code=204)
def delete_document(
    association_id: int,
    document_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    document_service.delete_document(db, user, association_id, document_id)
    return Response(status_code=204)


@storage_router.put("/{reference:path}", status_code=204)
async def upload_local_file(
    reference: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    """Receiving end of a local-backend upload target."""
    if storage_service.backend != StorageBackend.LOCAL:
        raise NotFound("Direct uploads are only available with local storage")
    parts = reference.strip("/").split("/")
    if len(parts) < 4 or parts[0] != "associations" or parts[2] != "documents" or not parts[1].isdigit():
        raise ValidationFailure("Invalid file reference")
    require_admin(db, user, int(parts[1]))

    content = await request.body()
    if not content:
        raise ValidationFailure("File is empty")
    storage_service.save_file(reference, content, content_type=request.headers.get("content-type"))
    return Response(status_code=204)
