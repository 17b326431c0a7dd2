"""
Document API routes for person file attachments
Metadata CRUD plus multipart upload through the storage backend
Reference: https://fastapi.tiangolo.com/tutorial/request-files/
"""
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.schemas.common import Page, page_params
from app.api.v1.schemas.document import (
    DocumentCreate,
    DocumentDownloadResponse,
    DocumentResponse,
    DocumentUpdate,
)
from app.core.database import get_db
from app.core.dependencies import CurrentPrincipal, PeopleWriter
from app.core.storage import StorageBackend, get_storage_backend
from app.core.tenant import ActingTenantId
from app.models.document import DocumentType
from app.services.document import DocumentFilters, DocumentService
from app.services.pagination import PageParams

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["documents"],
)


@router.post(
    "",
    response_model=DocumentResponse,
    summary="Create document",
    description="Register a document whose file is already stored",
    status_code=status.HTTP_201_CREATED,
)
async def create_document(
    data: DocumentCreate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    document = await DocumentService().create_document(db, principal, data)
    await db.commit()
    return DocumentResponse.model_validate(document)


@router.post(
    "/upload",
    response_model=DocumentResponse,
    summary="Upload document",
    description="Upload a file for a person (multipart/form-data)",
    status_code=status.HTTP_201_CREATED,
)
async def upload_document(
    principal: PeopleWriter,
    file: UploadFile = File(..., description="File to upload"),
    person_id: uuid.UUID = Form(..., alias="personId"),
    name: Optional[str] = Form(None, max_length=100),
    document_type: DocumentType = Form(DocumentType.OTHER, alias="type"),
    description: Optional[str] = Form(None, max_length=500),
    storage: StorageBackend = Depends(get_storage_backend),
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    """
    Upload a document for a person.

    This endpoint:
    1. Validates the file (1 byte up to MAX_DOCUMENT_SIZE, allowed MIME type)
    2. Saves the file under the person's tenant prefix in S3
    3. Creates the document record

    Raises:
        ValidationError: 422 if the file is empty, too large or of a disallowed type
        InvalidStateError: 409 if file storage is not configured
    """
    document = await DocumentService(storage).upload_document(
        db,
        principal,
        person_id,
        file,
        name=name,
        document_type=document_type,
        description=description,
    )
    await db.commit()
    return DocumentResponse.model_validate(document)


@router.get(
    "",
    response_model=Page[DocumentResponse],
    summary="List documents",
    description="Documents of persons in the acting tenant",
)
async def list_documents(
    principal: CurrentPrincipal,
    tenant_id: ActingTenantId,
    person_id: Optional[uuid.UUID] = Query(None, alias="personId"),
    document_type: Optional[DocumentType] = Query(None, alias="type"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    search: Optional[str] = Query(None, description="Match on name, filename or description"),
    params: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
) -> Page[DocumentResponse]:
    filters = DocumentFilters(person_id=person_id, type=document_type, is_active=is_active, search=search)
    documents, total = await DocumentService().list_documents(db, tenant_id, params, filters)
    return Page[DocumentResponse].build([DocumentResponse.model_validate(d) for d in documents], total, params)


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Get document",
)
async def get_document(
    document_id: uuid.UUID,
    principal: CurrentPrincipal,
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    document = await DocumentService().get_document(db, principal, document_id)
    return DocumentResponse.model_validate(document)


@router.get(
    "/{document_id}/download-url",
    response_model=DocumentDownloadResponse,
    summary="Get document download URL",
    description="Presigned link for uploaded files, the stored URL for external ones",
)
async def get_download_url(
    document_id: uuid.UUID,
    principal: CurrentPrincipal,
    storage: StorageBackend = Depends(get_storage_backend),
    db: AsyncSession = Depends(get_db),
) -> DocumentDownloadResponse:
    url, expires_in = await DocumentService(storage).get_download_url(db, principal, document_id)
    return DocumentDownloadResponse(url=url, expires_in=expires_in)


@router.patch(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Update document",
)
async def update_document(
    document_id: uuid.UUID,
    data: DocumentUpdate,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    document = await DocumentService().update_document(db, principal, document_id, data)
    await db.commit()
    return DocumentResponse.model_validate(document)


@router.delete(
    "/{document_id}",
    summary="Delete document",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_document(
    document_id: uuid.UUID,
    principal: PeopleWriter,
    db: AsyncSession = Depends(get_db),
) -> Response:
    await DocumentService().delete_document(db, principal, document_id)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
