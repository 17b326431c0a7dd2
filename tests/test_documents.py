import pytest
from sqlalchemy import select

from app.core.config import settings
from app.core.database import AsyncSessionLocal
from app.core.errors import ValidationError
from app.models import AuditLog, Document
from app.services.document import DocumentService
from tests.utils.factories import auth_headers, create_person, create_tenant, create_user

API = "/api/v1"

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


def test_validate_upload_rejects_bad_files():
    service = DocumentService()
    service.validate_upload(PDF_BYTES, "application/pdf")

    with pytest.raises(ValidationError, match="empty"):
        service.validate_upload(b"", "application/pdf")
    with pytest.raises(ValidationError, match="not allowed"):
        service.validate_upload(b"MZ\x90\x00", "application/x-msdownload")

    service.max_file_size = 8
    with pytest.raises(ValidationError, match="exceeds"):
        service.validate_upload(PDF_BYTES, "application/pdf")


async def test_upload_stores_file_and_registers_document(client, storage) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["instructor"]))
    person = await create_person(tenant)

    response = await client.post(
        f"{API}/documents/upload",
        data={"personId": str(person.id), "type": "IDENTIFICATION", "description": "Front side"},
        files={"file": ("dni.pdf", PDF_BYTES, "application/pdf")},
        headers=headers,
    )
    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "dni.pdf"
    assert body["type"] == "IDENTIFICATION"
    assert body["fileSize"] == len(PDF_BYTES)
    assert body["url"].startswith(f"tenants/{tenant.id}/persons/{person.id}/documents/")
    assert storage.files[body["url"]] == PDF_BYTES

    response = await client.get(f"{API}/documents/{body['id']}/download-url", headers=headers)
    assert response.status_code == 200
    assert response.json() == {"url": f"https://files.test/{body['url']}", "expiresIn": 3600}

    async with AsyncSessionLocal() as session:
        actions = (await session.execute(select(AuditLog.action))).scalars().all()
    assert "document.upload" in actions


async def test_upload_rejects_disallowed_type(client, storage) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    person = await create_person(tenant)

    response = await client.post(
        f"{API}/documents/upload",
        data={"personId": str(person.id)},
        files={"file": ("run.exe", b"MZ\x90\x00", "application/x-msdownload")},
        headers=headers,
    )
    assert response.status_code == 422
    assert response.json()["error"]["details"]["field"] == "file"
    assert storage.files == {}


async def test_upload_without_storage_configured(client) -> None:
    tenant = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    person = await create_person(tenant)

    response = await client.post(
        f"{API}/documents/upload",
        data={"personId": str(person.id)},
        files={"file": ("dni.pdf", PDF_BYTES, "application/pdf")},
        headers=headers,
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "STORAGE_NOT_CONFIGURED"


async def test_document_metadata_crud_and_tenant_scope(client) -> None:
    tenant = await create_tenant()
    other = await create_tenant()
    headers = auth_headers(await create_user(tenant, roles=["tenant_admin"]))
    outsider_headers = auth_headers(await create_user(other, roles=["tenant_admin"]))
    person = await create_person(tenant)

    payload = {
        "personId": str(person.id),
        "name": "Vaccination record",
        "type": "MEDICAL_CERTIFICATE",
        "url": "https://files.example.com/vacc.pdf",
        "fileName": "vacc.pdf",
        "mimeType": "application/pdf",
        "fileSize": 2048,
    }
    response = await client.post(f"{API}/documents", json=payload, headers=headers)
    assert response.status_code == 201
    document_id = response.json()["id"]

    response = await client.post(
        f"{API}/documents", json={**payload, "fileSize": settings.MAX_DOCUMENT_SIZE + 1}, headers=headers
    )
    assert response.status_code == 422

    response = await client.get(f"{API}/documents/{document_id}", headers=outsider_headers)
    assert response.status_code == 403

    response = await client.get(f"{API}/documents", params={"type": "MEDICAL_CERTIFICATE"}, headers=headers)
    assert response.json()["total"] == 1
    response = await client.get(f"{API}/documents", headers=outsider_headers)
    assert response.json()["total"] == 0

    response = await client.patch(
        f"{API}/documents/{document_id}", json={"isActive": False}, headers=headers
    )
    assert response.status_code == 200
    assert response.json()["isActive"] is False

    response = await client.delete(f"{API}/documents/{document_id}", headers=headers)
    assert response.status_code == 204
    response = await client.get(f"{API}/documents/{document_id}", headers=headers)
    assert response.status_code == 404

    async with AsyncSessionLocal() as session:
        stored = (
            await session.execute(select(Document).execution_options(include_deleted=True))
        ).scalar_one()
        assert stored.deleted_at is not None
