import pytest

from assocportal.core.errors import AuthorizationDenied, ValidationFailure
from assocportal.models.models import Document
from assocportal.schemas.schemas import DocumentCreate, UploadTargetRequest, VisibilityAdmin, VisibilityUnits
from assocportal.services import documents as document_service
from assocportal.services.storage import storage_service


def _document(db_session, owner, association, title, **overrides):
    data = {
        "title": title,
        "category": "Minutes",
        "file_reference": f"associations/{association.id}/documents/{title.lower().replace(' ', '-')}.pdf",
        "file_name": f"{title}.pdf",
        "file_size": 1024,
        "content_type": "application/pdf",
    }
    data.update(overrides)
    return document_service.create_document(db_session, owner, association.id, DocumentCreate(**data))


def test_visibility_filters_listing(db_session, create_association, add_member):
    association, owner = create_association()
    a_resident = add_member(association, "a@example.com", units=["A1"])
    b_resident = add_member(association, "b@example.com", units=["B1"])
    _document(db_session, owner, association, "Everyone")
    _document(db_session, owner, association, "Block A", visibility=VisibilityUnits(units=["A1"]))
    _document(db_session, owner, association, "Board only", visibility=VisibilityAdmin())
    _document(db_session, owner, association, "Public notice", visibility=VisibilityAdmin(), is_public=True)

    def titles(user):
        return sorted(item["title"] for item in document_service.list_documents(db_session, user, association.id))

    assert titles(owner) == ["Block A", "Board only", "Everyone", "Public notice"]
    assert titles(a_resident) == ["Block A", "Everyone", "Public notice"]
    assert titles(b_resident) == ["Everyone", "Public notice"]


def test_document_url_denied_outside_visibility(db_session, create_association, add_member):
    association, owner = create_association()
    resident = add_member(association, "c@example.com", units=["C1"])
    restricted = _document(db_session, owner, association, "Board pack", visibility=VisibilityAdmin())

    with pytest.raises(AuthorizationDenied, match="Access denied"):
        document_service.get_document_url(db_session, resident, association.id, restricted.id)
    url = document_service.get_document_url(db_session, owner, association.id, restricted.id)
    assert url.endswith(restricted.file_reference)


def test_file_reference_must_belong_to_association(db_session, create_association):
    association, owner = create_association()

    with pytest.raises(ValidationFailure, match="does not belong to this association"):
        _document(db_session, owner, association, "Stray", file_reference="associations/999/documents/x.pdf")


def test_upload_and_delete_round_trip(create_association, client_as, db_session, tmp_path, monkeypatch):
    monkeypatch.setattr(storage_service, "upload_root", tmp_path)
    association, owner = create_association()
    client = client_as(owner)
    base = f"/associations/{association.id}/documents"

    target = client.post(f"{base}/upload-target", json={"file_name": "rules.pdf"})
    assert target.status_code == 200
    reference = target.json()["file_reference"]
    assert reference.startswith(f"associations/{association.id}/documents/")

    uploaded = client.put(f"/storage/{reference}", content=b"%PDF-1.4", headers={"Content-Type": "application/pdf"})
    assert uploaded.status_code == 204
    assert (tmp_path / reference).read_bytes() == b"%PDF-1.4"
    assert storage_service.retrieve_file(reference).content == b"%PDF-1.4"

    created = client.post(
        base,
        json={
            "title": "House rules",
            "category": "Rules",
            "file_reference": reference,
            "file_name": "rules.pdf",
            "file_size": 8,
            "visibility": {"kind": "units", "units": ["A1"]},
        },
    )
    assert created.status_code == 201
    assert created.json()["visibility"] == {"kind": "units", "units": ["A1"]}
    assert client.get(f"{base}/categories").json() == ["Rules"]

    deleted = client.delete(f"{base}/{created.json()['id']}")
    assert deleted.status_code == 204
    assert not (tmp_path / reference).exists()
    assert db_session.query(Document).count() == 0


def test_empty_upload_rejected(create_association, client_as, tmp_path, monkeypatch):
    monkeypatch.setattr(storage_service, "upload_root", tmp_path)
    association, owner = create_association()

    response = client_as(owner).put(f"/storage/associations/{association.id}/documents/empty.pdf", content=b"")
    assert response.status_code == 400
    assert response.json()["detail"] == "File is empty"


def test_members_cannot_request_upload_targets(db_session, create_association, add_member):
    association, _ = create_association()
    resident = add_member(association, "d@example.com")

    with pytest.raises(AuthorizationDenied):
        document_service.create_upload_target(db_session, resident, association.id, UploadTargetRequest(file_name="x.pdf"))


def test_unit_visibility_requires_units():
    with pytest.raises(ValueError):
        VisibilityUnits(units=[" "])
