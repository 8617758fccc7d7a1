from __future__ import annotations

from typing import Dict, List

import pytest

from busdb.apps.accounts.scope import Scope
from busdb.apps.assets.services import AssetLifecycleManager, ImageUpload
from busdb.apps.assets.storage import LocalBlobStore
from busdb.apps.directory.entities import GUARDIAN, INSTITUTION
from busdb.apps.directory.services import DirectoryStore
from busdb.apps.directory.store import SqlDocumentStore
from busdb.errors import InvalidUpload, OrphanedBlob, TransientError

ROOT = Scope(is_super_admin=True, institution_id=None, is_active=True)


class FakeBlobStore:
    def __init__(self) -> None:
        self.blobs: Dict[str, bytes] = {}
        self.deleted: List[str] = []
        self.fail_deletes = False

    def put(self, path: str, data: bytes) -> str:
        url = f"mem://{path}"
        self.blobs[url] = data
        return url

    def delete(self, url: str) -> None:
        if self.fail_deletes:
            raise TransientError("blob backend down")
        self.deleted.append(url)
        self.blobs.pop(url, None)


def _png(name: str = "photo.png") -> ImageUpload:
    return ImageUpload(filename=name, data=b"\x89PNG fake", content_type="image/png")


def _create_guardian(db_session, blobs: FakeBlobStore) -> DirectoryStore:
    documents = SqlDocumentStore(db_session)
    DirectoryStore(INSTITUTION, documents).create(
        ROOT,
        {
            "id": 1,
            "name": "School 1",
            "address": "Av. Principal 123",
            "email": "contact@school.cl",
            "phone": "+56222222222",
            "manager_name": "Marta Diaz",
        },
    )
    guardians = DirectoryStore(GUARDIAN, documents, AssetLifecycleManager(blobs))
    guardians.create(
        ROOT,
        {
            "rut": "44444444-4",
            "name": "Pedro",
            "surname": "Soto",
            "email": "pedro@mail.cl",
            "phone": "+56912345678",
            "institution_id": 1,
        },
    )
    return guardians


def test_first_image_reclaims_nothing():
    blobs = FakeBlobStore()
    manager = AssetLifecycleManager(blobs)
    saved = []

    url = manager.replace_image({"rut": "1"}, _png(), collection="guardians", key="1", persist=saved.append)

    assert saved == [{"rut": "1", "image_url": url}]
    assert blobs.deleted == []


def test_replacement_reclaims_previous_exactly_once():
    blobs = FakeBlobStore()
    manager = AssetLifecycleManager(blobs)
    record = {"rut": "1", "image_url": "mem://old.png"}

    url = manager.replace_image(record, _png(), collection="guardians", key="1", persist=lambda r: None)

    assert url != "mem://old.png"
    assert blobs.deleted == ["mem://old.png"]


def test_failed_persist_drops_the_new_blob_and_keeps_the_old():
    blobs = FakeBlobStore()
    manager = AssetLifecycleManager(blobs)

    def _persist(record):
        raise TransientError("store down")

    with pytest.raises(TransientError):
        manager.replace_image(
            {"rut": "1", "image_url": "mem://old.png"},
            _png(),
            collection="guardians",
            key="1",
            persist=_persist,
        )

    assert "mem://old.png" not in blobs.deleted
    assert len(blobs.deleted) == 1
    assert blobs.blobs == {}


def test_reclaim_failure_after_persist_is_an_orphaned_blob():
    blobs = FakeBlobStore()
    blobs.fail_deletes = True
    manager = AssetLifecycleManager(blobs)
    saved = []

    with pytest.raises(OrphanedBlob) as exc:
        manager.replace_image(
            {"rut": "1", "image_url": "mem://old.png"},
            _png(),
            collection="guardians",
            key="1",
            persist=saved.append,
        )

    assert exc.value.reference == "mem://old.png"
    assert saved and saved[0]["image_url"].startswith("mem://guardians/1/")


@pytest.mark.parametrize(
    "upload",
    [
        ImageUpload(filename="notes.pdf", data=b"%PDF"),
        ImageUpload(filename="empty.png", data=b""),
    ],
)
def test_invalid_uploads_are_rejected_before_storing(upload):
    blobs = FakeBlobStore()
    manager = AssetLifecycleManager(blobs, max_bytes=4)

    with pytest.raises(InvalidUpload):
        manager.replace_image({}, upload, collection="guardians", key="1", persist=lambda r: None)
    with pytest.raises(InvalidUpload):
        manager.replace_image({}, _png("big.png"), collection="guardians", key="1", persist=lambda r: None)
    assert blobs.blobs == {}


def test_directory_image_lifecycle(db_session):
    blobs = FakeBlobStore()
    guardians = _create_guardian(db_session, blobs)

    first = guardians.set_image(ROOT, "44444444-4", _png())["image_url"]
    second = guardians.set_image(ROOT, "44444444-4", _png("new.jpg"))["image_url"]
    assert blobs.deleted == [first]
    assert guardians.get(ROOT, "44444444-4")["image_url"] == second

    # Clearing drops the reference and reclaims the blob.
    guardians.clear_image(ROOT, "44444444-4")
    assert blobs.deleted == [first, second]
    assert guardians.get(ROOT, "44444444-4")["image_url"] is None

    third = guardians.set_image(ROOT, "44444444-4", _png())["image_url"]
    guardians.delete(ROOT, "44444444-4")
    assert blobs.deleted == [first, second, third]


def test_local_blob_store_round_trip(tmp_path):
    store = LocalBlobStore(root=tmp_path, base_url="/media/")

    url = store.put("guardians/1/img_a.png", b"data")
    assert url == "/media/guardians/1/img_a.png"
    assert (tmp_path / "guardians" / "1" / "img_a.png").read_bytes() == b"data"

    store.delete(url)
    assert not (tmp_path / "guardians" / "1" / "img_a.png").exists()
    # Missing and foreign blobs are ignored.
    store.delete(url)
    store.delete("https://cdn.example.com/x.png")

    with pytest.raises(InvalidUpload):
        store.put("../escape.png", b"x")


def test_local_blob_store_ignores_urls_outside_the_upload_directory(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    outside = tmp_path / "hosts"
    outside.write_bytes(b"keep me")
    store = LocalBlobStore(root=root, base_url="/media")

    store.delete("/media/../hosts")
    store.delete("/media/")

    assert outside.read_bytes() == b"keep me"
    assert root.is_dir()


def test_image_references_are_not_accepted_from_payloads(db_session):
    blobs = FakeBlobStore()
    guardians = _create_guardian(db_session, blobs)
    documents = guardians.documents
    DirectoryStore(INSTITUTION, documents).create(
        ROOT,
        {
            "id": 2,
            "name": "School 2",
            "address": "Av. 2",
            "email": "contact2@school.cl",
            "phone": "+5622",
            "manager_name": "Luis",
        },
    )
    school_1 = Scope(is_super_admin=False, institution_id=1, is_active=True)

    other = guardians.create(
        ROOT,
        {
            "rut": "88888888-8",
            "name": "Rosa",
            "surname": "Vera",
            "email": "rosa@mail.cl",
            "phone": "+56911112222",
            "institution_id": 2,
        },
    )
    other_url = guardians.set_image(ROOT, other["rut"], _png())["image_url"]

    created = guardians.create(
        school_1,
        {
            "rut": "22222222-2",
            "name": "Ana",
            "surname": "Rojas",
            "email": "ana@mail.cl",
            "phone": "+56933334444",
            "institution_id": 1,
            "image_url": other_url,
        },
    )
    assert created["image_url"] is None

    updated = guardians.update(school_1, "44444444-4", {"image_url": other_url, "phone": "+56900000000"})
    assert updated["image_url"] is None
    assert updated["phone"] == "+56900000000"

    guardians.delete(school_1, "22222222-2")
    guardians.clear_image(school_1, "44444444-4")

    assert other_url not in blobs.deleted
    assert guardians.get(ROOT, "88888888-8")["image_url"] == other_url
    assert other_url in blobs.blobs
