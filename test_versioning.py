#!/usr/bin/env python3
"""
Test script for the design version store.

Runs the commit / log / revert / diff / delete flow against an in-memory
SQLite database and the in-memory blob store.
"""

import sys
import os
import base64
import datetime as dt
import tempfile
import threading
from io import BytesIO

# Add the repo root to Python path
sys.path.insert(0, os.path.dirname(__file__))

from PIL import Image

from designvc.services.db import Database
from designvc.services.storage import UploadResult
from designvc.services.storage_memory import MemoryBlobStore
from designvc.services.versioning import (
    PersistenceError, VersionNotFound, VersionStore, preview_key,
)
from designvc.models.version import DesignVersion


def _png_b64(color=(255, 0, 0)) -> str:
    buf = BytesIO()
    Image.new("RGB", (4, 4), color).save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode()


class FailingUploadStore(MemoryBlobStore):
    def upload(self, payload, key_hint):
        return UploadResult(success=False, error="bucket is on fire")


class ExplodingStore(MemoryBlobStore):
    def upload(self, payload, key_hint):
        raise ConnectionError("network down")

    def delete(self, url):
        raise ConnectionError("network down")


class RefusingDeleteStore(MemoryBlobStore):
    def delete(self, url):
        return False


def _store(blobs=None, **kw):
    db = Database("sqlite://").open()
    return VersionStore(db, blobs or MemoryBlobStore(), **kw), db


def _numbers(store):
    return [v.version_number for v in store.list_history()]


def test_sequential_commits_are_dense():
    """N commits without deletes number 1..N in commit order"""
    print("🧪 Testing sequential commit numbering...")
    store, db = _store()
    made = [store.commit(commit_message=f"c{i}") for i in range(5)]

    assert [v.version_number for v in made] == [1, 2, 3, 4, 5]
    assert _numbers(store) == [5, 4, 3, 2, 1]
    ids = [v.id for v in made]
    assert ids == sorted(ids)
    db.close()
    print("✅ 5 commits numbered V1..V5")


def test_commit_defaults():
    print("\n🧪 Testing commit defaults...")
    store, db = _store()
    v = store.commit()
    assert v.commit_message == "Version 1"
    assert v.created_by == "designer"
    assert v.preview_url is None
    assert v.created_at is not None

    v2 = store.commit(commit_message="", created_by="")
    assert v2.commit_message == "Version 2"
    assert v2.created_by == "designer"

    v3 = store.commit(commit_message="tweak", created_by="alice")
    assert (v3.commit_message, v3.created_by) == ("tweak", "alice")
    db.close()
    print("✅ Defaults applied")


def test_commit_with_png_sets_preview():
    print("\n🧪 Testing commit with PNG...")
    blobs = MemoryBlobStore()
    store, db = _store(blobs)
    v = store.commit(commit_message="add logo", png_base64=_png_b64())

    assert v.preview_url and v.preview_url.startswith("memory://design-versions/v1-")
    assert store.get_by_number(1).preview_url == v.preview_url
    assert len(blobs.objects) == 1
    assert blobs.fetch(v.preview_url).startswith(b"\x89PNG")
    db.close()
    print(f"✅ Preview stored at {v.preview_url}")


def test_data_url_payload_accepted():
    store, db = _store()
    v = store.commit(png_base64="data:image/png;base64," + _png_b64())
    assert v.preview_url is not None
    db.close()


def test_upload_failure_still_commits():
    """Commit never fails solely because of the preview"""
    print("\n🧪 Testing upload failures...")
    for blobs in (FailingUploadStore(), ExplodingStore()):
        store, db = _store(blobs)
        v = store.commit(commit_message="x", png_base64=_png_b64())
        assert v.version_number == 1
        assert v.preview_url is None
        assert store.get_by_number(1).preview_url is None
        db.close()

    # not base64 / not a PNG
    store, db = _store()
    assert store.commit(png_base64="!!!not-base64!!!").preview_url is None
    assert store.commit(png_base64=base64.b64encode(b"GIF89a....").decode()).preview_url is None
    assert _numbers(store) == [2, 1]
    db.close()
    print("✅ Versions created without preview")


def test_get_by_id_and_number():
    store, db = _store()
    v = store.commit(commit_message="init")
    assert store.get_by_id(v.id).version_number == 1
    assert store.get_by_number(1).id == v.id

    for call in (lambda: store.get_by_id(999), lambda: store.get_by_number(7)):
        try:
            call()
        except VersionNotFound:
            pass
        else:
            raise AssertionError("expected VersionNotFound")
    db.close()


def test_revert_creates_new_version_without_preview():
    print("\n🧪 Testing revert...")
    store, db = _store()
    store.commit(commit_message="init", png_base64=_png_b64())
    store.commit(commit_message="second")

    r = store.revert(1)
    assert r.version_number == 3
    assert r.commit_message == "Reverted to V1"
    assert r.preview_url is None
    assert r.created_by == "designer"
    db.close()
    print("✅ Reverted to V1 as V3")


def test_revert_missing_mutates_nothing():
    store, db = _store()
    store.commit()
    try:
        store.revert(5)
    except VersionNotFound:
        pass
    else:
        raise AssertionError("expected VersionNotFound")
    assert _numbers(store) == [1]
    db.close()


def test_compare_flags():
    print("\n🧪 Testing compare...")
    store, db = _store()
    store.commit(commit_message="same")
    store.commit(commit_message="same")
    store.commit(commit_message="other", png_base64=_png_b64())

    same = store.compare(1, 2)
    assert same.changes.preview_url_changed is False
    assert same.changes.commit_message_changed is False
    assert same.version1.version_number == 1 and same.version2.version_number == 2

    diff = store.compare(2, 3)
    assert diff.changes.preview_url_changed is True
    assert diff.changes.commit_message_changed is True

    dumped = diff.model_dump(by_alias=True)
    assert dumped["changes"] == {"previewUrlChanged": True, "commitMessageChanged": True}

    try:
        store.compare(1, 9)
    except VersionNotFound:
        pass
    else:
        raise AssertionError("expected VersionNotFound")
    db.close()
    print("✅ Compare flags correct")


def test_delete_renumbers_and_keeps_order():
    print("\n🧪 Testing delete + renumber...")
    blobs = MemoryBlobStore()
    store, db = _store(blobs)
    made = [store.commit(commit_message=f"c{i}", png_base64=_png_b64()) for i in range(1, 6)]
    assert len(blobs.objects) == 5

    assert store.delete(2) is True
    history = list(reversed(store.list_history()))
    assert [v.version_number for v in history] == [1, 2, 3, 4]
    assert [v.commit_message for v in history] == ["c1", "c3", "c4", "c5"]
    assert [v.id for v in history] == [made[0].id, made[2].id, made[3].id, made[4].id]
    assert made[1].preview_url.split("memory://")[1] not in blobs.objects
    assert len(blobs.objects) == 4

    # delete the last one: nothing to shift
    store.delete(4)
    assert _numbers(store) == [3, 2, 1]
    db.close()
    print("✅ Remaining versions contiguous")


def test_delete_missing_mutates_nothing():
    store, db = _store()
    store.commit()
    store.commit()
    try:
        store.delete(3)
    except VersionNotFound:
        pass
    else:
        raise AssertionError("expected VersionNotFound")
    assert _numbers(store) == [2, 1]
    db.close()


def test_blob_delete_failure_does_not_block():
    for blobs in (RefusingDeleteStore(), ExplodingStore()):
        store, db = _store(blobs)
        # seed a preview directly; ExplodingStore cannot upload
        store.commit(commit_message="a")
        with db.session() as s, s.begin():
            s.get(DesignVersion, 1).preview_url = "memory://design-versions/v1-deadbeef.png"
        store.commit(commit_message="b")

        assert store.delete(1) is True
        assert _numbers(store) == [1]
        assert store.get_by_number(1).commit_message == "b"
        db.close()


def test_worked_example():
    """init -> add logo -> delete v1 -> revert(1)"""
    print("\n🧪 Testing worked example...")
    store, db = _store()
    v1 = store.commit(commit_message="init")
    v2 = store.commit(commit_message="add logo", png_base64=_png_b64())
    assert v1.preview_url is None and v2.preview_url

    store.delete(1)
    former_v2 = store.get_by_number(1)
    assert former_v2.id == v2.id
    assert former_v2.preview_url == v2.preview_url
    assert former_v2.commit_message == "add logo"

    r = store.revert(1)
    assert (r.version_number, r.commit_message, r.preview_url) == (2, "Reverted to V1", None)
    db.close()
    print("✅ Worked example holds")


def test_ids_not_reused_after_delete():
    store, db = _store()
    store.commit()
    last = store.commit()
    store.delete(2)
    again = store.commit()
    assert again.version_number == 2
    assert again.id > last.id
    db.close()


class StaleMaxStore(VersionStore):
    """Sees an out-of-date max for the first `stale` reads, like a losing concurrent commit."""

    def __init__(self, *a, stale=1, **kw):
        super().__init__(*a, **kw)
        self.stale = stale

    def _next_number(self, session):
        if self.stale > 0:
            self.stale -= 1
            return 1
        return super()._next_number(session)


def test_number_collision_is_retried():
    print("\n🧪 Testing version number collision retry...")
    db = Database("sqlite://").open()
    VersionStore(db, MemoryBlobStore()).commit(commit_message="first")

    store = StaleMaxStore(db, MemoryBlobStore(), stale=2, max_attempts=5)
    v = store.commit(commit_message="second")
    assert v.version_number == 2
    assert _numbers(store) == [2, 1]

    stubborn = StaleMaxStore(db, MemoryBlobStore(), stale=10, max_attempts=3)
    try:
        stubborn.commit()
    except PersistenceError:
        pass
    else:
        raise AssertionError("expected PersistenceError")
    assert _numbers(store) == [2, 1]
    db.close()
    print("✅ Collision retried, exhaustion surfaced")


def test_renumber_repairs_gaps():
    store, db = _store()
    for i in range(4):
        store.commit(commit_message=f"c{i}")
    with db.session() as s, s.begin():
        # out-of-band damage: 1, 2, 3, 4 -> 2, 5, 9, 11
        for vid, num in ((4, 11), (3, 9), (2, 5), (1, 2)):
            s.get(DesignVersion, vid).version_number = num
            s.flush()

    assert store.renumber(dry_run=True) == 4
    assert _numbers(store) == [11, 9, 5, 2]
    assert store.renumber() == 4
    assert [v.commit_message for v in reversed(store.list_history())] == ["c0", "c1", "c2", "c3"]
    assert _numbers(store) == [4, 3, 2, 1]
    assert store.renumber() == 0
    db.close()


def test_preview_keys_unique():
    keys = {preview_key(3) for _ in range(20)}
    assert len(keys) == 20
    assert all(k.startswith("design-versions/v3-") and k.endswith(".png") for k in keys)


def test_created_at_is_utc_after_reload():
    """Timestamps come back from the table as aware UTC, same as at commit"""
    store, db = _store()
    plain = store.commit(commit_message="plain")
    with_png = store.commit(commit_message="png", png_base64=_png_b64())

    for made in (plain, with_png):
        loaded = store.get_by_number(made.version_number)
        assert loaded.created_at.tzinfo is not None
        assert loaded.created_at.utcoffset() == dt.timedelta(0)
        assert loaded.created_at == made.created_at
        assert made.created_at.utcoffset() == dt.timedelta(0)
    db.close()


def test_concurrent_commits_stay_dense():
    print("\n🧪 Testing concurrent commits on a file database...")
    with tempfile.TemporaryDirectory() as tmp:
        db = Database(f"sqlite:///{os.path.join(tmp, 'versions.db')}").open()
        store = VersionStore(db, MemoryBlobStore(), max_attempts=5)
        errors = []

        def worker(tag):
            for i in range(10):
                try:
                    store.commit(commit_message=f"{tag}-{i}")
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=worker, args=(f"t{n}",)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert _numbers(store) == list(range(80, 0, -1))
        db.close()
    print("✅ 80 concurrent commits numbered V1..V80")


def main():
    """Run all tests"""
    print("🚀 Starting Version Store Tests\n")

    tests = [
        test_sequential_commits_are_dense,
        test_commit_defaults,
        test_commit_with_png_sets_preview,
        test_data_url_payload_accepted,
        test_upload_failure_still_commits,
        test_get_by_id_and_number,
        test_revert_creates_new_version_without_preview,
        test_revert_missing_mutates_nothing,
        test_compare_flags,
        test_delete_renumbers_and_keeps_order,
        test_delete_missing_mutates_nothing,
        test_blob_delete_failure_does_not_block,
        test_worked_example,
        test_ids_not_reused_after_delete,
        test_number_collision_is_retried,
        test_renumber_repairs_gaps,
        test_preview_keys_unique,
        test_created_at_is_utc_after_reload,
        test_concurrent_commits_stay_dense,
    ]

    passed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"❌ {test.__name__} failed: {e!r}")

    print(f"\n📊 Test Results: {passed}/{len(tests)} tests passed")
    return 0 if passed == len(tests) else 1


if __name__ == "__main__":
    sys.exit(main())
