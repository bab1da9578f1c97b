import pytest

from markhive.gateway import BookmarkGateway, FolderGateway, Transactional
from markhive.model import Bookmark, Folder


def test_stores_satisfy_gateway_protocols(store, sqlite_store):
    for s in (store, sqlite_store):
        assert isinstance(s.bookmarks, BookmarkGateway)
        assert isinstance(s.folders, FolderGateway)
        assert isinstance(s.folders, Transactional)


def test_records_are_copied_in_and_out(store):
    b = store.bookmarks.save(Bookmark(title="t", url="https://a.example/", tags=["x"]))
    b.title = "changed locally"
    b.tags.append("y")

    got = store.bookmarks.find_by_id(b.id)
    assert got.title == "t"
    assert got.tags == ["x"]
    got.title = "changed again"
    assert store.bookmarks.find_by_id(b.id).title == "t"


def test_ids_are_assigned_per_entity_type(store):
    assert store.bookmarks.save(Bookmark(url="https://a.example/")).id == 1
    assert store.bookmarks.save(Bookmark(url="https://b.example/")).id == 2
    assert store.folders.save(Folder(name="f")).id == 1


def test_update_of_unknown_id_is_ignored(store):
    store.bookmarks.update(Bookmark(id=42, url="https://ghost.example/"))
    assert store.bookmarks.count() == 0


def test_transaction_restores_snapshot_on_error(store):
    kept = store.folders.save(Folder(name="kept"))
    with pytest.raises(KeyError):
        with store.transaction():
            store.folders.delete(kept.id)
            store.bookmarks.save(Bookmark(url="https://gone.example/"))
            raise KeyError("abort")

    assert store.folders.find_by_id(kept.id) is not None
    assert store.bookmarks.count() == 0
    # Ids handed out inside the rolled back scope are reused.
    assert store.bookmarks.save(Bookmark(url="https://next.example/")).id == 1


def test_position_and_favorite_updates_bump_updated_at(store):
    b = store.bookmarks.save(Bookmark(url="https://a.example/"))
    before = store.bookmarks.find_by_id(b.id).updated_at
    store.bookmarks.update_position(b.id, 3)
    store.bookmarks.update_favorite_status(b.id, True)
    got = store.bookmarks.find_by_id(b.id)
    assert (got.position, got.is_favorite) == (3, True)
    assert got.updated_at >= before
