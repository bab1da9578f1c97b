import pytest

from markhive.errors import BookmarkNotFound, FolderNotFound, InvalidInput
from markhive.model import Bookmark


def _ids(items):
    return [x.id for x in items]


def test_add_bookmark_round_trip(service):
    saved = service.add_bookmark("Python", " https://python.org/ ", "https://python.org/favicon.ico")
    assert saved.id > 0
    got = service.get_bookmark(saved.id)
    assert got.url == "https://python.org/"
    assert got.title == "Python"
    assert got.favicon_url == "https://python.org/favicon.ico"
    assert got.folder_id is None


def test_save_rejects_missing_or_blank_input_without_writing(service, gateways):
    bookmarks, _ = gateways
    with pytest.raises(InvalidInput):
        service.save_bookmark(None)
    with pytest.raises(InvalidInput):
        service.add_bookmark("No url", "   ")
    with pytest.raises(InvalidInput):
        service.save_bookmark(Bookmark(url="https://a.example/", position=-1))
    assert bookmarks.writes == []


def test_save_into_unknown_folder_is_rejected(service, gateways):
    bookmarks, _ = gateways
    with pytest.raises(FolderNotFound):
        service.add_bookmark("x", "https://x.example/", folder_id=404)
    assert bookmarks.writes == []


def test_new_bookmarks_go_after_their_siblings(service, sample_tree):
    f = sample_tree["F"]
    b1, b2 = sample_tree["b1"], sample_tree["b2"]
    assert (b1.position, b2.position) == (0, 1)
    b4 = service.add_bookmark("Four", "https://four.example/", folder_id=f.id)
    assert b4.position == 2
    assert _ids(service.get_bookmarks_by_folder_id(f.id)) == [b1.id, b2.id, b4.id]


def test_none_folder_lists_root_bookmarks(service, sample_tree):
    assert _ids(service.get_bookmarks_by_folder_id(None)) == [sample_tree["loose"].id]
    assert _ids(service.get_root_bookmarks()) == [sample_tree["loose"].id]


def test_save_to_favorites_lands_at_root(service):
    fav = service.save_to_favorites("Fav", "https://fav.example/")
    assert fav.is_favorite
    assert fav.folder_id is None
    assert _ids(service.get_favorites()) == [fav.id]


def test_update_requires_persisted_bookmark(service, gateways):
    bookmarks, _ = gateways
    with pytest.raises(InvalidInput):
        service.update_bookmark(Bookmark(url="https://a.example/"))
    with pytest.raises(InvalidInput):
        service.update_bookmark(None)
    assert bookmarks.writes == []


def test_update_persists_changes(service, sample_tree):
    b = service.get_bookmark(sample_tree["b1"].id)
    b.title = "Renamed"
    b.tags = ["x", "y"]
    service.update_bookmark(b)
    got = service.get_bookmark(b.id)
    assert got.title == "Renamed"
    assert got.tags == ["x", "y"]


def test_delete_bookmark(service, sample_tree):
    service.delete_bookmark(sample_tree["loose"].id)
    assert service.get_bookmark(sample_tree["loose"].id) is None
    assert service.get_bookmarks_count() == 3


def test_blank_search_returns_everything(service, sample_tree):
    assert _ids(service.search_bookmarks("  ")) == _ids(service.get_all_bookmarks())
    assert _ids(service.search_bookmarks("")) == _ids(service.get_all_bookmarks())
    assert _ids(service.search_bookmarks(None)) == _ids(service.get_all_bookmarks())


def test_search_matches_title_and_url_case_insensitively(service, sample_tree):
    assert _ids(service.search_bookmarks("tWo")) == [sample_tree["b2"].id]
    assert _ids(service.search_bookmarks("three.example")) == [sample_tree["b3"].id]
    assert service.search_bookmarks("nothing-like-this") == []


def test_toggle_favorite_twice_restores_flag(service, sample_tree):
    bid = sample_tree["b1"].id
    assert service.toggle_favorite(bid) is True
    assert service.get_bookmark(bid).is_favorite is True
    assert service.toggle_favorite(bid) is False
    assert service.get_bookmark(bid).is_favorite is False


def test_toggle_unknown_bookmark(service):
    with pytest.raises(BookmarkNotFound):
        service.toggle_favorite(99)


def test_move_bookmark_between_folders_and_to_root(service, sample_tree):
    b1, f2 = sample_tree["b1"], sample_tree["F2"]
    service.move_bookmark(b1.id, f2.id)
    assert service.get_bookmark(b1.id).folder_id == f2.id
    service.move_bookmark(b1.id, None)
    assert b1.id in _ids(service.get_root_bookmarks())


def test_move_unknown_bookmark_writes_nothing(service, gateways, sample_tree):
    bookmarks, _ = gateways
    bookmarks.calls.clear()
    with pytest.raises(BookmarkNotFound):
        service.move_bookmark(999, sample_tree["F"].id)
    with pytest.raises(FolderNotFound):
        service.move_bookmark(sample_tree["b1"].id, 999)
    assert bookmarks.writes == []
    assert service.get_bookmark(sample_tree["b1"].id).folder_id == sample_tree["F"].id


def test_reorder_bookmark(service, sample_tree):
    b1, b2 = sample_tree["b1"], sample_tree["b2"]
    service.reorder_bookmark(b1.id, 5)
    assert service.get_bookmark(b1.id).position == 5
    assert _ids(service.get_bookmarks_by_folder_id(sample_tree["F"].id)) == [b2.id, b1.id]
    with pytest.raises(InvalidInput):
        service.reorder_bookmark(b1.id, -1)


def test_is_bookmarked_and_lookup_by_url(service, sample_tree):
    assert service.is_bookmarked("https://one.example/")
    assert service.is_bookmarked("  https://one.example/  ")
    assert not service.is_bookmarked("https://other.example/")
    assert not service.is_bookmarked("")
    assert not service.is_bookmarked(None)
    assert service.get_bookmark_by_url("https://two.example/").id == sample_tree["b2"].id
    assert service.get_bookmark_by_url("") is None
    assert service.get_bookmark_by_url("https://other.example/") is None


def test_update_rejects_dangling_folder_reference(service, gateways, sample_tree):
    bookmarks, _ = gateways
    b = service.get_bookmark(sample_tree["loose"].id)
    b.folder_id = 999
    bookmarks.calls.clear()

    with pytest.raises(FolderNotFound):
        service.update_bookmark(b)
    assert bookmarks.writes == []
    assert service.get_bookmark(b.id).folder_id is None


@pytest.mark.parametrize("backend", ["service", "sqlite_service"])
def test_search_folds_non_ascii_case_on_every_store(request, backend):
    svc = request.getfixturevalue(backend)
    hit = svc.add_bookmark("Über Python", "https://ueber.example/")
    svc.add_bookmark("Uber rides", "https://rides.example/")

    assert _ids(svc.search_bookmarks("über")) == [hit.id]
    assert _ids(svc.search_bookmarks("ÜBER")) == [hit.id]
