import threading

import pytest
from pathlib import Path

from media_catalog.catalog.catalog import Catalog, normalize_path
from media_catalog.exceptions import DuplicateHash, DuplicatePath, RecordNotFound
from media_catalog.models import Location

from conftest import MP4, dt


def test_insert_and_lookup(catalog, make_record):
    rec = make_record("a", device="CamX")
    catalog.insert(rec)

    assert len(catalog) == 1
    assert rec.hash in catalog
    assert catalog.lookup_by_hash(rec.hash) == rec
    assert catalog.lookup_by_path(rec.filepath) == rec
    assert catalog.lookup_by_hash("nope") is None
    assert catalog.lookup_by_path(rec.filepath.parent / "other.jpg") is None


def test_insert_normalizes_path(catalog, make_record, tmp_path):
    rec = make_record("a", name=str(tmp_path / "sub" / ".." / "a.jpg"))
    stored = catalog.insert(rec)

    assert stored.filepath == tmp_path / "a.jpg"
    assert catalog.lookup_by_path(tmp_path / "a.jpg").hash == rec.hash
    assert catalog.lookup_by_path(str(tmp_path / "sub" / ".." / "a.jpg")).hash == rec.hash


def test_duplicate_hash_rejected(catalog, make_record, tmp_path):
    catalog.insert(make_record("a"))
    twin = make_record("a", name="elsewhere.jpg")

    with pytest.raises(DuplicateHash) as exc:
        catalog.insert(twin)
    assert exc.value.hash == twin.hash
    assert len(catalog) == 1
    assert catalog.lookup_by_path(tmp_path / "elsewhere.jpg") is None


def test_duplicate_path_rejected(catalog, make_record):
    catalog.insert(make_record("a", name="same.jpg"))

    with pytest.raises(DuplicatePath):
        catalog.insert(make_record("b", name="same.jpg"))
    assert len(catalog) == 1


def test_remove(catalog, make_record):
    rec = catalog.insert(make_record("a"))
    catalog.add_label(rec.hash, "trip")

    removed = catalog.remove(rec.hash)

    assert removed == rec
    assert len(catalog) == 0
    assert catalog.lookup_by_path(rec.filepath) is None
    assert catalog.labels_for(rec.hash) == set()
    with pytest.raises(RecordNotFound):
        catalog.remove(rec.hash)


def test_remove_frees_path_for_reuse(catalog, make_record):
    catalog.insert(make_record("a", name="slot.jpg"))
    catalog.remove(make_record("a").hash)

    catalog.insert(make_record("b", name="slot.jpg"))
    assert len(catalog) == 1


def test_update_path(catalog, make_record, tmp_path):
    rec = catalog.insert(make_record("a", created=dt(2021)))
    new_path = tmp_path / "2021" / "a.jpg"

    updated = catalog.update_path(rec.hash, new_path)

    assert updated.filepath == new_path
    assert updated.created == rec.created
    assert catalog.lookup_by_path(new_path) == updated
    assert catalog.lookup_by_path(rec.filepath) is None
    assert catalog.lookup_by_hash(rec.hash) == updated


def test_update_path_same_path_is_noop(catalog, make_record):
    rec = catalog.insert(make_record("a"))
    assert catalog.update_path(rec.hash, rec.filepath) == rec


def test_update_path_errors(catalog, make_record):
    a = catalog.insert(make_record("a"))
    b = catalog.insert(make_record("b"))

    with pytest.raises(DuplicatePath):
        catalog.update_path(a.hash, b.filepath)
    with pytest.raises(RecordNotFound):
        catalog.update_path("missing", Path("/tmp/x.jpg"))

    # Nothing changed
    assert catalog.lookup_by_hash(a.hash) == a
    assert catalog.lookup_by_path(b.filepath) == b


def test_all_is_a_snapshot(catalog, make_record):
    catalog.insert(make_record("a"))
    catalog.insert(make_record("b"))

    it = catalog.all()
    catalog.insert(make_record("c"))
    catalog.remove(make_record("a").hash)

    assert {r.hash for r in it} == {make_record("a").hash, make_record("b").hash}
    assert len(list(catalog.all())) == 2


def test_paths(catalog, make_record):
    a = catalog.insert(make_record("a"))
    b = catalog.insert(make_record("b"))
    assert catalog.paths() == {a.filepath, b.filepath}


def test_labels(catalog, make_record):
    rec = catalog.insert(make_record("a"))

    catalog.add_label(rec.hash, " beach ")
    catalog.add_label(rec.hash, "2021")
    catalog.add_label(rec.hash, "beach")

    assert catalog.labels_for(rec.hash) == {"beach", "2021"}
    assert catalog.all_labels() == ["2021", "beach"]
    assert catalog.remove_label(rec.hash, "beach") is True
    assert catalog.remove_label(rec.hash, "beach") is False
    assert catalog.labels_for(rec.hash) == {"2021"}


def test_label_errors(catalog, make_record):
    rec = catalog.insert(make_record("a"))
    with pytest.raises(ValueError):
        catalog.add_label(rec.hash, "   ")
    with pytest.raises(RecordNotFound):
        catalog.add_label("unknown", "x")
    with pytest.raises(RecordNotFound):
        catalog.remove_label("unknown", "x")


def test_stats(catalog, make_record):
    catalog.insert(make_record("a", device="CamX", created=dt(2020)))
    catalog.insert(make_record("b", device="CamX", created=dt(2021)))
    catalog.insert(make_record("c", name="c.mp4", fmt=MP4, location=Location(1.0, 2.0)))

    stats = catalog.stats()

    assert stats.count == 3
    assert stats.count_by_format == {"image/jpeg": 2, "video/mp4": 1}
    assert stats.count_by_device == {"CamX": 2, None: 1}
    assert stats.count_by_year == {2020: 1, 2021: 1, None: 1}


def test_normalize_path_keeps_symlinks(tmp_path):
    target = tmp_path / "real"
    target.mkdir()
    link = tmp_path / "link"
    link.symlink_to(target)

    assert normalize_path(link / "a.jpg") == link / "a.jpg"
    assert normalize_path(tmp_path / "real" / "." / "a.jpg") == target / "a.jpg"


def test_create_is_empty():
    catalog = Catalog.create()
    assert len(catalog) == 0
    assert list(catalog.all()) == []


def _race(workers, action):
    """Runs action(i) on `workers` threads released together; returns (results, errors)."""
    barrier = threading.Barrier(workers)
    results, errors = [], []

    def run(i):
        barrier.wait()
        try:
            results.append(action(i))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=run, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results, errors


def test_concurrent_inserts_of_one_hash(catalog, make_record):
    records = [make_record("same", name=f"copy{i}.jpg") for i in range(8)]

    results, errors = _race(8, lambda i: catalog.insert(records[i]))

    assert len(results) == 1
    assert len(errors) == 7
    assert all(isinstance(e, DuplicateHash) for e in errors)
    assert len(catalog) == 1
    assert catalog.lookup_by_path(results[0].filepath) == results[0]


def test_concurrent_inserts_at_one_path(catalog, make_record):
    records = [make_record(f"content{i}", name="shared.jpg") for i in range(8)]

    results, errors = _race(8, lambda i: catalog.insert(records[i]))

    assert len(results) == 1
    assert len(errors) == 7
    assert all(isinstance(e, DuplicatePath) for e in errors)
    assert len(catalog) == 1
    assert catalog.lookup_by_path(results[0].filepath).hash == results[0].hash


def test_all_keeps_its_snapshot_while_paths_change(catalog, make_record, tmp_path):
    for i in range(20):
        catalog.insert(make_record(f"r{i}", name=f"old{i}.jpg"))
    before = {r.hash: r.filepath for r in catalog.all()}

    it = catalog.all()
    first = next(it)

    def move_all():
        for h, p in before.items():
            catalog.update_path(h, tmp_path / "moved" / p.name)

    mover = threading.Thread(target=move_all)
    mover.start()
    mover.join()

    seen = {first.hash: first.filepath}
    seen.update((r.hash, r.filepath) for r in it)
    assert seen == before
    assert all(r.filepath.parent == tmp_path / "moved" for r in catalog.all())
