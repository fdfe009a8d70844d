import random

from pubsub import pub

from metrowatch.core.store import REPORT_DROPPED, REPORTS_CHANGED, ReportStore
from helpers import make_row


def ids(store):
    return [r.id for r in store.reports]


def test_snapshot_replaces_collection(store):
    store.apply_snapshot([make_row("a"), make_row("b")])
    assert ids(store) == ["a", "b"]

    store.apply_snapshot([make_row("c")])
    assert ids(store) == ["c"]
    assert store.get("a") is None


def test_snapshot_drops_rows_without_id(store):
    kept = store.apply_snapshot([make_row("a"), {"description": "no id"}, "junk"])
    assert kept == 1
    assert ids(store) == ["a"]
    assert store.dropped == 2


def test_snapshot_keeps_ids_unique(store):
    store.apply_snapshot([make_row("a", description="old"), make_row("b"), make_row("a", description="new")])
    assert ids(store) == ["a", "b"]
    assert store.get("a").description == "new"


def test_snapshot_maps_backend_columns(store):
    store.apply_snapshot(
        [make_row(7, url="https://img.example/1.png", upvote=None, status="NOT_RESOLVED")]
    )
    report = store.get("7")
    assert report.author == "Juan"
    assert report.image_url == "https://img.example/1.png"
    assert report.upvote_count == 0
    assert report.status == "not resolved"
    assert report.position == (14.55, 121.02)


def test_unknown_status_is_rejected(store):
    store.apply_snapshot([make_row("a", status="archived")])
    assert len(store) == 0


def test_insert_appends(store):
    store.apply_snapshot([make_row("a")])
    assert store.apply_change({"kind": "insert", "new": make_row("b")})
    assert ids(store) == ["a", "b"]


def test_insert_existing_id_replaces(store):
    store.apply_snapshot([make_row("a"), make_row("b")])
    store.apply_change({"kind": "insert", "new": make_row("a", severity="low")})
    assert ids(store) == ["a", "b"]
    assert store.get("a").severity == "low"


def test_update_replaces_in_place(store):
    store.apply_snapshot([make_row("a"), make_row("b")])
    store.apply_change({"eventType": "UPDATE", "new": make_row("a", status="resolved"), "old": {}})
    assert ids(store) == ["a", "b"]
    assert store.get("a").status == "resolved"


def test_update_for_missing_id_inserts(store):
    store.apply_snapshot([make_row("a")])
    store.apply_change({"kind": "update", "new": make_row("z")})

    other = ReportStore()
    other.apply_snapshot([make_row("a")])
    other.apply_change({"kind": "insert", "new": make_row("z")})

    assert store.reports == other.reports


def test_delete_removes(store):
    store.apply_snapshot([make_row("a"), make_row("b")])
    assert store.apply_change({"eventType": "DELETE", "new": {}, "old": {"report_id": "a"}})
    assert ids(store) == ["b"]


def test_delete_for_missing_id_is_noop(store):
    store.apply_snapshot([make_row("a")])
    before = store.reports
    version = store.version
    assert not store.apply_change({"kind": "delete", "old": {"report_id": "zzz"}})
    assert store.reports is before
    assert len(store) == 1
    assert store.version == version


def test_duplicate_update_does_not_publish(store):
    store.apply_snapshot([make_row("a")])
    store.apply_change({"kind": "update", "new": make_row("a", severity="low")})
    version = store.version
    assert not store.apply_change({"kind": "update", "new": make_row("a", severity="low")})
    assert store.version == version


def test_mongo_change_stream_shape(store):
    store.apply_snapshot([make_row("a")])
    store.apply_change({"operationType": "replace", "fullDocument": make_row("a", severity="medium"), "documentKey": {"report_id": "a"}})
    assert store.get("a").severity == "medium"
    store.apply_change({"operationType": "delete", "fullDocument": None, "documentKey": {"report_id": "a"}})
    assert len(store) == 0


def test_malformed_events_are_dropped_and_reported(store):
    seen = []

    def listener(store, reason, payload):
        seen.append(reason)

    pub.subscribe(listener, REPORT_DROPPED)
    try:
        store.apply_snapshot([make_row("a")])
        assert not store.apply_change({"kind": "insert", "new": {"description": "no id"}})
        assert not store.apply_change({"kind": "delete", "old": {}})
        assert not store.apply_change({"kind": "truncate", "new": make_row("b")})
        assert not store.apply_change(None)
    finally:
        pub.unsubscribe(listener, REPORT_DROPPED)

    assert ids(store) == ["a"]
    assert store.dropped == 4
    assert len(seen) == 4


def test_reports_view_is_not_mutated_by_later_changes(store):
    store.apply_snapshot([make_row("a")])
    view = store.reports
    store.apply_change({"kind": "insert", "new": make_row("b")})
    assert [r.id for r in view] == ["a"]


def test_replay_matches_reference_map():
    rng = random.Random(1234)
    store = ReportStore()
    reference = {}
    for step in range(300):
        report_id = f"r{rng.randint(0, 15)}"
        kind = rng.choice(["insert", "update", "delete"])
        if kind == "delete":
            store.apply_change({"kind": kind, "old": {"report_id": report_id}})
            reference.pop(report_id, None)
        else:
            store.apply_change({"kind": kind, "new": make_row(report_id, upvote=step)})
            reference[report_id] = step
    assert sorted(ids(store)) == sorted(reference)
    assert len(set(ids(store))) == len(store)
    for report_id, upvotes in reference.items():
        assert store.get(report_id).upvote_count == upvotes


def test_comments_are_local_and_cleared_on_delete(store):
    store.apply_snapshot([make_row("a")])
    store.add_comment("a", "Crew dispatched")
    store.apply_change({"kind": "update", "new": make_row("a", status="ongoing")})
    assert [c.text for c in store.comments_for("a")] == ["Crew dispatched"]

    store.apply_change({"kind": "delete", "old": {"report_id": "a"}})
    assert store.comments_for("a") == []


def test_update_without_users_join_keeps_author(store):
    store.apply_snapshot([make_row("a")])
    echo = make_row("a", status="resolved")
    del echo["users"]
    assert store.apply_change({"operationType": "update", "fullDocument": echo, "documentKey": {"report_id": "a"}})
    assert store.get("a").status == "resolved"
    assert store.get("a").author == "Juan"

    # same record again is still a no-op once the author is carried over
    version = store.version
    assert not store.apply_change({"kind": "update", "new": echo})
    assert store.version == version


def test_author_not_carried_to_another_user(store):
    store.apply_snapshot([make_row("a")])
    moved = make_row("a", user_id="u2")
    del moved["users"]
    store.apply_change({"kind": "update", "new": moved})
    assert store.get("a").author is None


def test_failing_listener_does_not_escape_apply_change(store):
    def listener(store, version):
        raise RuntimeError("map went away")

    pub.subscribe(listener, REPORTS_CHANGED)
    try:
        assert store.apply_change({"kind": "insert", "new": make_row("a")})
        assert not store.apply_change({"kind": "insert", "new": {"description": "no id"}})
    finally:
        pub.unsubscribe(listener, REPORTS_CHANGED)

    assert ids(store) == ["a"]
    assert store.version == 1
