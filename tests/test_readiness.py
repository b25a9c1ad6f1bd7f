"""
Tests for ReadinessBarrier: one ready per identity transition whatever the
completion order, the pre-populated collections, failures or overlapping
transitions.
"""
import itertools
from types import SimpleNamespace

import pytest

from annotations_tool.collection import LoadPolicy
from annotations_tool.domain import Categories, Scales, Tracks
from annotations_tool.readiness import ReadinessBarrier
from annotations_tool.video import Video


NAMES = ("tracks", "categories", "scales")

SEED = {
    "tracks": [{"id": 1, "name": "Track 1"}],
    "categories": [{"id": 1, "name": "Cat A"}, {"id": 2, "name": "Cat B"}],
    "scales": [{"id": 1, "name": "Scale 1"}],
}


def _url(video_id, name):
    return f"videos/{video_id}/{name}"


def _new_video(store, policy, prefilled=()):
    attrs = {name: SEED[name] for name in prefilled}
    video = Video(attrs, store=store, policy=policy)
    ready, failed = [], []
    video.ready.connect(ready.append)
    video.load_failed.connect(lambda vid, name, msg: failed.append((vid, name, msg)))
    return video, ready, failed


# =============================================================================
# Completion order / pre-populated subsets
# =============================================================================

class TestReadyOnce:

    @pytest.mark.parametrize("order", list(itertools.permutations(NAMES)))
    def test_ready_once_for_every_completion_order(self, store, no_retry, order):
        video, ready, failed = _new_video(store, no_retry)

        video.set({"id": 7})
        assert sorted(store.pending_urls()) == sorted(_url(7, n) for n in NAMES)

        for name in order:
            assert ready == []
            store.succeed(_url(7, name))

        assert ready == [7]
        assert failed == []
        assert video.barrier.pending() == []

    @pytest.mark.parametrize(
        "prefilled",
        [combo for k in range(len(NAMES) + 1) for combo in itertools.combinations(NAMES, k)],
    )
    def test_ready_once_for_every_prefilled_subset(self, store, no_retry, prefilled):
        video, ready, _failed = _new_video(store, no_retry, prefilled)

        video.set({"id": 7})
        expected = sorted(_url(7, n) for n in NAMES if n not in prefilled)
        assert sorted(store.pending_urls()) == expected

        for url in list(reversed(expected)):
            assert ready == []
            store.succeed(url)

        assert ready == [7]

    def test_prefilled_categories_never_waits_for_a_categories_load(self, store, no_retry):
        video, ready, _failed = _new_video(store, no_retry, prefilled=("categories",))
        assert len(video.categories) == 2

        video.set({"id": 7})
        assert sorted(store.pending_urls()) == [_url(7, "scales"), _url(7, "tracks")]

        store.succeed(_url(7, "scales"))
        assert ready == []
        store.succeed(_url(7, "tracks"), [{"id": 3, "name": "Loaded"}])
        assert ready == [7]
        assert [t.id for t in video.tracks] == [3]

    def test_loads_are_issued_together(self, store, no_retry):
        video, _ready, _failed = _new_video(store, no_retry)
        video.set({"id": 7})
        # nothing completed yet, all three requests are in flight
        assert len(store.pending("fetch")) == 3

    def test_urls_are_rebound_before_loading(self, store, no_retry):
        video, _ready, _failed = _new_video(store, no_retry)
        temp_id = video.id
        assert video.tracks.url == _url(temp_id, "tracks")

        video.set({"id": 7})

        for name in NAMES:
            assert getattr(video, name).url == _url(7, name)
            assert getattr(video, name).scope == 7
        assert all(url.startswith("videos/7/") for url in store.pending_urls())


# =============================================================================
# Failures
# =============================================================================

class TestLoadFailures:

    def test_failed_load_reports_and_never_fires_ready(self, store, no_retry):
        video, ready, failed = _new_video(store, no_retry)
        video.set({"id": 7})

        store.fail(_url(7, "tracks"), "server down")
        store.succeed(_url(7, "categories"))
        store.succeed(_url(7, "scales"))

        assert ready == []
        assert failed == [(7, "tracks", "server down")]
        assert video.barrier.pending() == []

    @pytest.mark.parametrize("rows", [
        [1, 2],
        {"id": 1},
        [{"id": 1, "annotations": [3]}],
    ])
    def test_malformed_rows_report_failure(self, store, no_retry, rows):
        video, ready, failed = _new_video(store, no_retry)
        video.set({"id": 7})

        store.succeed(_url(7, "tracks"), rows)
        store.succeed(_url(7, "categories"))
        store.succeed(_url(7, "scales"))

        assert ready == []
        assert [(vid, name) for vid, name, _msg in failed] == [(7, "tracks")]
        assert len(video.tracks) == 0
        assert video.barrier.pending() == []

    def test_failure_does_not_block_marking_the_others(self, store, no_retry):
        video, _ready, _failed = _new_video(store, no_retry)
        loaded = []
        video.scales.loaded.connect(loaded.append)
        video.set({"id": 7})

        store.fail(_url(7, "categories"))
        store.succeed(_url(7, "scales"), [{"id": 4, "name": "Scale"}])

        assert len(loaded) == 1
        assert [s.id for s in video.scales] == [4]
        # tracks still outstanding, transition not settled
        assert video.barrier.pending() == [7]

    def test_retry_with_backoff_then_ready(self, store, scheduler):
        policy = LoadPolicy(retries=2, backoff_ms=100, scheduler=scheduler)
        video, ready, failed = _new_video(store, policy)
        video.set({"id": 7})

        store.fail(_url(7, "tracks"))
        store.fail(_url(7, "tracks"))
        store.succeed(_url(7, "tracks"))
        store.succeed(_url(7, "categories"))
        store.succeed(_url(7, "scales"))

        assert scheduler.delays == [100, 200]
        assert ready == [7]
        assert failed == []

    def test_retries_are_bounded(self, store, scheduler):
        policy = LoadPolicy(retries=1, backoff_ms=10, scheduler=scheduler)
        video, ready, failed = _new_video(store, policy)
        video.set({"id": 7})

        store.fail(_url(7, "scales"), "first")
        store.fail(_url(7, "scales"), "second")

        assert scheduler.delays == [10]
        assert failed == [(7, "scales", "second")]
        assert _url(7, "scales") not in store.pending_urls()
        assert ready == []


# =============================================================================
# Overlapping transitions
# =============================================================================

class TestOverlappingTransitions:

    def _barrier(self, store):
        entity = SimpleNamespace(id=1)
        policy = LoadPolicy(retries=0)
        collections = {
            "tracks": Tracks(parent_entity=entity, store=store, policy=policy),
            "categories": Categories(parent_entity=entity, store=store, policy=policy),
            "scales": Scales(parent_entity=entity, store=store, policy=policy),
        }
        barrier = ReadinessBarrier(collections)
        ready, failed = [], []
        barrier.ready.connect(ready.append)
        barrier.failed.connect(lambda ident, name, msg: failed.append((ident, name)))
        return entity, barrier, ready, failed

    def test_each_transition_has_its_own_flags(self, store):
        entity, barrier, ready, failed = self._barrier(store)

        barrier.trigger(entity, 1)
        store.succeed(_url(1, "tracks"))
        store.succeed(_url(1, "categories"))

        entity.id = 2
        barrier.trigger(entity, 2)
        assert sorted(barrier.pending()) == [1, 2]

        # the second transition does not inherit the first one's flags
        store.succeed(_url(2, "scales"))
        assert ready == []

        store.succeed(_url(2, "tracks"))
        store.succeed(_url(2, "categories"))
        assert ready == [2]

    def test_stale_load_completes_without_contaminating_the_new_scope(self, store):
        entity, barrier, ready, failed = self._barrier(store)

        barrier.trigger(entity, 1)
        entity.id = 2
        barrier.trigger(entity, 2)

        for name in NAMES:
            store.succeed(_url(2, name))
        assert ready == [2]

        # answers for id 1 arrive late: discarded and reported, no second ready
        store.succeed(_url(1, "tracks"), [{"id": 99, "name": "stale"}])
        assert ready == [2]
        assert failed == [(1, "tracks")]
        assert barrier._collections["tracks"].get(99) is None

    def test_trigger_requires_an_identity(self, store):
        entity, barrier, _ready, _failed = self._barrier(store)
        with pytest.raises(ValueError):
            barrier.trigger(entity, None)
