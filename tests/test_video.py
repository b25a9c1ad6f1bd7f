"""
Tests for Video: id lifecycle, attribute validation, parsing and serialization.
"""
import logging
from datetime import datetime, timezone

import pytest

from annotations_tool.domain import Tracks, User
from annotations_tool.video import Video


@pytest.fixture
def video(store, no_retry):
    return Video({"title": "Lecture 1"}, store=store, policy=no_retry)


@pytest.fixture
def persisted(store, no_retry):
    return Video({"id": 3, "created_at": 1000}, store=store, policy=no_retry)


class TestIdentity:

    def test_new_video_gets_a_client_id(self, video):
        assert str(video.id).startswith("c")
        assert video.id == video.cid
        assert video.to_create is True
        assert video.no_post is True
        assert not video.is_persisted()

    def test_client_ids_are_unique(self, store):
        assert Video(store=store).id != Video(store=store).id

    def test_video_with_id_is_persisted_and_loads_nothing_by_itself(self, persisted, store):
        assert persisted.id == 3
        assert persisted.is_persisted()
        assert store.calls == []

    def test_load_dependents_of_persisted_video(self, persisted, store):
        ready = []
        persisted.ready.connect(ready.append)
        persisted.load_dependents()
        for name in ("tracks", "categories", "scales"):
            store.succeed(f"videos/3/{name}")
        assert ready == [3]

    def test_load_dependents_requires_persisted_id(self, video):
        with pytest.raises(RuntimeError):
            video.load_dependents()

    def test_same_id_is_a_no_op(self, persisted, store):
        assert persisted.set({"id": 3}) is None
        assert store.calls == []

    def test_persisted_id_can_not_change(self, persisted, store):
        error = persisted.set({"id": 4})
        assert error == "'id' attribute can not be modified once persisted!"
        assert persisted.id == 3
        assert store.calls == []

    def test_change_identity_rejects_persisted(self, persisted):
        with pytest.raises(ValueError):
            persisted.change_identity(9)

    def test_validate_does_not_trigger_loads(self, video, store):
        assert video.validate({"id": 9}) is None
        assert video.id == video.cid
        assert store.calls == []


class TestValidation:

    @pytest.mark.parametrize("attrs, message", [
        ({"created_at": "yesterday"}, "'created_at' attribute must be a number!"),
        ({"created_at": True}, "'created_at' attribute must be a number!"),
        ({"updated_at": "now"}, "'updated_at' attribute must be a number!"),
        ({"deleted_at": [1]}, "'deleted_at' attribute must be a number!"),
        ({"tags": "{not json"}, "'tags' attribute must be a string or a JSON object"),
        ({"tags": 12}, "'tags' attribute must be a string or a JSON object"),
        ({"created_by": "bob"}, "'created_by' attribute must be a number or an instance of 'User'"),
        ({"updated_by": {"id": 1}}, "'updated_by' attribute must be a number or an instance of 'User'"),
        ({"deleted_by": "x"}, "'deleted_by' attribute must be a number or an instance of 'User'"),
        ({"tracks": []}, "'tracks' attribute must be an instance of 'Tracks'"),
        ({"access": 42}, "'access' attribute must be one of the ACCESS values"),
    ])
    def test_invalid_attributes(self, video, attrs, message):
        assert video.validate(attrs) == message

    @pytest.mark.parametrize("attrs", [
        {"created_at": 1336000000000},
        {"updated_at": 1.5, "deleted_at": 2},
        {"tags": '{"lang": "en"}'},
        {"tags": {"lang": "en"}},
        {"tags": "null"},
        {"tags": "[]"},
        {"created_by": 4},
        {"created_by": User(id=4, nickname="ann")},
        {"tracks": Tracks()},
        {"access": 0},
    ])
    def test_valid_attributes(self, video, attrs):
        assert video.validate(attrs) is None

    def test_created_at_is_immutable_once_set(self, persisted):
        assert persisted.validate({"created_at": 1000}) is None
        assert persisted.validate({"created_at": 2000}) == (
            "'created_at' attribute can not be modified after initialization!"
        )

    def test_rejected_set_changes_nothing(self, video):
        invalid = []
        video.invalid.connect(invalid.append)

        error = video.set({"title": "Other", "updated_at": "bad"})

        assert error == "'updated_at' attribute must be a number!"
        assert invalid == [error]
        assert video.get("title") == "Lecture 1"

    def test_id_change_without_a_store_changes_nothing(self):
        video = Video({"title": "Lecture 1"})
        client_id = video.id

        with pytest.raises(RuntimeError):
            video.set({"id": 9, "title": "Other"})

        assert video.id == client_id
        assert not video.is_persisted()
        assert video.get("title") == "Lecture 1"
        assert video.tracks.url == f"videos/{client_id}/tracks"

    def test_id_change_without_a_store_is_fine_when_nothing_needs_loading(self):
        video = Video({
            "tracks": [{"id": 1, "name": "Speaker"}],
            "categories": [{"id": 2, "name": "Question"}],
            "scales": [{"id": 3, "name": "Agreement"}],
        })
        ready = []
        video.ready.connect(ready.append)

        video.set({"id": 9})

        assert ready == [9]
        assert video.tracks.url == "videos/9/tracks"

    def test_set_applies_and_parses_tags(self, video):
        changed = []
        video.changed.connect(changed.append)
        assert video.set({"tags": '{"lang": "en"}', "updated_at": 5}) is None
        assert video.get("tags") == {"lang": "en"}
        assert video.get("updated_at") == 5
        assert changed == [video]

    def test_constructor_rejects_invalid_attributes(self, store):
        with pytest.raises(ValueError):
            Video({"created_at": "soon"}, store=store)


class TestSerialization:

    def test_to_dict_leaves_out_dependent_collections(self, persisted):
        persisted.set({"created_by": User(id=5, nickname="ann")})
        d = persisted.to_dict()
        assert d["id"] == 3
        assert d["created_by"] == 5
        assert d["access"] == 1
        for name in ("tracks", "categories", "scales"):
            assert name not in d

    def test_parse_timestamps_and_json_fields(self, video):
        attrs = video.parse({
            "created_at": "2012-05-01T10:00:00Z",
            "updated_at": None,
            "settings": '{"rate": 2}',
            "tags": '["a"]',
        })
        expected = datetime(2012, 5, 1, 10, 0, tzinfo=timezone.utc).timestamp() * 1000.0
        assert attrs["created_at"] == expected
        assert attrs["updated_at"] is None
        assert attrs["settings"] == {"rate": 2}
        assert attrs["tags"] == ["a"]

    def test_parse_unwraps_attributes(self, video):
        assert video.parse({"attributes": {"title": "x"}}) == {"title": "x"}

    def test_malformed_json_is_dropped_with_a_warning(self, video, caplog):
        with caplog.at_level(logging.WARNING):
            attrs = video.parse({"settings": "{oops", "created_at": "not a date"})
        assert attrs["settings"] is None
        assert attrs["created_at"] is None
        assert "Can not parse" in caplog.text


class TestSave:

    def test_new_video_is_saved_with_put_then_loads_dependents(self, video, store):
        ready = []
        video.ready.connect(ready.append)
        temp_id = video.id

        video.save()

        assert store.pending("create") == []
        (call,) = store.pending("update")
        assert call.url == "videos"
        assert call.rid == temp_id
        assert "tracks" not in call.payload

        store.succeed("videos", {"id": 12, "title": "Lecture 1"}, op="update")
        assert video.id == 12
        assert video.is_persisted()
        assert sorted(store.pending_urls()) == [
            "videos/12/categories", "videos/12/scales", "videos/12/tracks",
        ]

        for name in ("tracks", "categories", "scales"):
            store.succeed(f"videos/12/{name}")
        assert ready == [12]

    def test_save_failure_is_reported(self, video, store):
        errors = []
        video.save(on_error=errors.append)
        store.fail("videos", "disk full", op="update")
        assert errors == ["disk full"]
        assert not video.is_persisted()
