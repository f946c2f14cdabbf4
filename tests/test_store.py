"""Tests for the annotation store and its backends."""

import pydantic
import pytest

from marginalia.errors import AnnotationNotFoundError, StorageError
from marginalia.models import Annotation, CoordinateAnchor, Reply, ReplyType, TextAnchor
from marginalia.store import AnnotationStore, MemoryBackend, YamlFileBackend, dump_yaml


def _annotation(url: str = "https://example.org/a", text: str = "A note", **kwargs) -> Annotation:
    anchor = kwargs.pop("anchor", TextAnchor(exact="quick brown fox", prefix="The "))
    return Annotation(url=url, text=text, anchor=anchor, **kwargs)


class TestMemoryBackend:
    """Tests for MemoryBackend."""

    def test_missing_key(self) -> None:
        assert MemoryBackend().get("nothing") is None

    def test_values_are_copied(self) -> None:
        backend = MemoryBackend()
        value = [{"a": 1}]
        backend.set("key", value)
        value[0]["a"] = 2

        stored = backend.get("key")
        stored[0]["a"] = 3

        assert backend.get("key") == [{"a": 1}]


class TestYamlFileBackend:
    """Tests for YamlFileBackend."""

    def test_missing_file(self, tmp_path) -> None:
        assert YamlFileBackend(tmp_path / "none.yaml").get("key") is None

    def test_round_trip(self, tmp_path) -> None:
        backend = YamlFileBackend(tmp_path / "store.yaml")
        backend.set("items", [{"name": "first", "count": 2}])
        backend.set("other", "value")

        assert backend.get("items") == [{"name": "first", "count": 2}]
        assert backend.get("other") == "value"

    def test_creates_parent_directories(self, tmp_path) -> None:
        path = tmp_path / "nested" / "dir" / "store.yaml"
        YamlFileBackend(path).set("key", 1)
        assert path.exists()

    def test_no_temporary_files_left(self, tmp_path) -> None:
        YamlFileBackend(tmp_path / "store.yaml").set("key", [1, 2, 3])
        assert [p.name for p in tmp_path.iterdir()] == ["store.yaml"]

    def test_yaml_lookalike_strings_survive(self, tmp_path) -> None:
        backend = YamlFileBackend(tmp_path / "store.yaml")
        values = ["no", "yes", "1e5", "2026-01-01T10:00:00Z", "null", "#hash"]
        backend.set("values", values)
        assert backend.get("values") == values

    def test_invalid_yaml(self, tmp_path) -> None:
        path = tmp_path / "store.yaml"
        path.write_text("key: [unclosed\n", encoding="utf-8")
        with pytest.raises(StorageError, match="Failed to read"):
            YamlFileBackend(path).get("key")

    def test_top_level_must_be_mapping(self, tmp_path) -> None:
        path = tmp_path / "store.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(StorageError, match="mapping"):
            YamlFileBackend(path).get("key")

    def test_write_failure(self, tmp_path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(StorageError, match="Failed to write"):
            YamlFileBackend(blocker / "store.yaml").set("key", 1)


class TestDumpYaml:
    """Tests for dump_yaml function."""

    def test_block_style(self) -> None:
        output = dump_yaml({"outer": {"inner": [1, 2]}})
        assert output == "---\nouter:\n  inner:\n    - 1\n    - 2\n"


class TestAnnotationStore:
    """Tests for AnnotationStore CRUD operations."""

    def test_empty(self, store) -> None:
        assert store.all() == []

    def test_save_and_get(self, store) -> None:
        annotation = store.save(_annotation())
        assert store.get(annotation.id) == annotation
        assert store.all() == [annotation]

    def test_get_unknown(self, store) -> None:
        with pytest.raises(AnnotationNotFoundError) as exc_info:
            store.get("missing")
        assert exc_info.value.annotation_id == "missing"

    def test_for_url(self, store) -> None:
        first = store.save(_annotation(url="https://example.org/a"))
        store.save(_annotation(url="https://example.org/b"))
        third = store.save(_annotation(url="https://example.org/a"))

        assert store.for_url("https://example.org/a") == [first, third]
        assert store.for_url("https://example.org/none") == []

    def test_update(self, store) -> None:
        annotation = store.save(_annotation())

        updated = store.update(annotation.id, text="  Changed  ", tags=["x", " ", "y "])

        assert updated.text == "Changed"
        assert updated.tags == ["x", "y"]
        assert updated.updated is not None
        assert updated.anchor == annotation.anchor
        assert store.get(annotation.id) == updated

    def test_invalid_update_writes_nothing(self, store) -> None:
        annotation = store.save(_annotation())
        with pytest.raises(pydantic.ValidationError):
            store.update(annotation.id, text="   ")
        assert store.get(annotation.id) == annotation

    def test_update_unknown(self, store) -> None:
        with pytest.raises(AnnotationNotFoundError):
            store.update("missing", text="x")

    def test_reanchor(self, store) -> None:
        annotation = store.save(_annotation())
        new_anchor = TextAnchor(exact="lazy dog")

        updated = store.reanchor(annotation.id, new_anchor)

        assert updated.anchor == new_anchor
        assert store.get(annotation.id).anchor == new_anchor

    def test_delete(self, store) -> None:
        keep = store.save(_annotation(text="keep"))
        drop = store.save(_annotation(text="drop"))

        store.delete(drop.id)

        assert store.all() == [keep]

    def test_delete_unknown(self, store) -> None:
        store.save(_annotation())
        with pytest.raises(AnnotationNotFoundError):
            store.delete("missing")
        assert len(store.all()) == 1

    def test_replies(self, store) -> None:
        annotation = store.save(_annotation())
        agree = Reply(annotation_id=annotation.id, type=ReplyType.AGREE, text="Yes")
        comment = Reply(annotation_id="wrong", text="Also")

        store.add_reply(annotation.id, agree)
        updated = store.add_reply(annotation.id, comment)

        assert [r.text for r in updated.replies] == ["Yes", "Also"]
        assert updated.replies[1].annotation_id == annotation.id

        remaining = store.delete_reply(annotation.id, agree.id)
        assert [r.text for r in remaining.replies] == ["Also"]

    def test_pins_round_trip(self, store) -> None:
        pin = store.save(_annotation(anchor=CoordinateAnchor(x=10, y=20.5)))
        loaded = store.get(pin.id)
        assert isinstance(loaded.anchor, CoordinateAnchor)
        assert (loaded.anchor.x, loaded.anchor.y) == (10, 20.5)

    def test_custom_collection_key(self) -> None:
        backend = MemoryBackend()
        AnnotationStore(backend, collection="other").save(_annotation())
        assert backend.get("marginalia_annotations") is None
        assert len(backend.get("other")) == 1

    def test_invalid_stored_collection(self) -> None:
        backend = MemoryBackend()
        backend.set("marginalia_annotations", [{"url": "x"}])
        with pytest.raises(StorageError, match="invalid"):
            AnnotationStore(backend).all()


class TestYamlAnnotationStore:
    """Tests for the store persisted to a YAML file."""

    def test_persists_across_instances(self, tmp_path) -> None:
        path = tmp_path / "annotations.yaml"
        annotation = AnnotationStore(YamlFileBackend(path)).save(
            _annotation(text="no", tags=["yes"])
        )

        loaded = AnnotationStore(YamlFileBackend(path)).get(annotation.id)

        assert loaded == annotation

    def test_record_shape(self, tmp_path) -> None:
        path = tmp_path / "annotations.yaml"
        AnnotationStore(YamlFileBackend(path)).save(_annotation())

        content = path.read_text(encoding="utf-8")

        assert content.startswith("---\nmarginalia_annotations:\n")
        assert "parentPath:" in content
        assert "scrollPercentage:" in content
        assert "parent_path" not in content
