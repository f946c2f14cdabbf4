"""
Persistence of the annotation collection.

The whole collection lives under one key of a key-value backend. Every
mutation is a single read-modify-write of that key: the new collection is
built and validated in memory first and written in one step, so a failure
never leaves a partially updated collection behind. There is no locking;
concurrent writers follow last-write-wins.
"""

from __future__ import annotations

import copy
import io
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import ruamel.yaml
from pydantic import ValidationError
from ruamel.yaml.error import YAMLError

from marginalia.config import COLLECTION_KEY
from marginalia.errors import AnnotationNotFoundError, StorageError
from marginalia.logging_config import logger
from marginalia.models import Annotation, Reply, TextAnchor, utcnow


def dump_yaml(data: Any) -> str:
    """
    Render data as a YAML document.

    Block style throughout, two-space mapping indent and no trailing
    whitespace, so stored collections diff cleanly.
    """
    yaml_writer = ruamel.yaml.YAML()
    yaml_writer.default_flow_style = False
    yaml_writer.indent(mapping=2, sequence=4, offset=2)
    yaml_writer.width = 100
    yaml_writer.explicit_start = True

    buffer = io.StringIO()
    yaml_writer.dump(data, buffer)
    return "\n".join(line.rstrip() for line in buffer.getvalue().splitlines()) + "\n"


class KeyValueBackend(Protocol):
    """Minimal key-value store holding JSON-compatible values."""

    def get(self, key: str) -> Any | None:
        """Return the value stored under ``key``, or None."""
        ...

    def set(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``."""
        ...


class MemoryBackend:
    """In-process backend, mainly for tests and short-lived sessions."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(key))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)


class YamlFileBackend:
    """
    Backend storing all keys in one YAML file.

    Writes go to a temporary file in the same directory which then replaces
    the original, so readers see either the old or the new file.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = ruamel.yaml.YAML(typ="safe", pure=True).load(f)
        except (OSError, YAMLError) as e:
            raise StorageError(f"Failed to read {self.path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageError(f"Expected a mapping at the top of {self.path}")
        return data

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        content = dump_yaml(data)

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                    f.write(content)
                os.replace(tmp_name, self.path)
            except BaseException:
                os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {self.path}: {e}") from e


class AnnotationStore:
    """CRUD operations over the annotation collection."""

    def __init__(
        self, backend: KeyValueBackend, collection: str = COLLECTION_KEY
    ) -> None:
        """
        Initialize the store.

        Args:
            backend: Where the collection is kept
            collection: Key of the collection in the backend
        """
        self.backend = backend
        self.collection = collection

    def all(self) -> list[Annotation]:
        """
        Load every annotation.

        Raises:
            StorageError: If the stored collection cannot be read or is invalid
        """
        records = self.backend.get(self.collection) or []
        try:
            return [Annotation.from_record(record) for record in records]
        except ValidationError as e:
            raise StorageError(f"Stored collection is invalid: {e}") from e

    def for_url(self, url: str) -> list[Annotation]:
        """Annotations belonging to one page."""
        return [a for a in self.all() if a.url == url]

    def get(self, annotation_id: str) -> Annotation:
        """
        Look up one annotation.

        Raises:
            AnnotationNotFoundError: If no annotation has this id
        """
        for annotation in self.all():
            if annotation.id == annotation_id:
                return annotation
        raise AnnotationNotFoundError(annotation_id)

    def save(self, annotation: Annotation) -> Annotation:
        """Append a new annotation to the collection."""

        def append(annotations: list[Annotation]) -> list[Annotation]:
            return [*annotations, annotation]

        self._modify(append)
        logger.debug(f"Saved annotation {annotation.id}")
        return annotation

    def update(
        self,
        annotation_id: str,
        text: str | None = None,
        tags: list[str] | None = None,
    ) -> Annotation:
        """Edit the note text and/or tags, stamping the update time."""
        changes: dict[str, Any] = {"updated": utcnow()}
        if text is not None:
            changes["text"] = text
        if tags is not None:
            changes["tags"] = tags
        return self._replace(annotation_id, changes)

    def reanchor(self, annotation_id: str, anchor: TextAnchor) -> Annotation:
        """Replace the whole anchor of an annotation."""
        return self._replace(annotation_id, {"anchor": anchor, "updated": utcnow()})

    def delete(self, annotation_id: str) -> None:
        """Remove an annotation and its replies."""

        def remove(annotations: list[Annotation]) -> list[Annotation]:
            remaining = [a for a in annotations if a.id != annotation_id]
            if len(remaining) == len(annotations):
                raise AnnotationNotFoundError(annotation_id)
            return remaining

        self._modify(remove)
        logger.debug(f"Deleted annotation {annotation_id}")

    def add_reply(self, annotation_id: str, reply: Reply) -> Annotation:
        """Append a reply to an annotation's thread."""
        annotation = self.get(annotation_id)
        if reply.annotation_id != annotation_id:
            reply = reply.model_copy(update={"annotation_id": annotation_id})
        return self._replace(annotation_id, {"replies": [*annotation.replies, reply]})

    def delete_reply(self, annotation_id: str, reply_id: str) -> Annotation:
        """Remove a reply from an annotation's thread."""
        annotation = self.get(annotation_id)
        replies = [r for r in annotation.replies if r.id != reply_id]
        return self._replace(annotation_id, {"replies": replies})

    def _replace(self, annotation_id: str, changes: dict[str, Any]) -> Annotation:
        replaced: list[Annotation] = []

        def apply(annotations: list[Annotation]) -> list[Annotation]:
            result = []
            for annotation in annotations:
                if annotation.id == annotation_id:
                    # Re-validate so an invalid edit fails before anything is written
                    annotation = Annotation.model_validate(
                        {**dict(annotation), **changes}
                    )
                    replaced.append(annotation)
                result.append(annotation)
            if not replaced:
                raise AnnotationNotFoundError(annotation_id)
            return result

        self._modify(apply)
        return replaced[0]

    def _modify(
        self, change: Callable[[list[Annotation]], list[Annotation]]
    ) -> None:
        """Read the collection, apply ``change`` and write the result in one go."""
        annotations = change(self.all())
        records = [annotation.to_record() for annotation in annotations]
        self.backend.set(self.collection, records)
