"""Document store primitives: documents, filters and atomic write batches."""

from dataclasses import dataclass, field
from typing import Literal


class _ServerTimestamp:
    """Sentinel replaced by the store's clock when a batch is committed."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Document:
    """A stored document addressed by ``collection/id``."""

    collection: str
    id: str
    data: dict[str, object]

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"


@dataclass(frozen=True)
class FieldFilter:
    """Equality filter on a top-level document field."""

    field: str
    value: object


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into its collection path and document id."""
    collection, _, doc_id = path.strip("/").rpartition("/")
    if not collection or not doc_id:
        raise ValueError(f"Not a document path: {path!r}")
    return collection, doc_id


OperationKind = Literal["create", "set", "update", "delete"]


@dataclass(frozen=True)
class BatchOperation:
    """One write inside a batch.

    ``precondition`` holds field values the stored document must still carry for
    the whole batch to apply.
    """

    kind: OperationKind
    collection: str
    id: str
    data: dict[str, object] = field(default_factory=dict)
    merge: bool = False
    server_timestamps: tuple[str, ...] = ()
    precondition: dict[str, object] | None = None

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def to_payload(self) -> dict[str, object]:
        """Serialize the operation for the ``commit_documents`` function."""
        return {
            "kind": self.kind,
            "collection": self.collection,
            "id": self.id,
            "data": self.data,
            "merge": self.merge,
            "server_timestamps": list(self.server_timestamps),
            "precondition": self.precondition,
        }


class WriteBatch:
    """Collects writes that must be applied together or not at all."""

    def __init__(self) -> None:
        self.operations: list[BatchOperation] = []

    def __len__(self) -> int:
        return len(self.operations)

    def create(self, path: str, data: dict[str, object]) -> "WriteBatch":
        """Create a document; the batch fails if it already exists."""
        self._append("create", path, data)
        return self

    def set(
        self, path: str, data: dict[str, object], *, merge: bool = False
    ) -> "WriteBatch":
        """Create or overwrite a document (or merge fields into it)."""
        self._append("set", path, data, merge=merge)
        return self

    def update(
        self,
        path: str,
        data: dict[str, object],
        *,
        precondition: dict[str, object] | None = None,
    ) -> "WriteBatch":
        """Merge fields into an existing document; fails if it is missing."""
        self._append("update", path, data, precondition=precondition)
        return self

    def delete(
        self, path: str, *, precondition: dict[str, object] | None = None
    ) -> "WriteBatch":
        """Delete a document; deleting a missing document is a no-op."""
        self._append("delete", path, {}, precondition=precondition)
        return self

    def _append(
        self,
        kind: OperationKind,
        path: str,
        data: dict[str, object],
        *,
        merge: bool = False,
        precondition: dict[str, object] | None = None,
    ) -> None:
        collection, doc_id = split_path(path)
        plain = {
            key: value for key, value in data.items() if value is not SERVER_TIMESTAMP
        }
        stamped = tuple(
            key for key, value in data.items() if value is SERVER_TIMESTAMP
        )
        self.operations.append(
            BatchOperation(
                kind=kind,
                collection=collection,
                id=doc_id,
                data=plain,
                merge=merge,
                server_timestamps=stamped,
                precondition=precondition,
            )
        )
