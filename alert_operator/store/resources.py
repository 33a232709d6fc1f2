"""
Resource Store: holds policies, their child conditions and credential secrets.

Updated by: the reconcilers (status, finalizers, back-filled identities)
           and the API (desired specs, deletion requests)
Queried by: the reconcilers and the API

Object semantics:
- create() assigns a name from `generate_name` when the name is empty.
- update() only accepts an object carrying the stored resource_version;
  a stale copy raises ResourceConflict and the caller re-reads.
- delete() of an object that still carries finalizers only marks it for
  deletion; it disappears once an update() leaves it with no finalizers.
- Removing an object cascades delete() to every object it owns.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel

from alert_operator.errors.collector import ReconcileError
from alert_operator.models.resource import ObjectKey

logger = logging.getLogger(__name__)

GENERATED_SUFFIX_LENGTH = 5


class ObjectNotFound(ReconcileError):
    """The requested object does not exist."""

    def __init__(self, kind: str, key: ObjectKey):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} not found")


class ObjectAlreadyExists(ReconcileError):
    """An object with the same kind and key is already stored."""

    def __init__(self, kind: str, key: ObjectKey):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} already exists")


class ResourceConflict(ReconcileError):
    """The object changed in the store since the caller read it."""

    def __init__(self, kind: str, key: ObjectKey, expected: int, actual: int):
        self.kind = kind
        self.key = key
        super().__init__(
            f"{kind} {key} was modified (read version {expected}, stored version {actual})"
        )


class ResourceStore:
    """
    In-memory object store. Every read returns a deep copy, so callers edit
    their copy and write it back with update().
    """

    def __init__(self):
        self._objects: Dict[Tuple[str, str, str], BaseModel] = {}
        self._secrets: Dict[Tuple[str, str], Dict[str, str]] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _index(kind: str, key: ObjectKey) -> Tuple[str, str, str]:
        return (kind, key.namespace, key.name)

    def create(self, resource: BaseModel) -> BaseModel:
        """Store a new object and return the stored copy."""
        with self._lock:
            obj = resource.model_copy(deep=True)
            meta = obj.metadata
            if not meta.name:
                if not meta.generate_name:
                    raise ValueError(f"{obj.kind} needs a name or generate_name")
                meta.name = self._generate_name(obj.kind, meta.namespace, meta.generate_name)

            index = self._index(obj.kind, meta.key)
            if index in self._objects:
                raise ObjectAlreadyExists(obj.kind, meta.key)

            meta.uid = uuid4().hex
            meta.resource_version = 1
            meta.creation_timestamp = datetime.utcnow()
            meta.deletion_timestamp = None
            self._objects[index] = obj
            logger.debug("created %s %s", obj.kind, meta.key)
            return obj.model_copy(deep=True)

    def _generate_name(self, kind: str, namespace: str, prefix: str) -> str:
        while True:
            name = prefix + uuid4().hex[:GENERATED_SUFFIX_LENGTH]
            if (kind, namespace, name) not in self._objects:
                return name

    def get(self, kind: str, key: ObjectKey) -> BaseModel:
        with self._lock:
            obj = self._objects.get(self._index(kind, key))
            if obj is None:
                raise ObjectNotFound(kind, key)
            return obj.model_copy(deep=True)

    def exists(self, kind: str, key: ObjectKey) -> bool:
        with self._lock:
            return self._index(kind, key) in self._objects

    def list(self, kind: str, namespace: Optional[str] = None) -> List[BaseModel]:
        with self._lock:
            return [
                obj.model_copy(deep=True)
                for (k, ns, _), obj in sorted(self._objects.items())
                if k == kind and (namespace is None or ns == namespace)
            ]

    def update(self, resource: BaseModel) -> BaseModel:
        """
        Replace a stored object. An object marked for deletion whose last
        finalizer was just removed is dropped instead.

        Raises ResourceConflict when `resource` was read before the latest
        write.
        """
        with self._lock:
            meta = resource.metadata
            index = self._index(resource.kind, meta.key)
            current = self._objects.get(index)
            if current is None:
                raise ObjectNotFound(resource.kind, meta.key)
            if meta.resource_version != current.metadata.resource_version:
                raise ResourceConflict(
                    resource.kind, meta.key,
                    meta.resource_version, current.metadata.resource_version,
                )

            obj = resource.model_copy(deep=True)
            obj.metadata.uid = current.metadata.uid
            obj.metadata.creation_timestamp = current.metadata.creation_timestamp
            # Deletion can be requested but never withdrawn
            if current.metadata.deletion_timestamp is not None:
                obj.metadata.deletion_timestamp = current.metadata.deletion_timestamp
            obj.metadata.resource_version = current.metadata.resource_version + 1

            if obj.metadata.deletion_requested and not obj.metadata.finalizers:
                self._remove(index)
                return obj.model_copy(deep=True)

            self._objects[index] = obj
            return obj.model_copy(deep=True)

    def delete(self, kind: str, key: ObjectKey) -> None:
        """Request deletion of an object."""
        with self._lock:
            index = self._index(kind, key)
            obj = self._objects.get(index)
            if obj is None:
                raise ObjectNotFound(kind, key)

            if obj.metadata.finalizers:
                if obj.metadata.deletion_timestamp is None:
                    obj.metadata.deletion_timestamp = datetime.utcnow()
                    obj.metadata.resource_version += 1
                    logger.debug("%s %s marked for deletion", kind, key)
                return

            self._remove(index)

    def _remove(self, index: Tuple[str, str, str]) -> None:
        obj = self._objects.pop(index)
        logger.debug("removed %s %s", obj.kind, obj.metadata.key)
        self._collect_dependents(obj.metadata.uid)

    def _collect_dependents(self, owner_uid: str) -> None:
        """Cascade deletion to every object owned by `owner_uid`."""
        dependents = [
            (kind, obj.metadata.key)
            for (kind, _, _), obj in list(self._objects.items())
            if any(ref.uid == owner_uid for ref in obj.metadata.owner_references)
        ]
        for kind, key in dependents:
            if self._index(kind, key) in self._objects:
                self.delete(kind, key)

    # --- Secrets ---

    def put_secret(self, namespace: str, name: str, data: Dict[str, str]) -> None:
        with self._lock:
            self._secrets[(namespace, name)] = dict(data)

    def get_secret(self, namespace: str, name: str) -> Dict[str, str]:
        with self._lock:
            data = self._secrets.get((namespace, name))
            if data is None:
                raise ObjectNotFound("Secret", ObjectKey(namespace, name))
            return dict(data)
