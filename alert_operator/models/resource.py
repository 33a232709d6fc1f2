"""Object metadata shared by every stored resource."""

from datetime import datetime
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel


class ObjectKey(NamedTuple):
    """The (namespace, name) pair that identifies a stored object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class OwnerReference(BaseModel):
    """Marks an object as owned by another, for cascading deletion."""

    kind: str
    name: str
    uid: str


class ObjectMeta(BaseModel):
    """Identity and lifecycle metadata of a stored object."""

    name: str = ""
    namespace: str = "default"
    generate_name: Optional[str] = None      # Prefix used when name is empty
    uid: str = ""                            # Assigned by the store
    resource_version: int = 0                # Bumped on every write
    labels: Dict[str, str] = {}
    finalizers: List[str] = []
    owner_references: List[OwnerReference] = []
    creation_timestamp: Optional[datetime] = None
    deletion_timestamp: Optional[datetime] = None

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)

    @property
    def deletion_requested(self) -> bool:
        return self.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Append a finalizer. Returns True if the list changed."""
        if finalizer in self.finalizers:
            return False
        self.finalizers = self.finalizers + [finalizer]
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Drop a finalizer. Returns True if the list changed."""
        if finalizer not in self.finalizers:
            return False
        self.finalizers = [f for f in self.finalizers if f != finalizer]
        return True
