"""Model blob codec and storage."""
from .codec import serialize_dataset, deserialize_dataset
from .store import LocalModelStore, ModelStore

__all__ = [
    "serialize_dataset",
    "deserialize_dataset",
    "LocalModelStore",
    "ModelStore",
]
