from .documents import DocumentStore, MemoryDocumentStore, SqlDocumentStore
from .keyvalue import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore

__all__ = [
    'DocumentStore', 'MemoryDocumentStore', 'SqlDocumentStore',
    'KeyValueStore', 'MemoryKeyValueStore', 'SqlKeyValueStore',
]
