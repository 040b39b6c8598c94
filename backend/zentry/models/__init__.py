from .documents import Document, KeyValueEntry
from .identity import Identity, IdentitySession
from .security import SecurityEvent

__all__ = [
    'Document', 'KeyValueEntry',
    'Identity', 'IdentitySession',
    'SecurityEvent',
]
