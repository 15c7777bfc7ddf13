# autocheckin/storage/__init__.py

"""
凭证持久化。
"""

from .credential_store import Credential, CredentialStoreInterface, RedisCredentialStore

__all__ = [
    "Credential",
    "CredentialStoreInterface",
    "RedisCredentialStore",
]
