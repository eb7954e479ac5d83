"""Fingerprint computation: file hashing, call hashing and the combining engine."""

from .calls import ModuleCallableRegistry, canonical_source, hash_calls
from .engine import ComponentHash, Fingerprint, FingerprintEngine, fingerprint
from .files import HashMode, hash_paths

__all__ = [
    "ComponentHash",
    "Fingerprint",
    "FingerprintEngine",
    "HashMode",
    "ModuleCallableRegistry",
    "canonical_source",
    "fingerprint",
    "hash_calls",
    "hash_paths",
]
