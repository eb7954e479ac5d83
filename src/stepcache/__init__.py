"""Deterministic fingerprints for pipeline steps and their dependencies."""

from stepcache.config import Settings, load_settings
from stepcache.core.fingerprint import Fingerprint, FingerprintEngine, fingerprint

__all__ = ["Fingerprint", "FingerprintEngine", "Settings", "fingerprint", "load_settings"]
