"""
Detector de mudanças do drakeflow (fingerprints).

    - fingerprint → valores (joblib), código normalizado, seeds por target
    - files       → arquivos e diretórios com memo por (size, mtime)
"""

from .files import FileFingerprint, hash_file
from .fingerprint import digest, hash_code, hash_function, hash_value, target_seed

__all__ = [
    "FileFingerprint",
    "hash_file",
    "digest",
    "hash_code",
    "hash_function",
    "hash_value",
    "target_seed",
]
