# tests/core/config/test_config_hashing.py
"""
Testes do hashing de configuração.

O hash identifica os settings efetivos de uma run e é registrado no
Manifest (`inputs.config_hash`).

Invariantes:
    - O hash retornado possui 64 caracteres
    - O hash independe da ordem das chaves
    - O algoritmo é SHA-256 sobre o JSON canônico
"""

import hashlib
import json

import pytest

from drakeflow.core.config.hashing import compute_config_hash


def _canonical_json_bytes(obj: dict) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def test_hash_is_deterministic():
    h1 = compute_config_hash({"b": 2, "a": 1})
    h2 = compute_config_hash({"a": 1, "b": 2})

    assert h1 == h2
    assert isinstance(h1, str)
    assert len(h1) == 64


def test_hash_matches_sha256_of_canonical_json():
    cfg = {"engine": {"jobs": 2, "parallelism": "threads"}, "targets": {"report": {"enabled": True}}}
    expected = hashlib.sha256(_canonical_json_bytes(cfg)).hexdigest()

    assert compute_config_hash(cfg) == expected


def test_hash_changes_on_override():
    assert compute_config_hash({"engine": {"jobs": 1}}) != compute_config_hash({"engine": {"jobs": 2}})


def test_non_dict_is_rejected():
    with pytest.raises(TypeError):
        compute_config_hash(["engine"])
