"""
Rastreabilidade do drakeflow: Manifest e Event Log por run.
"""

from .manifest import (
    RunManifest,
    add_event,
    create_manifest,
    finish_run,
    load_manifest,
    save_manifest,
    target_failed,
    target_finished,
    target_skipped,
    target_started,
)

__all__ = [
    "RunManifest",
    "add_event",
    "create_manifest",
    "finish_run",
    "load_manifest",
    "save_manifest",
    "target_failed",
    "target_finished",
    "target_skipped",
    "target_started",
]
