"""Append-only JSON-lines event log read by external UI shells."""
import json
import logging
import os
import pathlib
import time

from .config import DEFAULT_EVENTS

logger = logging.getLogger(__name__)

PATH = DEFAULT_EVENTS

_FILE_MODE = 0o600


def path() -> str:
    return PATH


def set_path(p: str) -> None:
    global PATH
    PATH = p


def _record(kind: str, fields: dict) -> dict:
    return {"ts": time.time(), "event": kind, **fields}


def _append(target: pathlib.Path, record: dict) -> None:
    target.parent.mkdir(parents=True, exist_ok=True, mode=0o750)
    fd = os.open(target, os.O_WRONLY | os.O_APPEND | os.O_CREAT, _FILE_MODE)
    with os.fdopen(fd, "a") as f:
        f.write(json.dumps(record) + "\n")
    # os.open only applies the mode on creation
    try:
        os.chmod(target, _FILE_MODE)
    except OSError as e:
        logger.debug(f"Could not tighten {target} permissions: {e}")


def emit(kind: str, **kv) -> dict:
    """Append one event and return the record written."""
    record = _record(kind, kv)
    _append(pathlib.Path(PATH), record)
    return record


def status_listener(entry) -> None:
    """StatusFeed listener that mirrors every status entry into the event log."""
    emit("status", message=entry.message, severity=entry.severity, entry_ts=entry.timestamp)
