from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from questboard.repository import APP_PREFIX, BACKUPS_PREFIX, backup_path
from questboard.storage import DocumentNotFoundError, DocumentStore, read_json, write_json

logger = logging.getLogger(__name__)

_BACKUP_NAME = re.compile(r"^[0-9A-Za-z_.-]+$")


def _stamp(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S%fZ")


def export_documents(store: DocumentStore) -> dict:
    out = {}
    for path in store.list(APP_PREFIX):
        if path.startswith(BACKUPS_PREFIX):
            continue
        try:
            out[path] = read_json(store, path)
        except json.JSONDecodeError as exc:
            logger.warning("Skipping unreadable document %s: %s", path, exc)
    return out


def import_documents(store: DocumentStore, documents: dict) -> int:
    count = 0
    for path, data in documents.items():
        if not path.startswith(APP_PREFIX) or path.startswith(BACKUPS_PREFIX):
            logger.warning("Ignoring backup entry outside app/: %s", path)
            continue
        write_json(store, path, data)
        count += 1
    return count


def create_backup(store: DocumentStore, now: datetime | None = None) -> dict:
    created = now or datetime.now(timezone.utc)
    name = _stamp(created)
    documents = export_documents(store)
    write_json(store, backup_path(name), {"createdAt": created.isoformat(), "documents": documents})
    logger.info("Backup %s written with %d documents", name, len(documents))
    return {"name": name, "createdAt": created.isoformat(), "documents": len(documents)}


def list_backups(store: DocumentStore) -> list[str]:
    return [p[len(BACKUPS_PREFIX): -len(".json")] for p in store.list(BACKUPS_PREFIX) if p.endswith(".json")]


def restore_backup(store: DocumentStore, name: str) -> int:
    if not _BACKUP_NAME.match(name):
        raise DocumentNotFoundError(backup_path(name))
    payload = read_json(store, backup_path(name))
    restored = import_documents(store, payload.get("documents") or {})
    logger.info("Backup %s restored (%d documents)", name, restored)
    return restored
