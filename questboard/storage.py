"""Path-keyed document store.

Every document the application keeps (users, the template catalog, backups,
per-day assignment snapshots) is a JSON blob addressed by a slash separated
path such as ``app/users/alice.json``. Backends are selected by URI scheme:

``memory://``                 -> process-local dict (tests, demos)
``file:///path/to/dir``       -> local directory tree
``s3://bucket/optional/prefix`` -> S3 objects

Writes are last-write-wins; no backend offers stronger guarantees.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Protocol
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)


class DocumentNotFoundError(KeyError):
    def __init__(self, path: str) -> None:
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"Document not found: {self.path}"


class DocumentExistsError(Exception):
    def __init__(self, path: str) -> None:
        super().__init__(path)
        self.path = path

    def __str__(self) -> str:
        return f"Document already exists: {self.path}"


class DocumentStore(Protocol):
    def get(self, path: str) -> bytes:
        """Return the stored bytes or raise :class:`DocumentNotFoundError`."""

    def put(self, path: str, data: bytes, overwrite: bool = True) -> str:
        """Store ``data`` at ``path`` and return its location."""

    def list(self, prefix: str) -> List[str]:
        """Return the sorted paths starting with ``prefix``."""

    def delete(self, path: str) -> None:
        """Remove ``path``; missing paths are ignored."""


def _clean(path: str) -> str:
    cleaned = path.strip().lstrip("/")
    if not cleaned or ".." in cleaned.split("/"):
        raise ValueError(f"Invalid document path: {path!r}")
    return cleaned


@dataclass
class MemoryDocumentStore:
    docs: Dict[str, bytes] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self, path: str) -> bytes:
        path = _clean(path)
        with self._lock:
            if path not in self.docs:
                raise DocumentNotFoundError(path)
            return self.docs[path]

    def put(self, path: str, data: bytes, overwrite: bool = True) -> str:
        path = _clean(path)
        with self._lock:
            if not overwrite and path in self.docs:
                raise DocumentExistsError(path)
            self.docs[path] = bytes(data)
        return f"memory://{path}"

    def list(self, prefix: str) -> List[str]:
        with self._lock:
            return sorted(p for p in self.docs if p.startswith(prefix))

    def delete(self, path: str) -> None:
        with self._lock:
            self.docs.pop(_clean(path), None)


@dataclass
class FileDocumentStore:
    root: Path

    def _file(self, path: str) -> Path:
        return self.root / _clean(path)

    def get(self, path: str) -> bytes:
        target = self._file(path)
        if not target.is_file():
            raise DocumentNotFoundError(path)
        return target.read_bytes()

    def put(self, path: str, data: bytes, overwrite: bool = True) -> str:
        target = self._file(path)
        if not overwrite and target.exists():
            raise DocumentExistsError(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        os.replace(tmp, target)
        return target.as_uri()

    def list(self, prefix: str) -> List[str]:
        if not self.root.exists():
            return []
        paths = []
        for file in self.root.rglob("*"):
            if not file.is_file() or file.name.endswith(".tmp"):
                continue
            rel = file.relative_to(self.root).as_posix()
            if rel.startswith(prefix):
                paths.append(rel)
        return sorted(paths)

    def delete(self, path: str) -> None:
        target = self._file(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return


@dataclass
class S3DocumentStore:
    bucket: str
    prefix: str = ""
    client: Any | None = None

    def _client(self):
        if self.client is None:
            import boto3  # type: ignore

            self.client = boto3.client("s3")
        return self.client

    def _key(self, path: str) -> str:
        path = _clean(path)
        return f"{self.prefix.rstrip('/')}/{path}" if self.prefix else path

    def _exists(self, key: str) -> bool:
        try:
            self._client().head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                return False
            raise

    def get(self, path: str) -> bytes:
        key = self._key(path)
        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"404", "NoSuchKey", "NotFound"}:
                raise DocumentNotFoundError(path) from exc
            raise
        return obj["Body"].read()

    def put(self, path: str, data: bytes, overwrite: bool = True) -> str:
        key = self._key(path)
        if not overwrite and self._exists(key):
            raise DocumentExistsError(path)
        self._client().put_object(Bucket=self.bucket, Key=key, Body=data, ContentType="application/json")
        return f"s3://{self.bucket}/{key}"

    def list(self, prefix: str) -> List[str]:
        base = f"{self.prefix.rstrip('/')}/" if self.prefix else ""
        paginator = self._client().get_paginator("list_objects_v2")
        paths = []
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=base + prefix):
                for obj in page.get("Contents", []):
                    paths.append(obj["Key"][len(base):])
        except (ClientError, BotoCoreError) as exc:
            logger.warning("S3 list failed for %s/%s: %s", self.bucket, base + prefix, exc)
            raise
        return sorted(paths)

    def delete(self, path: str) -> None:
        self._client().delete_object(Bucket=self.bucket, Key=self._key(path))


def read_json(store: DocumentStore, path: str) -> Any:
    return json.loads(store.get(path).decode("utf-8-sig"))


def write_json(store: DocumentStore, path: str, data: Any, overwrite: bool = True) -> str:
    body = json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")
    return store.put(path, body, overwrite=overwrite)


def get_store(uri: str) -> DocumentStore:
    """Return a :class:`DocumentStore` for ``uri``.

    Parameters
    ----------
    uri:
        Store location specified as ``memory://``, ``file://`` or ``s3://``.
    """

    parsed = urlparse(uri)
    scheme = parsed.scheme or "file"

    if scheme == "memory":
        return MemoryDocumentStore()

    if scheme == "s3":
        return S3DocumentStore(bucket=parsed.netloc, prefix=parsed.path.strip("/"))

    if scheme == "file":
        path = parsed.path
        if parsed.netloc:
            path = os.path.join(parsed.netloc, path.lstrip("/"))
        if not os.path.isabs(path):
            path = os.path.join(os.getcwd(), path)
        return FileDocumentStore(root=Path(path))

    raise ValueError(f"Unsupported storage scheme: {scheme}")


__all__ = [
    "DocumentStore",
    "DocumentNotFoundError",
    "DocumentExistsError",
    "MemoryDocumentStore",
    "FileDocumentStore",
    "S3DocumentStore",
    "get_store",
    "read_json",
    "write_json",
]
