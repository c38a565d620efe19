from __future__ import annotations

import io
import tempfile
import unittest
from pathlib import Path

from botocore.exceptions import ClientError

from questboard.storage import (
    DocumentExistsError,
    DocumentNotFoundError,
    FileDocumentStore,
    MemoryDocumentStore,
    S3DocumentStore,
    get_store,
    read_json,
    write_json,
)


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def _missing(self, op: str) -> ClientError:
        return ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, op)

    def head_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        return {}

    def get_object(self, Bucket: str, Key: str) -> dict:
        if Key not in self.objects:
            raise self._missing("GetObject")
        return {"Body": io.BytesIO(self.objects[Key])}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict:
        self.objects[Key] = Body
        return {}

    def delete_object(self, Bucket: str, Key: str) -> dict:
        self.objects.pop(Key, None)
        return {}

    def get_paginator(self, name: str):
        objects = self.objects

        class Paginator:
            def paginate(self, Bucket: str, Prefix: str):
                keys = sorted(k for k in objects if k.startswith(Prefix))
                yield {"Contents": [{"Key": k} for k in keys[:1]]}
                yield {"Contents": [{"Key": k} for k in keys[1:]]}

        return Paginator()


class StoreContractMixin:
    def make_store(self):
        raise NotImplementedError

    def test_put_get_list_delete(self) -> None:
        store = self.make_store()
        write_json(store, "app/users/alice.json", {"id": "alice", "name": "Alice ✨"})
        write_json(store, "app/users/bob.json", {"id": "bob"})
        write_json(store, "app/config/system.json", {})

        self.assertEqual(read_json(store, "app/users/alice.json")["name"], "Alice ✨")
        self.assertEqual(store.list("app/users/"), ["app/users/alice.json", "app/users/bob.json"])

        store.delete("app/users/bob.json")
        store.delete("app/users/bob.json")
        self.assertEqual(store.list("app/users/"), ["app/users/alice.json"])

    def test_missing_document(self) -> None:
        with self.assertRaises(DocumentNotFoundError):
            self.make_store().get("app/users/nobody.json")

    def test_overwrite_can_be_refused(self) -> None:
        store = self.make_store()
        write_json(store, "app/users/alice.json", {"v": 1})
        write_json(store, "app/users/alice.json", {"v": 2})
        self.assertEqual(read_json(store, "app/users/alice.json"), {"v": 2})

        with self.assertRaises(DocumentExistsError):
            write_json(store, "app/users/alice.json", {"v": 3}, overwrite=False)
        self.assertEqual(read_json(store, "app/users/alice.json"), {"v": 2})

    def test_paths_cannot_escape(self) -> None:
        with self.assertRaises(ValueError):
            self.make_store().put("app/../secrets.json", b"{}")


class MemoryStoreTests(StoreContractMixin, unittest.TestCase):
    def make_store(self):
        return MemoryDocumentStore()


class FileStoreTests(StoreContractMixin, unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self) -> None:
        self.tmp.cleanup()

    def make_store(self):
        return FileDocumentStore(Path(self.tmp.name))

    def test_documents_land_under_root(self) -> None:
        store = self.make_store()
        write_json(store, "app/users/alice.json", {"id": "alice"})
        self.assertTrue((Path(self.tmp.name) / "app" / "users" / "alice.json").is_file())


class S3StoreTests(StoreContractMixin, unittest.TestCase):
    def make_store(self):
        self.client = FakeS3Client()
        return S3DocumentStore(bucket="quests", prefix="prod", client=self.client)

    def test_keys_are_prefixed(self) -> None:
        store = self.make_store()
        write_json(store, "app/users/alice.json", {"id": "alice"})
        self.assertEqual(list(self.client.objects), ["prod/app/users/alice.json"])


class GetStoreTests(unittest.TestCase):
    def test_scheme_selects_backend(self) -> None:
        self.assertIsInstance(get_store("memory://"), MemoryDocumentStore)

        s3 = get_store("s3://bucket/some/prefix")
        self.assertIsInstance(s3, S3DocumentStore)
        self.assertEqual((s3.bucket, s3.prefix), ("bucket", "some/prefix"))

        with tempfile.TemporaryDirectory() as tmp:
            store = get_store(f"file://{tmp}")
            self.assertIsInstance(store, FileDocumentStore)
            self.assertEqual(store.root, Path(tmp))

    def test_unknown_scheme(self) -> None:
        with self.assertRaises(ValueError):
            get_store("ftp://example.com/data")


if __name__ == "__main__":
    unittest.main()
