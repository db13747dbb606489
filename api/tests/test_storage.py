from datetime import timedelta

import pytest
from urllib3.exceptions import HTTPError

from robocrm import storage
from robocrm.config import MINIO_BUCKET
from robocrm.errors import UpstreamUnavailable


class FakeMinio:
    def __init__(self, existing=()):
        self.objects = {key: b"" for key in existing}
        self.removed = []
        self.signed = []

    def bucket_exists(self, bucket):
        return True

    def stat_object(self, bucket, key):
        if key not in self.objects:
            raise AssertionError("tests only stat existing keys")
        return object()

    def remove_object(self, bucket, key):
        self.removed.append((bucket, key))
        self.objects.pop(key, None)

    def presigned_get_object(self, bucket, key, expires):
        self.signed.append((bucket, key, expires))
        return f"http://minio.test/{bucket}/{key}?X-Amz-Expires={int(expires.total_seconds())}"


class BrokenMinio(FakeMinio):
    def remove_object(self, bucket, key):
        raise HTTPError("connection reset")

    def presigned_get_object(self, bucket, key, expires):
        raise ValueError("expires must be between 1 second to 7 days")


def test_delete_object_removes_from_bucket(monkeypatch):
    fake = FakeMinio(existing=["offers/1/OF-1_v1.pdf"])
    monkeypatch.setattr(storage, "_client", fake)

    storage.delete_object("offers/1/OF-1_v1.pdf")
    assert fake.removed == [(MINIO_BUCKET, "offers/1/OF-1_v1.pdf")]
    assert fake.objects == {}


def test_public_url_is_presigned_for_max_age(monkeypatch):
    fake = FakeMinio()
    monkeypatch.setattr(storage, "_client", fake)

    url = storage.public_url("contracts/4/C-9_v2.pdf", 600)
    assert url == f"http://minio.test/{MINIO_BUCKET}/contracts/4/C-9_v2.pdf?X-Amz-Expires=600"
    assert fake.signed == [(MINIO_BUCKET, "contracts/4/C-9_v2.pdf", timedelta(seconds=600))]


def test_put_refuses_to_overwrite_existing_object(monkeypatch):
    monkeypatch.setattr(storage, "_client", FakeMinio(existing=["offers/1/OF-1_v1.pdf"]))

    with pytest.raises(storage.ArtifactExists):
        storage.put_bytes("offers/1/OF-1_v1.pdf", b"%PDF", content_type="application/pdf")


def test_store_errors_become_upstream_unavailable(monkeypatch):
    monkeypatch.setattr(storage, "_client", BrokenMinio())

    with pytest.raises(UpstreamUnavailable):
        storage.delete_object("offers/1/OF-1_v1.pdf")
    with pytest.raises(UpstreamUnavailable):
        storage.public_url("offers/1/OF-1_v1.pdf", 30 * 24 * 3600)
