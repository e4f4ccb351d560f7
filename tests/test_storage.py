# tests/test_storage.py
from datetime import timedelta

from kas_server.app.config import Settings
from kas_server.app.storage import ImageStore


class FakeMinio:
    def __init__(self, buckets=()):
        self.buckets = set(buckets)
        self.objects = {}
        self.bucket_checks = 0

    def bucket_exists(self, name):
        self.bucket_checks += 1
        return name in self.buckets

    def make_bucket(self, name):
        self.buckets.add(name)

    def put_object(self, bucket, key, data, length, content_type):
        self.objects[(bucket, key)] = (data.read(), length, content_type)

    def remove_object(self, bucket, key):
        del self.objects[(bucket, key)]

    def presigned_get_object(self, bucket, key, expires):
        return f"https://minio.test/{bucket}/{key}?ttl={int(expires.total_seconds())}"


def _store(client):
    return ImageStore(settings=Settings(MINIO_BUCKET_NAME="photos", IMAGE_URL_TTL=600), client=client)


def test_upload_creates_bucket_once():
    minio = FakeMinio()
    store = _store(minio)

    assert store.upload("1-front.png", b"abc", "image/png") == "1-front.png"
    store.upload("2-back.png", b"defg", "image/png")

    assert minio.buckets == {"photos"}
    assert minio.bucket_checks == 1
    assert minio.objects[("photos", "2-back.png")] == (b"defg", 4, "image/png")


def test_delete_and_url():
    minio = FakeMinio(buckets={"photos"})
    store = _store(minio)
    store.upload("1-front.png", b"abc", "image/png")

    assert store.url("1-front.png") == f"https://minio.test/photos/1-front.png?ttl={int(timedelta(minutes=10).total_seconds())}"
    store.delete("1-front.png")
    assert minio.objects == {}
