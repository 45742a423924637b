import pytest
from botocore.exceptions import ClientError

from marketanalytics.errors import StorageError
from marketanalytics.object_store import S3ObjectStore


def _client_error(code, op):
    return ClientError({"Error": {"Code": code, "Message": code}}, op)


class FakeS3Client:
    def __init__(self, buckets=(), put_error=None, head_error=None):
        self.buckets = set(buckets)
        self.objects = {}
        self.put_error = put_error
        self.head_error = head_error

    def head_bucket(self, Bucket):
        if self.head_error:
            raise self.head_error
        if Bucket not in self.buckets:
            raise _client_error("404", "HeadBucket")

    def create_bucket(self, Bucket):
        self.buckets.add(Bucket)

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.put_error:
            raise self.put_error
        self.objects[(Bucket, Key)] = (Body, ContentType)


def test_ensure_bucket_creates_missing_bucket():
    client = FakeS3Client()
    S3ObjectStore(client, "currency-data").ensure_bucket()
    assert client.buckets == {"currency-data"}
    S3ObjectStore(client, "currency-data").ensure_bucket()
    assert client.buckets == {"currency-data"}


def test_ensure_bucket_surfaces_other_errors():
    client = FakeS3Client(head_error=_client_error("403", "HeadBucket"))
    with pytest.raises(StorageError):
        S3ObjectStore(client, "currency-data").ensure_bucket()


def test_upload_overwrites_same_key():
    client = FakeS3Client(buckets=["currency-data"])
    store = S3ObjectStore(client, "currency-data")
    store.upload("prices-2024-04-02.csv", b"v1")
    store.upload("prices-2024-04-02.csv", b"v2")
    assert client.objects == {("currency-data", "prices-2024-04-02.csv"): (b"v2", "application/csv")}


def test_upload_failure_raises_storage_error():
    client = FakeS3Client(put_error=_client_error("500", "PutObject"))
    with pytest.raises(StorageError, match="prices-2024-04-02.csv"):
        S3ObjectStore(client, "currency-data").upload("prices-2024-04-02.csv", b"x")
