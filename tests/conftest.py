import boto3
import pytest
from moto import mock_aws


@pytest.fixture(autouse=True)
def aws_credentials(monkeypatch):
    """Fake credentials so nothing can reach a real account"""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.delenv("AWS_PROFILE", raising=False)


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture
def s3_source(aws):
    return boto3.client("s3", region_name="us-east-1")


@pytest.fixture
def s3_dest(aws):
    return boto3.client("s3", region_name="us-west-2")


@pytest.fixture
def iam(aws):
    return boto3.client("iam", region_name="us-east-1")


@pytest.fixture
def source_bucket(s3_source):
    """Versioned source bucket, as replication requires"""
    s3_source.create_bucket(Bucket="src")
    s3_source.put_bucket_versioning(Bucket="src", VersioningConfiguration={"Status": "Enabled"})
    return "src"


class FakeClock:
    """Records sleeps instead of waiting"""

    def __init__(self):
        self.sleeps = []

    def __call__(self, seconds):
        self.sleeps.append(seconds)

    @property
    def elapsed(self):
        return sum(self.sleeps)


@pytest.fixture
def clock():
    return FakeClock()


class FakeClients:
    """Stands in for ClientFactory, backed by moto"""

    def __init__(self):
        self._s3 = {}
        self._iam = None

    def s3(self, region=None):
        region = region or "us-east-1"
        if region not in self._s3:
            self._s3[region] = boto3.client("s3", region_name=region)
        return self._s3[region]

    def iam(self):
        if self._iam is None:
            self._iam = boto3.client("iam", region_name="us-east-1")
        return self._iam


@pytest.fixture
def clients(aws):
    return FakeClients()
