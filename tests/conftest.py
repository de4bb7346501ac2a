import hashlib
import threading

import pytest
from botocore.exceptions import ClientError

from sitesync import RetryPolicy, SyncConfig


def client_error(code, operation="Operation", status=400, message=None):
    return ClientError(
        {"Error": {"Code": code, "Message": message or code},
         "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


def blob_id(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class FakeCodeCommit:
    """In-memory repository: commit id -> (parents, {path: bytes})."""

    def __init__(self):
        self.commits = {}
        self.scripted = {}
        self.calls = []
        self.read_failures = {}
        self.lock = threading.Lock()

    def commit(self, commit_id, files, parents=()):
        self.commits[commit_id] = {"parents": list(parents), "files": dict(files)}
        return commit_id

    def script(self, before, after, differences):
        """Return these differences verbatim for the given range."""
        self.scripted[(before, after)] = differences

    def _record(self, name, **kwargs):
        with self.lock:
            self.calls.append((name, kwargs))

    def _require(self, commit_id, operation):
        if commit_id not in self.commits:
            raise client_error("CommitDoesNotExistException", operation)
        return self.commits[commit_id]

    def get_commit(self, repositoryName, commitId):
        self._record("get_commit", commitId=commitId)
        commit = self._require(commitId, "GetCommit")
        return {"commit": {"commitId": commitId, "parents": list(commit["parents"])}}

    def _diff(self, before, after):
        if (before, after) in self.scripted:
            return list(self.scripted[(before, after)])
        old = self._require(before, "GetDifferences")["files"] if before else {}
        new = self._require(after, "GetDifferences")["files"]
        differences = []
        for path in sorted(set(old) | set(new)):
            if path not in new:
                differences.append({"changeType": "D",
                                    "beforeBlob": {"path": path, "blobId": blob_id(old[path]), "mode": "100644"}})
            elif path not in old:
                differences.append({"changeType": "A",
                                    "afterBlob": {"path": path, "blobId": blob_id(new[path]), "mode": "100644"}})
            elif old[path] != new[path]:
                differences.append({"changeType": "M",
                                    "beforeBlob": {"path": path, "blobId": blob_id(old[path]), "mode": "100644"},
                                    "afterBlob": {"path": path, "blobId": blob_id(new[path]), "mode": "100644"}})
        return differences

    def get_differences(self, repositoryName, afterCommitSpecifier, beforeCommitSpecifier=None,
                        MaxResults=100, NextToken=None):
        self._record("get_differences", before=beforeCommitSpecifier, after=afterCommitSpecifier,
                     token=NextToken)
        differences = self._diff(beforeCommitSpecifier, afterCommitSpecifier)
        start = int(NextToken or 0)
        page = differences[start:start + MaxResults]
        response = {"differences": page}
        if start + MaxResults < len(differences):
            response["NextToken"] = str(start + MaxResults)
        return response

    def get_file(self, repositoryName, commitSpecifier, filePath):
        self._record("get_file", commit=commitSpecifier, path=filePath)
        with self.lock:
            failures = self.read_failures.get(filePath)
            if failures:
                raise failures.pop(0)
        files = self._require(commitSpecifier, "GetFile")["files"]
        if filePath not in files:
            raise client_error("FileDoesNotExistException", "GetFile")
        return {"fileContent": files[filePath], "commitId": commitSpecifier, "filePath": filePath}


class FakeS3:
    def __init__(self, objects=None):
        self.objects = dict(objects or {})
        self.calls = []
        self.failures = {}
        self.lock = threading.Lock()

    def fail(self, key, *errors):
        self.failures[key] = list(errors)

    def _maybe_fail(self, key):
        failures = self.failures.get(key)
        if failures:
            error = failures.pop(0) if len(failures) > 1 else failures[0]
            if error is not None:
                raise error

    def put_object(self, Bucket, Key, Body, ContentType):
        with self.lock:
            self.calls.append(("put", Key))
            self._maybe_fail(Key)
            self.objects[Key] = (Body, ContentType)
        return {"ETag": blob_id(Body)}

    def delete_object(self, Bucket, Key):
        with self.lock:
            self.calls.append(("delete", Key))
            self._maybe_fail(Key)
            self.objects.pop(Key, None)
        return {}

    def bodies(self):
        return {key: body for key, (body, _) in self.objects.items()}


class FakeCloudFront:
    def __init__(self, quota=None, error=None):
        self.requests = []
        self.by_reference = {}
        self.quota = quota
        self.error = error

    def create_invalidation(self, DistributionId, InvalidationBatch):
        reference = InvalidationBatch["CallerReference"]
        if reference in self.by_reference:
            return {"Invalidation": {"Id": self.by_reference[reference], "Status": "Completed"}}
        if self.error is not None:
            raise self.error
        if self.quota is not None:
            if self.quota <= 0:
                raise client_error("TooManyInvalidationsInProgress", "CreateInvalidation")
            self.quota -= 1
        paths = InvalidationBatch["Paths"]
        assert paths["Quantity"] == len(paths["Items"])
        invalidation_id = f"I{len(self.requests) + 1}"
        self.requests.append(list(paths["Items"]))
        self.by_reference[reference] = invalidation_id
        return {"Invalidation": {"Id": invalidation_id, "Status": "InProgress"}}

    def invalidated(self):
        return {path for batch in self.requests for path in batch}


class FakeSNS:
    def __init__(self, error=None):
        self.messages = []
        self.error = error

    def publish(self, TopicArn, Message, Subject=None):
        if self.error is not None:
            raise self.error
        self.messages.append({"TopicArn": TopicArn, "Subject": Subject, "Message": Message})
        return {"MessageId": f"m{len(self.messages)}"}


@pytest.fixture
def retry():
    return RetryPolicy(max_attempts=3, base_delay=0.01, jitter=False, sleep=lambda seconds: None)


@pytest.fixture
def codecommit():
    return FakeCodeCommit()


@pytest.fixture
def s3():
    return FakeS3()


@pytest.fixture
def cloudfront():
    return FakeCloudFront()


@pytest.fixture
def sns():
    return FakeSNS()


@pytest.fixture
def env():
    return {
        "bucketName": "site-bucket",
        "distributionId": "E123EXAMPLE",
        "topicArn": "arn:aws:sns:us-east-1:123456789012:SyncCodeCommitWithS3",
        "timeoutSeconds": "60",
        "branchName": "main",
        "retryBaseDelay": "0",
        "maxWorkers": "4",
    }


@pytest.fixture
def config(env):
    return SyncConfig.from_env(env)


@pytest.fixture
def clients(codecommit, s3, cloudfront, sns):
    return {"codecommit": codecommit, "s3": s3, "cloudfront": cloudfront, "sns": sns}
