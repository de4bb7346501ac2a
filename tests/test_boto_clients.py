"""The engine against real boto3 clients, with botocore's Stubber in place of AWS."""

import datetime

import pytest
from botocore.stub import ANY, Stubber

from sitesync import (
    CacheInvalidator,
    ChangeEntry,
    ChangeKind,
    ChangeSet,
    FailureContext,
    FailureNotifier,
    NotFoundError,
    ObjectStorePublisher,
    QuotaExceededError,
    RevisionDiffReader,
    RevisionRange,
)
from sitesync.aws import client
from sitesync.models import BlobRef

CREDENTIALS = dict(region_name="us-east-1", aws_access_key_id="testing", aws_secret_access_key="testing")


@pytest.fixture
def stubbed():
    made = []

    def make(service):
        boto_client = client(service, **CREDENTIALS)
        stubber = Stubber(boto_client)
        stubber.activate()
        made.append(stubber)
        return boto_client, stubber

    yield make
    for stubber in made:
        stubber.assert_no_pending_responses()
        stubber.deactivate()


def test_diff_reader_call_shapes(stubbed, retry):
    codecommit, stub = stubbed("codecommit")
    stub.add_response("get_commit", {"commit": {"commitId": "c2", "parents": ["c1"]}},
                      {"repositoryName": "MyWebsite", "commitId": "c2"})
    stub.add_response(
        "get_differences",
        {"differences": [{"changeType": "A",
                          "afterBlob": {"blobId": "b1", "path": "index.html", "mode": "100644"}}]},
        {"repositoryName": "MyWebsite", "afterCommitSpecifier": "c2",
         "beforeCommitSpecifier": "c1", "MaxResults": 400},
    )
    stub.add_response(
        "get_file",
        {"commitId": "c2", "blobId": "b1", "filePath": "index.html", "fileMode": "NORMAL",
         "fileSize": 4, "fileContent": b"home"},
        {"repositoryName": "MyWebsite", "commitSpecifier": "c2", "filePath": "index.html"},
    )
    reader = RevisionDiffReader(codecommit, "MyWebsite", retry=retry)

    changes = reader.diff(RevisionRange(after_id="c2", before_id="c1"))
    [added] = list(changes)

    assert added.kind is ChangeKind.ADDED
    assert reader.read(added.blob) == b"home"


def test_missing_commit_maps_to_not_found(stubbed, retry):
    codecommit, stub = stubbed("codecommit")
    stub.add_client_error("get_commit", service_error_code="CommitDoesNotExistException",
                          http_status_code=400)

    with pytest.raises(NotFoundError):
        RevisionDiffReader(codecommit, "MyWebsite", retry=retry).resolve_parent("nope")


def test_publisher_call_shapes(stubbed, retry):
    s3, stub = stubbed("s3")
    stub.add_response("put_object", {"ETag": '"abc"'},
                      {"Bucket": "site-bucket", "Key": "index.html", "Body": b"home",
                       "ContentType": "text/html"})
    stub.add_response("delete_object", {}, {"Bucket": "site-bucket", "Key": "old.css"})
    publisher = ObjectStorePublisher(s3, "site-bucket", retry=retry, max_workers=1)
    changes = ChangeSet([
        ChangeEntry("index.html", ChangeKind.MODIFIED, BlobRef("c2", "index.html")),
        ChangeEntry("old.css", ChangeKind.DELETED),
    ])

    result = publisher.publish(changes, lambda blob, deadline=None: b"home")

    assert result.errors == ()
    assert (result.published_count, result.deleted_count) == (1, 1)


def test_invalidator_call_shape_and_quota(stubbed, retry):
    cloudfront, stub = stubbed("cloudfront")
    invalidator = CacheInvalidator(cloudfront, "E1", batch_size=1, retry=retry)
    reference = invalidator.caller_reference("c2", ["/a"])
    stub.add_response(
        "create_invalidation",
        {"Location": "https://cloudfront.amazonaws.com/2020-05-31/distribution/E1/invalidation/I1",
         "Invalidation": {"Id": "I1", "Status": "InProgress",
                          "CreateTime": datetime.datetime(2026, 10, 18),
                          "InvalidationBatch": {"Paths": {"Quantity": 1, "Items": ["/a"]},
                                                "CallerReference": reference}}},
        {"DistributionId": "E1",
         "InvalidationBatch": {"Paths": {"Quantity": 1, "Items": ["/a"]}, "CallerReference": reference}},
    )
    stub.add_client_error("create_invalidation", service_error_code="TooManyInvalidationsInProgress",
                          http_status_code=400)

    with pytest.raises(QuotaExceededError) as info:
        invalidator.invalidate(["a", "b"], scope="c2")

    assert info.value.batch_ids == ["I1"]
    assert info.value.pending_paths == ["/b"]


def test_notifier_call_shape(stubbed):
    sns, stub = stubbed("sns")
    topic = "arn:aws:sns:us-east-1:123456789012:SyncCodeCommitWithS3"
    stub.add_response("publish", {"MessageId": "m1"},
                      {"TopicArn": topic, "Subject": "Site sync failed at diffing (MyWebsite)", "Message": ANY})

    FailureNotifier(sns, topic).notify(FailureContext(
        revision_range=RevisionRange(after_id="c2"),
        stage="diffing",
        cause="get-commit c2: CommitDoesNotExistException",
        repository="MyWebsite",
    ))
