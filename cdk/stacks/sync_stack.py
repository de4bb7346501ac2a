from pathlib import Path
from typing import Optional
from aws_cdk import (
    Stack,
    Duration,
    CfnOutput,
    aws_codecommit as codecommit,
    aws_cloudfront as cf,
    aws_lambda as _lambda,
    aws_iam as iam,
    aws_s3 as s3,
    aws_sns as sns,
    aws_sns_subscriptions as subs,
)
from constructs import Construct

FUNCTIONS_DIR = Path(__file__).resolve().parents[2] / "functions"


class SyncStack(Stack):
    def __init__(self, scope: Construct, construct_id: str,
                 bucket: s3.IBucket,
                 distribution: cf.IDistribution,
                 repository_name: str = "MyWebsite",
                 branch_name: str = "main",
                 notification_email: Optional[str] = None,
                 timeout_seconds: int = 300,
                 root_document: str = "index.html",
                 strip_html_extension: bool = False,
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        repository = codecommit.Repository(self, "Repository",
                                           repository_name=repository_name,
                                           description=f"Source of the static site served from {bucket.bucket_name}")

        # Sync failures land here
        topic = sns.Topic(self, "SyncTopic", display_name="SiteSyncFailures")
        if notification_email:
            topic.add_subscription(subs.EmailSubscription(notification_email))

        sync_fn = _lambda.Function(self, "SyncFn",
                                   runtime=_lambda.Runtime.PYTHON_3_12,
                                   handler="sync.handler",
                                   code=_lambda.Code.from_asset(str(FUNCTIONS_DIR)),
                                   memory_size=256,
                                   timeout=Duration.seconds(timeout_seconds),
                                   environment={
                                       "bucketName": bucket.bucket_name,
                                       "distributionId": distribution.distribution_id,
                                       "topicArn": topic.topic_arn,
                                       "timeoutSeconds": str(timeout_seconds),
                                       "branchName": branch_name,
                                       "indexDocument": root_document,
                                       "stripHtmlExtension": "true" if strip_html_extension else "false",
                                   })

        # Least privilege: read commits, write objects, invalidate, notify
        sync_fn.add_to_role_policy(iam.PolicyStatement(
            actions=["codecommit:GetCommit", "codecommit:GetDifferences", "codecommit:GetFile"],
            resources=[repository.repository_arn]))
        sync_fn.add_to_role_policy(iam.PolicyStatement(
            actions=["s3:PutObject", "s3:DeleteObject"],
            resources=[bucket.arn_for_objects("*")]))
        sync_fn.add_to_role_policy(iam.PolicyStatement(
            actions=["cloudfront:CreateInvalidation"],
            resources=[f"arn:aws:cloudfront::{self.account}:distribution/{distribution.distribution_id}"]))
        topic.grant_publish(sync_fn)

        # Every push to the branch invokes the function
        sync_fn.add_permission("CodeCommitInvoke",
                               principal=iam.ServicePrincipal("codecommit.amazonaws.com"),
                               source_arn=repository.repository_arn)
        repository.notify(sync_fn.function_arn,
                          name="SyncCodeCommitWithS3Trigger",
                          branches=[branch_name],
                          events=[codecommit.RepositoryEventTrigger.UPDATE_REF])

        self.repository = repository
        self.topic = topic
        self.sync_function = sync_fn

        CfnOutput(self, "CloneUrlHttp", value=repository.repository_clone_url_http)
        CfnOutput(self, "TopicArn", value=topic.topic_arn)
