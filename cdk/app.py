#!/usr/bin/env python3
import os
import aws_cdk as cdk
from stacks.site_stack import SiteStack
from stacks.sync_stack import SyncStack

app = cdk.App()

env = cdk.Environment(
    account=os.getenv("CDK_DEFAULT_ACCOUNT"),
    region=os.getenv("CDK_DEFAULT_REGION", "us-east-1")
)

ctx = app.node.try_get_context
root_document = ctx("root_document") or "index.html"
strip_html = str(ctx("strip_html_extension") or "false").lower() == "true"
# with stripping on, pages are stored (and served) without the .html suffix
served_root = root_document[:-len(".html")] if strip_html and root_document.endswith(".html") else root_document

# Bucket + CloudFront in front of it
site = SiteStack(app, "SiteStack",
                 env=env,
                 root_document=served_root,
                 error_document=ctx("error_document") or "error.html",
                 csp_header=ctx("csp_header"),
                 distribution_description=ctx("distribution_description") or "Static site")

# CodeCommit repository whose pushes are synced into the bucket
SyncStack(app, "SyncStack",
          env=env,
          bucket=site.bucket,
          distribution=site.distribution,
          repository_name=ctx("repository_name") or "MyWebsite",
          branch_name=ctx("branch_name") or "main",
          notification_email=ctx("notification_email"),
          timeout_seconds=int(ctx("lambda_timeout") or 300),
          root_document=root_document,
          strip_html_extension=strip_html)

app.synth()
