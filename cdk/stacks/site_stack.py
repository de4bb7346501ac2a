from typing import Optional
from aws_cdk import (
    Stack,
    Duration,
    RemovalPolicy,
    CfnOutput,
    aws_s3 as s3,
    aws_cloudfront as cf,
    aws_cloudfront_origins as origins,
)
from constructs import Construct

DEFAULT_CSP = "default-src 'self'; img-src 'self' data:; object-src 'none'; frame-ancestors 'none'"


class SiteStack(Stack):
    def __init__(self, scope: Construct, construct_id: str,
                 root_document: str = "index.html",
                 error_document: str = "error.html",
                 csp_header: Optional[str] = None,
                 distribution_description: str = "Static site",
                 **kwargs) -> None:
        super().__init__(scope, construct_id, **kwargs)

        # Site bucket, only reachable through CloudFront
        site_bucket = s3.Bucket(self, "SiteBucket",
                                block_public_access=s3.BlockPublicAccess.BLOCK_ALL,
                                encryption=s3.BucketEncryption.S3_MANAGED,
                                enforce_ssl=True,
                                removal_policy=RemovalPolicy.RETAIN)

        # Security headers
        headers = cf.ResponseHeadersPolicy(self, "SecurityHeaders",
            response_headers_policy_name=f"{self.stack_name}-static-site-security-headers",
            security_headers_behavior=cf.ResponseSecurityHeadersBehavior(
                strict_transport_security=cf.ResponseHeadersStrictTransportSecurity(
                    access_control_max_age=Duration.seconds(63072000),
                    include_subdomains=True, preload=True, override=True),
                content_security_policy=cf.ResponseHeadersContentSecurityPolicy(
                    content_security_policy=csp_header or DEFAULT_CSP, override=True),
                content_type_options=cf.ResponseHeadersContentTypeOptions(override=True),
                frame_options=cf.ResponseHeadersFrameOptions(
                    frame_option=cf.HeadersFrameOption.DENY, override=True),
                referrer_policy=cf.ResponseHeadersReferrerPolicy(
                    referrer_policy=cf.HeadersReferrerPolicy.SAME_ORIGIN, override=True),
                xss_protection=cf.ResponseHeadersXSSProtection(
                    protection=True, mode_block=True, override=True),
            ))

        # Origin access control plus the matching bucket policy
        s3_origin = origins.S3BucketOrigin.with_origin_access_control(site_bucket)

        # Missing pages fall back to the error document
        error_page = "/" + error_document.lstrip("/")
        error_responses = [
            cf.ErrorResponse(http_status=status,
                             response_http_status=200,
                             response_page_path=error_page,
                             ttl=Duration.minutes(5))
            for status in (403, 404)
        ]

        distribution = cf.Distribution(self, "Distribution",
                                       default_behavior=cf.BehaviorOptions(
                                           origin=s3_origin,
                                           viewer_protocol_policy=cf.ViewerProtocolPolicy.REDIRECT_TO_HTTPS,
                                           compress=True,
                                           response_headers_policy=headers),
                                       default_root_object=root_document,
                                       error_responses=error_responses,
                                       http_version=cf.HttpVersion.HTTP2_AND_3,
                                       price_class=cf.PriceClass.PRICE_CLASS_ALL,
                                       enable_ipv6=True,
                                       comment=distribution_description,
                                       enable_logging=False)

        self.bucket = site_bucket
        self.distribution = distribution
        self.distribution_domain = distribution.distribution_domain_name

        CfnOutput(self, "BucketName", value=site_bucket.bucket_name)
        CfnOutput(self, "DistributionDomainName", value=distribution.distribution_domain_name)
