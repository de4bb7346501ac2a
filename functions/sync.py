import os, json, logging, time
from typing import Optional

from sitesync import (
    CacheInvalidator,
    FailureContext,
    FailureNotifier,
    ObjectStorePublisher,
    RetryPolicy,
    RevisionDiffReader,
    SyncConfig,
    SyncOrchestrator,
    configure_logging,
    parse_trigger,
)
from sitesync.aws import client

logger = logging.getLogger("sitesync.handler")

_CLIENTS = {}


def _client(service):
    # reused across warm invocations
    if service not in _CLIENTS:
        _CLIENTS[service] = client(service)
    return _CLIENTS[service]


def build_orchestrator(config: SyncConfig, repository: str, clients: Optional[dict] = None) -> SyncOrchestrator:
    get = (lambda name: clients[name]) if clients is not None else _client
    retry = RetryPolicy(max_attempts=config.retry_max_attempts, base_delay=config.retry_base_delay)
    publisher = ObjectStorePublisher(get("s3"), config.bucket_name, retry=retry,
                                     max_workers=config.max_workers,
                                     strip_html_extension=config.strip_html_extension)
    return SyncOrchestrator(
        config,
        reader=RevisionDiffReader(get("codecommit"), repository, retry=retry),
        publisher=publisher,
        invalidator=CacheInvalidator(get("cloudfront"), config.distribution_id,
                                     batch_size=config.invalidation_batch_size,
                                     index_document=publisher.key_for(config.index_document),
                                     retry=retry),
        notifier=FailureNotifier(get("sns"), config.topic_arn),
    )


def _notify_start_failure(env, clients, exc):
    # no orchestrator exists yet, so read the topic straight from the environment
    topic_arn = (env.get("topicArn") or "").strip() or None
    get = (lambda name: clients[name]) if clients is not None else _client
    notifier = FailureNotifier(get("sns") if topic_arn else None, topic_arn)
    notifier.notify(FailureContext(revision_range=None, stage="start", cause=str(exc),
                                   error_type=type(exc).__name__))


def handler(event, context, env=None, clients=None, clock=time.monotonic):
    started = clock()
    env = os.environ if env is None else env
    try:
        config = SyncConfig.from_env(env)
        configure_logging(config.log_level)
        entries = parse_trigger(event, config.branch_name, config.repository_name)
    except Exception as exc:
        logger.error("sync could not start: %s", exc)
        _notify_start_failure(env, clients, exc)
        raise

    if not entries:
        logger.info("nothing to sync for branch %s", config.branch_name)
        return {"ok": True, "results": []}

    results = []
    failure = None
    for entry in entries:
        if context is not None and hasattr(context, "get_remaining_time_in_millis"):
            remaining = context.get_remaining_time_in_millis() / 1000.0
        else:
            # one budget for the whole invocation, shared by every range
            remaining = max(0.0, config.timeout_seconds - (clock() - started))
        orchestrator = build_orchestrator(config, entry.repository, clients)
        try:
            results.append(orchestrator.run(entry, remaining_seconds=remaining).to_dict())
        except Exception as exc:
            # already notified; keep going so other ranges still land, then fail the invocation
            failure = failure or exc
    logger.info("sync finished: %s", json.dumps(results))
    if failure is not None:
        raise failure
    return {"ok": True, "results": results}
