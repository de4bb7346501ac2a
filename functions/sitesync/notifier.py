import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .models import PathError, RevisionRange

logger = logging.getLogger(__name__)

# SNS rejects subjects longer than 100 characters
SUBJECT_LIMIT = 100


@dataclass(frozen=True)
class FailureContext:
    revision_range: Optional[RevisionRange]
    stage: str
    cause: str
    error_type: str = ""
    repository: Optional[str] = None
    branch: Optional[str] = None
    errors: List[PathError] = field(default_factory=list)

    def subject(self) -> str:
        subject = f"Site sync failed at {self.stage}"
        if self.repository:
            subject += f" ({self.repository})"
        return subject[:SUBJECT_LIMIT]

    def message(self) -> dict:
        rng = self.revision_range
        return {
            "stage": self.stage,
            "cause": self.cause,
            "errorType": self.error_type,
            "repository": self.repository,
            "branch": self.branch,
            "beforeCommitId": rng.before_id if rng else None,
            "afterCommitId": rng.after_id if rng else None,
            "errors": [{"path": e.path, "cause": e.cause} for e in self.errors],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class FailureNotifier:
    def __init__(self, sns, topic_arn: Optional[str]):
        self.sns = sns
        self.topic_arn = topic_arn

    def notify(self, context: FailureContext) -> None:
        """Publish the failure to the topic. Never raises."""
        body = context.message()
        if not self.topic_arn:
            logger.error("no topic configured, failure only logged: %s", json.dumps(body))
            return
        try:
            self.sns.publish(
                TopicArn=self.topic_arn,
                Subject=context.subject(),
                Message=json.dumps(body, indent=2),
            )
            logger.info("failure notification sent to %s (stage %s)", self.topic_arn, context.stage)
        except Exception:
            logger.exception("could not deliver failure notification for stage %s", context.stage)
