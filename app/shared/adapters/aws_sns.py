from typing import Optional

import aioboto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from app.shared.adapters.aws_utils import (
    build_boto_config,
    get_boto_session,
    resolve_aws_region_hint,
)
from app.shared.adapters.base import NotificationAdapter
from app.shared.core.exceptions import AdapterError

logger = structlog.get_logger()

# SNS rejects subjects longer than 100 characters.
MAX_SUBJECT_LENGTH = 100


class SNSNotificationAdapter(NotificationAdapter):
    """Publishes budget notifications to an SNS topic."""

    def __init__(
        self,
        region: Optional[str] = None,
        session: Optional[aioboto3.Session] = None,
    ):
        self.region = resolve_aws_region_hint(region)
        self.session = session or get_boto_session()

    async def publish(self, channel: str, subject: str, message: str) -> None:
        self._clear_last_error()
        try:
            async with self.session.client(
                "sns", region_name=self.region, config=build_boto_config()
            ) as sns:
                await sns.publish(
                    TopicArn=channel,
                    Subject=subject[:MAX_SUBJECT_LENGTH],
                    Message=message,
                )
        except (ClientError, BotoCoreError) as e:
            self._set_last_error_from_exception(e, prefix="sns_publish")
            logger.warning("sns_publish_failed", topic_arn=channel, error=str(e))
            raise AdapterError(
                f"SNS publish failed: {e}", details={"topic_arn": channel}
            ) from e
