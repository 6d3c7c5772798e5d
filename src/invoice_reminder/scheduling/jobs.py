"""Scheduled job fired by each user's cron trigger."""

import logging
from datetime import datetime
from uuid import UUID

from ..dispatch import SendMessageService
from ..errors import OperationCanceledError

logger = logging.getLogger(__name__)


class CronJob:
    """Runs one dispatch per trigger firing and never lets it fail the scheduler."""

    def __init__(self, send_message_service: SendMessageService):
        self.send_message_service = send_message_service

    async def execute(self, user_id: UUID, description: str = "CronJob") -> None:
        """Dispatch invoice notifications for a user.

        Args:
            user_id: Owner of the schedule that fired
            description: Job description used in log lines
        """
        logger.info(f"{datetime.now():%H:%M:%S} - {description} triggered...")

        try:
            result = await self.send_message_service.send_message(user_id)
            logger.info(f"{description}: {result}")
        except OperationCanceledError as e:
            logger.warning(f"{description} cancelled for userId {user_id}: {e}")
        except Exception as e:
            logger.error(f"{description} failed for userId {user_id}: {e}", exc_info=True)
