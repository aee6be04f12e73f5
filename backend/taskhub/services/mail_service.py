"""
Mail Service.

WHAT: Accepts outgoing mail for users (password reset, notifications).

WHY: Delivery is an external concern. This service is the single place
other services send mail through, and currently only logs it.
"""

import logging
from collections import deque
from typing import Dict

from taskhub.bus.actions import ActionDef, CallerContext
from taskhub.core.config import settings
from taskhub.schemas.mail import MailSendParams
from taskhub.services.base import BaseService

logger = logging.getLogger(__name__)


class MailService(BaseService):
    """Mail Service: internal action "mail.send"."""

    prefix = "mail"

    def __init__(self, broker):
        super().__init__(broker)
        # Recent messages, newest last
        self.outbox: deque = deque(maxlen=100)

    def actions(self) -> Dict[str, ActionDef]:
        return {
            "send": ActionDef(self.send, MailSendParams, auth_required=False, internal=True),
        }

    async def send(self, params: MailSendParams, ctx: CallerContext) -> bool:
        self.outbox.append(params)
        logger.info(f"Mail from {settings.MAIL_FROM} to {params.to}: {params.subject}")
        return True
