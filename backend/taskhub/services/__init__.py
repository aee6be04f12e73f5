"""
Bus services.

create_broker() builds a broker with every service registered, in the
order the rest of the application expects.
"""

from typing import Dict, Optional

from taskhub.bus.actions import ActionBus
from taskhub.bus.broker import ServiceBroker
from taskhub.services.base import BaseService
from taskhub.services.user_service import UserService
from taskhub.services.organisation_service import OrganisationService
from taskhub.services.project_service import ProjectService
from taskhub.services.task_service import TaskService
from taskhub.services.task_comment_service import TaskCommentService
from taskhub.services.task_attachment_service import TaskAttachmentService
from taskhub.services.token_service import TokenService
from taskhub.services.mail_service import MailService


def create_broker(
    database_urls: Optional[Dict[str, str]] = None,
    upload_dir: Optional[str] = None,
    action_bus: Optional[ActionBus] = None,
) -> ServiceBroker:
    """
    Build a broker with all services registered (not started).

    Args:
        database_urls: Per-store URL overrides (see ServiceBroker)
        upload_dir: Attachment directory override
        action_bus: Pre-built action bus
    """
    broker = ServiceBroker(database_urls=database_urls, action_bus=action_bus)
    broker.register(UserService(broker))
    broker.register(OrganisationService(broker))
    broker.register(ProjectService(broker))
    broker.register(TaskService(broker))
    broker.register(TaskCommentService(broker))
    broker.register(TaskAttachmentService(broker, upload_dir=upload_dir))
    broker.register(TokenService(broker))
    broker.register(MailService(broker))
    return broker


__all__ = [
    "BaseService",
    "UserService",
    "OrganisationService",
    "ProjectService",
    "TaskService",
    "TaskCommentService",
    "TaskAttachmentService",
    "TokenService",
    "MailService",
    "create_broker",
]
