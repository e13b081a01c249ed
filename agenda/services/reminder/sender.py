# agenda/services/reminder/sender.py
"""Outbound reminder delivery"""
import logging
from typing import Any, Dict

from twilio.base.exceptions import TwilioException
from twilio.rest import Client

from agenda.config.settings import get_settings
from agenda.models import ReminderKind

logger = logging.getLogger(__name__)

TEMPLATES = {
    ReminderKind.DAY_BEFORE.value: (
        "Hi {client_name}! Reminder: you have an appointment with {agent_name} "
        "at {unit_name} tomorrow ({date}) at {start_time}."
    ),
    ReminderKind.HOUR_BEFORE.value: (
        "Hi {client_name}! Your appointment with {agent_name} at {unit_name} "
        "starts in one hour, at {start_time}."
    ),
}


def render_message(template_kind: str, context: Dict[str, Any]) -> str:
    template = TEMPLATES.get(template_kind)
    if template is None:
        raise ValueError(f"No reminder template for kind {template_kind!r}")
    return template.format(**context)


class ReminderSender:
    """Delivery collaborator: returns True when the message was accepted"""

    def send(self, destination: str, template_kind: str, context: Dict[str, Any]) -> bool:
        raise NotImplementedError


class TwilioReminderSender(ReminderSender):
    """Sends reminders as SMS through Twilio"""

    def __init__(self, account_sid: str = None, auth_token: str = None, from_number: str = None, client=None):
        settings = get_settings()
        self.from_number = from_number or settings.TWILIO_FROM_NUMBER
        self.client = client or Client(
            account_sid or settings.TWILIO_ACCOUNT_SID,
            auth_token or settings.TWILIO_AUTH_TOKEN
        )

    def send(self, destination: str, template_kind: str, context: Dict[str, Any]) -> bool:
        body = render_message(template_kind, context)
        try:
            twilio_message = self.client.messages.create(
                body=body,
                from_=self.from_number,
                to=destination
            )
        except TwilioException as e:
            logger.error(f"Twilio error sending {template_kind} reminder to {destination}: {str(e)}")
            return False

        logger.info(f"Reminder SMS sent to {destination}: {twilio_message.sid}")
        return True


class LogOnlySender(ReminderSender):
    """Development sender: logs the rendered message instead of delivering it"""

    def send(self, destination: str, template_kind: str, context: Dict[str, Any]) -> bool:
        logger.info(f"📨 [{template_kind}] to {destination}: {render_message(template_kind, context)}")
        return True


def build_sender() -> ReminderSender:
    """Twilio when credentials are configured, log-only otherwise"""
    settings = get_settings()
    if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_FROM_NUMBER:
        return TwilioReminderSender()

    logger.warning("Twilio is not configured, reminders will only be logged")
    return LogOnlySender()
