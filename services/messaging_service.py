"""
Twilio messaging channel used to deliver one-time codes
"""
import json
import os
from typing import Optional

import requests
from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from utils.logger_factory import new_logger

log = new_logger("messaging_service")

CHANNEL_WHATSAPP = "whatsapp"
CHANNEL_SMS = "sms"
SUPPORTED_CHANNELS = (CHANNEL_WHATSAPP, CHANNEL_SMS)

TWILIO_TIMEOUT_SECONDS = float(os.getenv("TWILIO_TIMEOUT_SECONDS", "10"))


class MessagingError(Exception):
    """Raised when the provider could not accept the message (network, auth or template error)."""


class TwilioMessagingClient:
    """
    Sends verification codes over WhatsApp (pre-registered content template
    with the code as variable {{1}}) or plain SMS.
    """

    def __init__(
        self,
        client: Client,
        whatsapp_from: Optional[str],
        content_sid: Optional[str],
        sms_from: Optional[str] = None,
    ):
        self.client = client
        self.whatsapp_from = whatsapp_from
        self.content_sid = content_sid
        self.sms_from = sms_from

    def send_code(self, destination: str, code: str, channel: str = CHANNEL_WHATSAPP) -> str:
        """
        Deliver `code` to `destination` and return the provider message SID.

        Raises:
            MessagingError: on any provider or transport failure
        """
        if channel == CHANNEL_WHATSAPP:
            if not self.whatsapp_from or not self.content_sid:
                raise MessagingError("WhatsApp sender or content template is not configured")
            params = {
                "from_": f"whatsapp:{self.whatsapp_from}",
                "to": f"whatsapp:{destination}",
                "content_sid": self.content_sid,
                "content_variables": json.dumps({"1": code}),
            }
        elif channel == CHANNEL_SMS:
            if not self.sms_from:
                raise MessagingError("SMS sender is not configured")
            params = {
                "from_": self.sms_from,
                "to": destination,
                "body": f"Votre code de vérification DULU est {code}",
            }
        else:
            raise MessagingError(f"Unsupported channel: {channel}")

        try:
            message = self.client.messages.create(**params)
        except (TwilioException, requests.RequestException) as e:
            log.error(f"Failed to send {channel} code to {destination}: {e}")
            raise MessagingError(str(e)) from e

        log.info(f"Verification code sent via {channel} to {destination}, sid={message.sid}")
        return message.sid


def create_messaging_client() -> TwilioMessagingClient:
    account_sid = os.getenv("TWILIO_ACCOUNT_SID")
    auth_token = os.getenv("TWILIO_AUTH_TOKEN")
    if not account_sid or not auth_token:
        raise RuntimeError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN must be set in environment variables.")

    client = Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=TWILIO_TIMEOUT_SECONDS))
    return TwilioMessagingClient(
        client=client,
        whatsapp_from=os.getenv("TWILIO_WHATSAPP_NUMBER"),
        content_sid=os.getenv("TWILIO_OTP_CONTENT_SID"),
        sms_from=os.getenv("TWILIO_SMS_NUMBER"),
    )
