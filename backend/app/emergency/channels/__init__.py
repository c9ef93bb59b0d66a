"""
channels — Messaging providers.

Each provider exposes:
    name, channel, is_initialized
    async send(phone, body) → provider message id

A refused send raises ProviderRejected; any other exception is treated as a
transport failure. Fan-out, timeouts and outcome bookkeeping live in the
dispatcher.
"""

from backend.app.emergency.channels.base import MessagingProvider
from backend.app.emergency.channels.msg91 import MSG91SMSProvider
from backend.app.emergency.channels.simulation import SimulatedProvider
from backend.app.emergency.channels.twilio_sms import TwilioSMSProvider
from backend.app.emergency.channels.twilio_whatsapp import TwilioWhatsAppProvider

__all__ = [
    "MessagingProvider",
    "MSG91SMSProvider",
    "SimulatedProvider",
    "TwilioSMSProvider",
    "TwilioWhatsAppProvider",
]
