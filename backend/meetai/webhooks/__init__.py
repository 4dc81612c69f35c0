from meetai.webhooks.dispatcher import WebhookDispatcher
from meetai.webhooks.events import EventKind

__all__ = ["EventKind", "WebhookDispatcher"]
