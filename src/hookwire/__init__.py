"""Hookwire: signed webhook delivery for domain events.

Endpoints subscribe to domain event types. Every published event is
delivered to each subscribed, active endpoint as a JSON POST signed with
HMAC-SHA256, retried on failure according to the endpoint's retry policy,
and recorded attempt by attempt for audit and analytics.

Quick Start:
    from hookwire import HookwireService

    async with HookwireService.create() as hooks:
        registration = await hooks.registry.register(
            owner_id="user_123",
            url="https://example.com/hooks",
            events=["payment.success"],
        )
        # registration.secret is shown only once

        await hooks.publish("payment.success", {"id": "pay_1", "amount": 100})

Receivers verify deliveries with ``hookwire.signing.verify`` against the
raw request body and the ``X-Webhook-Signature`` header.
"""

__version__ = "0.1.0"

# Configuration
from .config import RetryDefaults, Settings, settings

# Components
from .delivery import DeliveryEngine

# Events
from .events import EventBus, EventType

# Exceptions
from .exceptions import (
    AuditTrailError,
    AuthenticationError,
    ConfigurationError,
    ForbiddenError,
    HookwireError,
    NotFoundError,
    StorageError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)

# Models
from .models import (
    DeliveryAttempt,
    DeliveryEvent,
    DeliveryOutcome,
    Endpoint,
    EndpointLog,
    EndpointRegistration,
    EventStatus,
    RetryPolicy,
)

# Service components
from .monitor import Monitor
from .registry import WebhookRegistry
from .scheduler import RetryScheduler
from .service import HookwireService

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "RetryDefaults",
    "settings",
    # Exceptions
    "HookwireError",
    "ValidationError",
    "NotFoundError",
    "ForbiddenError",
    "StorageError",
    "AuditTrailError",
    "ConfigurationError",
    "AuthenticationError",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    # Models
    "Endpoint",
    "EndpointRegistration",
    "RetryPolicy",
    "DeliveryEvent",
    "DeliveryAttempt",
    "DeliveryOutcome",
    "EventStatus",
    "EndpointLog",
    # Events
    "EventBus",
    "EventType",
    # Components
    "WebhookRegistry",
    "DeliveryEngine",
    "Monitor",
    "RetryScheduler",
    "HookwireService",
]
