"""
Chat Gateway Components.

Organized into domain-specific modules:
- core/       - Foundational components (constants, context, exceptions)
- connection/ - Connection registry
- events/     - Wire message types and inbound codec
- metrics/    - Observability (collector, prometheus)
"""

# =============================================================================
# Core Components
# =============================================================================
from chat_gateway.components.core.constants import (
    WSCloseCode,
    WSConstants,
    FrameType,
    CHAT_ENDPOINT,
    DEFAULT_ALLOWED_ORIGINS,
)
from chat_gateway.components.core.context import SessionContext, sanitize_log_data
from chat_gateway.components.core.exceptions import (
    ChatGatewayError,
    DuplicateConnection,
    DisplayNameTaken,
    SessionClosed,
    MalformedFrame,
)

# =============================================================================
# Connection Components
# =============================================================================
from chat_gateway.components.connection.registry import (
    Connection,
    ConnectionId,
    ConnectionRegistry,
    is_ws_connected,
)

# =============================================================================
# Event Components
# =============================================================================
from chat_gateway.components.events.messages import (
    ChatMessage,
    SystemMessage,
    UserListMessage,
    Message,
    InboundChat,
    parse_inbound,
)

# =============================================================================
# Metrics Components
# =============================================================================
from chat_gateway.components.metrics.collector import MetricsCollector
from chat_gateway.components.metrics.prometheus import (
    PrometheusFormatter,
    generate_prometheus_metrics,
)

__all__ = [
    # Core
    "WSCloseCode",
    "WSConstants",
    "FrameType",
    "CHAT_ENDPOINT",
    "DEFAULT_ALLOWED_ORIGINS",
    "SessionContext",
    "sanitize_log_data",
    "ChatGatewayError",
    "DuplicateConnection",
    "DisplayNameTaken",
    "SessionClosed",
    "MalformedFrame",
    # Connection
    "Connection",
    "ConnectionId",
    "ConnectionRegistry",
    "is_ws_connected",
    # Events
    "ChatMessage",
    "SystemMessage",
    "UserListMessage",
    "Message",
    "InboundChat",
    "parse_inbound",
    # Metrics
    "MetricsCollector",
    "PrometheusFormatter",
    "generate_prometheus_metrics",
]
