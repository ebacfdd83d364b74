"""HTTP surface: SSE session streams, message delivery, health."""

from pgportal.api.cors import UniformCORSMiddleware
from pgportal.api.deps import Gateway, get_gateway
from pgportal.api.routes_health import create_health_router
from pgportal.api.routes_message import create_message_router
from pgportal.api.routes_stream import StreamEndpoint

__all__ = [
    "Gateway",
    "StreamEndpoint",
    "UniformCORSMiddleware",
    "create_health_router",
    "create_message_router",
    "get_gateway",
]
