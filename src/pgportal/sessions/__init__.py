from pgportal.sessions.channel import SessionChannel, encode_sse
from pgportal.sessions.registry import Session, SessionRegistry

__all__ = ["Session", "SessionChannel", "SessionRegistry", "encode_sse"]
