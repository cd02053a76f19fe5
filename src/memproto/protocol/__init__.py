"""Protocol surface: MemoryProtocol service and message envelope handling."""

from memproto.protocol.messages import MessageHandler
from memproto.protocol.service import MemoryProtocol

__all__ = ["MemoryProtocol", "MessageHandler"]
