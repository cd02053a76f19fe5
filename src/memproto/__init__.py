"""
memproto - session-scoped memory store for AI agent context.

Package structure:
- core: Config, logging, errors, sessions, event bus
- memory: Record model, storage backends, dispatcher, retrieval, consolidation
- protocol: Inbound call surface and request/response envelope
- scheduler: Periodic consolidation driver
"""

__version__ = "1.0.0"
