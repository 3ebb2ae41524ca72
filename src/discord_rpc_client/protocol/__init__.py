"""Wire protocol for the local RPC endpoint.

Both transports carry the same JSON envelopes:
- Commands: client → endpoint, ``{cmd, args, evt, nonce}``
- Messages: endpoint → client, ``{cmd, evt, nonce, data}``

Replies echo the command's ``nonce``; messages without a known nonce are
unsolicited events.
"""

from .commands import Command, RpcCommand
from .events import Message, RpcEvent

__all__ = [
    "Command",
    "RpcCommand",
    "Message",
    "RpcEvent",
]
