"""An open, set-up display connection and its request/reply primitive."""

from __future__ import annotations

import logging
import struct
from typing import Callable

from .errors import ProtocolError, TransportError
from .handshake import encode_setup_request, perform_handshake
from .models import ByteOrder, ConnectionSetup, Credential, DisplayAddress, ProtocolState, Reply
from .transport import DisplayTransport

logger = logging.getLogger(__name__)

REPLY_SIZE = 32
MAX_REPLY_BYTES = 16 * 1024 * 1024
X_REPLY = 1


class Connection:
    """Owns the transport and the decoded setup data of one display session.

    Requests are strictly synchronous: every ``round_trip`` writes one
    request and blocks for its reply before returning.
    """

    def __init__(
        self,
        transport: DisplayTransport,
        setup: ConnectionSetup,
        address: DisplayAddress | None = None,
        byte_order: ByteOrder = ByteOrder.LITTLE,
    ) -> None:
        self.transport = transport
        self.address = address
        self.byte_order = byte_order
        self.state = ProtocolState.READY
        self._setup: ConnectionSetup | None = setup
        self._reply_length = struct.Struct(byte_order.struct_prefix + "I")

    @classmethod
    def open(
        cls,
        address: DisplayAddress,
        credential: Credential | None = None,
        byte_order: ByteOrder = ByteOrder.LITTLE,
        transport: DisplayTransport | None = None,
        on_state: Callable[[ProtocolState], None] | None = None,
    ) -> "Connection":
        """Connect to ``address`` and run the setup handshake.

        ``on_state`` is told about SocketOpen, Authenticating and SetupReceived
        as they happen. The credential secret and the request buffer holding a
        copy of it are zeroed before this returns, whether or not the handshake
        succeeded.
        """
        transport = transport or DisplayTransport()
        notify = on_state or (lambda _state: None)
        request = bytearray()
        try:
            if not transport.is_open:
                transport.open(address)
            notify(ProtocolState.SOCKET_OPEN)
            if credential is not None:
                request = encode_setup_request(byte_order, credential.protocol_name, credential.secret)
            else:
                request = encode_setup_request(byte_order)
            notify(ProtocolState.AUTHENTICATING)
            setup = perform_handshake(transport, request, byte_order)
            notify(ProtocolState.SETUP_RECEIVED)
        except Exception:
            transport.close()
            raise
        finally:
            for i in range(len(request)):
                request[i] = 0
            if credential is not None:
                credential.wipe()
        return cls(transport, setup, address=address, byte_order=byte_order)

    @property
    def setup(self) -> ConnectionSetup:
        if self._setup is None:
            raise TransportError("connection is closed")
        return self._setup

    @property
    def is_closed(self) -> bool:
        return self.state is ProtocolState.CLOSED

    def round_trip(self, request: bytes | bytearray) -> Reply:
        """Write one request and read its 32-byte reply plus any trailing words."""
        if self.is_closed:
            raise TransportError("connection is closed")
        self.transport.write(request)
        head = self.transport.read(REPLY_SIZE)
        status = head[0]
        if status != X_REPLY:
            return Reply(status=status, data=head)
        (extra_words,) = self._reply_length.unpack_from(head, 4)
        if 4 * extra_words > MAX_REPLY_BYTES - REPLY_SIZE:
            # The unread body leaves the stream out of step.
            self.close()
            raise ProtocolError(f"reply announces {4 * extra_words} trailing bytes, limit is {MAX_REPLY_BYTES}")
        extra = self.transport.read(4 * extra_words) if extra_words else b""
        return Reply(status=status, data=head + extra)

    def close(self) -> None:
        if self.is_closed:
            return
        self.transport.close()
        self._setup = None
        self.state = ProtocolState.CLOSED
        logger.info("connection closed", extra={"event": "connection_closed"})

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()
