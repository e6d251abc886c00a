"""Credential lookup in the binary ``.Xauthority`` cache."""

from __future__ import annotations

import logging
import os
import socket
import struct
from collections.abc import Iterator, Mapping
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from .errors import CredentialNotFound
from .models import Credential, DisplayAddress

logger = logging.getLogger(__name__)

_U16_BE = struct.Struct(">H")


@dataclass
class AuthRecord:
    family: int
    host: str
    number: str
    protocol_name: str
    secret: bytearray

    def wipe(self) -> None:
        _zero(self.secret)

    def matches(self, host: str, sequence_number: int) -> bool:
        if self.host != host or not self.number.isdigit():
            return False
        return int(self.number) == sequence_number


def credential_path(env: Mapping[str, str] | None = None) -> Path:
    env = os.environ if env is None else env
    explicit = env.get("XAUTHORITY")
    if explicit:
        return Path(explicit).expanduser()
    return Path.home() / ".Xauthority"


def _read_u16(stream: BinaryIO) -> int | None:
    raw = stream.read(2)
    if len(raw) != 2:
        return None
    return _U16_BE.unpack(raw)[0]


def _read_counted(stream: BinaryIO) -> bytearray | None:
    length = _read_u16(stream)
    if length is None:
        return None
    data = bytearray(length)
    if stream.readinto(data) != length:
        _zero(data)
        return None
    return data


def _zero(buffer: bytearray) -> None:
    for i in range(len(buffer)):
        buffer[i] = 0


def _read_record(stream: BinaryIO) -> AuthRecord | None:
    family = _read_u16(stream)
    if family is None:
        return None
    host = _read_counted(stream)
    number = _read_counted(stream) if host is not None else None
    protocol = _read_counted(stream) if number is not None else None
    data = _read_counted(stream) if protocol is not None else None
    if data is None:
        return None
    return AuthRecord(
        family=family,
        host=host.decode("latin-1"),
        number=number.decode("latin-1"),
        protocol_name=protocol.decode("latin-1"),
        secret=data,
    )


def iter_records(path: Path) -> Iterator[AuthRecord]:
    """Yield every complete record; a truncated trailing record ends the scan.

    Each yielded record's secret is wiped once the consumer advances, so
    callers that keep a secret must copy it before asking for the next record.
    """
    try:
        stream = path.open("rb")
    except OSError as exc:
        raise CredentialNotFound(f"failed to open credential cache {path}: {exc}") from exc

    with stream:
        while True:
            try:
                record = _read_record(stream)
            except OSError as exc:
                raise CredentialNotFound(f"failed to read credential cache {path}: {exc}") from exc
            if record is None:
                return
            try:
                yield record
            finally:
                record.wipe()


def resolve_credential(
    address: DisplayAddress,
    path: Path | None = None,
    hostname: str | None = None,
) -> Credential:
    """Return the first cache record matching the display's host and number."""
    path = path or credential_path()
    host = address.host or hostname or socket.gethostname()

    with closing(iter_records(path)) as records:
        for record in records:
            if not record.matches(host, address.sequence_number):
                continue
            logger.info(
                "using %s credential for %s:%d",
                record.protocol_name,
                host,
                address.sequence_number,
                extra={"event": "credential_found"},
            )
            return Credential(record.protocol_name, record.secret)

    raise CredentialNotFound(f"no authentication data for display {host}:{address.sequence_number} in {path}")
