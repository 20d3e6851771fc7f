# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Diameter message structure (RFC 6733, sections 3 and 4)

   A Diameter message is made of a fixed 20 byte header followed by a
   sequence of Attribute-Value Pairs (AVPs). All integers are represented
   in network byte order.

       0                   1                   2                   3
       0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |    Version    |                 Message Length                |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      | Command Flags |                  Command Code                 |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |                         Application-ID                        |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |                      Hop-by-Hop Identifier                    |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |                      End-to-End Identifier                    |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |  AVPs ...
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-

   Each AVP has an 8 byte header, optionally followed by a Vendor-ID when
   the V flag is set, and then by its data. The AVP Length covers the
   header, the Vendor-ID and the data, but not the padding that aligns the
   next AVP to a 4 byte boundary.

       0                   1                   2                   3
       0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1 2 3 4 5 6 7 8 9 0 1
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |                           AVP Code                            |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |V M P r r r r r|                  AVP Length                   |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |                        Vendor-ID (opt)                        |
      +-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+-+
      |    Data ...
      +-+-+-+-+-+-+-+-+

   Decoding never modifies the input buffer and never keeps references to
   it: the AVP data is copied out, so the buffer can be reused afterwards.

"""

import logging
from dataclasses import dataclass, field

from diameter.dictionary import Dictionary

from .datamodel import (
    AVP_HEADER_LENGTH,
    AVP_HEADER_LENGTH_WITH_VENDOR_ID,
    DIAMETER_VERSION,
    MESSAGE_HEADER_LENGTH,
    AVPFlags,
    AVPHeader,
    MessageFlags,
    MessageHeader,
    ResultCode,
    VendorID,
    WireData,
    check_range,
    has_vendor_id,
    padded_length,
)
from .exceptions import DiameterError, SemanticError, StructuralError
from .validation import check_avp_flags, check_message_header, validate_message

__all__ = (  # noqa: RUF022
    # Elements
    'AVP',
    'Message',

    # Decoders
    'decode_avp',
    'decode_msg',

    # Flags and helpers
    'AVPFlags',
    'MessageFlags',
    'ResultCode',
    'has_vendor_id',
    'padded_length',

    # Errors
    'DiameterError',
    'StructuralError',
    'SemanticError',
)


log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class AVP:
    code: int
    flags: AVPFlags = AVPFlags(0)
    vendor_id: int = 0
    data: bytes = b''

    def __post_init__(self) -> None:
        check_range('AVP code', self.code, 32)
        check_range('AVP flags', self.flags, 8)
        check_range('Vendor-ID', self.vendor_id, 32)
        self.flags = AVPFlags(self.flags)
        self.data = bytes(self.data)

    @property
    def has_vendor_id(self) -> bool:
        return has_vendor_id(self.flags)

    @property
    def mandatory(self) -> bool:
        return AVPFlags.MANDATORY in self.flags

    @property
    def protected(self) -> bool:
        return AVPFlags.PROTECTED in self.flags

    def set_flags(self, *, vendor_specific: bool = False, mandatory: bool = False, protected: bool = False) -> None:
        """Replace the flags of this AVP (reserved bits are cleared)"""
        flags = AVPFlags(0)
        if vendor_specific:
            flags |= AVPFlags.VENDOR_SPECIFIC
        if mandatory:
            flags |= AVPFlags.MANDATORY
        if protected:
            flags |= AVPFlags.PROTECTED
        self.flags = flags

    def wire_length(self) -> int:
        """
        The length of the encoded AVP including the padding.

        This is computed from the AVP contents and it is not the value of
        the AVP Length field, which excludes the padding.
        """
        header_length = AVP_HEADER_LENGTH_WITH_VENDOR_ID if self.has_vendor_id else AVP_HEADER_LENGTH
        return header_length + padded_length(len(self.data))


@dataclass(kw_only=True)
class Message:
    command_code: int
    version: int = DIAMETER_VERSION
    flags: MessageFlags = MessageFlags(0)
    application_id: int = 0
    hop_by_hop_id: int = 0
    end_to_end_id: int = 0
    avps: list[AVP] = field(default_factory=list)

    def __post_init__(self) -> None:
        check_range('version', self.version, 8)
        check_range('message flags', self.flags, 8)
        check_range('command code', self.command_code, 24)
        check_range('Application-ID', self.application_id, 32)
        check_range('Hop-by-Hop identifier', self.hop_by_hop_id, 32)
        check_range('End-to-End identifier', self.end_to_end_id, 32)
        self.flags = MessageFlags(self.flags)
        self.avps = list(self.avps)

    @property
    def is_request(self) -> bool:
        return MessageFlags.REQUEST in self.flags

    @property
    def is_proxiable(self) -> bool:
        return MessageFlags.PROXIABLE in self.flags

    @property
    def is_error(self) -> bool:
        return MessageFlags.ERROR in self.flags

    @property
    def is_retransmit(self) -> bool:
        return MessageFlags.RETRANSMIT in self.flags

    def get_avps(self, code: int, *, vendor_id: int = 0) -> list[AVP]:
        """Return the AVPs with the given code and vendor in the order they appear in the message"""
        return [avp for avp in self.avps if avp.code == code and (avp.vendor_id if avp.has_vendor_id else 0) == vendor_id]

    def get_avp(self, code: int, *, vendor_id: int = 0) -> AVP | None:
        return next((avp for avp in self.avps if avp.code == code and (avp.vendor_id if avp.has_vendor_id else 0) == vendor_id), None)

    def wire_length(self) -> int:
        return MESSAGE_HEADER_LENGTH + sum(avp.wire_length() for avp in self.avps)


# Decoders

def decode_avp(buffer: WireData, offset: int = 0, *, strict: bool = False) -> tuple[AVP, int]:
    """
    Decode the AVP found at offset in buffer.

    Return the AVP and the offset right after it (including the padding).
    Raise StructuralError if the buffer cannot hold the AVP or the AVP
    length is inconsistent. With strict enabled, also raise SemanticError
    if any of the reserved flags is set.
    """
    if offset < 0:
        raise ValueError('offset must be a non-negative integer')
    # lengths and slices are in bytes, whatever the item size of the input
    buffer = memoryview(buffer).cast('B')
    available = len(buffer) - offset
    if available < AVP_HEADER_LENGTH:
        raise StructuralError('Not enough buffer space to read the AVP header', offset=offset)

    code, flags, avp_length = AVPHeader.unpack_from(buffer, offset)

    vendor_specific = has_vendor_id(flags)
    header_length = AVP_HEADER_LENGTH_WITH_VENDOR_ID if vendor_specific else AVP_HEADER_LENGTH

    if avp_length < header_length:
        raise StructuralError(f'AVP length ({avp_length}) less than header size ({header_length})', offset=offset, result_code=ResultCode.DIAMETER_INVALID_AVP_LENGTH)
    if avp_length > available:
        raise StructuralError(f'Not enough buffer space to read the AVP ({avp_length} > {available})', offset=offset, result_code=ResultCode.DIAMETER_INVALID_AVP_LENGTH)

    vendor_id = VendorID.unpack_from(buffer, offset + AVP_HEADER_LENGTH) if vendor_specific else 0

    data_length = avp_length - header_length
    data_start = offset + header_length

    avp = AVP(code=code, flags=AVPFlags(flags), vendor_id=vendor_id, data=buffer[data_start:data_start + data_length])
    if strict:
        check_avp_flags(avp, offset=offset)

    return avp, data_start + padded_length(data_length)


def decode_msg(buffer: WireData, offset: int = 0, *, strict: bool = False, dictionary: Dictionary | None = None) -> tuple[Message, int]:
    """
    Decode the message found at offset in buffer.

    Return the message and the offset right after its last AVP. Errors
    raised while decoding the AVPs are propagated unchanged and no partial
    message is returned.

    With strict enabled the message header is checked for an unsupported
    version and invalid flags, and the AVPs must end exactly where the
    message length says the message ends. When a dictionary is provided,
    the decoded message is validated against it.
    """
    if offset < 0:
        raise ValueError('offset must be a non-negative integer')
    # lengths and slices are in bytes, whatever the item size of the input
    buffer = memoryview(buffer).cast('B')
    available = len(buffer) - offset
    if available < MESSAGE_HEADER_LENGTH:
        raise StructuralError('Not enough buffer space to read the message header', offset=offset)

    version, message_length, flags, command_code, application_id, hop_by_hop_id, end_to_end_id = MessageHeader.unpack_from(buffer, offset)

    if message_length < MESSAGE_HEADER_LENGTH:
        raise StructuralError(f'Message length ({message_length}) less than header size ({MESSAGE_HEADER_LENGTH})', offset=offset, result_code=ResultCode.DIAMETER_INVALID_MESSAGE_LENGTH)
    if message_length > available:
        raise StructuralError(f'Not enough buffer space to read the message ({message_length} > {available})', offset=offset, result_code=ResultCode.DIAMETER_INVALID_MESSAGE_LENGTH)

    message = Message(
        version=version,
        flags=MessageFlags(flags),
        command_code=command_code,
        application_id=application_id,
        hop_by_hop_id=hop_by_hop_id,
        end_to_end_id=end_to_end_id,
    )
    if strict:
        check_message_header(message, offset=offset)

    message_end = offset + message_length
    position = offset + MESSAGE_HEADER_LENGTH
    avps = []
    while position < message_end:
        avp, position = decode_avp(buffer, position, strict=strict)
        avps.append(avp)

    if strict and position > message_end:
        raise StructuralError(f'The AVPs exceed the message length by {position - message_end} bytes', offset=offset, result_code=ResultCode.DIAMETER_INVALID_MESSAGE_LENGTH)

    message.avps = avps

    if dictionary is not None:
        validate_message(message, dictionary)

    log.debug('Decoded message with command code %d (%s) and %d AVPs at offset %d', command_code, 'request' if message.is_request else 'answer', len(avps), offset)
    return message, position
