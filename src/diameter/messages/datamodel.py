# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import enum
import struct
from typing import ClassVar

__all__ = (  # noqa: RUF022
    # Constants

    'DIAMETER_VERSION',

    'AVP_HEADER_LENGTH',
    'AVP_HEADER_LENGTH_WITH_VENDOR_ID',
    'MESSAGE_HEADER_LENGTH',
    'VENDOR_ID_LENGTH',

    'RESERVED_AVP_FLAGS',
    'RESERVED_MESSAGE_FLAGS',

    # Types

    'WireData',

    'AVPFlags',
    'MessageFlags',
    'ResultCode',

    # Wire layouts

    'AVPHeader',
    'MessageHeader',
    'VendorID',

    # Helpers

    'check_range',
    'has_vendor_id',
    'padded_length',
)


DIAMETER_VERSION = 1

AVP_HEADER_LENGTH = 8
VENDOR_ID_LENGTH = 4
AVP_HEADER_LENGTH_WITH_VENDOR_ID = AVP_HEADER_LENGTH + VENDOR_ID_LENGTH
MESSAGE_HEADER_LENGTH = 20

RESERVED_AVP_FLAGS = 0x1f
RESERVED_MESSAGE_FLAGS = 0x0f


type WireData = bytes | bytearray | memoryview


class AVPFlags(enum.IntFlag):
    VENDOR_SPECIFIC = 0x80
    MANDATORY = 0x40
    PROTECTED = 0x20


class MessageFlags(enum.IntFlag):
    REQUEST = 0x80
    PROXIABLE = 0x40
    ERROR = 0x20
    RETRANSMIT = 0x10


class ResultCode(enum.IntEnum):
    # Protocol errors (3xxx)

    DIAMETER_COMMAND_UNSUPPORTED = 3001
    DIAMETER_INVALID_HDR_BITS = 3008
    DIAMETER_INVALID_AVP_BITS = 3009

    # Permanent failures (5xxx)

    DIAMETER_AVP_UNSUPPORTED = 5001
    DIAMETER_UNSUPPORTED_VERSION = 5011
    DIAMETER_INVALID_AVP_LENGTH = 5014
    DIAMETER_INVALID_MESSAGE_LENGTH = 5015


# Wire layouts
#
# The 24 bit length and command code fields are emulated with a high/low pair of 8/16 bit unsigned integers.

class AVPHeader:
    """
    AVP header:

        uint32   code
        uint8    flags
        uint24   length
    """

    structure: ClassVar[struct.Struct] = struct.Struct('!IBBH')
    size: ClassVar[int] = structure.size

    @classmethod
    def unpack_from(cls, buffer: WireData, offset: int) -> tuple[int, int, int]:
        code, flags, length_hi, length_lo = cls.structure.unpack_from(buffer, offset)
        return code, flags, (length_hi << 16) + length_lo


class MessageHeader:
    """
    Message header:

        uint8    version
        uint24   length
        uint8    flags
        uint24   command_code
        uint32   application_id
        uint32   hop_by_hop_id
        uint32   end_to_end_id
    """

    structure: ClassVar[struct.Struct] = struct.Struct('!BBHBBHIII')
    size: ClassVar[int] = structure.size

    @classmethod
    def unpack_from(cls, buffer: WireData, offset: int) -> tuple[int, int, int, int, int, int, int]:
        version, length_hi, length_lo, flags, code_hi, code_lo, application_id, hop_by_hop_id, end_to_end_id = cls.structure.unpack_from(buffer, offset)
        return version, (length_hi << 16) + length_lo, flags, (code_hi << 16) + code_lo, application_id, hop_by_hop_id, end_to_end_id


class VendorID:
    structure: ClassVar[struct.Struct] = struct.Struct('!I')
    size: ClassVar[int] = structure.size

    @classmethod
    def unpack_from(cls, buffer: WireData, offset: int) -> int:
        return cls.structure.unpack_from(buffer, offset)[0]


# Helpers

def padded_length(length: int) -> int:
    """Return length rounded up to the next multiple of 4"""
    return (length + 3) & ~3


def has_vendor_id(flags: int) -> bool:
    """Return True if the AVP flags have the Vendor-specific bit set"""
    return bool(flags & AVPFlags.VENDOR_SPECIFIC)


def check_range(name: str, value: int, bits: int) -> int:
    if value < 0 or value.bit_length() > bits:
        raise ValueError(f'Value is out of range for unsigned {bits}-bits {name}: {value!r}')
    return value
