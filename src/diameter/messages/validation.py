# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from typing import TYPE_CHECKING

from diameter.dictionary import Dictionary

from .datamodel import DIAMETER_VERSION, RESERVED_AVP_FLAGS, RESERVED_MESSAGE_FLAGS, MessageFlags, ResultCode
from .exceptions import SemanticError

if TYPE_CHECKING:
    from . import AVP, Message

__all__ = 'check_avp_flags', 'check_message_header', 'validate_avp', 'validate_message'


log = logging.getLogger(__name__)


# Strict mode checks

def check_avp_flags(avp: 'AVP', *, offset: int | None = None) -> None:
    if avp.flags & RESERVED_AVP_FLAGS:
        raise SemanticError(f'AVP {avp.code} has reserved flags set (0x{avp.flags & RESERVED_AVP_FLAGS:02x})', offset=offset, result_code=ResultCode.DIAMETER_INVALID_AVP_BITS, avp=avp)


def check_message_header(message: 'Message', *, offset: int | None = None) -> None:
    if message.version != DIAMETER_VERSION:
        raise SemanticError(f'Unsupported Diameter version: {message.version}', offset=offset, result_code=ResultCode.DIAMETER_UNSUPPORTED_VERSION)
    if message.flags & RESERVED_MESSAGE_FLAGS:
        raise SemanticError(f'Message has reserved flags set (0x{message.flags & RESERVED_MESSAGE_FLAGS:02x})', offset=offset, result_code=ResultCode.DIAMETER_INVALID_HDR_BITS)
    if (MessageFlags.REQUEST | MessageFlags.ERROR) in message.flags:
        raise SemanticError('The error flag cannot be set on requests', offset=offset, result_code=ResultCode.DIAMETER_INVALID_HDR_BITS)


# Dictionary checks

def validate_avp(avp: 'AVP', dictionary: Dictionary) -> None:
    """
    Validate an AVP against the dictionary.

    Unknown AVPs are only rejected when they have the M flag set. For known
    AVPs the M and P flags must follow the rules in their definition.
    """
    vendor_id = avp.vendor_id if avp.has_vendor_id else 0
    definition = dictionary.find_avp(avp.code, vendor_id)
    if definition is None:
        if avp.mandatory:
            raise SemanticError(f'Unsupported mandatory AVP {avp.code} (vendor {vendor_id})', result_code=ResultCode.DIAMETER_AVP_UNSUPPORTED, avp=avp)
        log.debug('Ignoring unknown AVP %d (vendor %d)', avp.code, vendor_id)
        return
    if not definition.mandatory.allows(avp.mandatory):
        raise SemanticError(f'The M flag of {definition.name} AVP {"must not" if avp.mandatory else "must"} be set', result_code=ResultCode.DIAMETER_INVALID_AVP_BITS, avp=avp)
    if not definition.protected.allows(avp.protected):
        raise SemanticError(f'The P flag of {definition.name} AVP {"must not" if avp.protected else "must"} be set', result_code=ResultCode.DIAMETER_INVALID_AVP_BITS, avp=avp)


def validate_message(message: 'Message', dictionary: Dictionary) -> None:
    if dictionary.find_command(message.command_code) is None:
        raise SemanticError(f'Unsupported command code: {message.command_code}', result_code=ResultCode.DIAMETER_COMMAND_UNSUPPORTED)
    for avp in message.avps:
        validate_avp(avp, dictionary)
