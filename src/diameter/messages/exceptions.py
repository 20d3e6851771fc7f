# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

from typing import TYPE_CHECKING

from .datamodel import ResultCode

if TYPE_CHECKING:
    from . import AVP

__all__ = 'DiameterError', 'StructuralError', 'SemanticError'


class DiameterError(ValueError):
    """
    Base class for the errors raised while decoding Diameter data.

    The offset attribute is the position in the input buffer of the element
    that failed to decode. For errors raised by decode_msg this can be the
    offset of an AVP inside the message, not the start of the message.

    The result_code attribute holds the Result-Code that an answer sent to
    the peer should carry, if one applies.

    """

    def __init__(self, message: str, /, *, offset: int | None = None, result_code: ResultCode | None = None) -> None:
        super().__init__(message)
        self.offset = offset
        self.result_code = result_code


class StructuralError(DiameterError):
    """
    Raised when the buffer is too short for the data it should contain, or
    when a declared length is inconsistent with the header size or with the
    available bytes.

    """


class SemanticError(DiameterError):
    """
    Raised when structurally valid data violates a content level rule, like
    reserved or disallowed flag combinations or unknown mandatory AVPs.

    """

    def __init__(self, message: str, /, *, offset: int | None = None, result_code: ResultCode | None = None, avp: 'AVP | None' = None) -> None:
        super().__init__(message, offset=offset, result_code=result_code)
        self.avp = avp
