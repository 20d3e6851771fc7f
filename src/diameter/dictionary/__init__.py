# SPDX-FileCopyrightText: 2020-present Dan Pascu <dan@aethereal.link>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Diameter dictionaries.

A dictionary describes the vendors, commands and AVPs known to an
application. Dictionaries are XML documents validated against the RelaxNG
schema in the schema directory:

    <dictionary name="example">
      <vendor id="10415" name="3GPP"/>
      <command code="257" name="Capabilities-Exchange" abbreviation="CE"/>
      <avp code="264" name="Origin-Host" type="DiameterIdentity" mandatory="must"/>
      <avp code="701" vendor-id="10415" name="MSISDN" type="OctetString"/>
    </dictionary>

The mandatory and protected attributes describe how the M and P bits of
the AVP must be set (must, may or mustnot). When missing they default to
may. The dictionary does not interpret AVP payloads, the type is kept
for the benefit of higher layers.

"""

import logging
from collections.abc import Iterable, MutableMapping
from dataclasses import dataclass
from enum import Enum
from functools import cache
from itertools import chain
from os import PathLike
from pathlib import Path
from typing import ClassVar, Self

from lxml import etree

__all__ = 'Dictionary', 'DictionaryError', 'FlagRule', 'VendorDefinition', 'CommandDefinition', 'AVPDefinition'  # noqa: RUF022


log = logging.getLogger(__name__)


# noinspection PyProtectedMember
type ETreeElement = etree._Element  # noqa: SLF001


class DictionaryError(ValueError):
    """Raised when a dictionary document is invalid or contains conflicting definitions."""


class FlagRule(Enum):
    must = 'must'
    may = 'may'
    mustnot = 'mustnot'

    def allows(self, value: bool) -> bool:  # noqa: FBT001
        """Return True if a flag with the given value satisfies the rule"""
        match self:
            case FlagRule.must:
                return value
            case FlagRule.mustnot:
                return not value
            case _:
                return True


@dataclass(frozen=True)
class VendorDefinition:
    id: int
    name: str


@dataclass(frozen=True)
class CommandDefinition:
    code: int
    name: str
    abbreviation: str | None = None
    application_id: int = 0


@dataclass(frozen=True)
class AVPDefinition:
    code: int
    name: str
    type: str
    vendor_id: int = 0
    mandatory: FlagRule = FlagRule.may
    protected: FlagRule = FlagRule.may


class SchemaValidator:
    schema_directory = Path(__file__).parent / 'schema'

    def __init__(self, schema_file: str) -> None:
        self.schema_path = self.schema_directory / schema_file
        self.schema = etree.RelaxNG(file=str(self.schema_path))

    def __repr__(self) -> str:
        return f'{self.__class__.__qualname__}({self.schema_path.name!r})'

    def validate(self, element: ETreeElement) -> None:
        if not self.schema.validate(element):
            error = self.schema.error_log.last_error
            raise DictionaryError(f'The document is not a valid dictionary: {error.message} (line {error.line})')


@cache
def schema_validator() -> SchemaValidator:
    return SchemaValidator('dictionary.rng')


class Dictionary:
    base_file: ClassVar[Path] = Path(__file__).parent / 'base.xml'

    def __init__(self, name: str, *, vendors: Iterable[VendorDefinition] = (), commands: Iterable[CommandDefinition] = (), avps: Iterable[AVPDefinition] = ()) -> None:
        self.name = name
        self._vendors: dict[int, VendorDefinition] = {}
        self._commands: dict[int, CommandDefinition] = {}
        self._avps: dict[tuple[int, int], AVPDefinition] = {}
        self._avp_names: dict[str, AVPDefinition] = {}
        for vendor in vendors:
            self._register(self._vendors, vendor.id, vendor)
        for command in commands:
            self._register(self._commands, command.code, command)
        for avp in avps:
            self._register(self._avps, (avp.code, avp.vendor_id), avp)
            self._register(self._avp_names, avp.name, avp)

    def __repr__(self) -> str:
        return f'<{self.__class__.__qualname__}: {self.name} ({len(self._vendors)} vendors, {len(self._commands)} commands, {len(self._avps)} AVPs)>'

    @staticmethod
    def _register[K, V](registry: MutableMapping[K, V], key: K, definition: V) -> None:
        if (existing := registry.setdefault(key, definition)) != definition:
            raise DictionaryError(f'Conflicting definitions for {key!r}: {existing!r} != {definition!r}')

    @classmethod
    def from_xml(cls, element: ETreeElement) -> Self:
        schema_validator().validate(element)
        vendors = [VendorDefinition(id=int(child.get('id')), name=child.get('name')) for child in element.iterchildren('vendor')]
        commands = [
            CommandDefinition(
                code=int(child.get('code')),
                name=child.get('name'),
                abbreviation=child.get('abbreviation'),
                application_id=int(child.get('application-id', '0')),
            )
            for child in element.iterchildren('command')
        ]
        avps = [
            AVPDefinition(
                code=int(child.get('code')),
                name=child.get('name'),
                type=child.get('type'),
                vendor_id=int(child.get('vendor-id', '0')),
                mandatory=FlagRule(child.get('mandatory', 'may')),
                protected=FlagRule(child.get('protected', 'may')),
            )
            for child in element.iterchildren('avp')
        ]
        dictionary = cls(element.get('name'), vendors=vendors, commands=commands, avps=avps)
        log.info('Loaded dictionary %r with %d vendors, %d commands and %d AVPs', dictionary.name, len(vendors), len(commands), len(avps))
        return dictionary

    @classmethod
    def from_string(cls, data: str | bytes) -> Self:
        if isinstance(data, str):
            data = data.encode()
        return cls.from_xml(etree.fromstring(data))

    @classmethod
    def from_file(cls, path: str | PathLike[str]) -> Self:
        return cls.from_xml(etree.parse(str(path)).getroot())

    @classmethod
    @cache
    def base(cls) -> Self:
        """The dictionary of the Diameter base protocol (RFC 6733)"""
        return cls.from_file(cls.base_file)

    @property
    def vendors(self) -> tuple[VendorDefinition, ...]:
        return tuple(self._vendors.values())

    @property
    def commands(self) -> tuple[CommandDefinition, ...]:
        return tuple(self._commands.values())

    @property
    def avps(self) -> tuple[AVPDefinition, ...]:
        return tuple(self._avps.values())

    def find_avp(self, code: int, vendor_id: int = 0) -> AVPDefinition | None:
        return self._avps.get((code, vendor_id))

    def find_command(self, code: int) -> CommandDefinition | None:
        return self._commands.get(code)

    def avp_by_name(self, name: str) -> AVPDefinition:
        try:
            return self._avp_names[name]
        except KeyError:
            raise KeyError(f'Unknown AVP: {name!r}') from None

    def vendor_name(self, vendor_id: int) -> str | None:
        vendor = self._vendors.get(vendor_id)
        return vendor.name if vendor is not None else None

    def merge(self, other: 'Dictionary', *, name: str | None = None) -> 'Dictionary':
        """Return a new dictionary with the definitions from both dictionaries"""
        return Dictionary(
            name if name is not None else f'{self.name}+{other.name}',
            vendors=chain(self.vendors, other.vendors),
            commands=chain(self.commands, other.commands),
            avps=chain(self.avps, other.avps),
        )
