"""
Version rule sets.

A rule set says where things live in one range of SDK releases: sheet names,
which header label holds which piece of information, and the handful of
quirks that vary between releases. Extraction is written against the
semantic column names below and never against raw column positions, so
supporting a new SDK release means registering a new RuleSet here.
"""

from collections import namedtuple
from types import MappingProxyType

from fitgen.records import ProfileVersion
from fitgen.utils import UnsupportedVersionError


TYPES_COLUMNS = ('type_name', 'base_type', 'value_name', 'value', 'comment')

MESSAGES_COLUMNS = (
    'message_name', 'field_num', 'field_name', 'field_type', 'array', 'components',
    'scale', 'offset', 'units', 'bits', 'accumulate', 'ref_field_name', 'ref_field_value',
    'comment',
)


Quirks = namedtuple('Quirks', (
    # type name -> base type name, for types fields use but the Types sheet lacks
    'implicit_types',
    # name of the type enumerating message numbers
    'mesg_num_type',
    # value cells may hold 0x prefixed hex literals
    'hex_values',
))


class RuleSet(namedtuple('RuleSet', (
    'name', 'min_version', 'max_version',
    'types_sheet', 'messages_sheet', 'version_sheet',
    'types_columns', 'messages_columns',
    'required_types_columns', 'required_messages_columns',
    'quirks',
))):
    __slots__ = ()

    def supports(self, version):
        return self.min_version <= version <= self.max_version

    @property
    def range_str(self):
        return '%s-%s' % (self.min_version, self.max_version)

    def __str__(self):
        return '%s (%s)' % (self.name, self.range_str)


_TYPES_HEADERS = {
    'type_name': 'Type Name',
    'base_type': 'Base Type',
    'value_name': 'Value Name',
    'value': 'Value',
    'comment': 'Comment',
}

_MESSAGES_HEADERS = {
    'message_name': 'Message Name',
    'field_num': 'Field Def #',
    'field_name': 'Field Name',
    'field_type': 'Field Type',
    'array': 'Array',
    'components': 'Components',
    'scale': 'Scale',
    'offset': 'Offset',
    'units': 'Units',
    'bits': 'Bits',
    'accumulate': 'Accumulate',
    'ref_field_name': 'Ref Field Name',
    'ref_field_value': 'Ref Field Value',
    'comment': 'Comment',
}

_REQUIRED_TYPES = ('type_name', 'base_type', 'value_name', 'value')
_REQUIRED_MESSAGES = (
    'message_name', 'field_num', 'field_name', 'field_type', 'array', 'components',
    'scale', 'offset', 'units', 'bits', 'ref_field_name', 'ref_field_value',
)


RULE_SETS = (
    RuleSet(
        name='sdk16',
        min_version=ProfileVersion(16, 0),
        max_version=ProfileVersion(19, 99),
        types_sheet='Types',
        messages_sheet='Messages',
        version_sheet=None,
        types_columns=MappingProxyType(_TYPES_HEADERS),
        messages_columns=MappingProxyType(_MESSAGES_HEADERS),
        required_types_columns=_REQUIRED_TYPES,
        required_messages_columns=_REQUIRED_MESSAGES,
        quirks=Quirks(
            implicit_types=MappingProxyType({'bool': 'enum'}),
            mesg_num_type='mesg_num',
            hex_values=True,
        ),
    ),
    RuleSet(
        name='sdk20',
        min_version=ProfileVersion(20, 0),
        max_version=ProfileVersion(21, 99),
        types_sheet='Types',
        messages_sheet='Messages',
        version_sheet='Version',
        types_columns=MappingProxyType(_TYPES_HEADERS),
        messages_columns=MappingProxyType(_MESSAGES_HEADERS),
        required_types_columns=_REQUIRED_TYPES,
        required_messages_columns=_REQUIRED_MESSAGES + ('accumulate',),
        quirks=Quirks(
            implicit_types=MappingProxyType({'bool': 'enum'}),
            mesg_num_type='mesg_num',
            hex_values=True,
        ),
    ),
)


def _check_registry(rule_sets):
    ordered = sorted(rule_sets, key=lambda rs: rs.min_version)
    for rule_set in ordered:
        if rule_set.min_version > rule_set.max_version:
            raise ValueError('Rule set %s has an empty version range' % (rule_set,))
        unknown = (set(rule_set.types_columns) - set(TYPES_COLUMNS)) | \
            (set(rule_set.messages_columns) - set(MESSAGES_COLUMNS))
        if unknown:
            raise ValueError('Rule set %s maps unknown columns: %s' % (rule_set, ', '.join(sorted(unknown))))
        for semantic in rule_set.required_types_columns:
            if semantic not in rule_set.types_columns:
                raise ValueError('Rule set %s requires unmapped types column %r' % (rule_set, semantic))
        for semantic in rule_set.required_messages_columns:
            if semantic not in rule_set.messages_columns:
                raise ValueError('Rule set %s requires unmapped messages column %r' % (rule_set, semantic))
    for previous, current in zip(ordered, ordered[1:]):
        if current.min_version <= previous.max_version:
            raise ValueError('Rule sets %s and %s overlap' % (previous, current))


_check_registry(RULE_SETS)


def supported_ranges(rule_sets=RULE_SETS):
    return tuple(rs.range_str for rs in rule_sets)


def select_rule_set(major, minor, rule_sets=RULE_SETS):
    """Return the rule set whose version range holds major.minor"""
    version = ProfileVersion(major, minor)
    for rule_set in rule_sets:
        if rule_set.supports(version):
            return rule_set
    raise UnsupportedVersionError(major, minor, supported_ranges(rule_sets))
