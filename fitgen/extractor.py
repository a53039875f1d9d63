"""
Schema extraction: walk the Types and Messages sheets with a rule set and
produce raw, still unresolved records. Type names are kept as strings here;
linking them is the resolver's job.
"""

import logging
import re
import warnings
from collections import namedtuple

from fitgen.records import BASE_TYPE_NAMES, VARIABLE_ARRAY, ProfileVersion
from fitgen.utils import InputError, ProfileWarning, SchemaIntegrityError, parse_version, split_list

logger = logging.getLogger(__name__)

ARRAY_MATCHER = re.compile(r'^\[\s*(N|\d+)\s*\]$')


Extraction = namedtuple('Extraction', ('types', 'messages', 'declared_version'))

RawValue = namedtuple('RawValue', ('name', 'value', 'comment', 'row'))


class RawType:
    __slots__ = ('name', 'base_type', 'values', 'comment', 'row')

    def __init__(self, name, base_type, comment, row):
        self.name = name
        self.base_type = base_type
        self.values = []
        self.comment = comment
        self.row = row

    def __repr__(self):
        return '<RawType: %s (%s), %d values>' % (self.name, self.base_type, len(self.values))


RawComponent = namedtuple('RawComponent', ('name', 'scale', 'offset', 'units', 'bits', 'accumulate'))


class RawField:
    __slots__ = ('row', 'def_num', 'name', 'type_name', 'array', 'components', 'scale', 'offset',
                 'units', 'accumulate', 'ref_names', 'ref_values', 'comment', 'subfields')

    def __init__(self, **kwargs):
        self.subfields = []
        for key, value in kwargs.items():
            setattr(self, key, value)

    @property
    def has_reference(self):
        return bool(self.ref_names)

    def __repr__(self):
        return '<RawField: %s (#%s) -- type: %s>' % (self.name, self.def_num, self.type_name)


class RawMessage:
    __slots__ = ('name', 'declared_num', 'fields', 'row')

    def __init__(self, name, declared_num, row):
        self.name = name
        self.declared_num = declared_num
        self.fields = []
        self.row = row

    def __repr__(self):
        return '<RawMessage: %s, %d fields>' % (self.name, len(self.fields))


def _normalize_header(label):
    return ' '.join(label.split()).rstrip(':').lower()


class ColumnMap:
    """Semantic column name -> cell index, found from a sheet's header row"""

    def __init__(self, sheet_name, header_row, labels, required):
        self.sheet_name = sheet_name
        self.labels = labels
        positions = {}
        for index, cell in enumerate(header_row.cells):
            if cell:
                positions.setdefault(_normalize_header(cell), index)

        self._indexes = {}
        for semantic, label in labels.items():
            index = positions.get(_normalize_header(label))
            if index is None and semantic in required:
                raise InputError(
                    'Missing required column %r' % label,
                    sheet=sheet_name, row=header_row.index, column=label,
                )
            self._indexes[semantic] = index

    def get(self, row, semantic):
        return row.cell(self._indexes.get(semantic))

    def label(self, semantic):
        return self.labels.get(semantic, semantic)


def _first_row(sheet):
    for row in sheet.rows():
        if not row.is_blank():
            return row
    raise InputError('Sheet is empty', sheet=sheet.name)


class _SheetParser:
    """Shared cell parsing, reporting failures with sheet/row/column"""

    def __init__(self, sheet, rule_set, labels, required):
        self.sheet = sheet
        self.rule_set = rule_set
        self.header = _first_row(sheet)
        self.columns = ColumnMap(sheet.name, self.header, labels, required)

    def data_rows(self):
        for row in self.sheet.rows():
            if row.index > self.header.index and not row.is_blank():
                yield row

    def error(self, msg, row, semantic=None, **context):
        column = self.columns.label(semantic) if semantic else None
        return InputError(msg, sheet=self.sheet.name, row=row.index, column=column, **context)

    def parse_int(self, text, row, semantic):
        try:
            if self.rule_set.quirks.hex_values and text.lower().startswith(('0x', '-0x')):
                return int(text, 16)
            return int(text)
        except ValueError:
            raise self.error('Invalid integer %r' % text, row, semantic) from None

    def parse_number(self, text, row, semantic):
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            raise self.error('Invalid number %r' % text, row, semantic) from None
        return int(number) if number.is_integer() else number

    def parse_flag(self, text, row, semantic):
        if text in ('', '0'):
            return False
        if text == '1':
            return True
        raise self.error('Invalid flag %r' % text, row, semantic)


class TypesParser(_SheetParser):

    def __init__(self, sheet, rule_set):
        super().__init__(sheet, rule_set, rule_set.types_columns, rule_set.required_types_columns)

    def parse(self):
        get = self.columns.get
        types = []
        current = None

        for row in self.data_rows():
            type_name = get(row, 'type_name')
            value_name = get(row, 'value_name')

            if type_name:
                base_type = get(row, 'base_type')
                if base_type not in BASE_TYPE_NAMES:
                    raise self.error('Unknown base type %r for type %r' % (base_type, type_name), row, 'base_type')
                current = RawType(type_name, base_type, get(row, 'comment'), row.index)
                types.append(current)
            elif value_name:
                if current is None:
                    raise self.error('Value %r outside of any type' % value_name, row, 'value_name')
                text = get(row, 'value')
                if not text:
                    raise self.error('Missing value for %r' % value_name, row, 'value')
                self._add_value(current, RawValue(
                    value_name, self.parse_int(text, row, 'value'), get(row, 'comment'), row.index,
                ))
            # Anything else is a comment row

        return types

    def _add_value(self, raw_type, raw_value):
        for existing in raw_type.values:
            if existing.value == raw_value.value:
                raise SchemaIntegrityError(
                    'Duplicate value %r in type %r (also used by %r)' % (
                        raw_value.value, raw_type.name, existing.name),
                    sheet=self.sheet.name, row=raw_value.row,
                )
            if existing.name == raw_value.name:
                warnings.warn('Duplicate value name %r in type %r (values %r and %r)' % (
                    raw_value.name, raw_type.name, existing.value, raw_value.value), ProfileWarning)
        raw_type.values.append(raw_value)


class MessagesParser(_SheetParser):

    def __init__(self, sheet, rule_set):
        super().__init__(sheet, rule_set, rule_set.messages_columns, rule_set.required_messages_columns)

    def parse(self):
        get = self.columns.get
        messages = []
        message = None
        last_field = None

        for row in self.data_rows():
            message_name = get(row, 'message_name')
            num_text = get(row, 'field_num')
            field_name = get(row, 'field_name')

            if message_name:
                declared_num = self.parse_int(num_text, row, 'field_num') if num_text else None
                message = RawMessage(message_name, declared_num, row.index)
                messages.append(message)
                last_field = None
                continue

            if not (num_text or field_name):
                # File type separator rows, eg. "COMMON MESSAGES"
                continue

            if message is None:
                raise self.error('Field %r outside of any message' % field_name, row, 'field_name')

            field = self._parse_field(row, message)
            is_subfield = field.def_num is None or (
                last_field is not None and field.def_num == last_field.def_num and field.has_reference
            )
            if is_subfield:
                if last_field is None:
                    raise self.error('Subfield %r has no parent field' % field.name, row, 'field_num',
                                     message=message.name)
                if not field.has_reference:
                    raise self.error('Subfield %r has no reference field' % field.name, row, 'ref_field_name',
                                     message=message.name)
                field.def_num = last_field.def_num
                last_field.subfields.append(field)
            else:
                message.fields.append(field)
                last_field = field

        return messages

    def _parse_array(self, text, row):
        if not text:
            return None
        match = ARRAY_MATCHER.match(text)
        if not match:
            raise self.error('Invalid array specification %r' % text, row, 'array')
        count = match.group(1)
        return VARIABLE_ARRAY if count == VARIABLE_ARRAY else int(count)

    def _spread(self, text, count, row, semantic):
        """Split a per-component cell, a single value applies to all components"""
        values = split_list(text)
        if not values:
            return ('',) * count
        if len(values) == 1:
            return values * count
        if len(values) != count:
            raise self.error('Expected %d comma separated values, got %d' % (count, len(values)), row, semantic)
        return values

    def _parse_components(self, row, names):
        get = self.columns.get
        count = len(names)
        scales = self._spread(get(row, 'scale'), count, row, 'scale')
        offsets = self._spread(get(row, 'offset'), count, row, 'offset')
        units = self._spread(get(row, 'units'), count, row, 'units')
        bits = self._spread(get(row, 'bits'), count, row, 'bits')
        accumulates = self._spread(get(row, 'accumulate'), count, row, 'accumulate')

        components = []
        for name, scale, offset, unit, bit_count, accumulate in zip(names, scales, offsets, units, bits, accumulates):
            if not bit_count:
                raise self.error('Component %r has no bit count' % name, row, 'bits')
            components.append(RawComponent(
                name=name,
                scale=_normalize_scale(self.parse_number(scale, row, 'scale')),
                offset=_normalize_offset(self.parse_number(offset, row, 'offset')),
                units=unit or None,
                bits=self.parse_int(bit_count, row, 'bits'),
                accumulate=self.parse_flag(accumulate, row, 'accumulate'),
            ))
        return tuple(components)

    def _parse_field(self, row, message):
        get = self.columns.get
        num_text = get(row, 'field_num')
        name = get(row, 'field_name')
        type_name = get(row, 'field_type')
        if not name:
            raise self.error('Missing field name', row, 'field_name', message=message.name)
        if not type_name:
            raise self.error('Missing field type', row, 'field_type', message=message.name, field=name)

        ref_names = split_list(get(row, 'ref_field_name'))
        ref_values = split_list(get(row, 'ref_field_value'))
        if len(ref_names) != len(ref_values):
            raise self.error('%d reference fields but %d reference values' % (len(ref_names), len(ref_values)),
                             row, 'ref_field_value', message=message.name, field=name)

        component_names = split_list(get(row, 'components'))
        if component_names:
            components = self._parse_components(row, component_names)
            scale = offset = units = None
            accumulate = False
        else:
            components = ()
            scale = _normalize_scale(self.parse_number(get(row, 'scale'), row, 'scale'))
            offset = _normalize_offset(self.parse_number(get(row, 'offset'), row, 'offset'))
            units = get(row, 'units') or None
            accumulate = self.parse_flag(get(row, 'accumulate'), row, 'accumulate')

        return RawField(
            row=row.index,
            def_num=self.parse_int(num_text, row, 'field_num') if num_text else None,
            name=name,
            type_name=type_name,
            array=self._parse_array(get(row, 'array'), row),
            components=components,
            scale=scale,
            offset=offset,
            units=units,
            accumulate=accumulate,
            ref_names=ref_names,
            ref_values=ref_values,
            comment=get(row, 'comment') or None,
        )


def _normalize_scale(scale):
    return None if scale == 1 else scale


def _normalize_offset(offset):
    return None if offset == 0 else offset


def extract_version(workbook, rule_set):
    """Version declared inside the workbook, None if it doesn't declare one"""
    if not rule_set.version_sheet or not workbook.has_sheet(rule_set.version_sheet):
        return None
    sheet = workbook.sheet(rule_set.version_sheet)
    for row in sheet.rows():
        for cell in row.cells:
            parsed = parse_version(cell)
            if parsed:
                return ProfileVersion(*parsed)
    raise InputError('No version found', sheet=sheet.name)


def extract(workbook, rule_set, version):
    """Extract raw types and messages from the workbook.

    :param Workbook workbook: opened profile workbook
    :param RuleSet rule_set: rules for the requested SDK version
    :param ProfileVersion version: version the caller asked for
    :rtype: Extraction
    """
    declared_version = extract_version(workbook, rule_set)
    if declared_version is not None and declared_version != version:
        raise InputError('Workbook declares SDK version %s but %s was requested' % (declared_version, version),
                         sheet=rule_set.version_sheet)

    types = TypesParser(workbook.sheet(rule_set.types_sheet), rule_set).parse()
    messages = MessagesParser(workbook.sheet(rule_set.messages_sheet), rule_set).parse()
    logger.debug('Extracted %d types and %d messages using rule set %s', len(types), len(messages), rule_set)

    return Extraction(types=tuple(types), messages=tuple(messages), declared_version=declared_version)
