import struct

from collections import namedtuple
from itertools import zip_longest


class RecordBase:
    # namedtuple-like base class. Subclasses should must __slots__
    __slots__ = ()

    def __init__(self, *args, **kwargs):
        for slot_name, value in zip_longest(self.__slots__, args, fillvalue=None):
            setattr(self, slot_name, value)
        for slot_name, value in kwargs.items():
            setattr(self, slot_name, value)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return all(getattr(self, s) == getattr(other, s) for s in self.__slots__)

    __hash__ = None


class ProfileVersion(namedtuple('ProfileVersion', ('major', 'minor'))):
    __slots__ = ()

    @property
    def scaled(self):
        # Same encoding the SDK uses in file headers (20.14 -> 2014)
        return self.major * 100 + self.minor

    def __str__(self):
        return '%d.%d' % (self.major, self.minor)


class BaseType(RecordBase):
    __slots__ = ('name', 'identifier', 'fmt', 'signed', 'integer')

    @property
    def size(self):
        return struct.calcsize('<' + self.fmt) if self.fmt != 's' else 1

    @property
    def bits(self):
        return self.size * 8

    @property
    def type_num(self):
        return self.identifier & 0x1F

    @property
    def value_range(self):
        if not self.integer:
            return None
        if self.signed:
            return -(1 << (self.bits - 1)), (1 << (self.bits - 1)) - 1
        return 0, (1 << self.bits) - 1

    def __repr__(self):
        return '<BaseType: %s (#%d [0x%X])>' % (
            self.name, self.type_num, self.identifier,
        )


BASE_TYPES = {
    0x00: BaseType(name='enum', identifier=0x00, fmt='B', signed=False, integer=True),
    0x01: BaseType(name='sint8', identifier=0x01, fmt='b', signed=True, integer=True),
    0x02: BaseType(name='uint8', identifier=0x02, fmt='B', signed=False, integer=True),
    0x83: BaseType(name='sint16', identifier=0x83, fmt='h', signed=True, integer=True),
    0x84: BaseType(name='uint16', identifier=0x84, fmt='H', signed=False, integer=True),
    0x85: BaseType(name='sint32', identifier=0x85, fmt='i', signed=True, integer=True),
    0x86: BaseType(name='uint32', identifier=0x86, fmt='I', signed=False, integer=True),
    0x07: BaseType(name='string', identifier=0x07, fmt='s', signed=False, integer=False),
    0x88: BaseType(name='float32', identifier=0x88, fmt='f', signed=True, integer=False),
    0x89: BaseType(name='float64', identifier=0x89, fmt='d', signed=True, integer=False),
    0x0A: BaseType(name='uint8z', identifier=0x0A, fmt='B', signed=False, integer=True),
    0x8B: BaseType(name='uint16z', identifier=0x8B, fmt='H', signed=False, integer=True),
    0x8C: BaseType(name='uint32z', identifier=0x8C, fmt='I', signed=False, integer=True),
    0x0D: BaseType(name='byte', identifier=0x0D, fmt='B', signed=False, integer=True),
    0x8E: BaseType(name='sint64', identifier=0x8E, fmt='q', signed=True, integer=True),
    0x8F: BaseType(name='uint64', identifier=0x8F, fmt='Q', signed=False, integer=True),
    0x90: BaseType(name='uint64z', identifier=0x90, fmt='Q', signed=False, integer=True),
}

BASE_TYPE_NAMES = {bt.name: bt for bt in BASE_TYPES.values()}


class TypeValue(RecordBase):
    __slots__ = ('name', 'value', 'comment')

    def __repr__(self):
        return '<TypeValue: %s = %s>' % (self.name, self.value)


class TypeDef(RecordBase):
    __slots__ = ('name', 'base_type', 'values', 'comment', 'row')

    @property
    def is_enumerated(self):
        return bool(self.values)

    def get_value(self, name):
        for type_value in self.values:
            if type_value.name == name:
                return type_value.value
        return None

    def get_name(self, value):
        for type_value in self.values:
            if type_value.value == value:
                return type_value.name
        return None

    def __repr__(self):
        return '<TypeDef: %s (%s), %d values>' % (self.name, self.base_type.name, len(self.values))


def type_base(field_type):
    """Base type behind either a TypeDef or a BaseType"""
    return field_type if isinstance(field_type, BaseType) else field_type.base_type


# Field kinds. Every consumer switches over all four of these.
KIND_PLAIN = 'plain'
KIND_ARRAY = 'array'
KIND_COMPONENT = 'component'
KIND_DYNAMIC = 'dynamic'

FIELD_KINDS = (KIND_PLAIN, KIND_ARRAY, KIND_COMPONENT, KIND_DYNAMIC)

# Array column "[N]"
VARIABLE_ARRAY = 'N'


class ComponentSlice(RecordBase):
    __slots__ = ('name', 'def_num', 'bits', 'bit_offset', 'scale', 'offset', 'units', 'accumulate')

    @property
    def bit_range(self):
        return self.bit_offset, self.bit_offset + self.bits

    def __repr__(self):
        return '<ComponentSlice: %s (#%d) bits %d..%d>' % (
            self.name, self.def_num, self.bit_offset, self.bit_offset + self.bits - 1,
        )


class ReferenceCondition(RecordBase):
    # values: ordered tuple of (symbolic value, raw value)
    __slots__ = ('name', 'def_num', 'values')


class FieldBase(RecordBase):
    __slots__ = ()
    kind = None

    @property
    def base_type(self):
        return type_base(self.type)

    @property
    def type_name(self):
        return self.type.name

    def __repr__(self):
        return '<%s: %s (#%s) -- type: %s>' % (
            self.__class__.__name__, self.name, self.def_num, self.type_name,
        )


class PlainField(FieldBase):
    __slots__ = ('def_num', 'name', 'type', 'scale', 'offset', 'units', 'accumulate', 'comment')
    kind = KIND_PLAIN


class ArrayField(FieldBase):
    # array: element count, or VARIABLE_ARRAY to consume the remaining bytes
    __slots__ = ('def_num', 'name', 'type', 'scale', 'offset', 'units', 'accumulate', 'comment', 'array')
    kind = KIND_ARRAY

    @property
    def is_variable(self):
        return self.array == VARIABLE_ARRAY


class ComponentField(FieldBase):
    __slots__ = ('def_num', 'name', 'type', 'scale', 'offset', 'units', 'accumulate', 'comment',
                 'array', 'components')
    kind = KIND_COMPONENT

    @property
    def bit_width(self):
        """Bits available to components, None when the array is variable"""
        if self.array is None:
            return self.base_type.bits
        if self.array == VARIABLE_ARRAY:
            return None
        return self.base_type.bits * self.array


class SubField(RecordBase):
    # field: PlainField / ArrayField / ComponentField variant
    __slots__ = ('field', 'conditions')

    def __repr__(self):
        return '<SubField: %s when %s>' % (self.field.name, ', '.join(
            '%s in (%s)' % (c.name, ', '.join(v for v, _ in c.values)) for c in self.conditions
        ))


class DynamicField(FieldBase):
    __slots__ = ('default', 'variants')
    kind = KIND_DYNAMIC

    @property
    def def_num(self):
        return self.default.def_num

    @property
    def name(self):
        return self.default.name

    @property
    def type(self):
        return self.default.type


class MessageDef(RecordBase):
    # fields: tuple ordered by ascending field number
    __slots__ = ('name', 'mesg_num', 'fields', 'row')

    def get_field(self, def_num):
        for field in self.fields:
            if field.def_num == def_num:
                return field
        return None

    def __repr__(self):
        return '<MessageDef: %s (#%d), %d fields>' % (self.name, self.mesg_num, len(self.fields))


class ProfileModel(RecordBase):
    # types: workbook order, messages: ascending mesg_num
    __slots__ = ('version', 'types', 'messages', 'mesg_nums_without_message')

    def get_type(self, name):
        for type_def in self.types:
            if type_def.name == name:
                return type_def
        return None

    def get_message(self, name):
        for message in self.messages:
            if message.name == name:
                return message
        return None


Profile = namedtuple('Profile', (
    'types_source', 'messages_source', 'profile_source', 'stringer_input', 'mesg_nums_without_message',
))
