"""
Source rendering: turn a resolved ProfileModel into the Python modules the
FIT runtime imports.

Output order is fixed: types in workbook order (values in insertion order),
messages by ascending number, fields by ascending number, components and
subfields in declared order. A dynamic field's variants are ordered with the
default last: its `subfields` tuple lists the conditional variants in
declared order, and the default is the enclosing Field itself, which the
runtime only falls back to once no subfield's reference values match. With the generation timestamp disabled the output depends on
nothing but the model.
"""

import datetime
import logging

from fitgen.records import (
    KIND_ARRAY, KIND_COMPONENT, KIND_DYNAMIC, KIND_PLAIN, BaseType, Profile, TypeDef,
)
from fitgen.utils import RenderError, scrub_identifier

logger = logging.getLogger(__name__)

RECORDS_MODULE = 'fit.records'
TYPES_MODULE = 'profile_types'
MESSAGES_MODULE = 'profile_messages'
PROFILE_MODULE = 'profile'

TIMESTAMP_DEF_NUM = 253

INDENT = '    '


def banner_str(s):
    return ('   %s   ' % s).center(BANNER_PADDING, '#')


BANNER_PADDING = 78
PROFILE_OUTPUT_FILE_HEADER_MAGIC = '%s\n%s\n%s' % (
    '#' * BANNER_PADDING,
    banner_str('AUTOMATICALLY GENERATED DEFINITION FILE'),
    '#' * BANNER_PADDING,
)


def _one_line(text):
    return ' '.join(text.split())


class SourceWriter:
    def __init__(self):
        self._chunks = []
        self.level = 0

    def write(self, s):
        self._chunks.append(s)

    def writeln(self, s=''):
        if s:
            self.write(INDENT * self.level + s)
        self.write('\n')

    def open(self, s):
        self.writeln(s)
        self.level += 1

    def close(self, s):
        self.level -= 1
        self.writeln(s)

    def keyword(self, name, value, comment=None):
        line = '%s=%s,' % (name, value)
        if comment:
            line += '  # %s' % comment
        self.writeln(line)

    def getvalue(self):
        return ''.join(self._chunks).encode('utf-8')


class Renderer:

    def __init__(self, model, generation_timestamp=True, now=None):
        self.model = model
        self.generation_timestamp = generation_timestamp
        self.now = now
        self.types = {type_def.name: type_def for type_def in model.types}

    ##########
    # Helpers

    def header(self, writer, module, title):
        writer.writeln(PROFILE_OUTPUT_FILE_HEADER_MAGIC)
        writer.writeln('#')
        writer.writeln('# %s.py -- %s' % (module, title))
        writer.writeln('# Exported from FIT SDK %s Profile' % (self.model.version,))
        if self.generation_timestamp:
            now = self.now or datetime.datetime.now()
            writer.writeln('# Created on %s by fitgen' % now.strftime('%Y-%m-%d %H:%M:%S'))
        writer.writeln('#')
        writer.writeln()

    def type_expr(self, field_type):
        """Expression for a field's type, plus a base type comment"""
        if isinstance(field_type, BaseType):
            return 'BASE_TYPES[0x%02X]' % field_type.identifier, field_type.name
        if isinstance(field_type, TypeDef):
            if self.types.get(field_type.name) is not field_type:
                raise RenderError('Type %r is not part of the model' % field_type.name)
            return 'FIELD_TYPES[%r]' % field_type.name, None
        raise RenderError('Unexpected field type %r' % (field_type,))

    ##########
    # Types

    def render_types(self):
        writer = SourceWriter()
        self.header(writer, TYPES_MODULE, 'FIT SDK Profile Types')
        writer.writeln('from %s import BASE_TYPES, FieldType' % RECORDS_MODULE)
        writer.writeln()
        writer.writeln()
        writer.open('FIELD_TYPES = {')
        for type_def in self.model.types:
            writer.open('%r: FieldType(' % type_def.name)
            writer.keyword('name', repr(type_def.name))
            writer.keyword('base_type', 'BASE_TYPES[0x%02X]' % type_def.base_type.identifier,
                           type_def.base_type.name)
            if type_def.values:
                writer.open('values={')
                for type_value in type_def.values:
                    line = '%s: %r,' % (type_value.value, type_value.name)
                    if type_value.comment:
                        line += '  # %s' % _one_line(type_value.comment)
                    writer.writeln(line)
                writer.close('},')
            writer.close('),')
        writer.close('}')
        return writer.getvalue()

    ##########
    # Messages

    def write_scaling(self, writer, field):
        if field.scale is not None:
            writer.keyword('scale', repr(field.scale))
        if field.offset is not None:
            writer.keyword('offset', repr(field.offset))
        if field.units is not None:
            writer.keyword('units', repr(field.units))
        if field.accumulate:
            writer.keyword('accumulate', 'True')

    def write_components(self, writer, components):
        writer.open('components=(')
        for component in components:
            writer.open('ComponentField(')
            writer.keyword('name', repr(component.name))
            writer.keyword('def_num', component.def_num)
            self.write_scaling(writer, component)
            writer.keyword('bits', component.bits)
            writer.keyword('bit_offset', component.bit_offset)
            writer.close('),')
        writer.close('),')

    def write_field_attrs(self, writer, field):
        """Attributes of a non dynamic field, shared by Field and SubField"""
        type_expr, comment = self.type_expr(field.type)
        writer.keyword('name', repr(field.name))
        writer.keyword('type', type_expr, comment)
        writer.keyword('def_num', field.def_num)
        self.write_scaling(writer, field)

        if field.kind == KIND_PLAIN:
            pass
        elif field.kind == KIND_ARRAY:
            writer.keyword('array', repr(field.array))
        elif field.kind == KIND_COMPONENT:
            if field.array is not None:
                writer.keyword('array', repr(field.array))
            self.write_components(writer, field.components)
        elif field.kind == KIND_DYNAMIC:
            raise RenderError('Nested dynamic field %r' % field.name)
        else:
            raise RenderError('Unknown field kind %r for %r' % (field.kind, field.name))

    def write_subfields(self, writer, variants):
        writer.open('subfields=(')
        for variant in variants:
            writer.open('SubField(')
            self.write_field_attrs(writer, variant.field)
            writer.open('ref_fields=(')
            for condition in variant.conditions:
                for value, raw_value in condition.values:
                    writer.open('ReferenceField(')
                    writer.keyword('name', repr(condition.name))
                    writer.keyword('def_num', condition.def_num)
                    writer.keyword('value', repr(value))
                    writer.keyword('raw_value', raw_value)
                    writer.close('),')
            writer.close('),')
            writer.close('),')
        writer.close('),')

    def write_field(self, writer, field):
        writer.open('%d: Field(' % field.def_num)
        if field.kind == KIND_DYNAMIC:
            self.write_field_attrs(writer, field.default)
            self.write_subfields(writer, field.variants)
        elif field.kind in (KIND_PLAIN, KIND_ARRAY, KIND_COMPONENT):
            self.write_field_attrs(writer, field)
        else:
            raise RenderError('Unknown field kind %r for %r' % (field.kind, field.name))
        writer.close('),')

    def render_messages(self):
        writer = SourceWriter()
        self.header(writer, MESSAGES_MODULE, 'FIT SDK Profile Messages')
        writer.writeln('from %s import BASE_TYPES, ComponentField, Field, MessageType, ReferenceField, SubField'
                       % RECORDS_MODULE)
        writer.writeln()
        writer.writeln('from .%s import FIELD_TYPES' % TYPES_MODULE)
        writer.writeln()
        writer.writeln()
        writer.open('MESSAGE_TYPES = {')
        for message in self.model.messages:
            writer.open('%d: MessageType(' % message.mesg_num)
            writer.keyword('name', repr(message.name))
            writer.keyword('mesg_num', message.mesg_num)
            writer.open('fields={')
            for field in sorted(message.fields, key=lambda f: f.def_num):
                self.write_field(writer, field)
            writer.close('},')
            writer.close('),')
        writer.close('}')
        return writer.getvalue()

    ##########
    # Profile

    def render_profile(self):
        writer = SourceWriter()
        self.header(writer, PROFILE_MODULE, 'FIT SDK Profile Metadata')

        date_time = self.types.get('date_time')
        if date_time is not None:
            writer.writeln('from %s import Field' % RECORDS_MODULE)
            writer.writeln()
            writer.writeln('from .%s import FIELD_TYPES' % TYPES_MODULE)
            timestamp_type = "FIELD_TYPES['date_time']"
        else:
            writer.writeln('from %s import BASE_TYPES, Field' % RECORDS_MODULE)
            timestamp_type = 'BASE_TYPES[0x86]'
        writer.writeln()
        writer.writeln()

        version = self.model.version
        writer.writeln('PROFILE_VERSION = (%d, %d)' % (version.major, version.minor))
        writer.writeln('PROFILE_VERSION_SCALED = %d' % version.scaled)
        writer.writeln()

        writer.open('MESG_NUMS = {')
        for message in self.model.messages:
            writer.writeln('%d: %r,' % (message.mesg_num, message.name))
        writer.close('}')
        writer.writeln()

        writer.open('MESG_NAMES = {')
        for message in self.model.messages:
            writer.writeln('%r: %d,' % (message.name, message.mesg_num))
        writer.close('}')
        writer.writeln()

        writer.writeln('FIELD_TYPE_TIMESTAMP = Field(name=%r, type=%s, def_num=%d, units=%r)' % (
            'timestamp', timestamp_type, TIMESTAMP_DEF_NUM, 's'))
        return writer.getvalue()

    ##########
    # Stringer input

    def render_stringer_input(self):
        return ','.join(
            scrub_identifier(type_def.name) for type_def in self.model.types
            if type_def.values and type_def.base_type.integer
        )

    def render(self):
        profile = Profile(
            types_source=self.render_types(),
            messages_source=self.render_messages(),
            profile_source=self.render_profile(),
            stringer_input=self.render_stringer_input(),
            mesg_nums_without_message=tuple(self.model.mesg_nums_without_message),
        )
        logger.debug('Rendered profile for SDK %s (%d bytes)', self.model.version, sum(
            len(source) for source in profile[:3]))
        return profile


def render(model, generation_timestamp=True, now=None):
    """Render a resolved model into a Profile.

    :param ProfileModel model: output of the resolver
    :param bool generation_timestamp: embed a "Created on" line in each module
    :param datetime.datetime now: timestamp to embed, defaults to the current time
    :rtype: Profile
    """
    return Renderer(model, generation_timestamp=generation_timestamp, now=now).render()
