"""
Reference resolution: link raw records into a ProfileModel.

Everything the renderer relies on is checked here: unique type names,
message ids and field numbers, field types that exist, component slices that
fit their carrier without overlapping, and subfield conditions that point at
real fields with values those fields can actually hold. The first problem
found aborts resolution.
"""

import logging

from fitgen.records import (
    BASE_TYPE_NAMES, ArrayField, ComponentField, ComponentSlice, DynamicField, MessageDef,
    PlainField, ProfileModel, ReferenceCondition, SubField, TypeDef, TypeValue, type_base,
)
from fitgen.utils import SchemaIntegrityError

logger = logging.getLogger(__name__)


class _MessageResolver:
    """Resolves the fields of one message"""

    def __init__(self, resolver, raw_message):
        self.resolver = resolver
        self.raw_message = raw_message
        self.fields_by_name = {}
        self.fields_by_num = {}

        for raw_field in raw_message.fields:
            if raw_field.def_num in self.fields_by_num:
                raise self.error('Duplicate field number %d (also used by %r)' % (
                    raw_field.def_num, self.fields_by_num[raw_field.def_num].name), raw_field)
            if raw_field.name in self.fields_by_name:
                raise self.error('Duplicate field name %r' % raw_field.name, raw_field)
            self.fields_by_num[raw_field.def_num] = raw_field
            self.fields_by_name[raw_field.name] = raw_field

    def error(self, msg, raw_field=None):
        return SchemaIntegrityError(
            msg,
            sheet=self.resolver.rule_set.messages_sheet,
            row=raw_field.row if raw_field is not None else self.raw_message.row,
            message=self.raw_message.name,
            field=raw_field.name if raw_field is not None else None,
        )

    def resolve_fields(self):
        fields = []
        for raw_field in sorted(self.raw_message.fields, key=lambda f: f.def_num):
            if raw_field.has_reference:
                raise self.error('Field with a field number cannot have reference conditions', raw_field)
            field = self.resolve_field(raw_field)
            if raw_field.subfields:
                variants = tuple(self.resolve_subfield(raw_sub) for raw_sub in raw_field.subfields)
                self.check_variants(variants, raw_field.subfields)
                field = DynamicField(default=field, variants=variants)
            fields.append(field)
        return tuple(fields)

    def check_variants(self, variants, raw_subs):
        """A reference value may select at most one variant of a field"""
        claimed = {}
        for variant, raw_sub in zip(variants, raw_subs):
            for condition in variant.conditions:
                for value, raw_value in condition.values:
                    key = (condition.def_num, raw_value)
                    if key in claimed:
                        raise self.error('Subfields %r and %r both apply when %s is %r' % (
                            claimed[key], variant.field.name, condition.name, value), raw_sub)
                    claimed[key] = variant.field.name

    def resolve_field(self, raw_field):
        """Resolve to a PlainField, ArrayField or ComponentField"""
        field_type = self.resolver.lookup_type(raw_field.type_name)
        if field_type is None:
            raise self.error('Unknown field type %r' % raw_field.type_name, raw_field)

        common = dict(
            def_num=raw_field.def_num,
            name=raw_field.name,
            type=field_type,
            scale=raw_field.scale,
            offset=raw_field.offset,
            units=raw_field.units,
            accumulate=raw_field.accumulate,
            comment=raw_field.comment,
        )

        if raw_field.components:
            field = ComponentField(array=raw_field.array, components=(), **common)
            field.components = self.resolve_components(field, raw_field)
            return field
        if raw_field.array is not None:
            return ArrayField(array=raw_field.array, **common)
        return PlainField(**common)

    def resolve_components(self, carrier, raw_field):
        if not type_base(carrier.type).integer:
            raise self.error('Components on non integer type %r' % carrier.type_name, raw_field)

        slices = []
        bit_offset = 0
        for raw_component in raw_field.components:
            target = self.fields_by_name.get(raw_component.name)
            if target is None:
                raise self.error('Component %r names no field of this message' % raw_component.name, raw_field)
            if target.def_num == carrier.def_num:
                raise self.error('Component %r expands into its own field' % raw_component.name, raw_field)
            if raw_component.bits <= 0:
                raise self.error('Component %r has %d bits' % (raw_component.name, raw_component.bits), raw_field)
            slices.append(ComponentSlice(
                name=raw_component.name,
                def_num=target.def_num,
                bits=raw_component.bits,
                bit_offset=bit_offset,
                scale=raw_component.scale,
                offset=raw_component.offset,
                units=raw_component.units,
                accumulate=raw_component.accumulate,
            ))
            bit_offset += raw_component.bits

        self.check_slices(carrier, slices, raw_field)
        return tuple(slices)

    def check_slices(self, carrier, slices, raw_field):
        width = carrier.bit_width
        taken = []
        for component in slices:
            start, end = component.bit_range
            if width is not None and end > width:
                raise self.error('Component %r needs bits %d..%d but %r only has %d bits' % (
                    component.name, start, end - 1, carrier.name, width), raw_field)
            for other in taken:
                other_start, other_end = other.bit_range
                if start < other_end and other_start < end:
                    raise self.error('Components %r and %r overlap' % (other.name, component.name), raw_field)
            taken.append(component)

    def resolve_subfield(self, raw_sub):
        field = self.resolve_field(raw_sub)

        conditions = []
        by_ref = {}
        for ref_name, ref_value in zip(raw_sub.ref_names, raw_sub.ref_values):
            ref_field = self.fields_by_name.get(ref_name)
            if ref_field is None:
                raise self.error('Reference field %r not found' % ref_name, raw_sub)
            if ref_field.def_num == raw_sub.def_num:
                raise self.error('Field %r references itself' % ref_name, raw_sub)

            raw_value = self.parse_ref_value(ref_field, ref_value, raw_sub)
            condition = by_ref.get(ref_name)
            if condition is None:
                condition = by_ref[ref_name] = ReferenceCondition(name=ref_name, def_num=ref_field.def_num, values=())
                conditions.append(condition)
            if any(raw == raw_value for _, raw in condition.values):
                raise self.error('Duplicate reference value %r for %r' % (ref_value, ref_name), raw_sub)
            condition.values += ((ref_value, raw_value),)

        return SubField(field=field, conditions=tuple(conditions))

    def parse_ref_value(self, ref_field, text, raw_sub):
        """Raw value of ``text`` as the reference field's type would store it"""
        ref_type = self.resolver.lookup_type(ref_field.type_name)
        if ref_type is None:
            raise self.error('Reference field %r has unknown type %r' % (ref_field.name, ref_field.type_name), raw_sub)

        if isinstance(ref_type, TypeDef):
            value = ref_type.get_value(text)
            if value is not None:
                return value

        base_type = type_base(ref_type)
        if not base_type.integer:
            raise self.error('Reference field %r of type %r cannot be matched' % (
                ref_field.name, ref_type.name), raw_sub)
        try:
            value = int(text, 0)
        except ValueError:
            raise self.error('Reference value %r is not valid for %r (type %s)' % (
                text, ref_field.name, ref_type.name), raw_sub) from None
        low, high = base_type.value_range
        if not low <= value <= high:
            raise self.error('Reference value %r out of range for %r (%s)' % (
                text, ref_field.name, base_type.name), raw_sub)
        return value


class Resolver:

    def __init__(self, extraction, rule_set, version):
        self.extraction = extraction
        self.rule_set = rule_set
        self.version = version
        self.types = {}

    def lookup_type(self, name):
        if name in self.types:
            return self.types[name]
        return BASE_TYPE_NAMES.get(name)

    def types_error(self, msg, row=None):
        return SchemaIntegrityError(msg, sheet=self.rule_set.types_sheet, row=row)

    def resolve_types(self):
        types = []
        for raw_type in self.extraction.types:
            if raw_type.name in self.types:
                raise self.types_error('Duplicate type name %r' % raw_type.name, raw_type.row)
            type_def = TypeDef(
                name=raw_type.name,
                base_type=BASE_TYPE_NAMES[raw_type.base_type],
                values=tuple(TypeValue(v.name, v.value, v.comment or None) for v in raw_type.values),
                comment=raw_type.comment or None,
                row=raw_type.row,
            )
            self.types[type_def.name] = type_def
            types.append(type_def)

        for name, base_type_name in sorted(self.rule_set.quirks.implicit_types.items()):
            if name not in self.types:
                type_def = TypeDef(name=name, base_type=BASE_TYPE_NAMES[base_type_name], values=(),
                                   comment=None, row=None)
                self.types[name] = type_def
                types.append(type_def)

        return tuple(types)

    def mesg_num_type(self):
        mesg_num = self.types.get(self.rule_set.quirks.mesg_num_type)
        if mesg_num is None:
            raise self.types_error('No %r type found' % self.rule_set.quirks.mesg_num_type)
        return mesg_num

    def resolve_messages(self):
        mesg_num = self.mesg_num_type()
        messages = []
        names = set()
        nums = {}

        for raw_message in self.extraction.messages:
            message_resolver = _MessageResolver(self, raw_message)
            if raw_message.name in names:
                raise message_resolver.error('Duplicate message %r' % raw_message.name)

            num = mesg_num.get_value(raw_message.name)
            if num is None:
                raise message_resolver.error('Message %r has no %r entry' % (raw_message.name, mesg_num.name))
            if raw_message.declared_num is not None and raw_message.declared_num != num:
                raise message_resolver.error('Message %r declares number %d but %r says %d' % (
                    raw_message.name, raw_message.declared_num, mesg_num.name, num))
            if num in nums:
                raise message_resolver.error('Message number %d used by %r and %r' % (
                    num, nums[num], raw_message.name))

            names.add(raw_message.name)
            nums[num] = raw_message.name
            messages.append(MessageDef(
                name=raw_message.name,
                mesg_num=num,
                fields=message_resolver.resolve_fields(),
                row=raw_message.row,
            ))

        messages.sort(key=lambda m: m.mesg_num)
        return tuple(messages)

    def mesg_nums_without_message(self, messages):
        declared = {v.name for v in self.mesg_num_type().values}
        defined = {m.name for m in messages}
        return tuple(sorted(declared - defined))

    def resolve(self):
        types = self.resolve_types()
        messages = self.resolve_messages()
        model = ProfileModel(
            version=self.version,
            types=types,
            messages=messages,
            mesg_nums_without_message=self.mesg_nums_without_message(messages),
        )
        logger.debug('Resolved %d types, %d messages (%d message numbers without a message)',
                     len(model.types), len(model.messages), len(model.mesg_nums_without_message))
        return model


def resolve(extraction, rule_set, version):
    """Link an Extraction into a ProfileModel, raising SchemaIntegrityError on any inconsistency"""
    return Resolver(extraction, rule_set, version).resolve()
