#!/usr/bin/env python

import unittest

from fitgen.extractor import extract
from fitgen.records import (
    BASE_TYPE_NAMES, KIND_ARRAY, KIND_COMPONENT, KIND_DYNAMIC, KIND_PLAIN, ProfileVersion, TypeDef,
)
from fitgen.resolver import resolve
from fitgen.rules import select_rule_set
from fitgen.utils import SchemaIntegrityError
from fitgen.workbook import open_workbook

from profile_workbook import (
    EVENT_ROWS, FILE_ID_ROWS, MESSAGES_ROWS, RECORD_ROWS, TYPES_ROWS, build_workbook, replace_row,
)


def resolve_workbook(data, major=20, minor=14):
    rule_set = select_rule_set(major, minor)
    version = ProfileVersion(major, minor)
    return resolve(extract(open_workbook(data), rule_set, version), rule_set, version)


class ResolvedModelTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.model = resolve_workbook(build_workbook())

    def field(self, message_name, def_num):
        return self.model.get_message(message_name).get_field(def_num)

    def test_types_keep_workbook_order(self):
        self.assertEqual(
            ['file', 'mesg_num', 'date_time', 'manufacturer', 'garmin_product', 'event', 'event_type',
             'timer_trigger', 'bool'],
            [t.name for t in self.model.types],
        )
        mesg_num = self.model.get_type('mesg_num')
        self.assertEqual(BASE_TYPE_NAMES['uint16'], mesg_num.base_type)
        self.assertEqual(0xFF00, mesg_num.get_value('mfg_range_min'))
        self.assertEqual('record', mesg_num.get_name(20))
        self.assertEqual('Read only, single file. Must be in root directory.'.split(),
                         self.model.get_type('file').values[0].comment.split())

    def test_implicit_bool_type(self):
        enabled = self.field('record', 51)
        self.assertIsInstance(enabled.type, TypeDef)
        self.assertEqual('bool', enabled.type.name)
        self.assertEqual('enum', enabled.base_type.name)
        self.assertEqual((), enabled.type.values)

    def test_messages_by_number(self):
        self.assertEqual([0, 20, 21], [m.mesg_num for m in self.model.messages])
        self.assertEqual(['file_id', 'record', 'event'], [m.name for m in self.model.messages])

    def test_field_numbers_unique_and_sorted(self):
        for message in self.model.messages:
            nums = [f.def_num for f in message.fields]
            self.assertEqual(sorted(set(nums)), nums)

    def test_plain_fields(self):
        altitude = self.field('record', 2)
        self.assertEqual(KIND_PLAIN, altitude.kind)
        self.assertEqual((5, 500, 'm'), (altitude.scale, altitude.offset, altitude.units))
        self.assertFalse(altitude.accumulate)

        distance = self.field('record', 5)
        self.assertEqual(100, distance.scale)
        self.assertIsNone(distance.offset)
        self.assertTrue(distance.accumulate)

        timestamp = self.field('record', 253)
        self.assertEqual('date_time', timestamp.type.name)
        self.assertIsNone(timestamp.scale)

        serial_number = self.field('file_id', 3)
        self.assertIs(BASE_TYPE_NAMES['uint32z'], serial_number.type)

    def test_array_fields(self):
        speed_1s = self.field('record', 17)
        self.assertEqual(KIND_ARRAY, speed_1s.kind)
        self.assertTrue(speed_1s.is_variable)
        self.assertEqual(16, speed_1s.scale)

    def test_component_field(self):
        csd = self.field('record', 8)
        self.assertEqual(KIND_COMPONENT, csd.kind)
        self.assertEqual(3, csd.array)
        self.assertEqual(24, csd.bit_width)
        speed, distance = csd.components
        self.assertEqual(('speed', 6, 12, 0, 100, 'm/s', False), (
            speed.name, speed.def_num, speed.bits, speed.bit_offset, speed.scale, speed.units, speed.accumulate))
        self.assertEqual(('distance', 5, 12, 12, 16, 'm', True), (
            distance.name, distance.def_num, distance.bits, distance.bit_offset, distance.scale, distance.units,
            distance.accumulate))

        data16 = self.field('event', 2)
        self.assertEqual(KIND_COMPONENT, data16.kind)
        self.assertEqual([('data', 3, 16, 0)], [
            (c.name, c.def_num, c.bits, c.bit_offset) for c in data16.components])

    def test_component_integrity(self):
        def component_fields(field):
            if field.kind == KIND_COMPONENT:
                yield field
            elif field.kind == KIND_DYNAMIC:
                yield from component_fields(field.default)
                for variant in field.variants:
                    yield from component_fields(variant.field)

        checked = 0
        for message in self.model.messages:
            for field in message.fields:
                for carrier in component_fields(field):
                    ranges = sorted(c.bit_range for c in carrier.components)
                    for (_, end), (start, _) in zip(ranges, ranges[1:]):
                        self.assertLessEqual(end, start)
                    if carrier.bit_width is not None:
                        self.assertLessEqual(ranges[-1][1], carrier.bit_width)
                    checked += 1
        self.assertEqual(3, checked)

    def test_dynamic_field(self):
        product = self.field('file_id', 2)
        self.assertEqual(KIND_DYNAMIC, product.kind)
        self.assertEqual(('product', 2, 'uint16'), (product.name, product.def_num, product.type.name))
        self.assertEqual(KIND_PLAIN, product.default.kind)

        (garmin_product,) = product.variants
        self.assertEqual('garmin_product', garmin_product.field.name)
        self.assertEqual(2, garmin_product.field.def_num)
        (condition,) = garmin_product.conditions
        self.assertEqual(('manufacturer', 1), (condition.name, condition.def_num))
        self.assertEqual((('garmin', 1), ('dynastream', 15)), condition.values)

    def test_subfield_with_components(self):
        data = self.field('event', 3)
        self.assertEqual(KIND_DYNAMIC, data.kind)
        timer_trigger, gear_change_data = data.variants
        self.assertEqual(KIND_PLAIN, timer_trigger.field.kind)
        self.assertEqual((('timer', 0),), timer_trigger.conditions[0].values)

        # The gear fields come after the carrier in the sheet
        self.assertEqual(KIND_COMPONENT, gear_change_data.field.kind)
        self.assertEqual(
            [('rear_gear_num', 11, 0), ('rear_gear', 12, 8), ('front_gear_num', 9, 16), ('front_gear', 10, 24)],
            [(c.name, c.def_num, c.bit_offset) for c in gear_change_data.field.components],
        )
        self.assertTrue(all(c.scale is None for c in gear_change_data.field.components))
        (condition,) = gear_change_data.conditions
        self.assertEqual(0, condition.def_num)
        self.assertEqual((('front_gear_change', 42), ('rear_gear_change', 43)), condition.values)

    def test_conditional_field_integrity(self):
        for message in self.model.messages:
            nums = {f.def_num: f for f in message.fields}
            for field in message.fields:
                if field.kind != KIND_DYNAMIC:
                    continue
                for variant in field.variants:
                    for condition in variant.conditions:
                        self.assertIn(condition.def_num, nums)
                        ref_type = nums[condition.def_num].type
                        for value, raw_value in condition.values:
                            if isinstance(ref_type, TypeDef) and ref_type.values:
                                self.assertEqual(raw_value, ref_type.get_value(value))

    def test_mesg_nums_without_message(self):
        mesg_num_names = {v.name for v in self.model.get_type('mesg_num').values}
        message_names = {m.name for m in self.model.messages}
        self.assertEqual(tuple(sorted(mesg_num_names - message_names)), self.model.mesg_nums_without_message)


class ResolverErrorTestCase(unittest.TestCase):

    def assertIntegrityError(self, types_rows=None, messages_rows=None, message=None, field=None):
        data = build_workbook(types_rows=types_rows, messages_rows=messages_rows)
        with self.assertRaises(SchemaIntegrityError) as cm:
            resolve_workbook(data)
        if message is not None:
            self.assertEqual(message, cm.exception.message)
        if field is not None:
            self.assertEqual(field, cm.exception.field)
        return cm.exception

    def test_unknown_field_type(self):
        rows = RECORD_ROWS + [['', 99, 'mystery', 'no_such_type']]
        e = self.assertIntegrityError(messages_rows=rows, message='record', field='mystery')
        self.assertEqual('Messages', e.sheet)
        self.assertEqual(len(rows), e.row)
        self.assertIn('no_such_type', str(e))

    def test_duplicate_type(self):
        self.assertIntegrityError(types_rows=TYPES_ROWS + [['event', 'enum'], ['', '', 'timer', 0]])

    def test_missing_mesg_num_type(self):
        types_rows = [row for row in TYPES_ROWS if row[0] != 'mesg_num']
        self.assertIntegrityError(types_rows=types_rows, messages_rows=[])

    def test_message_without_mesg_num(self):
        self.assertIntegrityError(messages_rows=MESSAGES_ROWS + [['lap'], ['', 0, 'event', 'event']], message='lap')

    def test_declared_message_number_mismatch(self):
        rows = replace_row(MESSAGES_ROWS, ['record'], ['record', 21])
        self.assertIntegrityError(messages_rows=rows, message='record')
        # A matching declaration is fine
        resolve_workbook(build_workbook(messages_rows=replace_row(MESSAGES_ROWS, ['record'], ['record', 20])))

    def test_duplicate_message(self):
        self.assertIntegrityError(messages_rows=RECORD_ROWS + RECORD_ROWS, message='record')

    def test_duplicate_message_number(self):
        # Message numbers come from mesg_num, so a clash shows up as a duplicate value there
        types_rows = TYPES_ROWS[:10] + [['', '', 'lap', 20]] + TYPES_ROWS[10:]
        self.assertEqual(['', '', 'pad', 105], types_rows[9])
        rows = RECORD_ROWS + [['lap'], ['', 254, 'message_index', 'uint16']]
        e = self.assertIntegrityError(types_rows=types_rows, messages_rows=rows)
        self.assertEqual('Types', e.sheet)
        self.assertEqual(11, e.row)

    def test_duplicate_field_number(self):
        rows = RECORD_ROWS + [['', 2, 'altitude_again', 'uint16']]
        self.assertIntegrityError(messages_rows=rows, message='record', field='altitude_again')

    def test_unknown_component(self):
        rows = replace_row(
            RECORD_ROWS,
            ['', 8, 'compressed_speed_distance', 'byte', '[3]', 'speed,distance', '100,16', '', 'm/s,m', '12,12',
             '0,1'],
            ['', 8, 'compressed_speed_distance', 'byte', '[3]', 'speed,cadence', '100,16', '', 'm/s,m', '12,12',
             '0,1'],
        )
        e = self.assertIntegrityError(messages_rows=rows, message='record', field='compressed_speed_distance')
        self.assertIn('cadence', str(e))

    def test_component_too_wide(self):
        rows = replace_row(
            RECORD_ROWS,
            ['', 8, 'compressed_speed_distance', 'byte', '[3]', 'speed,distance', '100,16', '', 'm/s,m', '12,12',
             '0,1'],
            ['', 8, 'compressed_speed_distance', 'byte', '[2]', 'speed,distance', '100,16', '', 'm/s,m', '12,12',
             '0,1'],
        )
        self.assertIntegrityError(messages_rows=rows, message='record', field='compressed_speed_distance')

    def test_component_on_variable_array(self):
        rows = replace_row(
            RECORD_ROWS,
            ['', 8, 'compressed_speed_distance', 'byte', '[3]', 'speed,distance', '100,16', '', 'm/s,m', '12,12',
             '0,1'],
            ['', 8, 'compressed_speed_distance', 'byte', '[N]', 'speed,distance', '100,16', '', 'm/s,m', '16,16',
             '0,1'],
        )
        model = resolve_workbook(build_workbook(messages_rows=rows))
        csd = model.get_message('record').get_field(8)
        self.assertIsNone(csd.bit_width)
        self.assertEqual([0, 16], [c.bit_offset for c in csd.components])

    def test_component_names_own_field(self):
        rows = RECORD_ROWS + [['', 60, 'packed', 'uint16', '', 'packed', '', '', '', 8]]
        e = self.assertIntegrityError(messages_rows=rows, message='record', field='packed')
        self.assertIn('own field', str(e))

    def test_subfield_component_names_own_field(self):
        rows = replace_row(
            EVENT_ROWS,
            ['', '', 'gear_change_data', 'uint32', '', 'rear_gear_num,rear_gear,front_gear_num,front_gear',
             '1,1,1,1', '', '', '8,8,8,8', '0,0,0,0', 'event,event', 'front_gear_change,rear_gear_change'],
            ['', '', 'gear_change_data', 'uint32', '', 'rear_gear_num,rear_gear,front_gear_num,data',
             '1,1,1,1', '', '', '8,8,8,8', '0,0,0,0', 'event,event', 'front_gear_change,rear_gear_change'],
        )
        self.assertIntegrityError(messages_rows=rows, message='event', field='gear_change_data')

    def test_subfield_component_too_wide(self):
        rows = replace_row(
            EVENT_ROWS,
            ['', '', 'gear_change_data', 'uint32', '', 'rear_gear_num,rear_gear,front_gear_num,front_gear',
             '1,1,1,1', '', '', '8,8,8,8', '0,0,0,0', 'event,event', 'front_gear_change,rear_gear_change'],
            ['', '', 'gear_change_data', 'uint16', '', 'rear_gear_num,rear_gear,front_gear_num,front_gear',
             '1,1,1,1', '', '', '8,8,8,8', '0,0,0,0', 'event,event', 'front_gear_change,rear_gear_change'],
        )
        self.assertIntegrityError(messages_rows=rows, message='event', field='gear_change_data')

    def test_unknown_reference_field(self):
        rows = replace_row(
            FILE_ID_ROWS,
            ['', '', 'garmin_product', 'garmin_product', '', '', '', '', '', '', '',
             'manufacturer,manufacturer', 'garmin,dynastream'],
            ['', '', 'garmin_product', 'garmin_product', '', '', '', '', '', '', '', 'maker', 'garmin'],
        )
        e = self.assertIntegrityError(messages_rows=rows, message='file_id', field='garmin_product')
        self.assertIn('maker', str(e))

    def test_overlapping_subfield_conditions(self):
        garmin_product = ['', '', 'garmin_product', 'garmin_product', '', '', '', '', '', '', '',
                          'manufacturer,manufacturer', 'garmin,dynastream']
        index = FILE_ID_ROWS.index(garmin_product) + 1

        rows = list(FILE_ID_ROWS)
        rows.insert(index, ['', '', 'dynastream_product', 'uint16', '', '', '', '', '', '', '',
                            'manufacturer', 'dynastream'])
        e = self.assertIntegrityError(messages_rows=rows, message='file_id', field='dynastream_product')
        self.assertIn('garmin_product', str(e))

        # Variants selected by different values are fine
        rows[index] = ['', '', 'other_product', 'uint16', '', '', '', '', '', '', '', 'manufacturer', '7']
        model = resolve_workbook(build_workbook(messages_rows=rows))
        product = model.get_message('file_id').get_field(2)
        self.assertEqual(['garmin_product', 'other_product'], [v.field.name for v in product.variants])

    def test_reference_field_later_in_sheet(self):
        # The reference field may come after the subfield rows
        rows = [
            ['file_id'],
            ['', 2, 'product', 'uint16'],
            ['', '', 'garmin_product', 'garmin_product', '', '', '', '', '', '', '', 'manufacturer', 'garmin'],
            ['', 1, 'manufacturer', 'manufacturer'],
        ]
        model = resolve_workbook(build_workbook(messages_rows=rows))
        product = model.get_message('file_id').get_field(2)
        self.assertEqual(1, product.variants[0].conditions[0].def_num)

    def test_unknown_reference_value(self):
        rows = replace_row(
            EVENT_ROWS,
            ['', '', 'timer_trigger', 'timer_trigger', '', '', '', '', '', '', '', 'event', 'timer'],
            ['', '', 'timer_trigger', 'timer_trigger', '', '', '', '', '', '', '', 'event', 'stopwatch'],
        )
        e = self.assertIntegrityError(messages_rows=rows, message='event', field='timer_trigger')
        self.assertIn('stopwatch', str(e))

    def test_numeric_reference_value(self):
        rows = [
            ['event'],
            ['', 1, 'event_group', 'uint8'],
            ['', 3, 'data', 'uint32'],
            ['', '', 'group_data', 'uint16', '', '', '', '', '', '', '', 'event_group', '7'],
        ]
        model = resolve_workbook(build_workbook(messages_rows=rows))
        condition = model.get_message('event').get_field(3).variants[0].conditions[0]
        self.assertEqual((('7', 7),), condition.values)

        rows[-1] = ['', '', 'group_data', 'uint16', '', '', '', '', '', '', '', 'event_group', '256']
        self.assertIntegrityError(messages_rows=rows, message='event', field='group_data')

    def test_main_field_with_reference(self):
        rows = RECORD_ROWS + [['', 60, 'odd', 'uint8', '', '', '', '', '', '', '', 'speed', '1']]
        self.assertIntegrityError(messages_rows=rows, message='record', field='odd')


if __name__ == '__main__':
    unittest.main()
