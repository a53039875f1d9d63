import logging

from fitgen.extractor import extract
from fitgen.records import ProfileVersion
from fitgen.renderer import render
from fitgen.resolver import resolve
from fitgen.rules import select_rule_set
from fitgen.utils import InputError
from fitgen.workbook import open_workbook

logger = logging.getLogger(__name__)


class Generator:
    """Generates a Profile from one SDK release's Profile workbook.

    A Generator holds nothing but its constructor arguments; every call to
    generate_profile() builds its model from scratch, so generators for
    different versions can run side by side on separate threads.
    """

    def __init__(self, major, minor, data, generation_timestamp=True):
        """
        :param int major: SDK major version, eg. 20 for 20.14
        :param int minor: SDK minor version, eg. 14 for 20.14
        :param bytes data: contents of the SDK's Profile.xlsx (or Profile.xls)
        :param bool generation_timestamp: embed a "Created on" comment in rendered sources.
            Disable it for byte identical output across runs.
        """
        for name, value in (('major', major), ('minor', minor)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InputError('SDK %s version must be an int, got %r' % (name, value))
            if value < 0:
                raise InputError('SDK %s version must not be negative, got %d' % (name, value))
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise InputError('Workbook data must be bytes, got %s' % type(data).__name__)
        if not data:
            raise InputError('Workbook data is empty')

        self.version = ProfileVersion(major, minor)
        self.rule_set = select_rule_set(major, minor)
        self.generation_timestamp = generation_timestamp
        self._data = bytes(data)

    def generate_profile(self):
        """Run extraction, resolution and rendering.

        :rtype: fitgen.records.Profile
        :raises FitGenError: the first problem found, no partial profile is returned
        """
        logger.debug('Generating profile for SDK %s with rule set %s', self.version, self.rule_set)
        workbook = open_workbook(self._data)
        extraction = extract(workbook, self.rule_set, self.version)
        model = resolve(extraction, self.rule_set, self.version)
        return render(model, generation_timestamp=self.generation_timestamp)

    def __repr__(self):
        return '<Generator: SDK %s (%s)>' % (self.version, self.rule_set.name)
