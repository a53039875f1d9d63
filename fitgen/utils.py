import re


class FitGenError(ValueError):
    pass


class ContextError(FitGenError):
    """Error that knows where in the workbook it came from.

    Context is kept as attributes and appended to the message, so that the
    offending specification row can be found without a debugger.
    """

    CONTEXT_KEYS = ('sheet', 'row', 'column', 'message', 'field')

    def __init__(self, msg, sheet=None, row=None, column=None, message=None, field=None):
        self.sheet = sheet
        self.row = row
        self.column = column
        self.message = message
        self.field = field
        context = self.context_str()
        super().__init__('%s [%s]' % (msg, context) if context else msg)

    def context_str(self):
        parts = []
        for key in self.CONTEXT_KEYS:
            value = getattr(self, key)
            if value is None:
                continue
            # Rows are stored zero based, spreadsheets count from one
            if key == 'row':
                value += 1
            parts.append('%s: %s' % (key, value))
        return ', '.join(parts)


class InputError(ContextError):
    pass


class SchemaIntegrityError(ContextError):
    pass


class UnsupportedVersionError(FitGenError):
    def __init__(self, major, minor, supported=()):
        self.major = major
        self.minor = minor
        self.supported = tuple(supported)
        super().__init__('Unsupported SDK version %d.%d (supported: %s)' % (
            major, minor, ', '.join(self.supported) or 'none',
        ))


class RenderError(FitGenError):
    pass


class ProfileWarning(UserWarning):
    pass


IDENTIFIER_SCRUBBER = re.compile(r'\W|^(?=\d)')
VERSION_MATCHER = re.compile(r'^\s*(\d+)\.(\d+)')


def scrub_identifier(name):
    return IDENTIFIER_SCRUBBER.sub('_', name)


def split_list(value):
    """Split a comma separated cell, '' gives an empty tuple"""
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(','))


def parse_version(text):
    """Parse "20.14" style text into a (major, minor) pair, or None.

    The minor part is taken literally, so "16.2" is minor 2, not 20.
    """
    match = VERSION_MATCHER.match(text or '')
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))
