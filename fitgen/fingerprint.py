"""
Content fingerprints of rendered profiles, used as a regression oracle.

The framing and order below are fixed; changing either changes every
recorded fingerprint.
"""

import io

import xxhash


def write_profile(profile, fileobj):
    """Write all artifacts of a profile to a binary file-like object"""
    fileobj.write(b'# TYPES\n')
    fileobj.write(profile.types_source)
    fileobj.write(b'# MESSAGES\n')
    fileobj.write(profile.messages_source)
    fileobj.write(b'# PROFILE\n')
    fileobj.write(profile.profile_source)
    fileobj.write(b'# STRINGER TYPE INPUT\n')
    fileobj.write(profile.stringer_input.encode('utf-8'))
    fileobj.write(b'\n# MESSAGE NUMS WITHOUT MESSAGE\n')
    for name in profile.mesg_nums_without_message:
        fileobj.write(name.encode('utf-8'))
        fileobj.write(b'\n')


def profile_bytes(profile):
    buf = io.BytesIO()
    write_profile(profile, buf)
    return buf.getvalue()


class _HashWriter:
    __slots__ = ('hasher',)

    def __init__(self):
        self.hasher = xxhash.xxh64()

    def write(self, data):
        self.hasher.update(data)


def profile_fingerprint(profile):
    """64-bit xxHash of the framed profile, as an int"""
    writer = _HashWriter()
    write_profile(profile, writer)
    return writer.hasher.intdigest()
