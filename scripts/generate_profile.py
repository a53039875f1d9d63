#!/usr/bin/env python

#
# Generate the FIT runtime profile modules from the Profile.xlsx workbook
# that comes with the FIT SDK.
#
# Usage: generate_profile.py --sdk 20.14 Profile.xlsx -o fit/
#

import argparse
import logging
import os
import sys

from fitgen import FitGenError, Generator, profile_fingerprint
from fitgen.renderer import MESSAGES_MODULE, PROFILE_MODULE, PROFILE_OUTPUT_FILE_HEADER_MAGIC, TYPES_MODULE
from fitgen.utils import parse_version

STRINGER_INPUT_FILENAME = 'stringer_types.txt'


def check_overwrite(path):
    """Refuse to overwrite anything that fitgen didn't write"""
    if not os.path.exists(path):
        return
    with open(path, 'r', encoding='utf-8') as f:
        if PROFILE_OUTPUT_FILE_HEADER_MAGIC not in f.read():
            raise SystemExit("Couldn't find header in %s. Exiting." % path)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description='Generate FIT profile modules from an SDK Profile workbook.')
    parser.add_argument('workbook', help='path to Profile.xlsx (or Profile.xls)')
    parser.add_argument('--sdk', required=True, help='SDK version of the workbook, eg. 20.14')
    parser.add_argument('-o', '--output-dir', help='directory to write modules to (default: print fingerprint only)')
    parser.add_argument('--no-timestamp', action='store_true', help='omit the generation timestamp')
    parser.add_argument('--fingerprint', action='store_true', help='print the profile fingerprint')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(name)s: %(levelname)s: %(message)s',
    )
    log = logging.getLogger('generate_profile')

    version = parse_version(args.sdk)
    if version is None:
        log.error('Invalid SDK version %r', args.sdk)
        return 2

    try:
        with open(args.workbook, 'rb') as f:
            data = f.read()
    except OSError as e:
        log.error("Couldn't read %s: %s", args.workbook, e)
        return 1

    log.info('Generating profile from %s', args.workbook)
    try:
        profile = Generator(*version, data, generation_timestamp=not args.no_timestamp).generate_profile()
    except FitGenError as e:
        log.error('%s', e)
        return 1

    if profile.mesg_nums_without_message:
        log.info('Message numbers without a message: %s', ', '.join(profile.mesg_nums_without_message))

    if args.output_dir:
        outputs = (
            (TYPES_MODULE + '.py', profile.types_source),
            (MESSAGES_MODULE + '.py', profile.messages_source),
            (PROFILE_MODULE + '.py', profile.profile_source),
        )
        paths = [os.path.join(args.output_dir, name) for name, _ in outputs]
        for path in paths:
            check_overwrite(path)

        os.makedirs(args.output_dir, exist_ok=True)
        for path, (_, source) in zip(paths, outputs):
            log.info('Writing to %s', path)
            with open(path, 'wb') as f:
                f.write(source)
        with open(os.path.join(args.output_dir, STRINGER_INPUT_FILENAME), 'w', encoding='utf-8') as f:
            f.write(profile.stringer_input + '\n')

    if args.fingerprint or not args.output_dir:
        print(profile_fingerprint(profile))

    return 0


if __name__ == '__main__':
    sys.exit(main())
