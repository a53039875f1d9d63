#!/usr/bin/env python

# Make classes available
from fitgen.generator import Generator
from fitgen.records import Profile, ProfileVersion
from fitgen.rules import RULE_SETS, select_rule_set
from fitgen.utils import FitGenError, InputError, UnsupportedVersionError, SchemaIntegrityError, \
                         RenderError, ProfileWarning
from fitgen.fingerprint import profile_fingerprint, write_profile


__version__ = '1.0.0'
