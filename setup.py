import os
import re

from setuptools import setup


with open(os.path.join(os.path.dirname(__file__), 'fitgen', '__init__.py')) as f:
    version = re.search(r"^__version__ = '([^']+)'", f.read(), re.M).group(1)


requires = ['openpyxl', 'xlrd', 'xxhash']


setup(
    name='fitgen',
    version=version,
    description='Generate FIT runtime profile modules from the FIT SDK Profile workbook',
    packages=['fitgen'],
    scripts=['scripts/generate_profile.py'],
    python_requires='>=3.6',
    install_requires=requires,
    extras_require={'test': ['pytest']},
)
