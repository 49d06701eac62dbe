#!/usr/bin/env python3

import os
import re
from setuptools import setup

# Utility function to read the README file.
# Used for the long_description.


def read(fname):
    return open(os.path.join(os.path.dirname(__file__), fname)).read()


def find_version(source):
    version_file = read(source)
    version_match = re.search(r"^__VERSION__ = ['\"]([^'\"]*)['\"]", version_file, re.M)
    if version_match:
        return version_match.group(1)
    raise RuntimeError("Unable to find version string.")


NAME = 'patch-hub'

setup(
    version=find_version('patchhub/__init__.py'),
    name=NAME,
    description='Browse patchsets posted to public-inbox mailing list archives',
    packages=['patchhub'],
    license='GPLv2+',
    long_description=read('README.rst'),
    long_description_content_type='text/x-rst',
    keywords=['public-inbox', 'lore.kernel.org', 'patches', 'mailing lists'],
    install_requires=[
        'requests>=2.24,<3.0',
        'feedparser>=6.0,<7.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
        ],
    },
    python_requires='>=3.8',
    entry_points={
        'console_scripts': [
            'patch-hub=patchhub.command:cmd'
        ],
    },
)
