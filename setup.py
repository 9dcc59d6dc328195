#!/usr/bin/env python
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    long_description = fh.read()

setup(
    name='django-adorm',
    version='1.0.0',
    description='Typed, Django ORM-like access to Active Directory entries',
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['django', 'ldap', 'active directory'],
    packages=find_packages(exclude=['bin']),
    include_package_data=True,
    python_requires='>=3.10',
    install_requires=[
        'django',
        'pytz',
        'python-ldap',
    ],
    extras_require={
        'test': [
            'pytest',
            'python-ldap-faker',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3"
    ],
)
