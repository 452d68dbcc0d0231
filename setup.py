# -*- coding: utf-8 -*-
"""gcp_secretmanager_bootstrap a module for bootstrapping a secret store and issuing scoped credentials.

This module provides an idempotent reconcile of secrets, an access policy and a role into a
secret store, and issues short lived role id / secret id credentials that redeem into
capability scoped access tokens.

"""

import setuptools
import re
from io import open

VERSIONFILE="gcp_secretmanager_bootstrap/_version.py"
verstrline = open(VERSIONFILE, "rt").read()
VSRE = r"^__version__ = ['\"]([^'\"]*)['\"]"
mo = re.search(VSRE, verstrline, re.M)
if mo:
    verstr = mo.group(1)
else:
    raise RuntimeError("Unable to find version string in %s." % (VERSIONFILE,))

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setuptools.setup(
    name='gcp_secretmanager_bootstrap',
    version=verstr,
    author="Mike Moore",
    author_email="z_z_zebra@yahoo.com",
    description="Idempotent secret store bootstrap and issuance of short lived capability scoped credentials",
    long_description_content_type="text/markdown",
    long_description=long_description,
    url="https://github.com/Mikemoore63/gcp-secretmanager-bootstrap",
    packages=setuptools.find_packages(exclude=["*.tests", "*.tests.*"]),
    python_requires=">=3.8",
    include_package_data=True,
    license="MIT",
    scripts=[],
    install_requires=[
        "google-cloud-secret-manager~=2.0",
        "google-cloud-storage>1.0,<4.0",
        "google-auth>=2.0,<3.0",
        "google-api-core>=2.0,<3.0",
        "google-crc32c~=1.0",
        "python-dateutil~=2.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],

)
