""" setup script for "research_portal" package

see setup.cfg for configuration parameters
for development:
    pip install -e .[test]

to install:
    pip install .

"""
from setuptools import setup

setup()
