#!/usr/bin/env python3
"""
Setup script for the form engine
Installs the form_engine package and the demo Streamlit application
"""

from pathlib import Path

from setuptools import setup


def read_requirements():
    """Read runtime requirements, skipping comments and blank lines."""
    requirements_file = Path(__file__).parent / 'requirements.txt'
    requirements = []
    for line in requirements_file.read_text(encoding='utf-8').splitlines():
        line = line.strip()
        if line and not line.startswith('#'):
            requirements.append(line)
    return requirements


setup(
    name='form-engine',
    version='1.0.0',
    description='Form validation and submission engine with a Streamlit front end',
    packages=['form_engine'],
    python_requires='>=3.9',
    install_requires=read_requirements(),
    extras_require={
        'test': ['pytest>=7.0'],
    },
)
