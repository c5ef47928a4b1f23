"""Setuptools build hooks for einc."""

from __future__ import annotations

from setuptools import setup

# Pure Python modules plus the lark grammar as package data; the default
# bdist_wheel produces a py3-none-any wheel.
setup()
