#!/usr/bin/env python3
"""
imagebundle CLI package.
"""

from .parsers import build_parser, main
from .utils import console

__all__ = ["build_parser", "console", "main"]
