"""Kiln Compiler - transforms element trees into render procedures."""

from kiln.compiler.compiler import Compiler
from kiln.compiler.resolver import Resolver

__all__ = ["Compiler", "Resolver"]
