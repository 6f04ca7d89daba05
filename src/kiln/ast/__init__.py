"""Template AST: lexer, parser and element types."""

from kiln.ast.lexer import Lexer, Token
from kiln.ast.parser import Parser
from kiln.ast.spec import ParsedTemplate

__all__ = ["Lexer", "Token", "Parser", "ParsedTemplate"]
