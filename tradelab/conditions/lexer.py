"""
Tokenizer for the condition language.
"""

import re
from dataclasses import dataclass
from typing import List

from tradelab.exceptions import ConditionSyntaxError

KEYWORDS = {'AND', 'OR', 'NOT', 'TRUE', 'FALSE'}

# Symbolic aliases for the logical keywords
OPERATOR_ALIASES = {'&&': 'AND', '||': 'OR', '!': 'NOT'}

_TOKEN_RE = re.compile(r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>>=|<=|==|!=|&&|\|\||[><+\-*/!])
  | (?P<punct>[()\[\],])
""", re.VERBOSE)


@dataclass(frozen=True)
class Token:
    kind: str       # NUMBER, IDENT, KEYWORD, OP, PUNCT, EOF
    text: str
    position: int


def tokenize(text: str) -> List[Token]:
    """Split condition text into tokens, ending with an EOF token."""
    if '{{' in text or '}}' in text:
        pos = text.find('{{') if '{{' in text else text.find('}}')
        raise ConditionSyntaxError("Unresolved parameter template", text, pos)

    tokens = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ConditionSyntaxError(f"Unexpected character '{text[pos]}'", text, pos)
        kind = match.lastgroup
        lexeme = match.group()
        if kind == 'ident' and lexeme.upper() in KEYWORDS:
            tokens.append(Token('KEYWORD', lexeme.upper(), pos))
        elif kind == 'op' and lexeme in OPERATOR_ALIASES:
            tokens.append(Token('KEYWORD', OPERATOR_ALIASES[lexeme], pos))
        elif kind != 'ws':
            tokens.append(Token(kind.upper(), lexeme, pos))
        pos = match.end()

    tokens.append(Token('EOF', '', len(text)))
    return tokens
