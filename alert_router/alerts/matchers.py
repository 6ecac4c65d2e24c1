"""
Label matchers used by routes and inhibition rules.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from alert_router.errors import ConfigError

MATCH_EQUAL = '='
MATCH_NOT_EQUAL = '!='
MATCH_REGEXP = '=~'
MATCH_NOT_REGEXP = '!~'

MATCH_TYPES = (MATCH_EQUAL, MATCH_NOT_EQUAL, MATCH_REGEXP, MATCH_NOT_REGEXP)

_LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

# name, operator, value; operators are tried longest first
_MATCHER_RE = re.compile(r'^\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*(=~|!~|!=|=)\s*(.*?)\s*$', re.DOTALL)


@dataclass(frozen=True)
class Matcher:
    """A single label predicate"""
    name: str
    type: str
    value: str
    _regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if not _LABEL_NAME_RE.match(self.name or ''):
            raise ConfigError(f"Invalid label name in matcher: {self.name!r}")
        if self.type not in MATCH_TYPES:
            raise ConfigError(f"Invalid matcher type: {self.type!r}. Must be one of {list(MATCH_TYPES)}")
        if self.type in (MATCH_REGEXP, MATCH_NOT_REGEXP):
            try:
                # anchored like Prometheus
                pattern = re.compile(f'^(?:{self.value})$')
            except re.error as e:
                raise ConfigError(f"Invalid regular expression {self.value!r} for label {self.name}: {e}")
            object.__setattr__(self, '_regex', pattern)

    def matches(self, value: Optional[str]) -> bool:
        """
        Test a label value. A missing label is matched as the empty string.
        """
        value = value or ''
        if self.type == MATCH_EQUAL:
            return value == self.value
        if self.type == MATCH_NOT_EQUAL:
            return value != self.value
        if self.type == MATCH_REGEXP:
            return self._regex.match(value) is not None
        return self._regex.match(value) is None

    def __str__(self):
        escaped = self.value.replace('\\', '\\\\').replace('"', '\\"')
        return f'{self.name}{self.type}"{escaped}"'


class Matchers:
    """Conjunction of matchers; an empty set matches every label set"""

    def __init__(self, matchers: Optional[Iterable[Matcher]] = None):
        self.matchers: List[Matcher] = list(matchers or [])

    def matches(self, labels: Dict[str, str]) -> bool:
        return all(m.matches(labels.get(m.name)) for m in self.matchers)

    def __iter__(self):
        return iter(self.matchers)

    def __len__(self):
        return len(self.matchers)

    def __bool__(self):
        return bool(self.matchers)

    def __eq__(self, other):
        return isinstance(other, Matchers) and self.matchers == other.matchers

    def __str__(self):
        return '{' + ','.join(str(m) for m in self.matchers) + '}'

    def __repr__(self):
        return f"Matchers({self})"


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        inner = value[1:-1]
        result = []
        i = 0
        while i < len(inner):
            ch = inner[i]
            if ch == '\\' and i + 1 < len(inner):
                nxt = inner[i + 1]
                result.append({'n': '\n', 't': '\t'}.get(nxt, nxt))
                i += 2
                continue
            if ch == '"':
                raise ConfigError(f"Unescaped quote in matcher value: {value}")
            result.append(ch)
            i += 1
        return ''.join(result)
    if '"' in value:
        raise ConfigError(f"Unbalanced quotes in matcher value: {value}")
    return value


def parse_matcher(expr: str) -> Matcher:
    """
    Parse a single matcher expression.

    Examples:
        >>> parse_matcher('severity="critical"')
        Matcher(name='severity', type='=', value='critical')
        >>> parse_matcher('namespace=~neuroca.*')
        Matcher(name='namespace', type='=~', value='neuroca.*')

    Raises:
        ConfigError: If the expression is malformed
    """
    if not isinstance(expr, str):
        raise ConfigError(f"Matcher must be a string, got {type(expr).__name__}")
    match = _MATCHER_RE.match(expr)
    if not match:
        raise ConfigError(f"Malformed matcher: {expr!r}")
    name, op, raw_value = match.groups()
    return Matcher(name, op, _unquote(raw_value))


def _split_matchers(text: str) -> List[str]:
    """Split on commas that are not inside quotes"""
    parts, current, in_quotes, escaped = [], [], False, False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
            continue
        if ch == '\\':
            current.append(ch)
            escaped = True
            continue
        if ch == '"':
            in_quotes = not in_quotes
        if ch == ',' and not in_quotes:
            parts.append(''.join(current))
            current = []
            continue
        current.append(ch)
    if in_quotes:
        raise ConfigError(f"Unterminated quote in matchers: {text!r}")
    parts.append(''.join(current))
    return [p for p in (part.strip() for part in parts) if p]


def parse_matchers(value) -> Matchers:
    """
    Parse matchers from a list of expressions or a '{a="b", c!~"d"}' string.

    Raises:
        ConfigError: If any expression is malformed
    """
    if value is None:
        return Matchers()

    if isinstance(value, str):
        text = value.strip()
        if text.startswith('{') or text.endswith('}'):
            if not (text.startswith('{') and text.endswith('}')):
                raise ConfigError(f"Unbalanced braces in matchers: {value!r}")
            text = text[1:-1]
        return Matchers(parse_matcher(expr) for expr in _split_matchers(text))

    if isinstance(value, list):
        result = []
        for item in value:
            result.extend(parse_matchers(item))
        return Matchers(result)

    raise ConfigError(f"Matchers must be a list or string, got {type(value).__name__}")


def matchers_from_config(match: Optional[Dict] = None, match_re: Optional[Dict] = None,
                         matchers=None, context: str = '') -> Matchers:
    """
    Build matchers from the legacy match/match_re maps and a matchers list.

    Raises:
        ConfigError: If any map or expression is invalid
    """
    result = []

    for kind, mapping, op in (('match', match, MATCH_EQUAL), ('match_re', match_re, MATCH_REGEXP)):
        if mapping is None:
            continue
        if not isinstance(mapping, dict):
            raise ConfigError(f"{context}{kind} must be a mapping of label names to values")
        for name, value in mapping.items():
            if value is None or isinstance(value, (dict, list)):
                raise ConfigError(f"{context}{kind} value for {name!r} must be a scalar")
            result.append(Matcher(str(name), op, str(value)))

    result.extend(parse_matchers(matchers))
    return Matchers(result)
