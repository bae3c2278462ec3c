import itertools
import re
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Idiom:
    name: str
    pattern: re.Pattern
    replacement: str | Callable[[re.Match], str]

    def apply(self, statement: str) -> str:
        return self.pattern.sub(self.replacement, statement)


# Applied in order. New idioms are new rows here.
POSTGRES_IDIOMS: tuple[Idiom, ...] = (
    Idiom(
        name='now',
        pattern=re.compile(r"datetime\(\s*'now'\s*\)", re.IGNORECASE),
        replacement='NOW()',
    ),
    Idiom(
        name='days_ago',
        pattern=re.compile(r"datetime\(\s*'now'\s*,\s*'-([0-9]+)\s+days'\s*\)", re.IGNORECASE),
        replacement=lambda match: f"NOW() - INTERVAL '{match.group(1)} days'",
    ),
    Idiom(
        name='current_date',
        pattern=re.compile(r"date\(\s*'now'\s*\)", re.IGNORECASE),
        replacement='CURRENT_DATE',
    ),
    Idiom(
        name='year',
        pattern=re.compile(r"strftime\(\s*'%Y'\s*,\s*([^)]+)\)", re.IGNORECASE),
        replacement=lambda match: f"TO_CHAR({match.group(1)}, 'YYYY')",
    ),
    Idiom(
        name='month',
        pattern=re.compile(r"strftime\(\s*'%m'\s*,\s*([^)]+)\)", re.IGNORECASE),
        replacement=lambda match: f"TO_CHAR({match.group(1)}, 'MM')",
    ),
    Idiom(
        name='timestamp_minus_week',
        pattern=re.compile(r"CURRENT_TIMESTAMP\s*-\s*INTERVAL\s*'7\s*days'", re.IGNORECASE),
        replacement="NOW() - INTERVAL '7 days'",
    ),
)

# Plain pattern matching: a ? or an idiom inside a quoted literal is rewritten too.
_PLACEHOLDER = re.compile(r'\?')


def substitute_idioms(statement: str, idioms: tuple[Idiom, ...] = POSTGRES_IDIOMS) -> str:
    for idiom in idioms:
        statement = idiom.apply(statement)
    return statement


def count_placeholders(statement: str) -> int:
    return len(_PLACEHOLDER.findall(statement))


def renumber_placeholders(statement: str) -> str:
    """Replace each ``?`` with ``$1``, ``$2``, ... from left to right.

    Numbering only counts the ``?`` found in this scan; ``$n`` already present
    in the text is left alone and does not shift the counter.
    """
    counter = itertools.count(1)
    return _PLACEHOLDER.sub(lambda _match: f'${next(counter)}', statement)


def normalize_sql_for_postgres(statement: str) -> str:
    return renumber_placeholders(substitute_idioms(statement))
