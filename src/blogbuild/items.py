"""
Items: loaded source documents with metadata, a body, and a route, as seen by
templates and by pages which list other pages.
"""
from __future__ import annotations

import datetime
import typing as t
from pathlib import Path, PurePosixPath

from markupsafe import Markup

from .core import BuildError


# Tried in order; the first that parses wins.
DATE_FORMATS = [
    '%a, %d %b %Y %H:%M:%S %Z',
    '%a, %d %b %Y %H:%M:%S',
    '%Y-%m-%dT%H:%M:%S%z',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M:%S%z',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d',
    '%d.%m.%Y',
    '%B %d, %Y %I:%M %p',
    '%B %d, %Y',
    '%b %d, %Y',
]


class MetadataError(BuildError):
    """
    Raised when a document's front matter is malformed or lacks a field.
    """
    def __init__(self, path: Path, field: str | None, problem: str):
        self.path = path
        self.field = field
        where = f'{path}: {field!r}' if field else str(path)
        super().__init__(f'{where} {problem}')


class ContentError(BuildError):
    """
    Raised when a source document cannot be read as text.
    """
    def __init__(self, path: Path, problem: str):
        self.path = path
        super().__init__(f'{path}: {problem}')


def parse_date(value: str) -> datetime.datetime:
    """
    Parse a metadata date in any of `DATE_FORMATS`. Timezone-aware values are
    converted to naive UTC so that all dates compare with each other.

    :raises ValueError: when no format matches.
    """
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.datetime.strptime(value, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(datetime.timezone.utc).replace(tzinfo=None)
        return parsed
    raise ValueError(f'unrecognized date format: {value!r}')


class Item:
    """
    A loaded document. @meta holds front matter values as strings, @body the
    rendered HTML, and @route the path of the final page relative to the
    site root.
    """
    def __init__(self,
                 source: Path,
                 route: PurePosixPath,
                 meta: dict[str, str],
                 body: str = '',
                 rel_source: PurePosixPath | None = None):
        self.source = source
        self.route = route
        self.meta = meta
        self.body = body
        self.rel_source = rel_source or PurePosixPath(source.as_posix())

    def __repr__(self):
        return f'Item({self.rel_source}, route={self.route})'

    @property
    def url(self):
        return f'/{self.route}'

    @property
    def date(self) -> datetime.datetime:
        try:
            value = self.meta['date']
        except KeyError:
            raise MetadataError(self.source, 'date', 'is missing') from None
        try:
            return parse_date(value)
        except ValueError as e:
            raise MetadataError(self.source, 'date', str(e)) from e

    def require(self, *fields: str):
        """
        Ensure every one of @fields is present and non-empty in the metadata,
        and that a `date` field, if required, parses.
        """
        for field in fields:
            if not self.meta.get(field, '').strip():
                raise MetadataError(self.source, field, 'is missing')
        if 'date' in fields:
            self.date  # pylint: disable=pointless-statement
        return self

    def fields(self) -> dict[str, t.Any]:
        """
        The template fields for this Item: its metadata plus `body`, `url` and
        `path`.
        """
        return self.meta | {
            'body': Markup(self.body),
            'url': self.url,
            'path': str(self.rel_source),
        }


def recent_first(items: t.Iterable[Item]) -> list[Item]:
    """
    Order Items newest first. Items sharing a date are ordered by descending
    source path, so the order never depends on discovery order.
    """
    return sorted(items, key=lambda item: (item.date, item.rel_source), reverse=True)
