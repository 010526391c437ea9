"""
Rewriting root-relative links so a built site works from any host and path.
"""
from __future__ import annotations

from pathlib import Path, PurePosixPath

from .dependencies import Dependency, PipDependency
from .pretty_utils import print_with_style
from .simple import BaseStandardStep


def site_root(route: PurePosixPath) -> str:
    """
    The relative path from the page at @route back to the site root: `.` for
    pages at the root, `..` for one directory down, and so on.
    """
    depth = len(route.parts) - 1
    return '/'.join(['..'] * depth) if depth > 0 else '.'


def relativize_url(url: str, root: str) -> str:
    """
    Prefix a root-relative @url (`/css/a.css`) with @root. Relative URLs,
    protocol-relative URLs (`//host/x`) and absolute URLs are left alone.
    """
    if url.startswith('/') and not url.startswith('//'):
        return root + url
    return url


def relativize_html(html: str, root: str) -> str:
    """
    Relativize every link in an HTML document, keeping its doctype.

    :raises lxml.etree.ParserError: for documents lxml cannot parse at all.
    """
    import lxml.html
    doc = lxml.html.document_fromstring(html)
    doc.rewrite_links(lambda url: relativize_url(url, root), resolve_base_href=False)
    doctype = doc.getroottree().docinfo.doctype
    return lxml.html.tostring(doc, encoding='unicode', doctype=doctype or None)


class RelativizeUrlsStep(BaseStandardStep):
    """
    A Step rewriting root-relative links in HTML into links relative to the
    location of the page's first output path. Documents which cannot be
    parsed are passed through unchanged.
    """
    @classmethod
    def get_dependencies(cls) -> set[Dependency]:
        return {
            PipDependency('lxml'),
        }

    def __call__(self, path: Path, output_paths: list[Path]):
        from lxml.etree import ParserError
        data = self.read_text(path)
        root = site_root(self.context.route_of(output_paths[0]))
        try:
            transformed = relativize_html(data, root)
        except ParserError as e:
            print_with_style(f'{path}: links left as-is ({e})', style='yellow', markup=False)
            transformed = data
        self.write_outputs(transformed, output_paths)
