"""
A commonmark HTML renderer based on markdown-it-py, with front matter
extraction and pluggable code highlighting.
"""
from __future__ import annotations

import typing as t

from markdown_it.common.utils import escapeHtml, unescapeAll
from markdown_it.renderer import RendererHTML

from .md_frontmatter import simple_frontmatter_parser, FrontMatterParser

if t.TYPE_CHECKING:
    from collections.abc import Sequence
    from markdown_it.token import Token
    from markdown_it.utils import EnvType, OptionsDict


META_ENV_KEY = 'blog_meta'


class BlogRendererHTML(RendererHTML):
    """
    A markdown-it-py HTML renderer which hands code fences to the configured
    highlighter unwrapped, and collects front matter into the render env
    under `META_ENV_KEY` instead of printing it.
    """
    def __init__(self, parser: t.Any = None):
        super().__init__(parser)
        self.front_matter_parser: FrontMatterParser = simple_frontmatter_parser

    # https://github.com/executablebooks/markdown-it-py/issues/256
    def fence(self, tokens: Sequence[Token], idx: int, options: OptionsDict, env: EnvType):
        token = tokens[idx]
        info = unescapeAll(token.info).strip() if token.info else ''
        lang_name = info.split(maxsplit=1)[0] if info else ''

        return (
            options.highlight
            and options.highlight(token.content, lang_name, '')
            or f'<pre><code>{escapeHtml(token.content)}</code></pre>\n'
        )

    def set_front_matter_parser(self, parser: FrontMatterParser):
        self.front_matter_parser = parser

    def front_matter(self, tokens: Sequence[Token], idx: int, _options: OptionsDict, env: EnvType):
        parsed = self.front_matter_parser(tokens[idx].content)
        env[META_ENV_KEY].update(parsed)
        return ''
