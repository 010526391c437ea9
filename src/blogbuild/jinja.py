"""
Steps for rendering pages through chains of Jinja templates: markdown
documents such as posts, and pages listing posts.
"""
from __future__ import annotations

import typing as t
from pathlib import Path, PurePosixPath

from markupsafe import Markup

from .core import BuildError, ItemStep
from .dependencies import PipDependency
from .items import Item, MetadataError, recent_first
from .simple import BaseStandardStep

if t.TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from jinja2 import Environment, Template
    from .components.md_frontmatter import FrontMatterParser, FrontMatterParserName


class TemplateError(BuildError):
    """
    Raised when a template is missing, broken, or references a field the
    page does not provide.
    """
    def __init__(self, page: Path, template: str, problem: str):
        self.page = page
        self.template = template
        super().__init__(f'{page}: rendering {template} failed: {problem}')


class JinjaRenderStep(BaseStandardStep):
    """
    Base class for Steps rendering through Jinja templates. Templates are
    looked up by their path relative to the input directory, and any field a
    template uses but the page does not define is an error.
    """
    @classmethod
    def get_dependencies(cls):
        return {
            PipDependency('jinja2'),
        }

    def __init__(self,
                 env: Environment | None = None,
                 extra_globals: dict[str, t.Any] | None = None):
        if env and extra_globals:
            env.globals.update(extra_globals)
        self._env = env
        self._own_env = False
        self._extra_globals = extra_globals

    def bind(self, context):
        super().bind(context)
        # An Environment we created is tied to the previous input directory.
        if self._own_env:
            self._env = None

    @property
    def env(self):
        """
        Returns the Jinja `Environment` for this Step, creating and caching it
        if necessary.
        """
        if self._env:
            return self._env

        from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
        self._env = Environment(
            loader=FileSystemLoader(self.context['input_dir']),
            autoescape=select_autoescape(),
            undefined=StrictUndefined,
        )
        self._own_env = True
        if self._extra_globals:
            self._env.globals.update(self._extra_globals)
        return self._env

    def render(self, page: Path, template: str | Template, fields: dict[str, t.Any]) -> str:
        """
        Render one template (by name, or already loaded) with @fields,
        converting Jinja failures into `TemplateError`s about @page.
        """
        import jinja2
        name = template if isinstance(template, str) else (template.name or str(page))
        try:
            if isinstance(template, str):
                template = self.env.get_template(template)
            return template.render(fields)
        except jinja2.TemplateError as e:
            raise TemplateError(page, name, f'{type(e).__name__}: {e}') from e

    def apply_templates(self,
                        page: Path,
                        template_names: Sequence[str],
                        fields: dict[str, t.Any],
                        body: str = ''):
        """
        Apply templates in order, each one seeing the previous one's output
        as the `body` field.

        :return: The final text and the Paths of every template used,
            including those pulled in by the chain itself.
        """
        for name in template_names:
            body = self.render(page, name, fields | {'body': Markup(body)})
        return body, self.find_templates(template_names)

    def find_templates(self, template_names: Iterable[str], source: str | None = None):
        """
        Return the sorted Paths of the templates @template_names and of every
        template they, or the template text @source, include, import, or
        extend. Templates named by a runtime expression cannot be found this
        way and are left out.
        """
        from jinja2 import TemplateNotFound, TemplateSyntaxError, meta
        loader = self.env.loader
        found: dict[str, Path | None] = {}
        pending = list(template_names)
        if source is not None:
            pending.extend(meta.find_referenced_templates(self.env.parse(source)))

        while pending:
            name = pending.pop()
            if name is None or name in found or loader is None:
                continue
            try:
                text, filename, _uptodate = loader.get_source(self.env, name)
            except TemplateNotFound:
                # Referenced from a branch the render never took.
                continue
            found[name] = Path(filename) if filename else None
            try:
                pending.extend(meta.find_referenced_templates(self.env.parse(text)))
            except TemplateSyntaxError:
                continue

        return sorted(p for p in found.values() if p)


class MarkdownPageStep(ItemStep, JinjaRenderStep):
    """
    A Step converting a markdown document with front matter into an Item,
    then rendering the Item through a chain of templates.
    """
    @classmethod
    def get_dependencies(cls):
        return super().get_dependencies() | {
            PipDependency('markdown-it-py', check_name='markdown_it'),
            PipDependency('mdit_py_plugins'),
            PipDependency('Pygments', check_name='pygments'),
        }

    def __init__(self,
                 templates: Sequence[str],
                 required_fields: Sequence[str] = ('title',),
                 jinja_env: Environment | None = None,
                 jinja_globals: dict[str, t.Any] | None = None,
                 *,
                 frontmatter_parser: FrontMatterParserName | FrontMatterParser = 'simple',
                 auto_typography: bool = True,
                 code_highlighting: bool = True,
                 pygments_params: dict[str, t.Any] | None = None):
        """
        :param templates: Names of the templates to apply, innermost first.
        :param required_fields: Front matter fields every document must have.
        :param jinja_env: A custom Jinja2 `Environment`.
        :param jinja_globals: Extra fields available to every template.
        :param frontmatter_parser: `'simple'`, `'yaml'`, `'toml'`, or a
            callable turning the text of the front matter block into a dict.
        :param auto_typography: Whether to enable smartquotes and replacements.
        :param code_highlighting: Whether to highlight fenced code with
            Pygments.
        :param pygments_params: Parameters for
            `pygments.formatters.html.HtmlFormatter`.
        """
        super().__init__(jinja_env, jinja_globals)
        self.templates = list(templates)
        self.required_fields = tuple(required_fields)
        self.frontmatter_parser = frontmatter_parser
        self.auto_typography = auto_typography
        self.code_highlighting = code_highlighting
        self.pygments_params = pygments_params or {}
        self._md_processor: t.Callable[[str], tuple[str, dict[str, str]]] | None = None

    def __repr__(self):
        return f'{self.__class__.__name__}({self.templates!r})'

    @property
    def md_processor(self):
        """
        Returns the markdown processor for this Step, creating it if necessary.
        """
        if not self._md_processor:
            self._md_processor = self._build_processor()
        return self._md_processor

    def highlight_code(self, code: str, lang: str, _lang_attrs: str):
        """
        Apply Pygments syntax highlighting to the provided code, returning
        HTML markup, or an empty string to fall back to a plain block.
        """
        from pygments import highlight
        from pygments.formatters.html import HtmlFormatter
        from pygments.lexers import get_lexer_by_name
        from pygments.util import ClassNotFound
        if not lang:
            return ''
        try:
            lexer = get_lexer_by_name(lang)
        except ClassNotFound:
            return ''

        return highlight(code, lexer, HtmlFormatter(**self.pygments_params))

    def _build_processor(self):
        import markdown_it
        from mdit_py_plugins.footnote import footnote_plugin
        from mdit_py_plugins.front_matter import front_matter_plugin
        from .components import md_rendering
        from .components.md_frontmatter import get_frontmatter_parser

        processor = markdown_it.MarkdownIt(
            'commonmark',
            {
                'typographer': self.auto_typography,
                'highlight': self.highlight_code if self.code_highlighting else None,
            },
            renderer_cls=md_rendering.BlogRendererHTML
        )
        processor.enable(['strikethrough', 'table'])
        if self.auto_typography:
            processor.enable(['smartquotes', 'replacements'])
        front_matter_plugin(processor)
        footnote_plugin(processor)
        t.cast(md_rendering.BlogRendererHTML, processor.renderer).set_front_matter_parser(
            get_frontmatter_parser(self.frontmatter_parser)
        )

        def convert(md_string: str):
            env: dict[str, t.Any] = {md_rendering.META_ENV_KEY: {}}
            rendered_md: str = processor.render(md_string, env=env)
            return rendered_md, env[md_rendering.META_ENV_KEY]

        return convert

    def load_item(self, path: Path, output_paths: list[Path]) -> Item:
        from .components.md_frontmatter import FrontMatterError
        try:
            body, meta = self.md_processor(self.read_text(path).strip())
        except FrontMatterError as e:
            raise MetadataError(path, None, f'has malformed front matter: {e}') from e

        item = Item(
            path,
            self.context.route_of(output_paths[0]),
            meta,
            body.strip(),
            PurePosixPath(path.relative_to(self.context['input_dir']).as_posix()),
        )
        return item.require(*self.required_fields)

    def __call__(self, path: Path, output_paths: list[Path]):
        item = self.get_item(path, output_paths)
        text, template_paths = self.apply_templates(path, self.templates, item.fields(), item.body)
        self.write_outputs(text, output_paths)
        return [path, *template_paths], output_paths


class PostListStep(JinjaRenderStep):
    """
    A Step rendering a page which lists every post, newest first. The posts
    are bound to the `posts` field as a list of their own fields, alongside
    a fixed `title`.

    With @self_template, the page's source file is itself rendered as a
    template before the chain of @templates is applied; otherwise the page
    starts out empty and may have no source file at all.
    """
    collects = True

    def __init__(self,
                 title: str,
                 templates: Sequence[str],
                 posts_pattern: str = 'posts/*',
                 self_template: bool = False,
                 jinja_env: Environment | None = None,
                 jinja_globals: dict[str, t.Any] | None = None):
        super().__init__(jinja_env, jinja_globals)
        self.title = title
        self.templates = list(templates)
        self.posts_pattern = posts_pattern
        self.self_template = self_template

    def __repr__(self):
        return f'{self.__class__.__name__}({self.title!r})'

    def __call__(self, path: Path, output_paths: list[Path]):
        input_dir = self.context['input_dir']
        posts = recent_first(self.context.load_all(self.posts_pattern))
        fields = {
            'posts': [post.fields() for post in posts],
            'title': self.title,
            'url': f'/{self.context.route_of(output_paths[0])}',
            'path': path.relative_to(input_dir).as_posix(),
        }

        sources: list = []
        body = ''
        page_text = None
        if self.self_template:
            page_text = self.read_text(path)
            body = self.render(path, self.env.from_string(page_text), fields)
            sources.append(path)

        text, _ = self.apply_templates(path, self.templates, fields, body)
        self.write_outputs(text, output_paths)
        template_paths = self.find_templates(self.templates, page_text)

        manifest = self.context.custodian.manifest_entry(
            input_dir,
            self.posts_pattern,
            (p for p in input_dir.glob(self.posts_pattern) if p.is_file()),
        )
        sources.extend([manifest, *(post.source for post in posts), *template_paths])
        return sources, output_paths
