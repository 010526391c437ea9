"""
Build rules for the blog: which files are copied, minified, or rendered, and
where each one ends up in the built site.
"""
from pathlib import Path

from .core import InputBuildSettings, Rule
from .jinja import MarkdownPageStep, PostListStep
from .minify import CSSMinifierStep
from .paths import CreateMatcher, OutputDirPathCalc, REMatcher, WorkingDirPathCalc
from .rewrite import RelativizeUrlsStep
from .simple import DirectCopyStep


DEFAULT_TEMPLATE = 'templates/default.html'
POST_TEMPLATE = 'templates/post.html'
POST_LIST_TEMPLATE = 'templates/post-list.html'
POSTS = 'posts/*'
# Front matter blocks are read as YAML.
FRONTMATTER = 'yaml'

# Optional, and can be overridden with CLI arguments.
SETTINGS = InputBuildSettings(
    input_dir=Path('blog'),
    output_dir=Path('_site'),
    working_dir=Path('_cache/working'),
    custody_cache=Path('_cache/custody.json'),
)


def build_rules() -> list[Rule]:
    """
    Create a fresh rule list. Steps are bound to a single Context, so every
    build needs its own.
    """
    post_step = MarkdownPageStep(
        [POST_TEMPLATE, DEFAULT_TEMPLATE],
        required_fields=('title', 'date'),
        frontmatter_parser=FRONTMATTER,
    )
    return [
        # Ignore dotfiles found in either the input_dir or the working dir.
        Rule(
            (
                REMatcher(r'(.*/)*\..*', parent_dir='input_dir')
                | REMatcher(r'(.*/)*\..*', parent_dir='working_dir')
            ),
            None
        ),
        Rule(
            REMatcher(r'images/[^/]+$', parent_dir='input_dir'),
            [OutputDirPathCalc(), None],
            DirectCopyStep()
        ),
        Rule(
            REMatcher(r'css/[^/]+$', parent_dir='input_dir'),
            [OutputDirPathCalc(), None],
            CSSMinifierStep()
        ),
        Rule(
            REMatcher(r'contact\.markdown$', parent_dir='input_dir'),
            [WorkingDirPathCalc('.html'), None],
            MarkdownPageStep([DEFAULT_TEMPLATE], frontmatter_parser=FRONTMATTER)
        ),
        Rule(
            REMatcher(r'posts/[^/]+$', parent_dir='input_dir'),
            [WorkingDirPathCalc('.html'), None],
            post_step
        ),
        Rule(
            CreateMatcher('articles.html'),
            [WorkingDirPathCalc(), None],
            PostListStep('Posts', [POST_LIST_TEMPLATE, DEFAULT_TEMPLATE], POSTS)
        ),
        Rule(
            REMatcher(r'index\.html$', parent_dir='input_dir'),
            [WorkingDirPathCalc(), None],
            PostListStep('Home', [DEFAULT_TEMPLATE], POSTS, self_template=True)
        ),
        # Templates are only ever loaded by other Steps.
        Rule(REMatcher(r'templates/', parent_dir='input_dir'), None),
        # Every rendered page gets its links relativized on the way out.
        Rule(
            REMatcher(r'.*\.html$', parent_dir='working_dir'),
            [OutputDirPathCalc(), None],
            RelativizeUrlsStep()
        ),
    ]


RULES = build_rules()
