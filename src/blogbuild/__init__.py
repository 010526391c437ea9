"""
blogbuild is a small rule-based static site builder, and the configuration
that builds this blog with it.
"""
from .core import BuildError, Context, InputBuildSettings, ItemStep, Matcher, PathCalc, Rule, Step
from .custody import Custodian, CustodyEntry
from .dependencies import Dependency, PipDependency
from .items import ContentError, Item, MetadataError, recent_first
from .jinja import JinjaRenderStep, MarkdownPageStep, PostListStep, TemplateError
from .minify import CSSMinifierStep
from .paths import CreateMatcher, DirPathCalc, OutputDirPathCalc, REMatcher, WorkingDirPathCalc
from .rewrite import RelativizeUrlsStep
from .simple import DirectCopyStep
