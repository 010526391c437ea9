"""
Command line interface: builds, cleans, or serves the blog, using the rules
from `blogbuild.site` or from another config module or file.
"""
from __future__ import annotations

import argparse
import contextlib
import importlib
import runpy
import shutil
import sys
import tempfile
import typing as t
from pathlib import Path

from .core import BuildError, BuildSettings, Context, InputBuildSettings, Rule, Step, StepUnavailableException
from .custody import Custodian
from .pretty_utils import print_with_style


COMMANDS = ('build', 'rebuild', 'clean', 'serve')
DEFAULT_MODULE = 'blogbuild.site'


class BuildNamespace:
    """
    Internal used to preserve typing between InputBuildSettings, argparse, and
    BuildSettings.
    """
    command: str
    input_dir: Path
    output_dir: Path
    working_dir: Path | None
    custody_cache: Path | None
    purge_dirs: bool | None
    audit_steps: bool
    port: int

    def __init__(self, settings: InputBuildSettings | None = None):
        if settings:
            self.__dict__.update(settings)

    def to_build_settings(self, resolved_working_dir: Path):
        """
        Convert this argparse-oriented namespace into a Context-ready
        BuildSettings.
        """
        purge_dirs = self.purge_dirs
        if self.command == 'rebuild':
            purge_dirs = True
        elif purge_dirs is None and self.custody_cache is None:
            purge_dirs = True
        return BuildSettings(
            input_dir=self.input_dir,
            output_dir=self.output_dir,
            working_dir=resolved_working_dir,
            custody_cache=self.custody_cache,
            purge_dirs=purge_dirs
        )


@contextlib.contextmanager
def _wrap_temp(path: Path | None):
    if path:
        yield path
    else:
        with tempfile.TemporaryDirectory() as temp_dir:
            yield Path(temp_dir)


def add_config_arguments(parser: argparse.ArgumentParser):
    group = parser.add_mutually_exclusive_group()
    group.add_argument('-m',
                       help=f'import path of a config module to build; defaults to {DEFAULT_MODULE}',
                       dest='module',
                       default=None)
    group.add_argument('-c', '--config',
                       help='file path to a config file to build',
                       type=Path,
                       dest='config_file',
                       default=None)


def build_parser(**kw):
    """
    Create the full argument parser. Settings defaults come from the
    namespace passed to `parse_args()`, so they are not declared here.
    """
    parser = argparse.ArgumentParser(**kw)
    parser.add_argument('command',
                        nargs='?',
                        choices=COMMANDS,
                        default='build',
                        help='what to do (default: build)')
    add_config_arguments(parser)
    parser.add_argument('-i', '--input',
                        help='input directory with raw files to process',
                        type=Path,
                        dest='input_dir',
                        default=Path('blog'))
    parser.add_argument('-o', '--output',
                        help='output directory for final built files',
                        type=Path,
                        dest='output_dir',
                        default=Path('_site'))

    group = parser.add_mutually_exclusive_group()
    group.add_argument('-w', '--working',
                       help='directory for intermediate files; defaults to a new temporary directory',
                       type=Path,
                       dest='working_dir')
    group.add_argument('--use-temporary',
                       help='force use of a temporary directory for intermediate files',
                       action='store_const',
                       dest='working_dir',
                       const=None)

    parser.add_argument('--custody-cache',
                        help='path to a cache file for chain of custody and change detection',
                        type=Path,
                        default=None)
    parser.add_argument('--purge',
                        help='purge the output directory before building',
                        action=argparse.BooleanOptionalAction,
                        dest='purge_dirs',
                        default=None)
    parser.add_argument('--audit-steps',
                        help=('show information about available, unavailable, '
                              'and used steps, instead of building'),
                        action='store_true')
    parser.add_argument('-p', '--port',
                        help='port to serve from',
                        type=int,
                        default=8000)
    return parser


def load_config(module: str | None, config_file: Path | None):
    """
    Load SETTINGS, RULES, CUSTODIAN and CONTEXT from a config file or module.
    """
    if config_file:
        namespace = runpy.run_path(str(config_file))
        get = namespace.get
    else:
        imported = importlib.import_module(module or DEFAULT_MODULE)
        def get(key):
            return getattr(imported, key, None)

    settings: InputBuildSettings | None = get('SETTINGS')
    rules: list[Rule] | None = get('RULES')
    custodian: Custodian | None = get('CUSTODIAN')
    context: Context | None = get('CONTEXT')
    return settings, rules, custodian, context


def parse_args(arguments: list[str] | None = None):
    """
    Parse command line arguments in two passes: the first finds the config,
    whose SETTINGS then provide defaults for the second.
    """
    pre_parser = argparse.ArgumentParser(add_help=False)
    add_config_arguments(pre_parser)
    pre_args, _ = pre_parser.parse_known_args(arguments)
    config = load_config(pre_args.module, pre_args.config_file)

    parser = build_parser(prog='blogbuild', description='Build the blog.')
    namespace = parser.parse_args(arguments, namespace=BuildNamespace(config[0]))
    return namespace, config


def clean(namespace: BuildNamespace):
    """
    Remove everything a build produces.
    """
    for directory in (namespace.output_dir, namespace.working_dir):
        if directory and directory.exists():
            print_with_style(f'Removing {directory}', markup=False)
            shutil.rmtree(directory)
    if namespace.custody_cache and namespace.custody_cache.exists():
        print_with_style(f'Removing {namespace.custody_cache}', markup=False)
        namespace.custody_cache.unlink()


def pprint_step(step: t.Type[Step]):
    """
    Prettily display dependency information for the given Step class.
    """
    missing = [
        str(d) for d in step.get_dependencies()
        if not d.satisfied
    ]
    if missing:
        text = ', '.join(missing)
        print_with_style(f'✗ {step.__name__} (missing: {text})', style='red')
    else:
        print_with_style(f'✓ {step.__name__}', style='green')


def pprint_missing_deps(step: Step):
    """
    Prettily display an error for the given Step with missing dependencies.
    """
    print_with_style(
        f'{step!r} is unavailable due to missing dependencies!',
        file='stderr',
        style='red',
        markup=False
    )
    for dep in sorted(step.get_dependencies(), key=str):
        if dep.satisfied:
            print_with_style(f'✓ {dep}', style='green', markup=False)
        else:
            print_with_style(f'✗ {dep}: {dep.install_hint}', style='red', markup=False)


def audit_steps(rules: list[Rule]):
    all_steps = set(Step.get_all_steps())
    available_steps = set(Step.get_available_steps())
    groups = {
        'Available steps': available_steps,
        'Unavailable steps': all_steps - available_steps,
        'Used steps': {r.step.__class__ for r in rules if r.step},
    }
    for group_label, step_group in groups.items():
        print_with_style(f'{group_label} ({len(step_group)})')
        for step in sorted(step_group, key=lambda s: s.__name__):
            pprint_step(step)


def build(namespace: BuildNamespace,
          rules: list[Rule],
          custodian: Custodian | None = None,
          context_cls: t.Type[Context] = Context):
    """
    Build a new Context from parsed settings and Rules, and run it.
    """
    with _wrap_temp(namespace.working_dir) as working_dir:
        context = context_cls(namespace.to_build_settings(working_dir), rules, custodian)
        context.run()
    return context


def main(arguments: list[str] | None = None):
    """
    blogbuild main function.
    """
    namespace, (_settings, rules, custodian, context) = parse_args(arguments)

    if namespace.audit_steps:
        audit_rules = context.rules if context else rules
        if not audit_rules:
            raise RuntimeError('blogbuild config files must have a RULES or CONTEXT attribute!')
        audit_steps(audit_rules)
        return

    if namespace.command == 'clean':
        clean(namespace)
        return

    if not (context or rules):
        print_with_style(
            'blogbuild config files must have a RULES or CONTEXT attribute!',
            file='stderr',
            style='red'
        )
        sys.exit(1)

    try:
        if context:
            context.run()
        elif rules:
            build(namespace, rules, custodian)
    except StepUnavailableException as e:
        pprint_missing_deps(e.step)
        sys.exit(1)
    except BuildError as e:
        print_with_style(f'Build failed: {e}', file='stderr', style='red', markup=False)
        sys.exit(1)

    if namespace.command == 'serve':
        from .server import serve
        serve(namespace.port, namespace.output_dir)
