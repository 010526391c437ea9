from __future__ import annotations

import re
import typing as t
from pathlib import Path

import pytest

from blogbuild.core import BuildSettings, Context
from blogbuild.paths import CreateMatcher, DirPathCalc, OutputDirPathCalc, REMatcher, WorkingDirPathCalc
from blogbuild.site import build_rules


INPUT_PATH = Path('input')
WORKING_PATH = Path('working')
OUTPUT_PATH = Path('output')
EXTERNAL_PATH = Path('external')


@pytest.fixture
def dummy_context():
    return Context(
        BuildSettings(
            input_dir=INPUT_PATH,
            output_dir=OUTPUT_PATH,
            working_dir=WORKING_PATH,
            custody_cache=EXTERNAL_PATH / 'custody.json',
            purge_dirs=False
        ),
        []
    )


@pytest.fixture
def site_context():
    return Context(
        BuildSettings(
            input_dir=INPUT_PATH,
            output_dir=OUTPUT_PATH,
            working_dir=WORKING_PATH,
            custody_cache=None,
            purge_dirs=False
        ),
        build_rules()
    )


@pytest.mark.parametrize('config,input,expected', [
    (('output_dir',), INPUT_PATH / 'foo.txt', OUTPUT_PATH / 'foo.txt'),
    ((OUTPUT_PATH,), INPUT_PATH / 'foo.txt', OUTPUT_PATH / 'foo.txt'),
    ((EXTERNAL_PATH,), WORKING_PATH / 'foo.txt', EXTERNAL_PATH / 'foo.txt'),
    (('working_dir',), INPUT_PATH / 'foo.txt', WORKING_PATH / 'foo.txt'),
    (('working_dir',), WORKING_PATH / 'foo.txt', WORKING_PATH / 'foo.txt'),
    (('working_dir', '.html'), WORKING_PATH / 'foo.txt', WORKING_PATH / 'foo.html'),
    (('working_dir', '.html'), WORKING_PATH / 'foo.j.txt', WORKING_PATH / 'foo.j.html'),
])
def test_dir_path_calc(config: tuple, input: Path, expected: Path, dummy_context: Context):
    calc = DirPathCalc(*config)
    assert calc(dummy_context, input, None) == expected


@pytest.mark.parametrize('config,input,regex,expected', [
    (('output_dir',), INPUT_PATH / 'foo.j.html', r'.*(?P<ext>\.j\.html)', OUTPUT_PATH / 'foo.j.html'),
    (('output_dir', '.zip'), INPUT_PATH / 'foo.j.html', r'.*(?P<ext>\.j\.html)', OUTPUT_PATH / 'foo.zip'),
])
def test_dir_path_calc_regex(config: tuple, input: Path, regex: str, expected: Path, dummy_context: Context):
    calc = DirPathCalc(*config)
    match = re.match(regex, input.as_posix())
    assert calc(dummy_context, input, match) == expected


@pytest.mark.parametrize('config,input,expected', [
    ((), INPUT_PATH / 'images' / 'a.png', OUTPUT_PATH / 'images' / 'a.png'),
    ((), WORKING_PATH / 'foo.html', OUTPUT_PATH / 'foo.html'),
    (('.html',), INPUT_PATH / 'posts' / 'foo.markdown', OUTPUT_PATH / 'posts' / 'foo.html'),
])
def test_output_dir_path_calc(config: tuple, input: Path, expected: Path, dummy_context: Context):
    calc = OutputDirPathCalc(*config)
    assert calc(dummy_context, input, None) == expected


@pytest.mark.parametrize('config,input,expected', [
    ((), (INPUT_PATH / 'index.html', None), WORKING_PATH / 'index.html'),
    (('.html',), (INPUT_PATH / 'contact.markdown', None), WORKING_PATH / 'contact.html'),
])
def test_working_dir_path_calc(config: tuple, input: tuple[Path, t.Any], expected: Path, dummy_context: Context):
    calc = WorkingDirPathCalc(*config)
    assert calc(dummy_context, *input) == expected


@pytest.mark.parametrize('config,input,expected', [
    ((r'.*\.html',), INPUT_PATH / 'foo.html', {}),
    ((r'f.*\.html',), INPUT_PATH / 'foo.html', None),
    ((r'f.*\.html', 0, 'input_dir'), INPUT_PATH / 'foo.html', {}),
    ((r'.*(?P<ext>\.j\.html)', 0, 'input_dir'), INPUT_PATH / 'foo.j.html', {'ext': '.j.html'}),
    ((r'.*(?P<ext>\.j\.html)', 0, 'input_dir'), INPUT_PATH / 'foo.html', None),
    ((r'.*(?P<ext>\.j\.html)', 0, 'working_dir'), INPUT_PATH / 'foo.j.html', None),
    ((r'.*(?P<ext>\.j\.html)', 0, 'working_dir'), WORKING_PATH / 'foo.j.html', {'ext': '.j.html'}),
])
def test_re_matcher(config: tuple, input: Path, expected: dict | None, dummy_context: Context):
    matcher = REMatcher(*config)
    result = matcher(dummy_context, input)
    if result:
        assert result.groupdict() == expected
    else:
        assert result is expected


def test_create_matcher(dummy_context: Context):
    matcher = CreateMatcher('articles.html', 'feed.xml')
    assert list(matcher.generated(dummy_context)) == [
        INPUT_PATH / 'articles.html',
        INPUT_PATH / 'feed.xml',
    ]
    assert matcher(dummy_context, INPUT_PATH / 'articles.html') == INPUT_PATH / 'articles.html'
    assert matcher(dummy_context, INPUT_PATH / 'index.html') is None
    assert matcher(dummy_context, WORKING_PATH / 'articles.html') is None


def _planned_outputs(context: Context, paths: list[Path]):
    context.match_paths(paths)
    return {path: outputs for path, (_step, outputs) in context.assignments.items()}


@pytest.mark.parametrize('input,expected', [
    (INPUT_PATH / 'images' / 'portrait.svg', OUTPUT_PATH / 'images' / 'portrait.svg'),
    (INPUT_PATH / 'images' / 'photo.jpeg', OUTPUT_PATH / 'images' / 'photo.jpeg'),
    (INPUT_PATH / 'css' / 'default.css', OUTPUT_PATH / 'css' / 'default.css'),
    (INPUT_PATH / 'posts' / 'foo.markdown', WORKING_PATH / 'posts' / 'foo.html'),
    (INPUT_PATH / 'contact.markdown', WORKING_PATH / 'contact.html'),
    (INPUT_PATH / 'index.html', WORKING_PATH / 'index.html'),
    (INPUT_PATH / 'articles.html', WORKING_PATH / 'articles.html'),
    (WORKING_PATH / 'posts' / 'foo.html', OUTPUT_PATH / 'posts' / 'foo.html'),
    (WORKING_PATH / 'index.html', OUTPUT_PATH / 'index.html'),
])
def test_site_routes(input: Path, expected: Path, site_context: Context):
    assert _planned_outputs(site_context, [input]) == {input: [expected]}


@pytest.mark.parametrize('input', [
    INPUT_PATH / 'templates' / 'default.html',
    INPUT_PATH / 'templates' / 'post-list.html',
    INPUT_PATH / '.hidden',
    INPUT_PATH / 'posts' / '.draft.markdown',
    INPUT_PATH / 'notes.txt',
    INPUT_PATH / 'images' / 'raw' / 'scan.tiff',
    WORKING_PATH / 'notes.txt',
])
def test_site_excluded_paths(input: Path, site_context: Context):
    assert _planned_outputs(site_context, [input]) == {}
