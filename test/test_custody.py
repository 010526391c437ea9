from pathlib import Path

import pytest

from blogbuild.core import BuildSettings, Context
from blogbuild.custody import Custodian, checksum


@pytest.fixture
def settings(tmp_path: Path):
    settings = BuildSettings(
        input_dir=tmp_path / 'input',
        output_dir=tmp_path / 'output',
        working_dir=tmp_path / 'working',
        custody_cache=tmp_path / 'custody.json',
        purge_dirs=False,
    )
    for key in ('input_dir', 'output_dir', 'working_dir'):
        settings[key].mkdir()
    return settings


def make_custodian(settings: BuildSettings, load: bool = False):
    custodian = Custodian()
    custodian.bind(Context(settings, [], custodian))
    if load:
        custodian.load_file(settings['custody_cache'])
    return custodian


@pytest.fixture
def recorded(settings: BuildSettings):
    source = settings['input_dir'] / 'a.txt'
    output = settings['output_dir'] / 'a.txt'
    source.write_text('a')
    output.write_text('A')

    custodian = make_custodian(settings)
    custodian.add_step([source], [output], 'Built')
    custodian.dump_file(settings['custody_cache'])
    return source, output, custodian


def test_checksum(tmp_path: Path):
    path = tmp_path / 'a.txt'
    path.write_bytes(b'abc')
    assert checksum(path) == 'a9993e364706816aba3e25717850c26c9cd0d89d'
    assert checksum(tmp_path) == ''


def test_genericize_path(settings: BuildSettings):
    custodian = make_custodian(settings)
    key = custodian.genericize_path(settings['output_dir'] / 'posts' / 'a.html')
    assert key == 'output_dir/posts/a.html'
    assert custodian.degenericize_path(key) == settings['output_dir'] / 'posts' / 'a.html'
    assert custodian.degenericize_path('input_dir') == settings['input_dir']


def test_graph(recorded):
    _source, _output, custodian = recorded
    assert custodian.graph == {'output_dir/a.txt': {'input_dir/a.txt': ['output_dir/a.txt']}}
    assert set(custodian.meta) == {'input_dir/a.txt', 'output_dir/a.txt'}


def test_first_run_is_stale(settings: BuildSettings, recorded):
    source, output, _custodian = recorded
    assert make_custodian(settings).refresh_needed(source, [output]) == (True, 'Stale parameters')


def test_up_to_date(settings: BuildSettings, recorded):
    source, output, _custodian = recorded
    assert make_custodian(settings, load=True).refresh_needed(source, [output]) == (False, 'Up to date')


def test_stale_upstream(settings: BuildSettings, recorded):
    source, output, _custodian = recorded
    source.write_text('b')
    assert make_custodian(settings, load=True).refresh_needed(source, [output]) == (
        True, 'Stale upstream (input_dir/a.txt)'
    )


def test_stale_downstream(settings: BuildSettings, recorded):
    source, output, _custodian = recorded
    output.write_text('edited by hand')
    assert make_custodian(settings, load=True).refresh_needed(source, [output]) == (
        True, 'Stale downstream (output_dir/a.txt)'
    )


def test_missing_output(settings: BuildSettings, recorded):
    source, output, _custodian = recorded
    output.unlink()
    stale, msg = make_custodian(settings, load=True).refresh_needed(source, [output])
    assert stale
    assert msg.startswith('Missing output')


def test_unrecorded_source(settings: BuildSettings, recorded):
    _source, output, _custodian = recorded
    other = settings['input_dir'] / 'b.txt'
    other.write_text('b')
    stale, msg = make_custodian(settings, load=True).refresh_needed(other, [output])
    assert stale
    assert msg.startswith('Missing upstream record')


def test_skip_step_carries_record(settings: BuildSettings, recorded):
    source, output, first = recorded
    second = make_custodian(settings, load=True)
    assert second.skip_step(source, [output]) == [output]
    assert second.graph == first.graph
    assert second.meta == first.meta


def test_manifest_entry(settings: BuildSettings):
    input_dir = settings['input_dir']
    source = input_dir / 'a.txt'
    output = settings['output_dir'] / 'list.txt'
    source.write_text('a')
    output.write_text('a')

    first = make_custodian(settings)
    manifest = first.manifest_entry(input_dir, '*.txt', [source])
    assert str(manifest) == 'glob_manifest:input_dir:*.txt'
    first.add_step([source, manifest], [output], 'Built')
    first.dump_file(settings['custody_cache'])

    assert make_custodian(settings, load=True).refresh_needed(source, [output]) == (False, 'Up to date')
    (input_dir / 'b.txt').write_text('b')
    assert make_custodian(settings, load=True).refresh_needed(source, [output]) == (
        True, 'Stale upstream (input_dir:*.txt)'
    )
