"""
Chain of custody tracking between sources and outputs, used to skip Steps
whose inputs have not changed since the previous build.
"""
from __future__ import annotations

import hashlib
import json
import typing as t
from importlib.metadata import version
from pathlib import Path

from .pretty_utils import print_with_style

if t.TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from .core import Context, ContextDir


_JsonSerializable: t.TypeAlias = 'str | int | float | bool | None | _JsonDict | Sequence[_JsonSerializable]'
_JsonDict = dict[str, _JsonSerializable]

CONTEXT_DIR_KEYS: set[ContextDir] = {'input_dir', 'output_dir', 'working_dir'}


def checksum(path: Path, hashname: str = 'sha1', _bufsize=2**18):
    """
    Calculate a checksum for a `Path`. Directories result in empty checksums.
    """
    if path.is_dir():
        return ''
    digest = hashlib.new(hashname)

    buf = bytearray(_bufsize)
    view = memoryview(buf)
    with path.open('rb') as file:
        while True:
            size = file.readinto(buf)
            if size == 0:
                break  # EOF
            digest.update(view[:size])

    return digest.hexdigest()


class CustodyEntry:
    """
    Custody info for a single source or output: a type naming the checker
    which can tell whether it changed, a key, and checker metadata.
    """
    def __init__(self, entry_type: str, key: str, meta: dict | None = None):
        self.entry_type = entry_type
        self.key = key
        self.meta = meta or {}

    def __str__(self):
        return f'{self.entry_type}:{self.key}'

    def __getitem__(self, key):
        return self.meta[key]


class Custodian:
    """
    Records which sources produced which outputs during a build, persists the
    record as JSON, and uses the previous record to decide whether a Step
    needs to run again.
    """
    encoding = 'utf-8'
    newline = '\n'
    context: 'Context'

    def __init__(self,
                 parameters: _JsonDict | None = None,
                 info: dict[str, str] | None = None):
        self.checkers: dict[str, t.Callable[[CustodyEntry], bool]] = {
            'path': self.check_path,
            'glob_manifest': self.check_manifest,
        }

        self.parameters: _JsonDict = {'blogbuild_version': version('blogbuild')}
        if parameters:
            self.parameters.update(parameters)
        self.prior_parameters: _JsonDict = {}
        self.stale_parameters = True

        self.info = info or {}

        # output_key: {input_key: [sibling_keys]}
        self.graph: dict[str, dict[str, list[str]]] = {}
        self.prior_graph: dict[str, dict[str, list[str]]] = {}

        # key: (type, meta) (i.e. the parts of a CustodyEntry)
        self.meta: dict[str, tuple[str, _JsonDict]] = {}
        self.prior_meta: dict[str, tuple[str, _JsonDict]] = {}

    def bind(self, context: 'Context'):
        """
        Bind this `Custodian` to a `Context` and record its settings as info.
        """
        self.context = context
        for key in context.settings:
            if key not in self.info:
                self.info[key] = str(context.settings[key])

    def genericize_path(self, path: Path):
        """
        Turn a path into a key independent of where this run's directories
        live, e.g. `_site/index.html` into `output_dir/index.html`.
        """
        for dir_key in CONTEXT_DIR_KEYS:
            parent = self.context[dir_key]
            if path.is_relative_to(parent):
                path = dir_key / path.relative_to(parent)
                break
        return path.as_posix()

    def degenericize_path(self, key: str):
        """
        Undo `genericize_path()` to turn a key back into a Path.
        """
        if key in CONTEXT_DIR_KEYS:
            return self.context[key]

        path = Path(key)
        # parents[-1] is '.', so parents[-2] is the first component.
        dir_key = t.cast('ContextDir', str(path.parents[-2]))
        return self.context[dir_key] / path.relative_to(dir_key)

    def get_all_paths(self):
        """
        Generator of every output key in the graph as a Path.
        """
        return (self.degenericize_path(key) for key in self.graph)

    def entry_from_path(self, path: Path):
        """
        Create a `CustodyEntry` for a path, with a sha1 checksum plus modified
        time and size.
        """
        stat = path.stat()
        meta = {'sha1': checksum(path), 'm_time': stat.st_mtime, 'size': stat.st_size}
        return CustodyEntry('path', self.genericize_path(path), meta)

    def manifest_entry(self, parent: Path, pattern: str, paths: Iterable[Path]):
        """
        Create a `CustodyEntry` recording which files matched @pattern under
        @parent, so that adding or removing one marks dependents as stale.
        """
        return CustodyEntry(
            'glob_manifest',
            # ':' does not appear in our glob patterns.
            f'{self.genericize_path(parent)}:{pattern}',
            {'files': sorted(self.genericize_path(p) for p in paths)}
        )

    def check_path(self, entry: CustodyEntry) -> bool:
        """
        Default sha1-based checker for path staleness.
        """
        path = self.degenericize_path(entry.key)
        return path.exists() and entry['sha1'] == checksum(path)

    def check_manifest(self, entry: CustodyEntry) -> bool:
        """
        Checker comparing a recorded glob manifest with the current matches.
        """
        parent_key, pattern = entry.key.rsplit(':', 1)
        parent = self.degenericize_path(parent_key)
        current = sorted(self.genericize_path(p) for p in parent.glob(pattern) if p.is_file())
        return current == entry['files']

    def ensure_entry(self, record: Path | CustodyEntry):
        """
        Create a `CustodyEntry` if the parameter is a Path, otherwise just
        return the existing `CustodyEntry`.
        """
        if isinstance(record, CustodyEntry):
            return record
        return self.entry_from_path(record)

    def load_file(self, path: Path):
        """
        Load the previous run's custody data from a JSON file and evaluate
        parameter staleness.
        """
        if not path.exists():
            return
        data = json.loads(path.read_text(self.encoding))
        self.prior_parameters = data['parameters']
        self.stale_parameters = self.parameters != self.prior_parameters
        self.prior_graph = data['graph']
        self.prior_meta = data['meta']

    def dump_file(self, path: Path):
        """
        Dump all custody data from the current run into a JSON file.
        """
        data = {
            'info': self.info,
            'parameters': self.parameters,
            'graph': self.graph,
            'meta': self.meta,
        }
        with path.open('w', encoding=self.encoding, newline=self.newline) as file:
            json.dump(data, file, indent=2, sort_keys=True)

    def update_meta(self, entry: CustodyEntry):
        self.meta[entry.key] = (entry.entry_type, entry.meta)

    def add_step(self,
                 sources: Sequence[Path | CustodyEntry],
                 outputs: Sequence[Path],
                 stale_msg: str):
        """
        Mark a Step as run, updating custody data and logging accordingly.
        """
        self.log_step(sources, outputs, stale=True, stale_msg=stale_msg)

        o_entries = [self.ensure_entry(o) for o in outputs]
        s_entries = [self.ensure_entry(s) for s in sources]
        for entry in [*o_entries, *s_entries]:
            self.update_meta(entry)

        # Every output links to every source, and each link lists the outputs
        # made together.
        keys = [o.key for o in o_entries]
        for key in keys:
            self.graph.setdefault(key, {}).update((s.key, keys) for s in s_entries)

    def skip_step(self, source: Path, outputs: list[Path]):
        """
        Mark a Step as skipped, carrying forward the previous run's record for
        every output @source produced together with @outputs.
        """
        # Only called once refresh_needed() has found a prior record.
        _upstream, siblings = t.cast('tuple[list[str], list[str]]', self.prior_record(source, outputs))
        prior_outputs = [self.degenericize_path(k) for k in siblings]

        self.log_step([source], prior_outputs, stale=False)

        self.update_meta(self.entry_from_path(source))
        for o_entry in map(self.entry_from_path, prior_outputs):
            self.update_meta(o_entry)
            prior_sources = self.prior_graph[o_entry.key]
            self.graph.setdefault(o_entry.key, {}).update(prior_sources)
            for s_key in prior_sources:
                self.meta.setdefault(s_key, self.prior_meta[s_key])
        return prior_outputs

    def log_step(self,
                 sources: Sequence[Path | CustodyEntry],
                 outputs: Sequence[Path],
                 *,
                 stale: bool = True,
                 stale_msg: str = ''):
        targets = ', '.join(str(p) for p in outputs)
        if len(sources) == 1:
            msg = f'{sources[0]} ⇒ {targets}'
        else:
            listed = ''.join(f'\n\t{s}' for s in sources)
            msg = f'{{{listed}\n}} ⇒ {targets}'
        if stale:
            print_with_style(f'{stale_msg}...\n{msg}', markup=False)
        else:
            print_with_style('Skipped', msg, style='yellow', markup=False)

    def unchanged(self, key: str):
        """
        Whether the resource recorded under @key in the previous run still
        matches that record, according to the checker for its entry type.
        Keys the previous run never recorded count as changed.
        """
        if key not in self.prior_meta:
            return False
        entry_type, meta = self.prior_meta[key]
        if entry_type not in self.checkers:
            raise KeyError(f'No checker found for type {entry_type!r}!')
        return self.checkers[entry_type](CustodyEntry(entry_type, key, meta))

    def prior_record(self, source: Path, outputs: list[Path]):
        """
        Look up what the previous run recorded for @source producing @outputs.

        :return: None if @source did not produce `outputs[0]` last time,
            otherwise the keys of every source of @outputs and the keys of
            every output produced alongside `outputs[0]`.
        """
        first = self.prior_graph.get(self.genericize_path(outputs[0]), {})
        siblings = first.get(self.genericize_path(source))
        if siblings is None:
            return None
        upstream = sorted({
            s_key
            for path in outputs
            for s_key in self.prior_graph.get(self.genericize_path(path), ())
        })
        return upstream, siblings

    def refresh_needed(self, source: Path, outputs: list[Path]):
        """
        Determines whether a Step must run again for @source and @outputs.

        :return: Whether the step should be rerun and a message explaining why
            or why not.
        """
        if self.stale_parameters:
            return True, 'Stale parameters'

        for path in outputs:
            if not path.exists():
                return True, f'Missing output ({path})'

        record = self.prior_record(source, outputs)
        if record is None:
            return True, f'Missing upstream record ({source})'
        upstream, siblings = record

        for kind, keys in (('upstream', upstream), ('downstream', siblings)):
            for key in keys:
                if not self.unchanged(key):
                    return True, f'Stale {kind} ({key})'

        return False, 'Up to date'
