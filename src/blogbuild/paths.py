"""
Matchers and PathCalcs: the routing half of a Rule.
"""
import re
import typing as t
from pathlib import Path

from .core import Context, ContextDir, Matcher, PathCalc
from .custody import CONTEXT_DIR_KEYS


T = t.TypeVar('T')


def _trim_ext_prefix(path: Path, match: re.Match[str]):
    _groups = match.groupdict()
    if 'stem' in _groups:
        return path.with_stem(_groups['stem'])
    if 'ext' in _groups and _groups['ext']:
        return path.with_name(path.name[:-len(_groups['ext'])])
    return path


def _to_dir_inner(dest: Path,
                  ext: str | None,
                  context: Context,
                  path: Path,
                  match: t.Any):
    path = _trim_ext_prefix(path, match) if ext and isinstance(match, re.Match) else path

    rel = path.relative_to(
        context['input_dir']
        if path.is_relative_to(context['input_dir'])
        else context['working_dir']
    )
    new_path = dest / rel

    if ext is not None:
        new_path = new_path.with_suffix(ext)

    return new_path


class DirPathCalc(PathCalc[T]):
    """
    PathCalc which re-parents its input paths under a specified directory,
    keeping their location relative to the input or working directory. If
    @ext is specified, it will replace the extension of input paths; an
    `ext` group in an re.Match marks a compound extension such as
    `.tar.gz` to be replaced whole.
    """
    def __init__(self,
                 dest: Path | ContextDir,
                 ext: str | None = None):
        self.dest = dest
        self.ext = ext

    def __call__(self, context: Context, path: Path, match: T) -> Path:
        if self.dest in CONTEXT_DIR_KEYS:
            dest = context[self.dest]
        else:
            dest = Path(self.dest)
        return _to_dir_inner(dest, self.ext, context, path, match)


class OutputDirPathCalc(DirPathCalc[T]):
    """
    DirPathCalc targeting the Context's output directory.
    """
    def __init__(self, ext: str | None = None):
        super().__init__('output_dir', ext)


class WorkingDirPathCalc(DirPathCalc[T]):
    """
    DirPathCalc targeting the Context's working directory, for files which
    need another pass before they are final.
    """
    def __init__(self, ext: str | None = None):
        super().__init__('working_dir', ext)


class REMatcher(Matcher[re.Match | None]):
    """
    Path Matcher using regular expressions. @re_flags will be passed to
    `re.compile()`. @parent_dir, if specified, should be a key to a configured
    directory, not a Path, and will be used to handle matching the beginning of
    Paths; this can be used to avoid pitfalls with unexpected characters in
    input or working directories.
    """
    def __init__(self, re_string: str, re_flags: int = 0, parent_dir: ContextDir | None = None):
        self.regex = re.compile(re_string, re_flags)
        self.parent_dir: ContextDir | None = parent_dir

    def __call__(self, context: Context, path: Path):
        if self.parent_dir:
            # Handle this part of matching outside the regex.
            if not path.is_relative_to(context[self.parent_dir]):
                return None
            path = path.relative_to(context[self.parent_dir])
        return self.regex.match(path.as_posix())


class CreateMatcher(Matcher[Path | None]):
    """
    Matcher for pages which have no source file, such as an archive listing
    every post. Each identifier becomes a path in the input directory that is
    fed into the build without existing on disk.
    """
    def __init__(self, *identifiers: str):
        self.identifiers = identifiers

    def generated(self, context: Context):
        return [context['input_dir'] / ident for ident in self.identifiers]

    def __call__(self, context: Context, path: Path):
        if path in self.generated(context) and not path.exists():
            return path
        return None
