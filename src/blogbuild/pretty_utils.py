"""
Internal utilities for progress bars and styled console output.
"""
import sys
import typing as t

import rich.console
import rich.progress


_consoles = {
    'stdout': rich.console.Console(file=sys.stdout),
    'stderr': rich.console.Console(file=sys.stderr),
}


T = t.TypeVar('T')


def track_progress(iterable: t.Iterable[T], desc: str) -> t.Iterable[T]:
    """
    Wrap @iterable in a rich progress bar labelled with @desc.
    """
    yield from rich.progress.track(iterable, desc, console=_consoles['stdout'])


def print_with_style(*args, sep=' ', end='\n', file: str = 'stdout', style=None, markup: bool | None = None):
    """
    print() replacement writing through a rich console, with optional style.
    Pass @markup=False for text which may contain square brackets.
    """
    _consoles[file].print(*args, sep=sep, end=end, style=style, markup=markup)
