"""
Simple Steps and a base class for Steps which write one text file.
"""
from __future__ import annotations

import contextlib
import shutil
from pathlib import Path

from .core import Step
from .items import ContentError


class DirectCopyStep(Step):
    """
    A simple Step which only copies a file to its output paths, byte for byte.
    """
    def __call__(self, path: Path, output_paths: list[Path]):
        for target_path in output_paths:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy(path, target_path)


class BaseStandardStep(Step):
    """
    A base class providing helper behaviors for typical steps creating one file
    and copying to others.
    """
    encoding = 'utf-8'
    newline = '\n'

    def ensure_output_dirs(self, output_paths: list[Path]):
        for o_path in output_paths:
            o_path.parent.mkdir(parents=True, exist_ok=True)

    def duplicate_output_paths(self, output_paths: list[Path]):
        for o_path in output_paths[1:]:
            shutil.copy(output_paths[0], o_path)

    @contextlib.contextmanager
    def ensure_outputs(self, output_paths: list[Path]):
        self.ensure_output_dirs(output_paths)
        yield
        self.duplicate_output_paths(output_paths)

    def read_text(self, path: Path) -> str:
        """
        Read a source as text, raising `ContentError` when it does not decode.
        """
        try:
            return path.read_text(self.encoding)
        except UnicodeDecodeError as e:
            raise ContentError(path, f'not valid {self.encoding} text ({e.reason})') from e

    def write_outputs(self, data: str, output_paths: list[Path]):
        with self.ensure_outputs(output_paths):
            output_paths[0].write_text(data, self.encoding, newline=self.newline)
