"""
Steps for reducing the size of stylesheets.
"""
from pathlib import Path
from collections.abc import Sequence

from .dependencies import PipDependency
from .items import ContentError
from .simple import BaseStandardStep


class CSSMinifierStep(BaseStandardStep):
    """
    A CSS minification Step, using lightningcss to strip comments and
    whitespace and to fold rules for the browsers supported. Stylesheets
    lightningcss cannot parse raise `ContentError`.
    """
    @classmethod
    def get_dependencies(cls):
        return {
            PipDependency('lightningcss')
        }

    def __init__(self,
                 error_recovery: bool = False,
                 browsers_list: Sequence[str] | None = ('defaults',),
                 minify: bool = True):
        self.error_recovery = error_recovery
        self.browsers_list = list(browsers_list) if browsers_list else None
        self.minify = minify

    def __call__(self, path: Path, output_paths: list[Path]):
        import lightningcss
        try:
            data = lightningcss.process_stylesheet(
                self.read_text(path),
                filename=str(path),
                error_recovery=self.error_recovery,
                browsers_list=self.browsers_list,
                minify=self.minify
            )
        except ValueError as e:
            raise ContentError(path, f'is not a valid stylesheet ({e})') from e
        self.write_outputs(data, output_paths)
