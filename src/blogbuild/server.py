"""
A small HTTP server for previewing a built site.
"""
from __future__ import annotations

import hashlib
import http.server
import mimetypes
import os
import pathlib
import typing
if typing.TYPE_CHECKING:
    from socketserver import _AfInetAddress

from .pretty_utils import print_with_style


INDEX_FILE = 'index.html'
# Default used by nginx
DEFAULT_MIME_TYPE = 'application/octet-stream'
CHUNK_SIZE = 8192


class ThreadedHTTPServer(http.server.ThreadingHTTPServer):
    """
    An HTTP server serving files from @directory, handling each request in a
    separate thread.
    """
    def __init__(self,
                 server_address: _AfInetAddress,
                 directory: str | pathlib.Path = '.',
                 RequestHandlerClass: typing.Type[http.server.SimpleHTTPRequestHandler] | None = None,
                 bind_and_activate: bool = True) -> None:
        super().__init__(server_address, RequestHandlerClass or Handler, bind_and_activate)
        self.directory = str(directory)

    def finish_request(self, request, client_address) -> None:
        self.RequestHandlerClass(request, client_address, self, directory=self.directory)


class Handler(http.server.SimpleHTTPRequestHandler):
    """
    Request handler serving `index.html` for directories and answering
    conditional requests with 304 when the ETag still matches.
    """
    def get_etag(self, file_path):
        """
        Generate an etag for a file based on its size and modification time.
        """
        mtime = os.path.getmtime(file_path)
        file_size = os.path.getsize(file_path)
        file_info = f'{file_size}-{mtime}'
        return hashlib.md5(file_info.encode('utf-8')).hexdigest()

    def do_GET(self):
        try:
            file_path = pathlib.Path(self.translate_path(self.path))
            if file_path.is_dir():
                file_path /= INDEX_FILE

            # translate_path() discards suspicious components already.
            if not file_path.resolve().is_relative_to(pathlib.Path(self.directory).resolve()):
                return self.send_error(403, 'Forbidden')

            etag = self.get_etag(file_path)
            if self.headers.get('If-None-Match') == etag:
                self.send_response(304)
                self.end_headers()
                return

            mime_type, _enc = mimetypes.guess_type(file_path)
            self.send_response(200)
            self.send_header('Content-type', mime_type or DEFAULT_MIME_TYPE)
            self.send_header('Content-Length', str(file_path.stat().st_size))
            self.send_header('ETag', etag)
            self.end_headers()
            with open(file_path, 'rb') as file:
                while chunk := file.read(CHUNK_SIZE):
                    self.wfile.write(chunk)
        except FileNotFoundError:
            self.send_error(404, f'File Not Found: {self.path}')


def serve(port: int, directory: str | pathlib.Path, host: str = 'localhost'):
    with ThreadedHTTPServer((host, port), directory) as httpd:
        print_with_style(f'Serving {directory} at http://{host}:{port}', style='green', markup=False)
        httpd.serve_forever()
