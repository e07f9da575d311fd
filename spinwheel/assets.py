"""Asynchronous image loading for wheel sectors.

``AssetLoader.load`` returns a ``concurrent.futures.Future`` that resolves to
an RGBA ``PIL.Image`` or fails with ``AssetLoadError``. References starting
with ``http://`` or ``https://`` are fetched with requests; anything else is a
path under the static root (``/images/upload-ab12.png``).
"""
import io
import logging
import os
from concurrent.futures import ThreadPoolExecutor

import requests
from PIL import Image

from .errors import AssetLoadError

logger = logging.getLogger(__name__)


class AssetLoader:
    def __init__(self, static_root='static', timeout=10, max_workers=4, session=None):
        self.static_root = os.path.abspath(static_root)
        self.timeout = timeout
        self._session = session or requests.Session()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix='asset-loader')

    def load(self, reference):
        return self._executor.submit(self.fetch, reference)

    def fetch(self, reference):
        """Fetch and decode one image synchronously"""
        try:
            if reference.startswith(('http://', 'https://')):
                response = self._session.get(reference, timeout=self.timeout)
                response.raise_for_status()
                data = response.content
            else:
                with open(self.resolve(reference), 'rb') as f:
                    data = f.read()
            image = Image.open(io.BytesIO(data))
            image.load()
        except AssetLoadError:
            raise
        except (requests.RequestException, OSError, ValueError) as e:
            raise AssetLoadError(reference, str(e)) from e

        logger.debug(f"🖼️ Loaded image {reference} ({image.width}x{image.height})")
        return image.convert('RGBA')

    def resolve(self, reference):
        """Map a reference onto a file below the static root"""
        path = os.path.normpath(os.path.join(self.static_root, reference.lstrip('/')))
        if os.path.commonpath([path, self.static_root]) != self.static_root:
            raise AssetLoadError(reference, 'path escapes the static root')
        return path

    def close(self):
        self._executor.shutdown(wait=False)
        self._session.close()
