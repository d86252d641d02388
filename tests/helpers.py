"""Test helpers: image bytes, a fake requests session, template directories."""

import io
import json

import requests
from PIL import Image


AVATAR_URL = 'https://cdn.example.com/avatar.png'
BACKGROUND_URL = 'https://cdn.example.com/background.png'


def png_bytes(color=(255, 0, 0, 255), size=(64, 64)) -> bytes:
    buffer = io.BytesIO()
    Image.new('RGBA', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


def fake_measure(text, font):
    """Ten pixels per character, independent of the font."""
    return len(text) * 10


class FakeResponse:
    def __init__(self, url, status_code=200, content=b'', headers=None):
        self.url = url
        self.status_code = status_code
        self.content = content
        self.headers = dict(headers or {})
        self.bytes_read = 0
        self.closed = False

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} for {self.url}", response=self)

    def json(self):
        return json.loads(self.content.decode('utf-8'))

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            chunk = self.content[start:start + chunk_size]
            self.bytes_read += len(chunk)
            yield chunk

    def close(self):
        self.closed = True


class FakeSession:
    """
    Stands in for requests.Session; serves registered URLs and counts every get().

    Routes map a URL to (status, content) or (status, content, headers).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []
        self.responses = []

    def get(self, url, timeout=None, headers=None, stream=False):
        self.calls.append(url)
        if url not in self.routes:
            raise requests.ConnectionError(f"unreachable: {url}")
        response = FakeResponse(url, *self.routes[url])
        self.responses.append(response)
        return response

    def count(self, url):
        return self.calls.count(url)


TEST_TEMPLATE = {
    'meta': {'width': 320, 'height': 160},
    'background': {'defaultColor': '#102030'},
    'avatar': {'x': 10, 'y': 10, 'size': 64, 'shape': 'circle'},
    'text': {
        'username': {'font': 'bold 20px sans-serif', 'color': '#ffffff', 'x': 90, 'y': 30},
        'bio': {'font': '12px sans-serif', 'x': 90, 'y': 60, 'maxWidth': 200, 'maxLines': 2},
    },
}


def write_template(root, name, document, overlay=None, files=None):
    directory = root / name
    directory.mkdir(parents=True)
    (directory / 'template.json').write_text(json.dumps(document), encoding='utf-8')
    if overlay is not None:
        (directory / 'template.png').write_bytes(overlay)
    for filename, content in (files or {}).items():
        (directory / filename).write_bytes(content)
    return directory


