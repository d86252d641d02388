"""Shared fixtures: on-disk template roots, a fake requests session, a Flask test client."""

import pytest

from profile_card.app import create_app
from profile_card.compositor import ProfileCardCompositor
from profile_card.renderer import CardRenderer
from profile_card.resolver import ResourceResolver
from profile_card.resource_cache import ResourceCache
from profile_card.template_model import TemplateLoader

from tests.helpers import AVATAR_URL, BACKGROUND_URL, TEST_TEMPLATE, FakeSession, png_bytes, write_template


@pytest.fixture
def template_root(tmp_path):
    root = tmp_path / 'templates'
    root.mkdir()
    write_template(root, 'default', TEST_TEMPLATE, files={'coin.png': png_bytes((255, 215, 0, 255), (16, 16))})
    return root


@pytest.fixture
def session():
    return FakeSession({
        AVATAR_URL: (200, png_bytes((0, 255, 0, 255))),
        BACKGROUND_URL: (200, png_bytes((0, 0, 255, 255), (32, 32))),
    })


@pytest.fixture
def cache():
    return ResourceCache()


@pytest.fixture
def resolver(cache, session):
    return ResourceResolver(cache, session=session)


@pytest.fixture
def loader(cache, template_root, session):
    return TemplateLoader(cache, root=str(template_root), session=session)


@pytest.fixture
def compositor(cache, resolver, loader):
    return ProfileCardCompositor(cache=cache, resolver=resolver, loader=loader, renderer=CardRenderer())


@pytest.fixture
def client(compositor):
    app = create_app(compositor)
    app.config['TESTING'] = True
    return app.test_client()
