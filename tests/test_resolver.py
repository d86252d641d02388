"""Resolver: reference classification, typed failures, and image caching by source string."""

import pytest

from profile_card.errors import AssetNotFound, DecodeFailed, NetworkFetchFailed
from profile_card.resolver import GLYPH, ResourceResolver, is_color_string, is_glyph, is_url
from profile_card.resource_cache import ResourceCache

from tests.helpers import AVATAR_URL, FakeSession, png_bytes


@pytest.mark.parametrize('value', ['#fff', '#1E1E1E', 'rgb(1, 2, 3)', 'rgba(0,0,0,0.5)', 'red', 'RebeccaPurple'])
def test_color_strings_are_recognised(value):
    assert is_color_string(value)


@pytest.mark.parametrize('value', ['', None, '#12', '#12345', 'https://x.io/a.png', 'icons/coin.png', 'dark red'])
def test_non_colors_are_rejected(value):
    assert not is_color_string(value)


def test_url_and_glyph_predicates():
    assert is_url('https://example.com/a.png')
    assert is_url('HTTP://example.com/a.png')
    assert not is_url('ftp://example.com/a.png')
    assert not is_url('coin.png')

    assert is_glyph('🪙')
    assert is_glyph('⭐')
    assert is_glyph('👍🏽')
    assert not is_glyph('coin')
    assert not is_glyph('coin.png')
    assert not is_glyph('🪙' * 20)


def test_glyph_reference_resolves_to_no_image(resolver, session):
    resolved = resolver.resolve('🪙')

    assert not resolved.available
    assert resolved.reason == GLYPH
    assert session.calls == []


def test_remote_image_is_fetched_once_and_cached(resolver, session):
    first = resolver.resolve(AVATAR_URL)
    second = resolver.resolve(AVATAR_URL)

    assert first.available and second.available
    assert first.image.size == (64, 64)
    assert first.image.mode == 'RGBA'
    assert session.count(AVATAR_URL) == 1


def test_same_bytes_under_different_urls_are_cached_separately(cache):
    data = png_bytes()
    session = FakeSession({'https://a.example/x.png': (200, data), 'https://b.example/x.png': (200, data)})
    resolver = ResourceResolver(cache, session=session)

    resolver.resolve('https://a.example/x.png')
    resolver.resolve('https://b.example/x.png')

    assert len(session.calls) == 2
    assert cache.stats()['cached_images'] == 2


def test_http_error_is_network_failure(cache):
    session = FakeSession({'https://cdn.example.com/missing.png': (404, b'')})
    resolver = ResourceResolver(cache, session=session)

    with pytest.raises(NetworkFetchFailed):
        resolver.resolve('https://cdn.example.com/missing.png')


def test_unreachable_host_is_network_failure(resolver):
    with pytest.raises(NetworkFetchFailed):
        resolver.resolve('https://nowhere.example.com/a.png')


def test_oversized_download_is_rejected(cache):
    session = FakeSession({AVATAR_URL: (200, png_bytes())})
    resolver = ResourceResolver(cache, session=session, max_bytes=10)

    with pytest.raises(NetworkFetchFailed):
        resolver.resolve(AVATAR_URL)


def test_undecodable_bytes_are_decode_failure(cache):
    session = FakeSession({'https://cdn.example.com/not-an-image.png': (200, b'definitely not a png')})
    resolver = ResourceResolver(cache, session=session)

    with pytest.raises(DecodeFailed):
        resolver.resolve('https://cdn.example.com/not-an-image.png')
    assert cache.stats()['cached_images'] == 0


def test_local_asset_is_read_relative_to_base_dir(resolver, template_root):
    resolved = resolver.resolve('coin.png', str(template_root / 'default'))

    assert resolved.available
    assert resolved.image.size == (16, 16)


def test_missing_local_asset_fails_fast_without_network(resolver, session, template_root):
    with pytest.raises(AssetNotFound):
        resolver.resolve('missing.png', str(template_root / 'default'))
    assert session.calls == []


def test_local_paths_cannot_escape_the_asset_directory(resolver, template_root):
    with pytest.raises(AssetNotFound):
        resolver.resolve('../default/template.json', str(template_root / 'default' / 'sub'))
    with pytest.raises(AssetNotFound):
        resolver.resolve('/etc/passwd', str(template_root / 'default'))


def test_relative_reference_without_base_dir_is_not_found(resolver):
    with pytest.raises(AssetNotFound):
        resolver.resolve('avatar.png')


def test_relative_reference_against_url_base_is_fetched(cache):
    session = FakeSession({'https://assets.example.com/templates/default/coin.png': (200, png_bytes())})
    resolver = ResourceResolver(cache, session=session)

    resolved = resolver.resolve('coin.png', 'https://assets.example.com/templates/default/')

    assert resolved.available
    assert session.calls == ['https://assets.example.com/templates/default/coin.png']


def test_resolve_optional_reports_unavailable_instead_of_raising(resolver, template_root):
    missing = resolver.resolve_optional('missing.png', str(template_root / 'default'))
    broken = resolver.resolve_optional('https://nowhere.example.com/a.png')

    assert not missing.available and missing.reason == 'not_found'
    assert not broken.available and broken.reason == 'network'


def test_declared_oversize_download_is_rejected_before_reading(cache):
    session = FakeSession({AVATAR_URL: (200, png_bytes(), {'Content-Length': str(10 ** 9)})})
    resolver = ResourceResolver(cache, session=session, max_bytes=1024)

    with pytest.raises(NetworkFetchFailed):
        resolver.resolve(AVATAR_URL)
    response = session.responses[0]
    assert response.bytes_read == 0
    assert response.closed


def test_streamed_download_stops_once_past_the_limit(cache):
    session = FakeSession({AVATAR_URL: (200, b'\0' * (1024 * 1024))})
    resolver = ResourceResolver(cache, session=session, max_bytes=1024)

    with pytest.raises(NetworkFetchFailed):
        resolver.resolve(AVATAR_URL)
    response = session.responses[0]
    assert response.bytes_read < 1024 * 1024
    assert response.closed


def test_successful_download_closes_the_response(resolver, session):
    resolver.resolve(AVATAR_URL)

    assert session.responses[0].closed


def test_local_reference_with_nul_byte_is_not_found(resolver, template_root):
    with pytest.raises(AssetNotFound):
        resolver.resolve('a\x00b.png', str(template_root / 'default'))

    resolved = resolver.resolve_optional('a\x00b.png', str(template_root / 'default'))
    assert not resolved.available
    assert resolved.reason == 'not_found'
