from profile_card.resource_cache import IMAGES, TEMPLATES, ResourceCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_entries_never_expire_without_ttl():
    clock = FakeClock()
    cache = ResourceCache(clock=clock)
    cache.put_template('default', 'doc')

    clock.now += 10 ** 9

    assert cache.get_template('default') == 'doc'


def test_ttl_expires_entries_and_counts_them():
    clock = FakeClock()
    cache = ResourceCache(ttl=60, clock=clock)
    cache.put_image('https://a/x.png', 'img')

    clock.now += 59
    assert cache.get_image('https://a/x.png') == 'img'

    clock.now += 2
    assert cache.get_image('https://a/x.png') is None

    stats = cache.stats()
    assert stats['expired'] == 1
    assert stats['cached_images'] == 0
    assert stats['hits'] == 1
    assert stats['misses'] == 1


def test_images_and_templates_use_separate_stores():
    cache = ResourceCache()
    cache.put_image('default', 'image')
    cache.put_template('default', 'template')

    assert cache.get_image('default') == 'image'
    assert cache.get_template('default') == 'template'


def test_invalidate_and_clear():
    cache = ResourceCache()
    cache.put_image('a', 1)
    cache.put_template('t', 2)

    assert cache.invalidate(IMAGES, 'a') is True
    assert cache.invalidate(IMAGES, 'a') is False
    assert cache.get_image('a') is None

    cache.clear()
    assert cache.get_template('t') is None
    assert cache.stats()['cached_templates'] == 0
    assert cache.invalidate(TEMPLATES, 't') is False
