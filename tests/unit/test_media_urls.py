import pytest

from schedule_scrapers.workers.media_urls import is_direct_content_url, large_scale_url


@pytest.mark.parametrize("url, expected", [
    ("https://scontent-iad3-1.xx.fbcdn.net/v/t39.30808-6/123_n.jpg?_nc_cat=1", True),
    ("https://instagram.fxyz1-1.fna.cdninstagram.com/v/t51/abc.jpg", True),
    ("https://example.com/uploads/flyer.PNG", True),
    ("https://www.facebook.com/photo/?fbid=123&set=g.456", False),
    ("https://www.facebook.com/groups/karaoke/permalink/789/", False),
])
def test_is_direct_content_url(url, expected):
    assert is_direct_content_url(url) is expected


def test_large_scale_url_strips_facebook_size_hints():
    url = "https://scontent.xx.fbcdn.net/v/t39.30808-6/s720x720/123_n.jpg?stp=dst-jpg_s720x720&_nc_cat=1&oh=abc"
    rewritten = large_scale_url(url)
    assert "/s720x720/" not in rewritten
    assert "stp=" not in rewritten
    assert "_nc_cat=1" in rewritten
    assert "oh=abc" in rewritten
    assert rewritten.endswith("123_n.jpg?_nc_cat=1&oh=abc")


def test_large_scale_url_strips_instagram_size_and_query():
    url = "https://scontent.cdninstagram.com/v/t51/p640x640/abc.jpg?w=640&h=640"
    # scontent host is handled by the Facebook rule, which keeps unrelated params
    assert large_scale_url(url) == "https://scontent.cdninstagram.com/v/t51/abc.jpg"

    ig = "https://instagram.fabc1-1.fna.cdninstagram.com/v/t51/p1080x1080/abc.jpg?efg=xyz"
    assert large_scale_url(ig) == "https://instagram.fabc1-1.fna.cdninstagram.com/v/t51/abc.jpg"


def test_large_scale_url_leaves_other_hosts_alone():
    url = "https://example.com/s720x720/flyer.jpg?w=100"
    assert large_scale_url(url) == url
