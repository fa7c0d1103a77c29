from datetime import UTC, datetime, timedelta

import pytest

from app.models.bookmark import Bookmark, Tag
from app.utils.display import favicon_url, time_ago

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)


@pytest.mark.unit
class TestFavicon:
    def test_uses_hostname(self):
        assert favicon_url("https://docs.python.org/3/library/") == (
            "https://www.google.com/s2/favicons?domain=docs.python.org&sz=64"
        )

    @pytest.mark.parametrize("url", ["not a url", "example.com/path", "", "http://"])
    def test_unparseable_gives_none(self, url):
        assert favicon_url(url) is None

    def test_bookmark_exposes_favicon(self):
        bookmark = Bookmark(
            id="1",
            user_id="u",
            title="Site",
            url="https://example.com/a",
            created_at=NOW,
        )

        assert bookmark.favicon == (
            "https://www.google.com/s2/favicons?domain=example.com&sz=64"
        )
        assert "favicon" in bookmark.model_dump()


@pytest.mark.unit
class TestTimeAgo:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(seconds=30), "just now"),
            (timedelta(minutes=5), "5m ago"),
            (timedelta(hours=3, minutes=10), "3h ago"),
            (timedelta(days=2), "2d ago"),
            (timedelta(days=45), "2024-04-17"),
        ],
    )
    def test_labels(self, delta, expected):
        assert time_ago(NOW - delta, NOW) == expected

    def test_naive_timestamps_are_utc(self):
        naive = (NOW - timedelta(minutes=2)).replace(tzinfo=None)

        assert time_ago(naive, NOW) == "2m ago"


@pytest.mark.unit
class TestTags:
    def test_six_tags_with_colors(self):
        assert [t.value for t in Tag] == [
            "Design",
            "Dev",
            "Reading",
            "Tools",
            "Research",
            "Misc",
        ]
        assert Tag.DEV.color == "cyan"

    def test_blank_tag_from_storage_is_none(self):
        bookmark = Bookmark(
            id=3, user_id="u", title="t", url="u", tag="", created_at=NOW
        )

        assert bookmark.tag is None
        assert bookmark.id == "3"
