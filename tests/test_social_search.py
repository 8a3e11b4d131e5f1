"""Tests for social search parsing, engagement filter and paging."""

from unittest.mock import patch

from core.exceptions import VenueError
from core.social_search import SocialSearchClient
from tests.helpers import BONK_MINT, USDC_MINT


def _tweet(tweet_id, text="", likes=0, retweets=0, urls=None):
    return {
        "id": tweet_id,
        "text": text,
        "likeCount": likes,
        "retweetCount": retweets,
        "replyCount": 2,
        "createdAt": "Tue Oct 14 12:00:00 +0000 2025",
        "author": {"userName": "degen"},
        "entities": {"urls": [{"expanded_url": u} for u in (urls or [])]},
    }


def _page(tweets, next_cursor=None):
    return {"tweets": tweets, "has_next_page": bool(next_cursor), "next_cursor": next_cursor or ""}


class TestSearch:
    def test_engagement_filter_is_or(self):
        client = SocialSearchClient("key", max_pages=1)
        page = _page([
            _tweet("1", "likes only", likes=60),
            _tweet("2", "retweets only", retweets=12),
            _tweet("3", "neither", likes=49, retweets=9),
        ])
        with patch("core.social_search.request_json", return_value=page):
            posts = client.search("solana")

        assert [p.id for p in posts] == ["1", "2"]
        assert posts[0].author == "degen"
        assert posts[0].replies == 2

    def test_mints_from_text_and_expanded_urls(self):
        client = SocialSearchClient("key", max_pages=1)
        page = _page([
            _tweet("1", f"aping {BONK_MINT} now", likes=100,
                   urls=[f"https://dexscreener.com/solana/{USDC_MINT}"]),
        ])
        with patch("core.social_search.request_json", return_value=page):
            post = client.search("solana")[0]

        assert post.extracted_mints == [BONK_MINT, USDC_MINT]

    def test_posts_deduplicated_across_calls(self):
        client = SocialSearchClient("key", max_pages=1)
        page = _page([_tweet("1", "gm", likes=100)])
        with patch("core.social_search.request_json", return_value=page):
            assert len(client.search("solana")) == 1
            assert client.search("solana") == []
            client.clear_seen()
            assert len(client.search("solana")) == 1

    def test_follows_cursor_up_to_max_pages(self):
        client = SocialSearchClient("key", max_pages=2)
        pages = [
            _page([_tweet("1", likes=100)], next_cursor="c1"),
            _page([_tweet("2", likes=100)], next_cursor="c2"),
            _page([_tweet("3", likes=100)]),
        ]
        with patch("core.social_search.request_json", side_effect=pages) as request:
            posts = client.search("solana")

        assert [p.id for p in posts] == ["1", "2"]
        assert request.call_count == 2
        assert request.call_args_list[1].kwargs["params"]["cursor"] == "c1"
        assert request.call_args_list[0].kwargs["headers"] == {"X-API-Key": "key"}

    def test_upstream_error_keeps_collected_posts(self):
        client = SocialSearchClient("key", max_pages=2)
        side_effect = [
            _page([_tweet("1", likes=100)], next_cursor="c1"),
            VenueError("twitterapi", "HTTP 503: unavailable"),
        ]
        with patch("core.social_search.request_json", side_effect=side_effect):
            posts = client.search("solana")
        assert [p.id for p in posts] == ["1"]

    def test_empty_page(self):
        client = SocialSearchClient("key")
        with patch("core.social_search.request_json", return_value={}):
            assert client.search("solana") == []
