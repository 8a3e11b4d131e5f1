"""
Social signal search (twitterapi.io advanced search).

Posts are deduplicated across calls for the life of the client, filtered
by engagement, and annotated with any mint addresses found in the text or
expanded URLs.
"""

import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from core.exceptions import VenueError
from core.wallet import extract_mint_addresses
from infra.http import request_json
from infra.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

SEARCH_URL = "https://api.twitterapi.io/twitter/tweet/advanced_search"


@dataclass
class SocialPost:
    id: str
    text: str
    author: str
    created_at: str
    likes: int = 0
    retweets: int = 0
    replies: int = 0
    extracted_mints: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SocialSearchClient:
    VENUE = "twitterapi"

    def __init__(
        self,
        api_key: str,
        url: str = SEARCH_URL,
        max_pages: int = 2,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 20.0,
        max_retries: int = 3,
    ):
        self.api_key = api_key
        self.url = url
        self.max_pages = max_pages
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries
        self._seen_ids: set = set()
        self._lock = threading.Lock()

    def search(self, query: str, min_likes: int = 50, min_retweets: int = 10) -> List[SocialPost]:
        """
        Posts matching `query` that pass the engagement filter.

        A post passes when likes >= min_likes OR retweets >= min_retweets.
        Upstream errors are logged and yield whatever was collected so far.
        """
        results: List[SocialPost] = []
        cursor = ""

        try:
            for _ in range(self.max_pages):
                page = request_json(
                    "GET",
                    self.url,
                    venue=self.VENUE,
                    params={"query": query, "queryType": "Top", "cursor": cursor},
                    headers={"X-API-Key": self.api_key},
                    timeout=self.timeout,
                    max_retries=self.max_retries,
                    rate_limiter=self.rate_limiter,
                ) or {}

                tweets = page.get("tweets") or []
                if not tweets:
                    break

                for tweet in tweets:
                    post = self._parse(tweet, min_likes, min_retweets)
                    if post is not None:
                        results.append(post)

                if not page.get("has_next_page") or not page.get("next_cursor"):
                    break
                cursor = page["next_cursor"]

        except VenueError as e:
            logger.warning(f"Social search error: {e}")

        mint_count = sum(len(p.extracted_mints) for p in results)
        logger.info(f"Social search: {len(results)} posts with {mint_count} mints (query: {query!r})")
        return results

    def clear_seen(self) -> None:
        with self._lock:
            self._seen_ids.clear()

    def _parse(self, tweet: Dict[str, Any], min_likes: int, min_retweets: int) -> Optional[SocialPost]:
        post_id = str(tweet.get("id", ""))
        with self._lock:
            if not post_id or post_id in self._seen_ids:
                return None
            self._seen_ids.add(post_id)

        likes = int(tweet.get("likeCount") or 0)
        retweets = int(tweet.get("retweetCount") or 0)
        if likes < min_likes and retweets < min_retweets:
            return None

        text = tweet.get("text") or ""
        urls = ((tweet.get("entities") or {}).get("urls")) or []
        full_text = " ".join([text] + [u.get("expanded_url", "") for u in urls if u.get("expanded_url")])

        return SocialPost(
            id=post_id,
            text=text,
            author=(tweet.get("author") or {}).get("userName") or "unknown",
            created_at=tweet.get("createdAt") or "",
            likes=likes,
            retweets=retweets,
            replies=int(tweet.get("replyCount") or 0),
            extracted_mints=extract_mint_addresses(full_text),
        )
