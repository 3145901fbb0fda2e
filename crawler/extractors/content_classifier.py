"""
Language and category classification of extracted articles.
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from loguru import logger

from crawler.models.article_models import MAX_TAGS

HEBREW_RANGE = ('\u0590', '\u05ff')
ARABIC_RANGES = (('\u0600', '\u06ff'), ('\u0750', '\u077f'))
SCRIPT_SHARE_THRESHOLD = 0.3
LATIN_SHARE_THRESHOLD = 0.6

ENGLISH_STOPWORDS = {
    'the', 'and', 'of', 'to', 'in', 'is', 'that', 'for', 'it', 'was', 'on', 'with',
    'as', 'are', 'by', 'this', 'be', 'at', 'from', 'has', 'have', 'said', 'were', 'an',
}

URL_CATEGORIES = {
    'politics': 'Politics',
    'business': 'Business',
    'economy': 'Business',
    'technology': 'Technology',
    'tech': 'Technology',
    'sport': 'Sports',
    'sports': 'Sports',
    'entertainment': 'Entertainment',
    'health': 'Health',
    'science': 'Science',
    'world': 'World News',
    'local': 'Local News',
    'opinion': 'Opinion',
    'lifestyle': 'Lifestyle',
    'travel': 'Travel',
    'food': 'Food',
    'culture': 'Culture',
}

KEYWORD_CATEGORIES: Dict[str, List[str]] = {
    'Politics': ['election', 'elections', 'parliament', 'knesset', 'government', 'minister',
                 'president', 'senate', 'congress', 'coalition', 'opposition', 'vote', 'policy'],
    'Security': ['military', 'army', 'soldiers', 'missile', 'rocket', 'ceasefire', 'hostage',
                 'hostages', 'terror', 'airstrike', 'defense', 'idf'],
    'Business': ['economy', 'market', 'markets', 'stocks', 'inflation', 'bank', 'company',
                 'investors', 'earnings', 'trade', 'shekel', 'startup'],
    'Technology': ['technology', 'software', 'ai', 'artificial', 'cyber', 'startup', 'app',
                   'internet', 'chip', 'smartphone', 'data'],
    'Sports': ['football', 'soccer', 'basketball', 'match', 'league', 'championship',
               'tournament', 'coach', 'goal', 'olympic'],
    'Health': ['health', 'hospital', 'covid', 'vaccine', 'disease', 'patients', 'doctors',
               'medical', 'virus'],
    'Science': ['research', 'scientists', 'study', 'space', 'climate', 'nasa', 'physics'],
    'Culture': ['film', 'music', 'festival', 'museum', 'book', 'theater', 'art', 'artist'],
}

TRENDING_TAGS = {'covid', 'ukraine', 'climate', 'election', 'economy', 'ai', 'bitcoin', 'gaza', 'iran'}

WORD_RE = re.compile(r"[a-z][a-z'-]*")


@dataclass
class Classification:
    """Classification result attached to a content item."""
    language: str = 'other'
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)


def _in_range(ch: str, bounds: Tuple[str, str]) -> bool:
    return bounds[0] <= ch <= bounds[1]


class ContentClassifier:
    """Assigns language, category and tags using script ranges and keyword maps."""

    def classify(self, title: str, body: str, url: str = '',
                 default_category: Optional[str] = None,
                 page_keywords: Optional[List[str]] = None) -> Classification:
        """
        Classify one article. Never raises.

        Args:
            title: Article title
            body: Article body
            url: Canonical article URL (path segments hint the category)
            default_category: The source's default category, wins when set
            page_keywords: Keywords declared by the page itself

        Returns:
            Classification; on any internal failure language is 'other' and category None
        """
        try:
            return self._classify(title, body, url, default_category, page_keywords or [])
        except Exception as e:
            logger.warning(f"⚠️ Classification failed for {url or title[:60]}: {e}")
            return Classification()

    def _classify(self, title: str, body: str, url: str,
                  default_category: Optional[str], page_keywords: List[str]) -> Classification:
        text = f"{title}\n{body}"
        language = self.detect_language(text)

        url_category = self.category_from_url(url)
        keyword_category, matched = self.category_from_keywords(text)
        category = default_category or url_category or keyword_category

        tags: List[str] = []
        for candidate in [category, url_category, keyword_category]:
            if candidate:
                tags.append(candidate.lower())
        tags.extend(kw.lower() for kw in page_keywords if 0 < len(kw) < 50)
        title_words = set(WORD_RE.findall(title.lower()))
        tags.extend(sorted(title_words & TRENDING_TAGS))
        tags.extend(matched)

        return Classification(
            language=language,
            category=category,
            tags=list(dict.fromkeys(tags))[:MAX_TAGS],
        )

    def detect_language(self, text: str) -> str:
        """Classify text as 'he', 'ar', 'en' or 'other' from its letters."""
        letters = [ch for ch in text if ch.isalpha()]
        if not letters:
            return 'other'

        total = len(letters)
        hebrew = sum(1 for ch in letters if _in_range(ch, HEBREW_RANGE))
        arabic = sum(1 for ch in letters if any(_in_range(ch, r) for r in ARABIC_RANGES))
        latin = sum(1 for ch in letters if ch.isascii())

        if max(hebrew, arabic) / total >= SCRIPT_SHARE_THRESHOLD:
            return 'he' if hebrew >= arabic else 'ar'

        if latin / total >= LATIN_SHARE_THRESHOLD:
            words = WORD_RE.findall(text.lower())
            hits = sum(1 for w in words if w in ENGLISH_STOPWORDS)
            if words and (hits >= 3 or hits / len(words) >= 0.1):
                return 'en'
        return 'other'

    def category_from_url(self, url: str) -> Optional[str]:
        if not url:
            return None
        segments = [s for s in urlparse(url).path.lower().split('/') if s]
        # The last segment is the article slug
        for segment in segments[:-1]:
            if segment in URL_CATEGORIES:
                return URL_CATEGORIES[segment]
        return None

    def category_from_keywords(self, text: str) -> Tuple[Optional[str], List[str]]:
        """
        Score every category by keyword hits.

        Returns:
            Tuple of (best category or None, matched keywords of that category by frequency)
        """
        counts = Counter(WORD_RE.findall(text.lower()))
        best, best_score, best_matches = None, 0, []
        for category, keywords in KEYWORD_CATEGORIES.items():
            matches = [kw for kw in keywords if counts.get(kw)]
            score = sum(counts[kw] for kw in matches)
            if score > best_score:
                best, best_score = category, score
                best_matches = sorted(matches, key=lambda kw: (-counts[kw], kw))
        if best_score < 2:
            return None, []
        return best, best_matches
