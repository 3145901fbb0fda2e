"""
Article content extraction for the Newswire pipeline.

Extraction is an ordered list of pure strategy functions. Each takes the
parsed page and returns an ``ExtractedArticle`` or None; the first one that
yields non-trivial content wins.
"""
import copy
import json
from typing import Any, Callable, Iterable, List, Optional

from bs4 import BeautifulSoup
from loguru import logger

from crawler.interfaces.news_source_interface import ExtractedArticle
from utils.text_utils import normalize_whitespace
from utils.time_utils import parse_datetime

MIN_CONTENT_LENGTH = 100
MIN_PARAGRAPH_LENGTH = 30

ARTICLE_TYPES = {
    'NewsArticle', 'Article', 'ReportageNewsArticle', 'AnalysisNewsArticle',
    'OpinionNewsArticle', 'BackgroundNewsArticle', 'BlogPosting', 'LiveBlogPosting',
}

NOISE_TAGS = [
    'script', 'style', 'noscript', 'nav', 'header', 'footer', 'aside',
    'form', 'iframe', 'svg', 'button', 'figure',
]

CONTENT_SELECTORS = [
    '[itemprop="articleBody"]',
    '.article-body',
    '.article__body',
    '.article-content',
    '.story-body',
    '.entry-content',
    '.post-content',
    '.content-body',
    'article',
    '[role="main"]',
    'main',
]

Strategy = Callable[[BeautifulSoup], Optional[ExtractedArticle]]


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or '', 'html.parser')


def _is_substantial(body: Optional[str]) -> bool:
    return bool(body) and len(body) > MIN_CONTENT_LENGTH


def _meta_content(soup: BeautifulSoup, *names: str) -> Optional[str]:
    for name in names:
        tag = soup.find('meta', attrs={'property': name}) or soup.find('meta', attrs={'name': name})
        if tag and tag.get('content', '').strip():
            return normalize_whitespace(tag['content'])
    return None


def _page_title(soup: BeautifulSoup) -> str:
    title = _meta_content(soup, 'og:title', 'twitter:title')
    if title:
        return title
    h1 = soup.find('h1')
    if h1 and h1.get_text(strip=True):
        return normalize_whitespace(h1.get_text(' ', strip=True))
    if soup.title and soup.title.string:
        return normalize_whitespace(soup.title.string)
    return ''


def _author_name(value: Any) -> Optional[str]:
    if not value:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, dict):
        return _author_name(value.get('name'))
    if isinstance(value, list):
        names = [name for name in (_author_name(v) for v in value) if name]
        return ', '.join(names) or None
    return None


def _keywords(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(',')
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return []


def _iter_json_ld_nodes(data: Any) -> Iterable[dict]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_json_ld_nodes(item)
    elif isinstance(data, dict):
        yield data
        if '@graph' in data:
            yield from _iter_json_ld_nodes(data['@graph'])


def _is_article_node(node: dict) -> bool:
    node_type = node.get('@type')
    types = node_type if isinstance(node_type, list) else [node_type]
    return any(t in ARTICLE_TYPES for t in types if isinstance(t, str))


def extract_from_json_ld(soup: BeautifulSoup) -> Optional[ExtractedArticle]:
    """Structured data: schema.org NewsArticle/Article in JSON-LD blocks."""
    for script in soup.find_all('script', attrs={'type': 'application/ld+json'}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            data = json.loads(raw.strip())
        except json.JSONDecodeError:
            logger.debug("Skipping malformed JSON-LD block")
            continue

        for node in _iter_json_ld_nodes(data):
            if not _is_article_node(node):
                continue
            body = normalize_whitespace(node.get('articleBody') or '')
            if not _is_substantial(body):
                continue
            return ExtractedArticle(
                title=normalize_whitespace(node.get('headline') or node.get('name') or '') or _page_title(soup),
                body=body,
                strategy='json_ld',
                author=_author_name(node.get('author')),
                published=parse_datetime(node.get('datePublished')),
                keywords=_keywords(node.get('keywords')),
            )
    return None


def _element_text(element) -> str:
    paragraphs = [
        normalize_whitespace(p.get_text(' ', strip=True))
        for p in element.find_all('p')
    ]
    paragraphs = [p for p in paragraphs if len(p) >= MIN_PARAGRAPH_LENGTH]
    if paragraphs:
        return '\n\n'.join(paragraphs)
    return normalize_whitespace(element.get_text('\n', strip=True))


def extract_from_selectors(soup: BeautifulSoup) -> Optional[ExtractedArticle]:
    """Common article-body selectors, with page chrome removed."""
    cleaned = copy.copy(soup)
    for tag in cleaned.find_all(NOISE_TAGS):
        tag.decompose()

    for selector in CONTENT_SELECTORS:
        candidates = [_element_text(el) for el in cleaned.select(selector)]
        candidates = [text for text in candidates if _is_substantial(text)]
        if candidates:
            return ExtractedArticle(
                title=_page_title(soup),
                body=max(candidates, key=len),
                strategy=f'selector:{selector}',
                author=_meta_content(soup, 'author', 'article:author'),
                published=parse_datetime(_meta_content(soup, 'article:published_time', 'pubdate', 'date')),
                keywords=_keywords(_meta_content(soup, 'keywords', 'news_keywords')),
            )
    return None


def extract_from_meta_tags(soup: BeautifulSoup) -> Optional[ExtractedArticle]:
    """Last resort: description meta tags."""
    body = _meta_content(soup, 'og:description', 'description', 'twitter:description')
    if not _is_substantial(body):
        return None
    return ExtractedArticle(
        title=_page_title(soup),
        body=body,
        strategy='meta_tags',
        author=_meta_content(soup, 'author', 'article:author'),
        published=parse_datetime(_meta_content(soup, 'article:published_time', 'pubdate', 'date')),
        keywords=_keywords(_meta_content(soup, 'keywords', 'news_keywords')),
    )


EXTRACTION_STRATEGIES: List[Strategy] = [
    extract_from_json_ld,
    extract_from_selectors,
    extract_from_meta_tags,
]


def extract_article(html: str, strategies: Optional[List[Strategy]] = None) -> Optional[ExtractedArticle]:
    """
    Run the strategy chain over an HTML page.

    Args:
        html: Raw page HTML
        strategies: Ordered strategies, defaults to EXTRACTION_STRATEGIES

    Returns:
        The first substantial extraction, or None if every strategy came up empty
    """
    soup = parse_html(html)
    for strategy in strategies or EXTRACTION_STRATEGIES:
        article = strategy(soup)
        if article and _is_substantial(article.body):
            article.html = html
            logger.debug(f"Extracted {len(article.body)} chars via {article.strategy}")
            return article
    return None
