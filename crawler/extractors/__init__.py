"""
Content extraction and classification for fetched article pages.
"""

from .article_extractor import extract_article, EXTRACTION_STRATEGIES
from .content_classifier import ContentClassifier, Classification

__all__ = ['extract_article', 'EXTRACTION_STRATEGIES', 'ContentClassifier', 'Classification']
