"""
Unit tests for crawler.extractors.content_classifier.
"""
import pytest

from crawler.extractors.content_classifier import ContentClassifier
from crawler.models.article_models import MAX_TAGS


class TestLanguageDetection:

    @pytest.fixture
    def classifier(self):
        return ContentClassifier()

    @pytest.mark.unit
    def test_english(self, classifier):
        text = "The minister said that the new policy was approved by the cabinet on Sunday."
        assert classifier.detect_language(text) == 'en'

    @pytest.mark.unit
    def test_hebrew(self, classifier):
        assert classifier.detect_language("הממשלה אישרה את התקציב החדש לאחר דיון ארוך בכנסת") == 'he'

    @pytest.mark.unit
    def test_arabic(self, classifier):
        assert classifier.detect_language("وافقت الحكومة على الميزانية الجديدة بعد نقاش طويل") == 'ar'

    @pytest.mark.unit
    def test_mixed_script_majority_wins(self, classifier):
        text = "ראש הממשלה נפגש היום עם נשיא ארצות הברית בוושינגטון (Reuters)"
        assert classifier.detect_language(text) == 'he'

    @pytest.mark.unit
    def test_other_languages(self, classifier):
        assert classifier.detect_language("Der Bundestag hat heute ein neues Gesetz verabschiedet") == 'other'
        assert classifier.detect_language("Правительство утвердило новый бюджет") == 'other'
        assert classifier.detect_language("2024 - 12:30") == 'other'


class TestCategorisation:

    @pytest.fixture
    def classifier(self):
        return ContentClassifier()

    @pytest.mark.unit
    def test_source_default_category_wins(self, classifier):
        result = classifier.classify("Stocks rally as inflation cools", "The market and investors cheered.",
                                     "https://example.com/sport/stocks", default_category="Business")
        assert result.category == "Business"
        assert "business" in result.tags
        assert "sports" in result.tags

    @pytest.mark.unit
    def test_url_section(self, classifier):
        result = classifier.classify("Some headline here", "Body text.", "https://example.com/technology/new-chip")
        assert result.category == "Technology"

    @pytest.mark.unit
    def test_url_slug_is_not_a_section(self, classifier):
        assert classifier.category_from_url("https://example.com/news/health") is None

    @pytest.mark.unit
    def test_keyword_scoring(self, classifier):
        body = ("The election results surprised the government. The opposition asked for a new vote "
                "in parliament while the minister defended the coalition.")
        result = classifier.classify("Election night", body, "https://example.com/a/b")

        assert result.category == "Politics"
        assert "election" in result.tags
        assert "politics" in result.tags

    @pytest.mark.unit
    def test_single_keyword_hit_is_not_enough(self, classifier):
        category, matched = classifier.category_from_keywords("A football fan waved at a crowd.")
        assert category is None
        assert matched == []

    @pytest.mark.unit
    def test_tags_are_unique_and_bounded(self, classifier):
        keywords = [f"kw{i}" for i in range(20)] + ["kw1"]
        result = classifier.classify("Climate talks on AI", "Body.", page_keywords=keywords)
        assert len(result.tags) <= MAX_TAGS
        assert len(result.tags) == len(set(result.tags))

    @pytest.mark.unit
    def test_never_raises(self, classifier):
        result = classifier.classify(None, None)
        assert result.language == 'other'
        assert result.category is None
