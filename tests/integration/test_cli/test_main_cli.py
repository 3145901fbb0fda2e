"""
Integration tests for the command line entry point.
"""
import json
import sys

import pytest
from loguru import logger

import main as cli
from utils.config.settings import reset_settings

SOURCES_YAML = """
sources:
  - name: Times of Israel
    rss_url: https://www.timesofisrael.com/feed/
    category: Israel News
  - name: Al Jazeera
    rss_url: https://www.aljazeera.com/xml/rss/all.xml
    enabled: false
"""


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    monkeypatch.setenv('DATABASE_URL', f"sqlite:///{tmp_path / 'data' / 'cli.db'}")
    monkeypatch.setenv('SEED_SOURCES', 'false')
    monkeypatch.setenv('LOG_LEVEL', 'WARNING')
    monkeypatch.delenv('LOG_FILE', raising=False)
    reset_settings()
    yield tmp_path
    reset_settings()
    logger.remove()
    logger.add(sys.stderr)


class TestCli:

    @pytest.mark.integration
    def test_parser(self):
        args = cli.build_parser().parse_args(['run', '--sources', 'bbc.co.uk', 'cnn.com', '--articles', '5'])
        assert args.command == 'run'
        assert args.sources == ['bbc.co.uk', 'cnn.com']
        assert args.articles == 5

        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(['cleanup', '--policy', 'reckless'])

    @pytest.mark.integration
    def test_import_sources_then_list_jobs(self, cli_env, capsys):
        path = cli_env / "sources.yaml"
        path.write_text(SOURCES_YAML, encoding="utf-8")

        assert cli.main(['sources', '--import', str(path)]) == 0
        imported = json.loads(capsys.readouterr().out)
        assert imported == {'created': 2, 'updated': 0}

        assert cli.main(['jobs']) == 0
        jobs = json.loads(capsys.readouterr().out)
        assert jobs['total'] == 0

    @pytest.mark.integration
    def test_run_with_unknown_source_is_rejected(self, cli_env):
        assert cli.main(['run', '--sources', 'nowhere.com']) == 2

    @pytest.mark.integration
    def test_cleanup_command(self, cli_env, capsys):
        assert cli.main(['cleanup', '--policy', 'conservative']) == 0
        result = json.loads(capsys.readouterr().out)
        assert result['policy'] == 'conservative'
        assert result['status'] == 'completed'
