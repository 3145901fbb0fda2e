"""
Integration tests for the Flask API.

The pipeline runtime runs its event loop in a background thread, exactly as
under ``main.py serve``; HTTP is replaced by the scripted fetcher.
"""
import pytest

from conftest import NewsSite
from scraper_api import create_app


@pytest.fixture
def client(runtime):
    runtime.start_background_loop(background_tasks=False)
    app = create_app(runtime)
    app.config['TESTING'] = True
    with app.test_client() as test_client:
        yield test_client
    runtime.stop_background_loop()


@pytest.fixture
def register_site(client, fetcher):
    def _register(domain, count=3):
        site = NewsSite(fetcher, domain, count=count)
        response = client.post('/api/sources', json=site.source_data())
        assert response.status_code == 201
        return site, response.get_json()
    return _register


class TestJobsApi:

    @pytest.mark.integration
    def test_trigger_and_follow_job(self, client, runtime, register_site):
        _, first = register_site("api-one.com")
        _, second = register_site("api-two.com")

        response = client.post('/api/jobs', json={'sources': [first['id'], 'api-two.com'], 'articlesPerSource': 2})

        assert response.status_code == 202
        job = response.get_json()
        assert job['status'] in ('new', 'in-progress')
        assert job['sources_requested'] == [first['id'], second['id']]
        assert job['articles_per_source'] == 2

        runtime.call(runtime.orchestrator.wait_for_job(job['id'], timeout=30))
        finished = client.get(f"/api/jobs/{job['id']}").get_json()
        assert finished['status'] == 'successful'
        assert finished['total_articles_scraped'] == 4
        assert finished['running'] is False

        logs = client.get(f"/api/jobs/{job['id']}/logs?pageSize=100").get_json()
        assert logs['total'] == len(logs['items'])
        assert logs['items'][0]['message'] == "Job accepted"

        listed = client.get('/api/jobs?status=successful').get_json()
        assert [j['id'] for j in listed['items']] == [job['id']]

    @pytest.mark.integration
    def test_invalid_triggers(self, client, register_site):
        _, source = register_site("api-bad.com")

        assert client.post('/api/jobs', json={'sources': []}).status_code == 400
        assert client.post('/api/jobs', json={'sources': 'api-bad.com'}).status_code == 400
        assert client.post('/api/jobs', json={'sources': ['nowhere.com']}).status_code == 400
        response = client.post('/api/jobs', json={'sources': [source['id']], 'articlesPerSource': 0})
        assert response.status_code == 400
        assert 'error' in response.get_json()
        assert client.get('/api/jobs').get_json()['total'] == 0

    @pytest.mark.integration
    def test_job_summary(self, client, runtime, fetcher, register_site):
        _, good = register_site("api-sum-good.com", count=2)
        broken, bad = register_site("api-sum-bad.com", count=2)
        fetcher.responses.pop(broken.article_urls[0])

        job = client.post('/api/jobs', json={'sources': [good['id'], bad['id']], 'articlesPerSource': 2}).get_json()
        runtime.call(runtime.orchestrator.wait_for_job(job['id'], timeout=30))

        summary = client.get(f"/api/jobs/{job['id']}/summary").get_json()
        assert summary['job_id'] == job['id']
        assert summary['error_summary'][0]['error_type'] == 'NetworkError'
        assert summary['error_summary'][0]['sample_urls'] == [broken.article_urls[0]]
        performance = {p['source_id']: p for p in summary['source_performance']}
        assert performance[good['id']]['items_persisted'] == 2
        assert performance[bad['id']]['items_persisted'] == 1
        assert performance[bad['id']]['warnings'] >= 1
        assert summary['timeline'][0]['message'] == "Job accepted"
        assert summary['timeline'][-1]['message'].startswith("Job finished")

        assert client.get('/api/jobs/missing/summary').status_code == 404

    @pytest.mark.integration
    def test_unknown_job(self, client):
        assert client.get('/api/jobs/missing').status_code == 404
        assert client.get('/api/jobs/missing/logs').status_code == 404
        assert client.post('/api/jobs/missing/cancel').status_code == 404

    @pytest.mark.integration
    def test_cancel_finished_job_conflicts(self, client, runtime, register_site):
        _, source = register_site("api-done.com", count=1)
        job = client.post('/api/jobs', json={'sources': [source['id']], 'articlesPerSource': 1}).get_json()
        runtime.call(runtime.orchestrator.wait_for_job(job['id'], timeout=30))

        assert client.post(f"/api/jobs/{job['id']}/cancel").status_code == 409


class TestContentApi:

    @pytest.mark.integration
    def test_list_and_get_content(self, client, runtime, register_site):
        _, source = register_site("api-content.com", count=3)
        job = client.post('/api/jobs', json={'sources': [source['id']]}).get_json()
        runtime.call(runtime.orchestrator.wait_for_job(job['id'], timeout=30))

        listing = client.get(f"/api/content?sourceId={source['id']}&language=en&pageSize=2").get_json()
        assert listing['total'] == 3
        assert len(listing['items']) == 2
        assert listing['total_pages'] == 2

        item_id = listing['items'][0]['id']
        plain = client.get(f"/api/content/{item_id}").get_json()
        assert 'full_html' not in plain
        with_html = client.get(f"/api/content/{item_id}?includeHtml=true").get_json()
        assert with_html['full_html'].startswith("<!DOCTYPE html>")

        assert client.get('/api/content/missing').status_code == 404
        assert client.get('/api/content?page=abc').status_code == 400


class TestSourcesApi:

    @pytest.mark.integration
    def test_source_crud(self, client):
        created = client.post('/api/sources', json={
            'name': 'Reuters', 'feed_url': 'https://www.reuters.com/rss/world', 'category': 'World News',
        })
        assert created.status_code == 201
        source = created.get_json()
        assert source['domain'] == 'reuters.com'
        assert source['default_category'] == 'World News'

        assert client.get('/api/sources/reuters.com').get_json()['id'] == source['id']
        patched = client.patch(f"/api/sources/{source['id']}", json={'is_active': False})
        assert patched.get_json()['is_active'] is False
        assert client.get('/api/sources?active=true').get_json()['total'] == 0

        assert client.delete(f"/api/sources/{source['id']}").status_code == 204
        assert client.get(f"/api/sources/{source['id']}").status_code == 404

    @pytest.mark.integration
    def test_check_feed_and_health(self, client, runtime, fetcher, register_site):
        site, source = register_site("api-health.com", count=2)

        checked = client.post(f"/api/sources/{source['id']}/test")
        assert checked.status_code == 200
        assert checked.get_json()['is_valid'] is True
        assert checked.get_json()['item_count'] == 2

        assert client.get(f"/api/sources/{source['id']}/health").get_json()['total_runs'] == 0

        job = client.post('/api/jobs', json={'sources': [source['id']], 'articlesPerSource': 2}).get_json()
        runtime.call(runtime.orchestrator.wait_for_job(job['id'], timeout=30))
        fetcher.responses.pop(site.feed_url)
        job = client.post('/api/jobs', json={'sources': [source['id']]}).get_json()
        runtime.call(runtime.orchestrator.wait_for_job(job['id'], timeout=30))

        health = client.get("/api/sources/api-health.com/health").get_json()
        assert health['source_name'] == source['name']
        assert health['total_runs'] == 2
        assert health['successful_runs'] == 1
        assert health['items_persisted'] == 2
        assert health['is_healthy'] is False
        assert health['last_error']['error_type'] == 'NetworkError'

        assert client.get(f"/api/sources/{source['id']}/health?recentJobs=1").get_json()['total_runs'] == 1
        assert client.get(f"/api/sources/{source['id']}/health?recent_jobs=0").status_code == 400
        assert client.post("/api/sources/missing/test").status_code == 404
        assert client.get("/api/sources/missing/health").status_code == 404

    @pytest.mark.integration
    def test_invalid_source(self, client):
        response = client.post('/api/sources', json={'name': 'No feed'})
        assert response.status_code == 400
        assert "Feed URL is required" in response.get_json()['error']
        assert client.post('/api/sources', data="not json").status_code == 400


class TestCleanupAndMonitorApi:

    @pytest.mark.integration
    def test_cleanup_run_and_stats(self, client):
        result = client.post('/api/cleanup/run', json={'policy': 'aggressive'})
        assert result.status_code == 200
        body = result.get_json()
        assert body['status'] == 'completed'
        assert body['policy'] == 'aggressive'

        stats = client.get('/api/cleanup/stats').get_json()
        assert stats['runs'] == 1
        assert stats['archive']['archived_items'] == 0

        assert client.post('/api/cleanup/run', json={'policy': 'reckless'}).status_code == 400
        assert client.get('/api/cleanup/archives/missing').status_code == 404

    @pytest.mark.integration
    def test_monitor_status_and_health(self, client):
        status = client.get('/api/monitor/status').get_json()
        assert status['level'] == 'normal'
        assert status['concurrency_limit'] == 3
        assert status['effective_concurrency'] == 3
        assert status['active_jobs'] == []

        health = client.get('/health')
        assert health.status_code == 200
        assert health.get_json()['status'] == 'healthy'
