"""
Unit tests for monitoring.lifecycle (cleanup policies and the cleanup manager).
"""
import asyncio
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from crawler.models.article_models import ArticleContent
from crawler.models.job_models import JobStatus
from monitoring.lifecycle import CLEANUP_POLICIES, CleanupManager, CleanupPolicy, get_policy
from utils.time_utils import utcnow


async def add_item(store, slug, age_days=0.0, body_words=40):
    body = " ".join(f"{slug} paragraph word {i}" for i in range(body_words))
    article = ArticleContent(
        source_id="src-1",
        source_url=f"https://example.com/news/{slug}",
        title=f"Story about {slug}",
        body=body,
        full_html=f"<html><body><article><p>{body}</p></article></body></html>",
        language="en",
        tags=["test"],
    )
    record = article.to_record()
    record['created_at'] = utcnow() - timedelta(days=age_days)
    return await store.insert_content(record)


class TestCleanupPolicy:

    @pytest.mark.unit
    def test_presets(self):
        assert set(CLEANUP_POLICIES) == {'default', 'aggressive', 'conservative'}
        assert get_policy('aggressive').retention_days < get_policy('default').retention_days
        assert get_policy('conservative').volume_cap_mb > get_policy('default').volume_cap_mb

    @pytest.mark.unit
    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            get_policy('reckless')

    @pytest.mark.unit
    def test_validation(self):
        with pytest.raises(ValueError):
            CleanupPolicy('bad', compression_level=0)
        with pytest.raises(ValueError):
            CleanupPolicy('bad', retention_days=0)


class TestCleanupManager:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retention_archives_only_aged_items(self, store):
        recent = await add_item(store, "recent", age_days=10)
        aged = await add_item(store, "aged", age_days=45)
        manager = CleanupManager(store, get_policy('default'))

        result = await manager.run_cleanup()

        assert result['status'] == 'completed'
        assert result['archived_by_retention'] == 1
        assert result['archived_by_volume_cap'] == 0
        assert result['bytes_after'] < result['bytes_before']
        assert await store.get_content(recent['id']) is not None
        assert await store.get_content(aged['id']) is None

        archive = await store.get_archive(aged['id'])
        assert archive['original_id'] == aged['id']
        assert archive['content_hash'] == aged['content_hash']
        assert archive['metadata']['tags'] == ['test']
        assert archive['compressed_size'] < archive['original_size']

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_archive_payload_round_trip(self, store):
        aged = await add_item(store, "roundtrip", age_days=60)
        original = await store.get_content(aged['id'], include_html=True)
        manager = CleanupManager(store)

        await manager.run_cleanup()
        payload = await manager.get_archive_payload(aged['id'])

        assert payload['body'] == original['body']
        assert payload['full_html'] == original['full_html']
        assert 'compressed_body' not in payload
        assert await manager.get_archive_payload("no-such-archive") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_volume_cap_evicts_oldest_outside_grace(self, store):
        oldest = await add_item(store, "oldest", age_days=3)
        middle = await add_item(store, "middle", age_days=2)
        newest = await add_item(store, "newest", age_days=0)
        item_bytes = oldest['body_size'] + oldest['html_size']
        cap_mb = (item_bytes * 1.5) / (1024 * 1024)
        policy = CleanupPolicy('tight', retention_days=30, volume_cap_mb=cap_mb, grace_hours=1)

        result = await CleanupManager(store, policy).run_cleanup()

        # Two items must go to get under the cap; the newest is inside the grace period
        assert result['archived_by_volume_cap'] == 2
        assert await store.get_content(oldest['id']) is None
        assert await store.get_content(middle['id']) is None
        assert await store.get_content(newest['id']) is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_under_cap_nothing_archived(self, store):
        await add_item(store, "small", age_days=2)

        result = await CleanupManager(store).run_cleanup()

        assert result['archived_total'] == 0
        assert await store.count_content() == 1

    @pytest.mark.unit
    def test_pressure_policy_targets_high_water_mark(self, store):
        manager = CleanupManager(store, get_policy('default'), pressure_cap_mb=700)

        policy = manager.pressure_policy()

        assert policy.volume_cap_mb == 700
        assert policy.grace_hours == 0
        assert policy.retention_days == 30
        assert CleanupManager(store).pressure_policy().volume_cap_mb == 1024

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_storage_pressure_evicts_recent_items_below_target(self, store):
        first = await add_item(store, "first", age_days=0)
        second = await add_item(store, "second", age_days=0)
        third = await add_item(store, "third", age_days=0)
        item_bytes = first['body_size'] + first['html_size']
        target_mb = (item_bytes * 1.5) / (1024 * 1024)
        manager = CleanupManager(store, pressure_cap_mb=target_mb)

        result = await manager.on_storage_pressure(MagicMock(storage_mb=0.01))

        assert result['reason'] == 'storage_pressure'
        assert result['archived_by_volume_cap'] == 2
        assert await store.get_storage_size() <= target_mb * 1024 * 1024
        assert await store.get_content(third['id']) is not None
        assert await store.get_content(second['id']) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_concurrent_run_is_skipped(self, store):
        manager = CleanupManager(store)

        async with manager.lock:
            result = await manager.run_cleanup(reason="storage_pressure")

        assert result['status'] == 'skipped'
        assert manager.runs == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_old_finished_jobs_are_purged(self, store):
        manager = CleanupManager(store, job_retention_days=14,
                                 now=lambda: utcnow() + timedelta(days=20))
        done = await store.create_job(["src-1"], 3)
        await store.update_job(done['id'], status=JobStatus.SUCCESSFUL, completed_at=utcnow())
        await store.append_log(done['id'], 'info', "finished")
        running = await store.create_job(["src-1"], 3)
        await store.update_job(running['id'], status=JobStatus.IN_PROGRESS)

        result = await manager.run_cleanup()

        assert result['jobs_deleted'] == 1
        assert await store.get_job(done['id']) is None
        assert (await store.get_job_logs(done['id']))['total'] == 0
        assert await store.get_job(running['id']) is not None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_statistics(self, store):
        await add_item(store, "stat-old", age_days=40)
        await add_item(store, "stat-new", age_days=1)
        manager = CleanupManager(store)
        await manager.run_cleanup()

        stats = await manager.get_statistics()

        assert stats['active_items'] == 1
        assert stats['archive']['archived_items'] == 1
        assert stats['runs'] == 1
        assert stats['last_result']['archived_total'] == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_scheduler_start_stop(self, store):
        manager = CleanupManager(store, interval_hours=24)

        manager.start_scheduler()
        assert (await manager.get_statistics())['scheduler_running']
        await manager.stop_scheduler()

        assert not (await manager.get_statistics())['scheduler_running']
        await asyncio.sleep(0)
