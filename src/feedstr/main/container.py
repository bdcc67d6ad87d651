from datetime import timedelta

from dependency_injector import containers, providers

from feedstr.content.content_pipeline import ContentPipeline
from feedstr.content.timestamps import TimestampResolver
from feedstr.database.database import DatabaseSessionManager
from feedstr.feeds.application.feed_service import FeedService
from feedstr.feeds.domain.feed_health import FeedHealthPolicy
from feedstr.feeds.domain.feed_repo import FeedRepository
from feedstr.feeds.infrastructure.favicon import FaviconFinder
from feedstr.feeds.infrastructure.feed_fetcher import FeedFetcher
from feedstr.jobs.job_manager import JobManager
from feedstr.jobs.job_table import JobTable
from feedstr.main.aiohttp_client import AioHttpClient
from feedstr.main.config import Settings
from feedstr.nostr.publisher import EventPublisher
from feedstr.nostr.relay_client import RelayClient
from feedstr.worker.feed_tasks import FeedTasks
from feedstr.worker.scheduler import FeedScheduler


def _seconds(value) -> timedelta:
    return timedelta(seconds=value)


class Container(containers.DeclarativeContainer):
    settings = providers.Dependency(instance_of=Settings)
    sessionmanager = providers.Dependency(instance_of=DatabaseSessionManager)
    http_client = providers.Dependency(instance_of=AioHttpClient)

    # Repositories
    feed_repo = providers.Singleton(FeedRepository, sessionmanager=sessionmanager)

    # Infrastructure
    feed_fetcher = providers.Singleton(
        FeedFetcher,
        client_session_factory=http_client,
        timeout=settings.provided.fetch_timeout_seconds,
    )
    favicon_finder = providers.Singleton(
        FaviconFinder,
        client_session_factory=http_client,
        timeout=settings.provided.favicon_timeout_seconds,
        default_image=settings.provided.default_feed_image,
    )
    relay_client = providers.Singleton(
        RelayClient,
        client_session_factory=http_client,
        timeout=settings.provided.publish_timeout_seconds,
    )

    # Domain
    health_policy = providers.Singleton(FeedHealthPolicy.from_settings, settings)
    timestamp_resolver = providers.Singleton(TimestampResolver.from_settings, settings)
    content_pipeline = providers.Singleton(
        ContentPipeline,
        timestamp_resolver=timestamp_resolver,
        mirror_patterns=settings.provided.mirror_patterns,
        nip05_domain=settings.provided.nip05_domain,
    )
    publisher = providers.Singleton(
        EventPublisher,
        relay_client=relay_client,
        relays=settings.provided.relays,
        dry_run=settings.provided.dry_run,
    )

    # Services
    feed_service = providers.Singleton(
        FeedService,
        feed_repo=feed_repo,
        feed_fetcher=feed_fetcher,
        favicon_finder=favicon_finder,
        content_pipeline=content_pipeline,
        publisher=publisher,
        history_window=providers.Callable(
            _seconds, settings.provided.history_interval_seconds
        ),
        relays=settings.provided.relays,
        dry_run=settings.provided.dry_run,
    )
    feed_tasks = providers.Singleton(
        FeedTasks,
        feed_service=feed_service,
        feed_repo=feed_repo,
        feed_fetcher=feed_fetcher,
        health_policy=health_policy,
        fetch_window=providers.Callable(_seconds, settings.provided.fetch_interval_seconds),
    )
    scheduler = providers.Singleton(
        FeedScheduler,
        feed_repo=feed_repo,
        feed_tasks=feed_tasks,
        max_workers=settings.provided.max_workers,
        fetch_interval=settings.provided.fetch_interval_seconds,
        metadata_interval=settings.provided.metadata_interval_seconds,
        shutdown_grace=settings.provided.shutdown_grace_seconds,
    )

    # Jobs
    job_table = providers.Singleton(
        JobTable, retention_seconds=settings.provided.job_retention_seconds
    )
    job_manager = providers.Singleton(
        JobManager,
        feed_service=feed_service,
        job_table=job_table,
        max_concurrent=settings.provided.max_concurrent_add_jobs,
        shutdown_grace=settings.provided.shutdown_grace_seconds,
    )


def create_container(settings: Settings, sessionmanager, http_client) -> Container:
    return Container(
        settings=providers.Object(settings),
        sessionmanager=providers.Object(sessionmanager),
        http_client=providers.Object(http_client),
    )
