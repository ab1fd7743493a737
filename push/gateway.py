"""Wire the push dispatcher from settings."""

from datetime import timedelta
import asyncpg
import firebase_admin
import structlog
from firebase_admin import credentials
from config.settings import settings
from push.dedupe import DedupeCache
from push.dispatcher import PushDispatcher
from push.janitor import TokenJanitor
from push.ledger import IdempotencyLedger
from push.preferences import PreferenceResolver
from push.registry import DeviceTokenRegistry
from push.transport import FirebaseTransport, PushTransport
from storage.repositories.device_token_repo import DeviceTokenRepository
from storage.repositories.user_repo import UserRepository

log = structlog.get_logger(__name__)


def initialize_firebase() -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first use."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if settings.firebase_credentials_path:
        cred = credentials.Certificate(settings.firebase_credentials_path)
    else:
        cred = credentials.ApplicationDefault()
    options = {"projectId": settings.firebase_project_id} if settings.firebase_project_id else None
    app = firebase_admin.initialize_app(cred, options)
    log.info("firebase_initialized", project_id=settings.firebase_project_id or None)
    return app


def create_ledger(pool: asyncpg.Pool) -> IdempotencyLedger:
    return IdempotencyLedger(
        pool,
        stale_window=timedelta(seconds=settings.push_stale_window_seconds),
    )


def create_dispatcher(
    pool: asyncpg.Pool,
    transport: PushTransport | None = None,
) -> PushDispatcher:
    """Build a dispatcher over the given pool; FCM transport unless one is supplied."""
    if transport is None:
        transport = FirebaseTransport(app=initialize_firebase())

    token_repo = DeviceTokenRepository(pool)
    cache = None
    if settings.push_dedupe_cache_enabled:
        cache = DedupeCache(
            ttl_seconds=settings.push_dedupe_cache_ttl_seconds,
            max_entries=settings.push_dedupe_cache_max_entries,
        )

    return PushDispatcher(
        preferences=PreferenceResolver(UserRepository(pool)),
        registry=DeviceTokenRegistry(token_repo),
        ledger=create_ledger(pool),
        transport=transport,
        janitor=TokenJanitor(token_repo),
        dedupe_cache=cache,
        deep_link_scheme=settings.deep_link_scheme,
    )
