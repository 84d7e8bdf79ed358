"""Runtime wiring: builds the stores, processors and job components from settings."""

import logging
from dataclasses import dataclass
from typing import Optional

from creative_studio.config import Settings
from creative_studio.jobs.gallery import GalleryStore, InMemoryGalleryStore, SupabaseGalleryStore
from creative_studio.jobs.in_process_queue import InProcessQueue
from creative_studio.jobs.notifier import JobNotifier
from creative_studio.jobs.poller import PollingReconciler, RetryPolicy
from creative_studio.jobs.store import InMemoryJobStore, JobStore, SupabaseJobStore
from creative_studio.jobs.submitter import LipsyncSubmitter, StyleJobSubmitter
from creative_studio.jobs.webhook import WebhookReconciler
from creative_studio.jobs.worker import StyleJobWorker
from creative_studio.storage.object_store import LocalObjectStore, ObjectStore, SupabaseObjectStore
from creative_studio.templates.generator import TemplateGenerator
from creative_studio.templates.repository import (
    InMemoryTemplateRepository,
    SupabaseTemplateRepository,
    TemplateRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: JobStore
    storage: ObjectStore
    gallery: GalleryStore
    templates: TemplateRepository
    notifier: JobNotifier
    webhook: WebhookReconciler
    style_submitter: StyleJobSubmitter
    signed_url_ttl_seconds: int = 3600
    lipsync_submitter: Optional[LipsyncSubmitter] = None
    poller: Optional[PollingReconciler] = None
    worker: Optional[StyleJobWorker] = None
    dispatcher: Optional[InProcessQueue] = None
    template_generator: Optional[TemplateGenerator] = None


def build_services(settings: Settings) -> Services:
    """Assemble the service graph. Processors whose API key is missing are left
    out and their endpoints answer 503."""
    if settings.job_store_backend == "supabase" or settings.storage_backend == "supabase":
        from creative_studio.db.supabase_client import get_supabase
        client = get_supabase()
    else:
        client = None

    if settings.job_store_backend == "supabase":
        store: JobStore = SupabaseJobStore(client)
        gallery: GalleryStore = SupabaseGalleryStore(client)
        templates: TemplateRepository = SupabaseTemplateRepository(client)
    else:
        store = InMemoryJobStore()
        gallery = InMemoryGalleryStore()
        templates = InMemoryTemplateRepository()

    if settings.storage_backend == "supabase":
        storage: ObjectStore = SupabaseObjectStore(client, settings.storage_bucket)
    else:
        storage = LocalObjectStore(
            settings.local_storage_dir, base_url=f"{settings.public_base_url.rstrip('/')}/files"
        )

    notifier = JobNotifier()
    store.add_listener(notifier.publish)

    services = Services(
        store=store,
        storage=storage,
        gallery=gallery,
        templates=templates,
        notifier=notifier,
        webhook=WebhookReconciler(store, settings.webhook_secret),
        style_submitter=StyleJobSubmitter(
            store, storage, None,
            max_inspiration_images=settings.max_inspiration_images,
            default_size=settings.default_image_size,
        ),
        signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
    )

    if settings.fal_key:
        from creative_studio.processors.fal_lipsync import FalLipsyncProcessor
        lipsync = FalLipsyncProcessor(settings.fal_key, settings.fal_lipsync_model)
        use_webhook = settings.lipsync_reconcile_mode != "poll"
        if use_webhook and not settings.webhook_secret:
            logger.warning(
                "WEBHOOK_SECRET not set; lipsync callbacks are matched on request id only"
            )
        if not use_webhook:
            services.poller = PollingReconciler(
                store, storage, lipsync,
                RetryPolicy(settings.poll_max_attempts, settings.poll_interval_seconds),
            )
        poller = services.poller
        services.lipsync_submitter = LipsyncSubmitter(
            store, storage, lipsync,
            public_base_url=settings.public_base_url,
            max_upload_bytes=settings.max_upload_bytes,
            webhook_secret=settings.webhook_secret,
            use_webhook=use_webhook,
            on_dispatched=(lambda job: poller.start(job.id)) if poller else None,
        )
    else:
        logger.warning("FAL_KEY not set; lipsync jobs are disabled")

    if settings.openai_api_key:
        from creative_studio.processors.openai_images import OpenAIImageProcessor
        style_processor = OpenAIImageProcessor(settings.openai_api_key, settings.style_model)
        services.worker = StyleJobWorker(store, storage, style_processor, gallery)
        services.dispatcher = InProcessQueue(
            worker_fn=services.worker.run_once, sweep_seconds=settings.worker_sweep_seconds
        )
        services.style_submitter = StyleJobSubmitter(
            store, storage, services.dispatcher,
            max_inspiration_images=settings.max_inspiration_images,
            default_size=settings.default_image_size,
        )
        services.template_generator = TemplateGenerator(
            templates,
            OpenAIImageProcessor(
                settings.openai_api_key, settings.template_model, edit_model=settings.style_model
            ),
            default_size=settings.default_image_size,
        )
    else:
        logger.warning("OPENAI_API_KEY not set; style jobs stay QUEUED until a worker runs elsewhere")

    return services
