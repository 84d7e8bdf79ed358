import asyncio
import base64

from creative_studio.jobs.errors import ProcessorError
from creative_studio.jobs.gallery import InMemoryGalleryStore
from creative_studio.jobs.in_process_queue import InProcessQueue
from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.jobs.submitter import StyleJobSubmitter
from creative_studio.jobs.worker import StyleJobWorker
from creative_studio.processors.openai_images import STYLE_REPLICATION_INSTRUCTIONS

REFERENCE = base64.b64encode(b"reference").decode()


def _worker(store, storage, image_processor, gallery=None):
    return StyleJobWorker(store, storage, image_processor, gallery or InMemoryGalleryStore())


def test_empty_queue_returns_none(store, storage, image_processor):
    assert _worker(store, storage, image_processor).run_once() is None
    assert image_processor.calls == []


def test_job_with_references_uses_edit_and_records_gallery(store, storage, image_processor):
    gallery = InMemoryGalleryStore()
    queued = StyleJobSubmitter(store, storage, None).submit(
        "user-a", "summer sale banner", [REFERENCE], n=2, size="1536x1024"
    )

    finished = _worker(store, storage, image_processor, gallery).run_once()

    assert finished.id == queued.id
    assert finished.status == JobStatus.COMPLETED
    assert finished.output == finished.external_reference
    assert finished.artifacts == [
        f"user-a/{finished.output}/0.png",
        f"user-a/{finished.output}/1.png",
    ]
    assert storage.download(finished.artifacts[1]) == b"png-1"

    op, prompt, images, n, size = image_processor.calls[0]
    assert op == "edit"
    assert prompt == "summer sale banner" + STYLE_REPLICATION_INSTRUCTIONS
    assert images == [b"reference"]
    assert (n, size) == (2, "1536x1024")

    rows = gallery.list_for_user("user-a")
    assert sorted(r.path for r in rows) == finished.artifacts
    assert {r.exec_id for r in rows} == {finished.output}


def test_job_without_references_uses_generate(store, storage, image_processor):
    StyleJobSubmitter(store, storage, None).submit("user-a", "minimal logo")

    _worker(store, storage, image_processor).run_once()

    assert image_processor.calls[0][0] == "generate"


def test_variation_count_from_the_row_is_clamped(store, storage, image_processor):
    store.create(Job(owner="user-a", kind=JobKind.STYLE, status=JobStatus.QUEUED,
                     inputs={"prompt": "poster", "n": 10}))

    finished = _worker(store, storage, image_processor).run_once()

    assert image_processor.calls[0][3] == 4
    assert len(finished.artifacts) == 4


def test_processor_failure_fails_job(store, storage, image_processor):
    image_processor.fail_with = ProcessorError("OpenAI API request failed: rate limited")
    queued = StyleJobSubmitter(store, storage, None).submit("user-a", "poster")

    finished = _worker(store, storage, image_processor).run_once()

    assert finished.status == JobStatus.FAILED
    assert finished.error_detail == "OpenAI API request failed: rate limited"
    assert store.get(queued.id).artifacts == []


def test_two_workers_never_process_the_same_job(store, storage, image_processor):
    StyleJobSubmitter(store, storage, None).submit("user-a", "poster")
    first = _worker(store, storage, image_processor)
    second = _worker(store, storage, image_processor)

    assert first.run_once() is not None
    assert second.run_once() is None
    assert len(image_processor.calls) == 1


def test_in_process_queue_drains_on_wake(store, storage, image_processor):
    submitter_jobs = []
    worker = _worker(store, storage, image_processor)

    async def scenario():
        queue = InProcessQueue(worker.run_once, sweep_seconds=3600)
        submitter = StyleJobSubmitter(store, storage, queue)
        await queue.start()
        for prompt in ("one", "two", "three"):
            submitter_jobs.append(await submitter.submit_and_wake("user-a", prompt))
        for _ in range(300):
            if all(store.get(j.id).status.is_terminal for j in submitter_jobs):
                break
            await asyncio.sleep(0.01)
        await queue.stop()

    asyncio.run(scenario())

    assert all(store.get(j.id).status == JobStatus.COMPLETED for j in submitter_jobs)


def test_in_process_queue_survives_crashing_cycle():
    attempts = []

    def worker_fn():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("boom")
        return None

    async def scenario():
        queue = InProcessQueue(worker_fn, sweep_seconds=0.01)
        await queue.start()
        for _ in range(300):
            if len(attempts) >= 2:
                break
            await asyncio.sleep(0.01)
        await queue.stop()

    asyncio.run(scenario())
    assert len(attempts) >= 2
