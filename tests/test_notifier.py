import asyncio
import threading
from datetime import timedelta

from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.jobs.notifier import JobNotifier


def _job():
    return Job(owner="user-a", kind=JobKind.LIPSYNC)


def test_updates_arrive_in_order_and_terminal_closes():
    notifier = JobNotifier()
    job = _job()
    processing = job.model_copy(update={"status": JobStatus.PROCESSING,
                                        "updated_at": job.updated_at + timedelta(seconds=1)})
    done = job.model_copy(update={"status": JobStatus.COMPLETED, "output": "out",
                                  "updated_at": job.updated_at + timedelta(seconds=2)})

    async def scenario():
        sub = notifier.subscribe(job.id)
        notifier.publish(processing)
        notifier.publish(done)
        received = [update.status async for update in sub]
        return received, sub.closed

    received, closed = asyncio.run(scenario())

    assert received == [JobStatus.PROCESSING, JobStatus.COMPLETED]
    assert closed
    assert notifier.subscriber_count(job.id) == 0


def test_stale_and_duplicate_snapshots_are_dropped():
    notifier = JobNotifier()
    job = _job()
    newer = job.model_copy(update={"status": JobStatus.PROCESSING,
                                   "updated_at": job.updated_at + timedelta(seconds=5)})

    async def scenario():
        with notifier.subscribe(job.id) as sub:
            assert sub.offer(newer) is newer
            notifier.publish(job)
            notifier.publish(newer)
            return await sub.get(timeout=0.05)

    assert asyncio.run(scenario()) is None


def test_publish_from_worker_thread():
    notifier = JobNotifier()
    job = _job()

    async def scenario():
        sub = notifier.subscribe(job.id)
        thread = threading.Thread(target=notifier.publish, args=(job,))
        thread.start()
        thread.join()
        update = await sub.get(timeout=1.0)
        sub.close()
        return update

    assert asyncio.run(scenario()) == job
    assert notifier.subscriber_count(job.id) == 0


def test_other_jobs_are_not_delivered():
    notifier = JobNotifier()

    async def scenario():
        with notifier.subscribe("job-1") as sub:
            notifier.publish(_job())
            return await sub.get(timeout=0.05)

    assert asyncio.run(scenario()) is None


def test_store_writes_feed_the_notifier(store):
    notifier = JobNotifier()
    store.add_listener(notifier.publish)
    job = store.create(_job())

    async def scenario():
        sub = notifier.subscribe(job.id)
        store.transition(job.id, JobStatus.PROCESSING, external_reference="req-1")
        store.transition(job.id, JobStatus.FAILED, error_detail="rejected")
        return [update async for update in sub]

    updates = asyncio.run(scenario())

    assert [u.status for u in updates] == [JobStatus.PROCESSING, JobStatus.FAILED]
    assert updates[-1].error_detail == "rejected"
