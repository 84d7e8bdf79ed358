import pytest

from creative_studio.jobs.errors import InvalidTransition
from creative_studio.jobs.models import Job, JobKind, JobStatus
from creative_studio.jobs.state import apply_transition, can_transition


def _job(status=JobStatus.PENDING, **kwargs):
    return Job(owner="user-a", kind=JobKind.LIPSYNC, status=status, **kwargs)


def test_happy_path_moves_forward():
    job = _job()
    job = apply_transition(job, JobStatus.PROCESSING, external_reference="req-1")
    assert job.status == JobStatus.PROCESSING
    assert job.external_reference == "req-1"

    job = apply_transition(job, JobStatus.COMPLETED, output="https://cdn.example/out.mp4")
    assert job.status == JobStatus.COMPLETED
    assert job.artifacts == ["https://cdn.example/out.mp4"]
    assert job.error_detail is None


@pytest.mark.parametrize("terminal", [JobStatus.COMPLETED, JobStatus.FAILED])
@pytest.mark.parametrize("target", list(JobStatus))
def test_terminal_states_are_final(terminal, target):
    assert not can_transition(terminal, target)


def test_no_backwards_moves():
    job = _job(JobStatus.PROCESSING)
    with pytest.raises(InvalidTransition):
        apply_transition(job, JobStatus.PENDING)
    with pytest.raises(InvalidTransition):
        apply_transition(job, JobStatus.QUEUED)


def test_completed_job_cannot_be_failed_later():
    done = apply_transition(_job(JobStatus.PROCESSING), JobStatus.COMPLETED, output="out")
    with pytest.raises(InvalidTransition):
        apply_transition(done, JobStatus.FAILED, error_detail="late failure")


def test_expected_status_is_compare_and_set():
    job = _job(JobStatus.QUEUED)
    with pytest.raises(InvalidTransition):
        apply_transition(job, JobStatus.PROCESSING, expected=[JobStatus.PENDING])
    moved = apply_transition(
        job, JobStatus.PROCESSING, expected=(s for s in [JobStatus.PENDING, JobStatus.QUEUED])
    )
    assert moved.status == JobStatus.PROCESSING


def test_external_reference_is_write_once():
    job = _job(JobStatus.PROCESSING, external_reference="req-1")
    with pytest.raises(InvalidTransition):
        apply_transition(job, JobStatus.COMPLETED, external_reference="req-2", output="out")
    same = apply_transition(job, JobStatus.COMPLETED, external_reference="req-1", output="out")
    assert same.external_reference == "req-1"


def test_output_only_on_completed_and_error_only_on_failed():
    job = _job()
    with pytest.raises(InvalidTransition):
        apply_transition(job, JobStatus.PROCESSING, output="too-early")
    with pytest.raises(InvalidTransition):
        apply_transition(job, JobStatus.PROCESSING, error_detail="too-early")
    with pytest.raises(InvalidTransition):
        apply_transition(_job(JobStatus.PROCESSING), JobStatus.COMPLETED)

    failed = apply_transition(_job(JobStatus.PROCESSING), JobStatus.FAILED)
    assert failed.error_detail == "Unknown error"
    assert failed.output is None
    assert failed.artifacts == []


def test_transition_returns_copy_and_bumps_updated_at():
    job = _job()
    moved = apply_transition(job, JobStatus.FAILED, error_detail="rejected")
    assert job.status == JobStatus.PENDING
    assert moved.updated_at >= job.updated_at
    assert moved.id == job.id
