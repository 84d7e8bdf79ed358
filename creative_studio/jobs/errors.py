"""Exceptions raised by the job lifecycle layer.

Routers translate these into ``{"success": false, "error": ...}`` responses.
"""


class JobError(Exception):
    """Base class for job lifecycle errors."""


class JobNotFound(JobError):
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class InvalidTransition(JobError):
    """A write would move a job backwards or out of a terminal state."""


class ValidationFailed(JobError):
    """Submitted inputs were rejected; carries every failed constraint."""

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class ProcessorError(JobError):
    """The external processor rejected or failed a request."""


class StorageError(JobError):
    """Object storage upload/download failed."""


class TemplateNotFound(JobError):
    def __init__(self, template_id: str):
        super().__init__(f"Template with ID {template_id} not found.")
        self.template_id = template_id
