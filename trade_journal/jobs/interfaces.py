"""Typed interfaces for job-layer orchestration."""

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class JobExecutionResult:
    """Aggregate outcome of one named job run.

    Attributes:
        job_name: Job identifier.
        status: `success` when every account succeeded, otherwise `failed`.
        succeeded_accounts: Accounts whose sync finished successfully.
        failed_accounts: Accounts whose sync failed or was skipped.
    """

    job_name: str
    status: str
    succeeded_accounts: tuple[str, ...] = ()
    failed_accounts: tuple[str, ...] = ()


class JobOrchestratorPort(Protocol):
    """Port for orchestrators run by the scheduler or CLI."""

    def job_supported_names(self) -> tuple[str, ...]:
        """Return job names accepted by `job_execute`."""

    def job_execute(self, job_name: str) -> JobExecutionResult:
        """Run one named job for every configured account.

        Raises:
            ValueError: Raised when the job name is unsupported.
        """
