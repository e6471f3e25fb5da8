"""Main module entrypoint for local runtime execution.

This module validates startup configuration and launches the FastAPI service
or runs one sync/cleanup command.
"""

import argparse

import uvicorn

from trade_journal.bootstrap import (
    bootstrap_create_application,
    bootstrap_create_cleanup_service,
    bootstrap_create_sync_orchestrator,
)
from trade_journal.config import config_load_settings


def main() -> None:
    """Run selected runtime command with validated startup configuration.

    Returns:
        None: This function does not return a runtime value.

    Raises:
        SettingsLoadError: Raised when configuration validation fails.
    """

    argument_parser = argparse.ArgumentParser(description="Trade journal runtime entrypoint")
    argument_parser.add_argument(
        "command",
        nargs="?",
        default="api",
        choices=("api", "sync-run", "cleanup-duplicates"),
        help="Runtime command: `api` starts server, `sync-run` syncs accounts from the transaction feed, "
        "`cleanup-duplicates` removes duplicate trade rows",
        type=str,
    )
    argument_parser.add_argument(
        "--account-id",
        dest="account_ids",
        action="append",
        default=None,
        help="Account to process; repeatable. `sync-run` defaults to SYNC_ACCOUNT_IDS",
    )
    parsed_arguments = argument_parser.parse_args()

    if parsed_arguments.command == "sync-run":
        sync_orchestrator = bootstrap_create_sync_orchestrator(run_type="manual")
        if parsed_arguments.account_ids:
            results = sync_orchestrator.job_sync_accounts(parsed_arguments.account_ids)
            for result in results:
                print(
                    f"account_id={result.account_id} status={result.status} "
                    f"inserted={result.counters.inserted_count} duplicates={result.counters.duplicate_count} "
                    f"error_code={result.error_code}"
                )
            failed = any(result.status != "success" for result in results)
        else:
            execution = sync_orchestrator.job_execute(job_name="account_sync")
            print(
                f"job={execution.job_name} status={execution.status} "
                f"succeeded={','.join(execution.succeeded_accounts)} failed={','.join(execution.failed_accounts)}"
            )
            failed = execution.status != "success"
        if failed:
            raise SystemExit(1)
        return

    if parsed_arguments.command == "cleanup-duplicates":
        if not parsed_arguments.account_ids:
            argument_parser.error("cleanup-duplicates requires --account-id")
        cleanup_service = bootstrap_create_cleanup_service()
        for account_id in parsed_arguments.account_ids:
            cleanup_result = cleanup_service.job_cleanup_duplicates(account_id=account_id)
            print(
                f"account_id={cleanup_result.account_id} scanned={cleanup_result.scanned_count} "
                f"deleted={cleanup_result.deleted_count} kept={cleanup_result.kept_count}"
            )
        return

    settings = config_load_settings()
    application = bootstrap_create_application()
    uvicorn.run(
        application,
        host=settings.application_host,
        port=settings.application_port,
    )


if __name__ == "__main__":
    main()
