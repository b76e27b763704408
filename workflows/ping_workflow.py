"""Connectivity check workflow."""

from temporalio import workflow


@workflow.defn
class PingWorkflow:
    """Trivial workflow used to verify the worker and Temporal connection.

    Returns "ok" once a worker picked it up.
    """

    @workflow.run
    async def run(self) -> str:
        return "ok"
