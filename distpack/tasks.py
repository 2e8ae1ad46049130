# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Concurrent task orchestration with cooperative cancellation.

Build tasks (target builds, file copies) are scheduled on an
AsyncTaskManager and awaited together. A CancellationToken is shared by
all tasks of one build; only the top-level driver sets it, and pipeline
code observes it at explicit checkpoints.

Failure Policy:
    await_tasks() raises the first failure as soon as it is observed.
    Siblings of a failed task are not aborted and stay registered; the
    caller decides whether to cancel_tasks() them.

Cancellation Policy:
    Once the token is set no new task starts. Tasks already running are
    awaited to completion and their results are dropped.

Example:
    token = CancellationToken()
    manager = AsyncTaskManager(token)
    manager.add(lambda: build_target("dir"))
    manager.add_task(copy_files())
    results = await manager.await_tasks()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import inspect
from typing import Any

from distpack.logging import get_global_logger

__all__ = ["AsyncTaskManager", "CancellationStop", "CancellationToken"]


class CancellationStop(Exception):
    """Raised at a checkpoint when the build has been cancelled.

    This is a normal early exit, not a failure, so it does not derive
    from DistPackError.
    """


class CancellationToken:
    """Shared cancellation flag for one build.

    Once cancelled the token stays cancelled for the rest of the run.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if not self._cancelled:
            get_global_logger().verbose("TASK", "Cancellation requested")
        self._cancelled = True

    def checkpoint(self) -> None:
        """Raise CancellationStop if the build has been cancelled."""
        if self._cancelled:
            raise CancellationStop("build cancelled")


class AsyncTaskManager:
    """Schedules awaitables concurrently and waits for all of them.

    Attributes:
        cancellation_token: Token checked before scheduling and after
            waiting.
    """

    def __init__(self, cancellation_token: CancellationToken) -> None:
        self.cancellation_token = cancellation_token
        self._tasks: list[asyncio.Future[Any]] = []
        self._errors: list[BaseException] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def add(self, fn: Callable[[], Awaitable[Any]]) -> None:
        """Call fn and schedule the awaitable it returns.

        fn is not called at all when the build is cancelled.
        """
        if self.cancellation_token.cancelled:
            get_global_logger().debug("TASK", "Cancelled, not starting new task")
            return
        self.add_task(fn())

    def add_task(self, awaitable: Awaitable[Any]) -> None:
        """Schedule an awaitable.

        When the build is cancelled the awaitable is not scheduled; a
        coroutine is closed so it never starts.
        """
        if self.cancellation_token.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            get_global_logger().debug("TASK", "Cancelled, not starting new task")
            return

        task = asyncio.ensure_future(awaitable)
        task.add_done_callback(self._record_failure)
        self._tasks.append(task)

    def _record_failure(self, task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        # stopping at a checkpoint is how a task honors cancellation
        if error is not None and not isinstance(error, CancellationStop):
            self._errors.append(error)

    async def await_tasks(self) -> list[Any]:
        """Wait for all registered tasks.

        Tasks added while waiting are awaited too. Once the build is
        cancelled no new task starts, but running tasks are still awaited
        so files already in flight are written completely.

        Returns:
            Task results in registration order, or an empty list when the
            build was cancelled.

        Raises:
            Exception: The first task failure, as soon as it is observed.
                Siblings keep running and stay registered, so the caller
                may cancel_tasks() them.
        """
        logger = get_global_logger()

        while True:
            error = self._first_error()
            if error is not None:
                self._errors = []
                self._tasks = [task for task in self._tasks if not task.done()]
                if self._tasks:
                    logger.debug("TASK", f"Task failed, {len(self._tasks)} sibling(s) still running")
                raise error

            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                break
            logger.debug("TASK", f"Waiting for {len(pending)} task(s)")
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

        tasks, self._tasks = self._tasks, []
        self._errors = []
        if self.cancellation_token.cancelled:
            logger.debug("TASK", f"Cancelled, dropping results of {len(tasks)} task(s)")
            return []
        return [task.result() for task in tasks]

    def _first_error(self) -> BaseException | None:
        if self._errors:
            return self._errors[0]
        for task in self._tasks:
            if task.done() and not task.cancelled():
                error = task.exception()
                if error is not None and not isinstance(error, CancellationStop):
                    return error
        return None

    async def cancel_tasks(self) -> None:
        """Cancel pending tasks and wait until they have finished.

        Only for abandoning a failed build; cancellation of a healthy
        build goes through the token.
        """
        tasks, self._tasks = self._tasks, []
        self._errors = []
        for task in tasks:
            if not task.done():
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
