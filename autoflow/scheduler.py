"""Run a batch of tasks over one shared session, a chunk at a time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any

from autoflow.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_PARALLELISM = 10


@dataclass(slots=True, frozen=True)
class TaskFailure:
	"""Placeholder for a task that failed when the batch collects every outcome."""

	description: str
	reason: BaseException

	def __bool__(self) -> bool:
		return False


def chunked(items: Sequence[str], size: int) -> list[Sequence[str]]:
	return [items[start : start + size] for start in range(0, len(items), size)]


async def run_in_parallel(
	run_task: Callable[[str], Awaitable[Any]],
	tasks: Sequence[str],
	parallelism: int = DEFAULT_PARALLELISM,
	fail_immediately: bool = False,
) -> list[Any]:
	"""Run ``tasks`` in consecutive chunks of ``parallelism``; results keep input order.

	With ``fail_immediately`` the first failure propagates and later chunks never
	start. Otherwise every outcome is collected and failures appear in place as
	:class:`TaskFailure` values.
	"""
	if not tasks:
		raise ConfigurationError('Empty task list, nothing to do')
	if parallelism <= 0:
		raise ConfigurationError(f'Parallelism must be a positive integer, got {parallelism}')

	results: list[Any] = []
	chunks = chunked(list(tasks), parallelism)
	for number, chunk in enumerate(chunks, start=1):
		logger.debug(f'Starting chunk {number}/{len(chunks)} with {len(chunk)} task(s)')
		if fail_immediately:
			pending = [asyncio.ensure_future(run_task(description)) for description in chunk]
			try:
				results.extend(await asyncio.gather(*pending))
			except BaseException:
				for future in pending:
					future.cancel()
				await asyncio.gather(*pending, return_exceptions=True)
				raise
			continue

		outcomes = await asyncio.gather(*(run_task(description) for description in chunk), return_exceptions=True)
		for description, outcome in zip(chunk, outcomes):
			if isinstance(outcome, Exception):
				logger.warning(f"Task '{description}' failed: {outcome}")
				results.append(TaskFailure(description=description, reason=outcome))
			elif isinstance(outcome, BaseException):
				raise outcome
			else:
				results.append(outcome)
	return results
