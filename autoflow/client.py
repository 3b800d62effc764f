"""Compose config, session, browser and engine into one entry point."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from autoflow.capability import BrowserCapability
from autoflow.config import AutoflowConfig
from autoflow.engine import TaskEngine
from autoflow.messages import ExecutionOptions, FlowKind, FlowOptions
from autoflow.scheduler import run_in_parallel
from autoflow.session import AutoflowSession

logger = logging.getLogger(__name__)


class AutoflowClient:
	"""Runs plain-english browser steps through the autoflow planner.

	The client owns the session it creates and closes it in :meth:`close`; a
	session passed in by the caller is shared and left open.

	Example::

		async with AutoflowClient(AutoflowDriver.attach(webdriver)) as client:
			await client.run('Accept the cookie banner', flow_kind='action')
			count = await client.run('How many items are listed?', flow_kind='query')
	"""

	def __init__(
		self,
		browser: BrowserCapability,
		config: AutoflowConfig | None = None,
		session: AutoflowSession | None = None,
	):
		self.config = config or (session.config if session is not None else AutoflowConfig.load())
		self._owns_session = session is None
		self.session = session or AutoflowSession(self.config)
		self.browser = browser
		self.engine = TaskEngine(self.session, browser, config=self.config)

	async def run(
		self,
		task: str | Sequence[str],
		flow_kind: FlowKind | str | None = None,
		options: FlowOptions | None = None,
		execution: ExecutionOptions | None = None,
		timeout: float | None = None,
	) -> Any:
		"""Run one task, or a list of tasks fanned out over the shared session."""
		if isinstance(task, str):
			return await self.engine.run(task, flow_kind=flow_kind, options=options, timeout=timeout)

		execution = execution or ExecutionOptions()

		async def run_one(description: str) -> Any:
			return await self.engine.run(description, flow_kind=flow_kind, options=options, timeout=timeout)

		return await run_in_parallel(
			run_one,
			list(task),
			parallelism=execution.parallelism or self.config.parallelism,
			fail_immediately=execution.fail_immediately,
		)

	async def close(self) -> None:
		if self._owns_session:
			await self.session.close()

	async def __aenter__(self) -> AutoflowClient:
		return self

	async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
		await self.close()


async def autoflow(
	task: str | Sequence[str],
	*,
	browser: BrowserCapability,
	flow_kind: FlowKind | str | None = None,
	options: FlowOptions | None = None,
	execution: ExecutionOptions | None = None,
	config: AutoflowConfig | None = None,
	timeout: float | None = None,
) -> Any:
	"""One-shot helper: run ``task`` on a fresh client and close its session afterwards."""
	async with AutoflowClient(browser, config=config) as client:
		return await client.run(task, flow_kind=flow_kind, options=options, execution=execution, timeout=timeout)
