"""Drive one plain-english task from task-start to task-complete."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import anyio
from uuid_extensions import uuid7str

from autoflow import actions
from autoflow.capability import BrowserCapability
from autoflow.commands import pretty_command_name
from autoflow.config import AutoflowConfig
from autoflow.dispatcher import CommandDispatcher
from autoflow.errors import AutoflowConnectionError, AutoflowError, ConfigurationError, DispatchFailure, TaskTimeoutError
from autoflow.messages import (
	CommandRequest,
	CommandResponse,
	FlowKind,
	FlowOptions,
	PageSnapshot,
	TaskComplete,
	TaskStartMessage,
)
from autoflow.meta import get_version
from autoflow.session import AutoflowSession, InboundItem

NULL_RESULT = 'null'


class TaskState(str, Enum):
	CREATED = 'created'
	AWAITING_COMMANDS = 'awaiting_commands'
	COMPLETED = 'completed'
	FAILED = 'failed'


@dataclass(slots=True)
class Task:
	description: str
	flow_kind: FlowKind | None = None
	options: FlowOptions | None = None
	id: str = field(default_factory=uuid7str)
	state: TaskState = TaskState.CREATED
	commands_handled: int = 0


class TaskEngine:
	"""Runs tasks over a shared session against one browser.

	A single engine may run many tasks concurrently; each task owns its own
	listener on the session and handles its commands strictly in arrival order.
	"""

	def __init__(
		self,
		session: AutoflowSession,
		browser: BrowserCapability,
		config: AutoflowConfig | None = None,
		dispatcher: CommandDispatcher | None = None,
	):
		self.session = session
		self.browser = browser
		self.config = config or session.config
		self.dispatcher = dispatcher or CommandDispatcher(browser)

	def _logger(self, task: Task) -> logging.Logger:
		return logging.getLogger(f'autoflow.Task {task.id[-4:]}')

	def _error(self, error_class: type[AutoflowError], message: str, task_id: str | None = None) -> AutoflowError:
		return error_class(message, task_id=task_id, package_name=self.config.package_name, version=get_version())

	def _transition(self, task: Task, state: TaskState) -> None:
		self._logger(task).debug(f'{task.state.value} -> {state.value}')
		task.state = state

	def _parse_flow_kind(self, flow_kind: FlowKind | str | None) -> FlowKind | None:
		if flow_kind is None:
			return None
		try:
			return FlowKind(flow_kind)
		except ValueError as exc:
			kinds = ', '.join(kind.value for kind in FlowKind)
			raise self._error(ConfigurationError, f'Unknown flow kind {flow_kind!r}, expected one of: {kinds}') from exc

	def _validate(self, task: Task) -> None:
		if not self.config.token:
			raise self._error(
				ConfigurationError,
				"To run autoflow steps, it's necessary to define either the $AUTOFLOW_TOKEN environment variable "
				'or provide a autoflow.config.json file containing a "TOKEN" field. '
				'You can generate your API key by signing up for an account at https://autoflow.tools',
			)
		if len(task.description) > self.config.max_task_chars:
			raise self._error(
				ConfigurationError, f'Provided task string is too long, max length is {self.config.max_task_chars} chars'
			)

	async def run(
		self,
		description: str,
		flow_kind: FlowKind | str | None = None,
		options: FlowOptions | None = None,
		timeout: float | None = None,
	) -> Any:
		"""Execute one task and return its interpreted result.

		Resolves to ``None`` for actions, a ``bool`` for assertions and a ``str``
		for queries (or the raw ``TaskComplete`` when ``options.debug`` is set).
		"""
		task = Task(description=description, flow_kind=self._parse_flow_kind(flow_kind), options=options)
		log = self._logger(task)
		log.info(f"{self.config.package_name}.tools '{description}'")

		try:
			self._validate(task)
			completion = await self._execute(task, timeout if timeout is not None else self.config.task_timeout)
			value = self._interpret(task, completion)
		except AutoflowError as exc:
			self._transition(task, TaskState.FAILED)
			log.error(str(exc))
			raise

		self._transition(task, TaskState.COMPLETED)
		return value

	async def _execute(self, task: Task, deadline: float | None) -> TaskComplete:
		queue = self.session.add_listener(task.id)
		scope: anyio.CancelScope | None = None
		try:
			with anyio.fail_after(deadline) as scope:
				snapshot = await self._capture_snapshot(task)
				self._discard_stale_connection_errors(queue)
				await self.session.send(
					TaskStartMessage(
						package_version=get_version(),
						task_id=task.id,
						task=task.description,
						snapshot=snapshot,
						flow_kind=task.flow_kind,
						options=task.options,
					)
				)
				self._transition(task, TaskState.AWAITING_COMMANDS)
				return await self._process_messages(task, queue)
		except TimeoutError as exc:
			if isinstance(exc, AutoflowError) or scope is None or not scope.cancelled_caught:
				raise
			raise self._error(TaskTimeoutError, f'Task did not complete within {deadline} seconds', task.id) from exc
		finally:
			self.session.remove_listener(task.id)

	async def _capture_snapshot(self, task: Task) -> PageSnapshot:
		try:
			return await actions.capture_page_snapshot(self.browser)
		except AutoflowError:
			raise
		except Exception as exc:
			raise self._error(
				DispatchFailure, f'Could not capture the page snapshot: {type(exc).__name__}: {exc}', task.id
			) from exc

	def _discard_stale_connection_errors(self, queue: asyncio.Queue[InboundItem]) -> None:
		"""Drop connection-lost markers queued before task-start; they belong to a socket this task never used."""
		kept = []
		while not queue.empty():
			item = queue.get_nowait()
			if not isinstance(item, AutoflowConnectionError):
				kept.append(item)
		for item in kept:
			queue.put_nowait(item)

	async def _process_messages(self, task: Task, queue: asyncio.Queue[InboundItem]) -> TaskComplete:
		while True:
			item: InboundItem = await queue.get()
			if isinstance(item, AutoflowConnectionError):
				raise self._error(AutoflowConnectionError, item.message, task.id) from item
			if isinstance(item, DispatchFailure):
				raise self._error(DispatchFailure, item.message, task.id) from item
			if isinstance(item, CommandRequest):
				await self._handle_command(task, item)
			elif isinstance(item, TaskComplete):
				self._log_completion(task, item)
				return item

	async def _handle_command(self, task: Task, request: CommandRequest) -> None:
		log = self._logger(task)
		log.info(f'{self.config.package_name}.action {pretty_command_name(request.name)}')
		try:
			result = await self.dispatcher.dispatch(request)
			payload = NULL_RESULT if result is None else json.dumps(result)
		except Exception as exc:
			reason = exc.message if isinstance(exc, AutoflowError) else f'{type(exc).__name__}: {exc}'
			log.warning(f'Command {request.name} #{request.index} failed: {reason}')
			payload = json.dumps({'error': reason, 'command': request.name})

		task.commands_handled += 1
		await self.session.send(
			CommandResponse(package_version=get_version(), task_id=task.id, index=request.index, result=payload)
		)

	def _log_completion(self, task: Task, completion: TaskComplete) -> None:
		log = self._logger(task)
		log.debug(f'Task complete after {task.commands_handled} command(s)')
		result = completion.result
		if result is not None and result.assertion is not None:
			log.info(f'{self.config.package_name}.assertion {str(result.assertion).lower()}')
		elif result is not None and result.query is not None:
			log.info(f'{self.config.package_name}.response {result.query}')

	def _interpret(self, task: Task, completion: TaskComplete) -> Any:
		if task.options is not None and task.options.debug:
			return completion
		if completion.error_message:
			raise self._error(DispatchFailure, completion.error_message, task.id)

		result = completion.result
		if result is None:
			if completion.was_successful is False:
				raise self._error(DispatchFailure, 'An unknown error occurred when trying to run the autoflow step', task.id)
			return None
		if result.assertion is not None:
			return result.assertion
		if result.query is not None:
			return result.query
		if result.actions is not None and completion.was_successful is False:
			raise self._error(DispatchFailure, 'Could not execute autoflow step as action', task.id)
		return None
