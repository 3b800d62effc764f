"""Shared websocket session to the autoflow planner.

One :class:`AutoflowSession` is created by whoever composes the engine and is
shared by every task it runs. The connection is opened lazily on first use, a
background reader routes inbound frames to per-task queues keyed by task id,
and :meth:`AutoflowSession.close` tears everything down.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError
from uuid_extensions import uuid7str

from autoflow.config import AutoflowConfig
from autoflow.errors import AuthenticationError, AutoflowConnectionError, AutoflowError, DispatchFailure
from autoflow.messages import CommandRequest, CommandResponse, TaskComplete, TaskStartMessage, parse_inbound
from autoflow.meta import get_version

LOG_PREVIEW_CHARS = 250
MAX_INBOUND_MESSAGE_BYTES = 50 * 1024 * 1024
AUTH_FAILURE_STATUSES = frozenset({401, 403})

INBOUND_TYPES = frozenset({'command-request', 'task-complete'})

InboundItem = CommandRequest | TaskComplete | AutoflowConnectionError | DispatchFailure
OutboundMessage = TaskStartMessage | CommandResponse


class AutoflowSession:
	"""Lazily connected, explicitly closed websocket shared by all tasks."""

	def __init__(self, config: AutoflowConfig, connect_timeout: float = 30.0):
		self.config = config
		self.connect_timeout = connect_timeout
		self.id = uuid7str()
		self.connect_attempts = 0
		self._http: aiohttp.ClientSession | None = None
		self._ws: aiohttp.ClientWebSocketResponse | None = None
		self._reader: asyncio.Task[None] | None = None
		self._listeners: dict[str, asyncio.Queue[InboundItem]] = {}
		self._connect_lock = asyncio.Lock()

	@property
	def logger(self) -> logging.Logger:
		return logging.getLogger(f'autoflow.Session {self.id[-4:]}')

	@property
	def is_connected(self) -> bool:
		return self._ws is not None and not self._ws.closed

	@property
	def listener_count(self) -> int:
		return len(self._listeners)

	def _error(self, error_class: type[AutoflowError], message: str) -> AutoflowError:
		return error_class(message, package_name=self.config.package_name, version=get_version())

	async def connect(self) -> aiohttp.ClientWebSocketResponse:
		"""Return the shared websocket, opening it if needed."""
		if self._ws is not None and not self._ws.closed:
			return self._ws

		async with self._connect_lock:
			if self._ws is not None and not self._ws.closed:
				return self._ws
			await self._release_transport()

			self.connect_attempts += 1
			http = aiohttp.ClientSession()
			try:
				ws = await asyncio.wait_for(
					http.ws_connect(self.config.websocket_url, max_msg_size=MAX_INBOUND_MESSAGE_BYTES),
					timeout=self.connect_timeout,
				)
			except aiohttp.WSServerHandshakeError as exc:
				await http.close()
				if exc.status in AUTH_FAILURE_STATUSES:
					raise self._error(
						AuthenticationError,
						'Authentication failed. Make sure the $AUTOFLOW_TOKEN environment variable matches '
						'the one in your account at https://autoflow.tools',
					) from exc
				raise self._error(AutoflowConnectionError, f'Websocket handshake failed with status {exc.status}') from exc
			except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as exc:
				await http.close()
				raise self._error(AutoflowConnectionError, f'An unknown error occurred: {type(exc).__name__}: {exc}') from exc

			self._http = http
			self._ws = ws
			self._reader = asyncio.create_task(self._read_loop(ws), name=f'autoflow-reader-{self.id[-4:]}')
			self.logger.debug(f'Connected to {self.config.websocket_protocol}://{self.config.websocket_host}')
			return ws

	async def send(self, message: OutboundMessage) -> None:
		"""Serialize and send a message, connecting first if needed."""
		ws = await self.connect()
		serialized = json.dumps(message.to_wire())
		if self.config.logs_enabled:
			self.logger.info(f'> ws send: {serialized[:LOG_PREVIEW_CHARS]}')
		try:
			await ws.send_str(serialized)
		except (ConnectionResetError, aiohttp.ClientError) as exc:
			raise self._error(AutoflowConnectionError, f'Failed to send {message.type} message: {exc}') from exc

	def add_listener(self, task_id: str) -> asyncio.Queue[InboundItem]:
		"""Register the queue that receives every inbound message for ``task_id``."""
		if task_id in self._listeners:
			raise ValueError(f'A listener is already registered for task {task_id}')
		queue: asyncio.Queue[InboundItem] = asyncio.Queue()
		self._listeners[task_id] = queue
		return queue

	def remove_listener(self, task_id: str) -> None:
		self._listeners.pop(task_id, None)

	def _route(self, raw: str) -> None:
		try:
			message = parse_inbound(raw)
		except ValidationError as exc:
			reason = exc.errors()[0]['msg']
			self.logger.warning(f'Ignoring unreadable message: {reason} in {raw[:LOG_PREVIEW_CHARS]}')
			self._fail_unreadable(raw, reason)
			return

		if message.task_id is not None:
			queue = self._listeners.get(message.task_id)
			if queue is None:
				self.logger.debug(f'No listener for task {message.task_id}, dropping {message.type}')
				return
		elif len(self._listeners) == 1:
			queue = next(iter(self._listeners.values()))
		else:
			self.logger.warning(
				f'Dropping untagged {message.type}: {len(self._listeners)} tasks in flight, cannot tell which it belongs to'
			)
			return

		if self.config.logs_enabled:
			self.logger.info(f'< ws recv: {raw[:LOG_PREVIEW_CHARS]}')
		queue.put_nowait(message)

	def _fail_unreadable(self, raw: str, reason: str) -> None:
		"""Fail the task a malformed command-request or task-complete was addressed to."""
		try:
			payload = json.loads(raw)
		except ValueError:
			return
		if not isinstance(payload, dict) or payload.get('type') not in INBOUND_TYPES:
			return
		task_id = payload.get('taskId')
		queue = self._listeners.get(task_id) if isinstance(task_id, str) else None
		if queue is None:
			return
		message = f'Unreadable {payload["type"]} message from the autoflow server: {reason}'
		queue.put_nowait(self._error(DispatchFailure, message))

	async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
		reason = 'Connection to the autoflow server was closed'
		try:
			async for msg in ws:
				if msg.type == aiohttp.WSMsgType.TEXT:
					self._route(msg.data)
				elif msg.type == aiohttp.WSMsgType.BINARY:
					self._route(msg.data.decode('utf-8', errors='replace'))
				elif msg.type == aiohttp.WSMsgType.ERROR:
					reason = f'Connection to the autoflow server failed: {ws.exception()}'
					break
		finally:
			self._notify_connection_lost(reason)
			if self._ws is ws:
				self._ws = None
				http, self._http = self._http, None
				if http is not None:
					await http.close()

	def _notify_connection_lost(self, reason: str) -> None:
		if not self._listeners:
			return
		self.logger.warning(f'{reason}; failing {len(self._listeners)} waiting task(s)')
		error = self._error(AutoflowConnectionError, reason)
		for queue in self._listeners.values():
			queue.put_nowait(error)

	async def _release_transport(self) -> None:
		reader, ws, http = self._reader, self._ws, self._http
		self._reader, self._ws, self._http = None, None, None
		if ws is not None and not ws.closed:
			await ws.close()
		if reader is not None and not reader.done():
			reader.cancel()
			try:
				await reader
			except asyncio.CancelledError:
				pass
		if http is not None:
			await http.close()

	async def close(self) -> None:
		"""Close the websocket and forget it. Safe to call repeatedly."""
		async with self._connect_lock:
			if self._http is None and self._ws is None and self._reader is None:
				return
			await self._release_transport()
		self.logger.debug('Session closed')

	async def __aenter__(self) -> AutoflowSession:
		return self

	async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
		await self.close()
