"""Error types raised by the autoflow task engine."""

from __future__ import annotations

import builtins

from autoflow.meta import get_version


def construct_error_message(
	message: str,
	task_id: str | None = None,
	package_name: str = 'autoflow',
	version: str | None = None,
) -> str:
	"""Build the one-line, prefixed message every task-level error carries."""
	prefix = f"{package_name}.error '{message}'. Version:{version or 'unknown'}"
	if task_id:
		return f'{prefix} TaskId:{task_id}'
	return prefix


class AutoflowError(Exception):
	"""Base class for every error surfaced by autoflow."""

	def __init__(
		self,
		message: str,
		task_id: str | None = None,
		package_name: str = 'autoflow',
		version: str | None = None,
	):
		self.message = message
		self.task_id = task_id
		self.package_name = package_name
		self.version = version or get_version()
		super().__init__(construct_error_message(message, task_id=task_id, package_name=package_name, version=self.version))


class ConfigurationError(AutoflowError):
	"""Missing token, oversized task description or unusable settings. Raised before any network activity."""


class AuthenticationError(AutoflowError):
	"""The planner endpoint rejected the connection (HTTP 401/403)."""


class AutoflowConnectionError(AutoflowError, builtins.ConnectionError):
	"""The planner endpoint is unreachable or the transport failed."""


class DispatchFailure(AutoflowError):
	"""A command failed in the browser, or the planner reported an unsuccessful action."""


class UnsupportedCommandError(DispatchFailure):
	"""The planner requested a command name outside the known vocabulary."""

	def __init__(self, command_name: str, **kwargs):
		self.command_name = command_name
		super().__init__(f'Unsupported command {command_name}', **kwargs)


class UnsupportedBrowserError(AutoflowError):
	"""The attached browser does not speak the Chrome DevTools Protocol."""


class TaskTimeoutError(AutoflowError, builtins.TimeoutError):
	"""No task-complete message arrived before the task deadline."""
