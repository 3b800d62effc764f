"""Run plain-english browser steps from automated tests."""

from .client import AutoflowClient, autoflow
from .config import AutoflowConfig
from .driver import AutoflowDriver, AutoflowDriverConfig
from .engine import TaskEngine, TaskState
from .errors import (
	AuthenticationError,
	AutoflowConnectionError,
	AutoflowError,
	ConfigurationError,
	DispatchFailure,
	TaskTimeoutError,
	UnsupportedBrowserError,
	UnsupportedCommandError,
)
from .messages import ExecutionOptions, FlowKind, FlowOptions
from .scheduler import TaskFailure
from .session import AutoflowSession

__all__ = [
	'AutoflowClient',
	'autoflow',
	'AutoflowConfig',
	'AutoflowDriver',
	'AutoflowDriverConfig',
	'AutoflowSession',
	'TaskEngine',
	'TaskState',
	'TaskFailure',
	'FlowKind',
	'FlowOptions',
	'ExecutionOptions',
	'AutoflowError',
	'AuthenticationError',
	'AutoflowConnectionError',
	'ConfigurationError',
	'DispatchFailure',
	'TaskTimeoutError',
	'UnsupportedBrowserError',
	'UnsupportedCommandError',
]
