"""Settings for the autoflow client.

Each setting is looked up as ``$AUTOFLOW_<KEY>`` first, then as ``<KEY>`` in an
``autoflow.config.json`` file in the working directory, then falls back to the
field default.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import anyio
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from autoflow.errors import ConfigurationError

CONFIG_FILE_NAME = 'autoflow.config.json'
ENV_PREFIX = 'AUTOFLOW_'
SOCKET_PATH = '/ws/socket-server/'

# Field name -> key used in the environment (after the prefix) and in the config file.
_CONFIG_KEYS: dict[str, str] = {
	'token': 'TOKEN',
	'websocket_protocol': 'WEBSOCKET_PROTOCOL',
	'websocket_host': 'WEBSOCKET_HOST',
	'package_name': 'PACKAGE_NAME',
	'logs_enabled': 'LOGS_ENABLED',
	'max_task_chars': 'MAX_TASK_CHARS',
	'parallelism': 'PARALLELISM',
	'task_timeout': 'TASK_TIMEOUT',
}


class AutoflowConfig(BaseModel):
	"""Resolved client settings."""

	model_config = ConfigDict(extra='forbid')

	token: str = ''
	websocket_protocol: str = 'ws'
	websocket_host: str = '127.0.0.1:8000'
	package_name: str = 'autoflow'
	logs_enabled: bool = True
	max_task_chars: int = Field(default=1000, gt=0)
	parallelism: int = Field(default=10, gt=0)
	task_timeout: float | None = Field(default=None, gt=0)

	@property
	def websocket_url(self) -> str:
		return f'{self.websocket_protocol}://{self.websocket_host}{SOCKET_PATH}?key={self.token}'

	@classmethod
	def load(cls, cwd: str | Path | None = None, environ: Mapping[str, str] | None = None) -> AutoflowConfig:
		"""Resolve settings from the environment and the optional config file."""
		config_path = Path(cwd or os.getcwd()) / CONFIG_FILE_NAME
		file_values: dict[str, Any] = {}
		if config_path.is_file():
			file_values = _parse_config_file(config_path, config_path.read_text(encoding='utf-8'))
		return cls._from_sources(file_values, os.environ if environ is None else environ)

	@classmethod
	async def aload(cls, cwd: str | Path | None = None, environ: Mapping[str, str] | None = None) -> AutoflowConfig:
		"""Async variant of :meth:`load` that reads the config file without blocking the loop."""
		config_path = anyio.Path(cwd or os.getcwd()) / CONFIG_FILE_NAME
		file_values: dict[str, Any] = {}
		if await config_path.is_file():
			file_values = _parse_config_file(Path(config_path), await config_path.read_text(encoding='utf-8'))
		return cls._from_sources(file_values, os.environ if environ is None else environ)

	@classmethod
	def _from_sources(cls, file_values: Mapping[str, Any], environ: Mapping[str, str]) -> AutoflowConfig:
		values: dict[str, Any] = {}
		for field_name, key in _CONFIG_KEYS.items():
			raw = environ.get(f'{ENV_PREFIX}{key}')
			if raw is None and field_name == 'websocket_protocol':
				raw = environ.get(key)
			if raw is None and key in file_values:
				raw = file_values[key]
			if raw is None:
				continue
			values[field_name] = _coerce(field_name, raw)

		try:
			return cls(**values)
		except ValidationError as exc:
			raise ConfigurationError(f'Invalid autoflow configuration: {exc.errors()[0]["msg"]}') from exc


def _parse_config_file(path: Path, content: str) -> dict[str, Any]:
	try:
		loaded = json.loads(content)
	except json.JSONDecodeError as exc:
		raise ConfigurationError(f'Could not parse {path}: {exc.msg}') from exc
	if not isinstance(loaded, dict):
		raise ConfigurationError(f'{path} must contain a JSON object')
	return loaded


def _coerce(field_name: str, raw: Any) -> Any:
	if field_name == 'logs_enabled':
		# Only the literal string "true" enables logs.
		return str(raw).strip().lower() == 'true'
	if field_name == 'task_timeout' and str(raw).strip() == '':
		return None
	if field_name in ('token', 'websocket_protocol', 'websocket_host', 'package_name'):
		return str(raw)
	return raw
