"""Wire messages exchanged with the autoflow planner."""

from __future__ import annotations

import json
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


class FlowKind(str, Enum):
	ACTION = 'action'
	QUERY = 'query'
	ASSERT = 'assert'


class _WireModel(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='forbid')

	def to_wire(self) -> dict[str, Any]:
		return self.model_dump(mode='json', by_alias=True, exclude_none=True)


class _InboundModel(_WireModel):
	# The planner may add fields; unknown keys are ignored.
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')


class FlowOptions(_WireModel):
	"""Per-task options forwarded to the planner."""

	debug: bool | None = None


class ExecutionOptions(BaseModel):
	"""Client-side batch options, never sent over the wire."""

	model_config = ConfigDict(extra='forbid')

	parallelism: int | None = Field(default=None, gt=0)
	fail_immediately: bool = False


class PageSnapshot(_WireModel):
	"""Point-in-time capture of the page sent with every task-start."""

	dom: str
	screenshot: str
	viewport_width: float
	viewport_height: float
	pixel_ratio: float
	layout_metrics: dict[str, Any] | None = None


class TaskStartMessage(_WireModel):
	type: Literal['task-start'] = 'task-start'
	package_version: str | None = None
	task_id: str
	task: str
	snapshot: PageSnapshot
	flow_kind: FlowKind | None = Field(default=None, alias='flowType')
	options: FlowOptions | None = None


class CommandResponse(_WireModel):
	type: Literal['command-response'] = 'command-response'
	package_version: str | None = None
	task_id: str
	index: int
	result: str


class CommandRequest(_InboundModel):
	type: Literal['command-request']
	task_id: str | None = None
	index: int
	name: str
	arguments: dict[str, Any] = Field(default_factory=dict)


class TaskResult(_InboundModel):
	actions: list[Any] | None = None
	assertion: bool | None = None
	query: str | None = None

	@field_validator('query', mode='before')
	@classmethod
	def _stringify_query(cls, value: Any) -> Any:
		# Numeric or structured answers are returned as their JSON text.
		if value is None or isinstance(value, str):
			return value
		return json.dumps(value)


class TaskComplete(_InboundModel):
	type: Literal['task-complete']
	task_id: str | None = None
	was_successful: bool | None = None
	result: TaskResult | None = None
	error_message: str | None = None


InboundMessage = Annotated[CommandRequest | TaskComplete, Field(discriminator='type')]

_inbound_adapter: TypeAdapter[CommandRequest | TaskComplete] = TypeAdapter(InboundMessage)


def parse_inbound(raw: str | bytes) -> CommandRequest | TaskComplete:
	"""Parse one inbound frame. Raises ``pydantic.ValidationError`` on malformed or unknown messages."""
	return _inbound_adapter.validate_json(raw)
