"""Map planner commands onto browser actions."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from autoflow import actions
from autoflow.capability import BrowserCapability
from autoflow.commands import CommandName
from autoflow.errors import DispatchFailure
from autoflow.messages import CommandRequest

logger = logging.getLogger(__name__)

CommandHandler = Callable[[BrowserCapability, Mapping[str, Any]], Awaitable[Any]]


def _require(arguments: Mapping[str, Any], *keys: str) -> list[Any]:
	missing = [key for key in keys if arguments.get(key) is None]
	if missing:
		raise DispatchFailure(f'Missing command arguments: {", ".join(missing)}')
	return [arguments[key] for key in keys]


def _point(arguments: Mapping[str, Any]) -> tuple[float, float]:
	x, y = _require(arguments, 'x', 'y')
	try:
		return float(x), float(y)
	except (TypeError, ValueError) as exc:
		raise DispatchFailure(f'Invalid coordinates ({x}, {y})') from exc


async def _get_dom_snapshot(browser: BrowserCapability, arguments: Mapping[str, Any]) -> Any:
	return await browser.capture_dom_snapshot()


async def _capture_snapshot(browser: BrowserCapability, arguments: Mapping[str, Any]) -> Any:
	snapshot = await actions.capture_page_snapshot(browser)
	return snapshot.to_wire()


async def _click_element(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	(element_id,) = _require(arguments, 'id')
	await actions.click_element_by_id(browser, element_id)


async def _send_keys_to_element(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	element_id, value = _require(arguments, 'id', 'value')
	await actions.input_element_by_id(browser, element_id, str(value))


async def _hover_element(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	(element_id,) = _require(arguments, 'id')
	await actions.hover_element_by_id(browser, element_id)


async def _scroll_element(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	element_id, direction = _require(arguments, 'elementId', 'scrollDirection')
	await actions.scroll_element(browser, element_id, direction)


async def _click_location(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	await actions.click_at(browser, *_point(arguments))


async def _hover_location(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	await actions.hover_at(browser, *_point(arguments))


async def _click_and_input_location(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	x, y = _point(arguments)
	(value,) = _require(arguments, 'value')
	await actions.input_at(browser, x, y, str(value))


async def _get_element_at_location(browser: BrowserCapability, arguments: Mapping[str, Any]) -> dict[str, object]:
	resolved = await actions.element_location_info(browser, *_point(arguments))
	return resolved.to_wire()


async def _send_keys(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	(value,) = _require(arguments, 'value')
	await browser.type_text(str(value))


async def _keypress_enter(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	await browser.press_key('Enter')


async def _navigate(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	(url,) = _require(arguments, 'url')
	await browser.navigate(str(url))


async def _scroll_page(browser: BrowserCapability, arguments: Mapping[str, Any]) -> None:
	(target,) = _require(arguments, 'target')
	await actions.scroll_page(browser, target)


COMMAND_HANDLERS: dict[CommandName, CommandHandler] = {
	CommandName.GET_DOM_SNAPSHOT: _get_dom_snapshot,
	CommandName.CAPTURE_SNAPSHOT: _capture_snapshot,
	CommandName.CLICK_ELEMENT: _click_element,
	CommandName.SEND_KEYS_TO_ELEMENT: _send_keys_to_element,
	CommandName.HOVER_ELEMENT: _hover_element,
	CommandName.SCROLL_ELEMENT: _scroll_element,
	CommandName.CLICK_LOCATION: _click_location,
	CommandName.HOVER_LOCATION: _hover_location,
	CommandName.CLICK_AND_INPUT_LOCATION: _click_and_input_location,
	CommandName.GET_ELEMENT_AT_LOCATION: _get_element_at_location,
	CommandName.SEND_KEYS: _send_keys,
	CommandName.KEYPRESS_ENTER: _keypress_enter,
	CommandName.NAVIGATE: _navigate,
	CommandName.SCROLL_PAGE: _scroll_page,
}

_unhandled = set(CommandName) - set(COMMAND_HANDLERS)
if _unhandled:
	raise RuntimeError(f'No handler registered for commands: {sorted(name.value for name in _unhandled)}')


class CommandDispatcher:
	"""Executes one planner command against a browser capability."""

	def __init__(self, browser: BrowserCapability):
		self.browser = browser

	async def dispatch(self, request: CommandRequest) -> Any:
		"""Run the command and return its JSON-serializable result.

		Raises ``UnsupportedCommandError`` for names outside :class:`CommandName`
		and ``DispatchFailure`` for bad arguments.
		"""
		name = CommandName.parse(request.name)
		logger.debug(f'Dispatching {name.value} #{request.index} with {request.arguments}')
		return await COMMAND_HANDLERS[name](self.browser, request.arguments)
