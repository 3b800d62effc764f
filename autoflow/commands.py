"""Command vocabulary understood by the dispatcher."""

from __future__ import annotations

from enum import Enum

from autoflow.errors import UnsupportedCommandError


class CommandName(str, Enum):
	# DevTools
	GET_DOM_SNAPSHOT = 'getDOMSnapshot'
	# Queries
	CAPTURE_SNAPSHOT = 'captureSnapshot'
	# Element ids
	CLICK_ELEMENT = 'clickElement'
	SEND_KEYS_TO_ELEMENT = 'sendKeysToElement'
	HOVER_ELEMENT = 'hoverElement'
	SCROLL_ELEMENT = 'scrollElement'
	# Locations
	CLICK_LOCATION = 'clickLocation'
	HOVER_LOCATION = 'hoverLocation'
	CLICK_AND_INPUT_LOCATION = 'clickAndInputLocation'
	GET_ELEMENT_AT_LOCATION = 'getElementAtLocation'
	# Device
	SEND_KEYS = 'sendKeys'
	KEYPRESS_ENTER = 'keypressEnter'
	NAVIGATE = 'navigate'
	# Script
	SCROLL_PAGE = 'scrollPage'

	@classmethod
	def parse(cls, raw: str) -> CommandName:
		try:
			return cls(raw)
		except ValueError as exc:
			raise UnsupportedCommandError(raw) from exc


_PRETTY_NAMES: dict[str, str] = {
	'clickElement': 'click',
	'clickLocation': 'click',
	'sendKeysToElement': 'input',
	'clickAndInputLocation': 'input',
	'sendKeys': 'input',
	'hoverElement': 'hover',
	'hoverLocation': 'hover',
	'getElementAtLocation': 'getElement',
	'keypressEnter': 'pressEnter',
	'getDOMSnapshot': 'analyze',
	'snapshot': 'analyze',
}


def pretty_command_name(raw: str) -> str:
	"""Short name used in step logs, e.g. ``clickLocation`` -> ``click``."""
	return _PRETTY_NAMES.get(raw, raw)
