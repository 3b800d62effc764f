"""Browser actions behind the planner's commands.

Every element interaction is routed through one geometric path: ids are turned
into the centre of the node's first content quad, points are resolved with
:func:`autoflow.resolver.resolve_point`, and elements that cannot be trusted
with element-level APIs (canvases, custom widgets, nothing found) get raw
pointer and keyboard input instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from autoflow.capability import BrowserCapability
from autoflow.driver import select_all_chord
from autoflow.errors import DispatchFailure
from autoflow.messages import PageSnapshot
from autoflow.resolver import ResolvedElement, resolve_point

logger = logging.getLogger(__name__)

# Relative scrolls move this share of the visible height.
RELATIVE_SCROLL_RATIO = 0.75
DEFAULT_VIEWPORT_HEIGHT = 720


class ScrollDirection(str, Enum):
	UP = 'up'
	DOWN = 'down'
	TOP = 'top'
	BOTTOM = 'bottom'


@dataclass(slots=True, frozen=True)
class ElementPosition:
	top_left_x: float
	top_left_y: float
	top_right_x: float
	top_right_y: float
	bottom_right_x: float
	bottom_right_y: float
	bottom_left_x: float
	bottom_left_y: float

	@property
	def width(self) -> float:
		return self.top_right_x - self.top_left_x

	@property
	def height(self) -> float:
		return self.bottom_right_y - self.top_right_y

	@property
	def center(self) -> tuple[float, float]:
		return self.top_left_x + self.width / 2, self.top_right_y + self.height / 2


def _parse_node_id(raw: Any) -> int:
	try:
		node_id = int(raw)
	except (TypeError, ValueError):
		node_id = 0
	if node_id <= 0:
		raise DispatchFailure("Couldn't find the element to perform the action. Please check and try again.")
	return node_id


def _parse_scroll_direction(raw: Any) -> ScrollDirection:
	try:
		return ScrollDirection(raw)
	except ValueError as exc:
		raise DispatchFailure(f'Unsupported scroll direction {raw}') from exc


async def get_element_position(browser: BrowserCapability, backend_node_id: Any) -> ElementPosition:
	node_id = _parse_node_id(backend_node_id)
	quads = await browser.get_content_quads_for_node(node_id)
	if not quads or len(quads[0]) < 8:
		raise DispatchFailure(f'Element {node_id} has no visible box to interact with.')
	return ElementPosition(*quads[0][:8])


async def element_location_info(browser: BrowserCapability, x: float, y: float) -> ResolvedElement:
	return await resolve_point(browser.page_context(), x, y)


# Actions using location


async def hover_at(browser: BrowserCapability, x: float, y: float) -> None:
	resolved = await element_location_info(browser, x, y)
	if resolved.needs_raw_pointer:
		await browser.move_to(x, y)
	else:
		await resolved.element.hover()


async def click_at(browser: BrowserCapability, x: float, y: float) -> None:
	resolved = await element_location_info(browser, x, y)
	if resolved.needs_raw_pointer:
		await browser.move_to(x, y)
		await browser.click_at(x, y)
	else:
		await resolved.element.hover()
		await resolved.element.click()


async def input_at(browser: BrowserCapability, x: float, y: float, value: str) -> None:
	resolved = await element_location_info(browser, x, y)
	if resolved.needs_raw_pointer:
		await browser.move_to(x, y)
		await browser.click_at(x, y)
		await browser.press_key(select_all_chord())
		await browser.press_key('Backspace')
		await browser.type_text(value)
	elif resolved.tag_name == 'SELECT':
		await resolved.element.hover()
		await resolved.element.click()
		await resolved.element.select_option(value)
	else:
		await resolved.element.hover()
		await resolved.element.click()
		await resolved.element.fill(value)


# Actions using element ids


async def click_element_by_id(browser: BrowserCapability, element_id: Any) -> None:
	x, y = (await get_element_position(browser, element_id)).center
	await click_at(browser, x, y)


async def hover_element_by_id(browser: BrowserCapability, element_id: Any) -> None:
	x, y = (await get_element_position(browser, element_id)).center
	await hover_at(browser, x, y)


async def input_element_by_id(browser: BrowserCapability, element_id: Any, value: str) -> None:
	x, y = (await get_element_position(browser, element_id)).center
	await input_at(browser, x, y, value)


# Actions using script

_SCROLL_PAGE_SCRIPT = """
const target = arguments[0];
const viewportHeight = (window.visualViewport && window.visualViewport.height) || %(default_height)d;
const distance = %(ratio)s * viewportHeight;
const element = document.scrollingElement || document.body;
switch (target) {
	case 'top': return element.scrollTo({ top: 0 });
	case 'bottom': return element.scrollTo({ top: element.scrollHeight });
	case 'up': return element.scrollBy({ top: -distance });
	case 'down': return element.scrollBy({ top: distance });
}
""" % {'default_height': DEFAULT_VIEWPORT_HEIGHT, 'ratio': RELATIVE_SCROLL_RATIO}

_SCROLL_ELEMENT_FUNCTION = """function(direction) {
	let element = this;
	let height = 0;
	if (element.tagName === 'BODY' || element.tagName === 'HTML') {
		element = document.scrollingElement || document.body;
		height = (window.visualViewport && window.visualViewport.height) || %(default_height)d;
	} else {
		height = element.clientHeight || %(default_height)d;
	}
	const distance = %(ratio)s * height;
	switch (direction) {
		case 'top': return element.scrollTo({ top: 0 });
		case 'bottom': return element.scrollTo({ top: element.scrollHeight });
		case 'up': return element.scrollBy({ top: -distance });
		case 'down': return element.scrollBy({ top: distance });
	}
}"""


async def scroll_page(browser: BrowserCapability, target: Any) -> None:
	direction = _parse_scroll_direction(target)
	await browser.evaluate_script(_SCROLL_PAGE_SCRIPT, direction.value)


async def scroll_element(browser: BrowserCapability, element_id: Any, direction: Any) -> None:
	node_id = _parse_node_id(element_id)
	scroll_direction = _parse_scroll_direction(direction)
	object_id = await browser.resolve_node_from_backend_id(node_id)
	function_body = _SCROLL_ELEMENT_FUNCTION % {'default_height': DEFAULT_VIEWPORT_HEIGHT, 'ratio': RELATIVE_SCROLL_RATIO}
	# Runtime.callFunctionOn binds ``this``; the direction is baked in as a call expression.
	wrapped = f'function() {{ return ({function_body}).call(this, {json.dumps(scroll_direction.value)}); }}'
	await browser.call_function_on(object_id, wrapped)


# Snapshot


async def capture_page_snapshot(browser: BrowserCapability) -> PageSnapshot:
	"""Capture DOM, screenshot, viewport and layout metrics concurrently."""
	dom_snapshot, screenshot, viewport, layout_metrics = await asyncio.gather(
		browser.capture_dom_snapshot(),
		browser.capture_screenshot(),
		browser.get_viewport_metadata(),
		browser.get_layout_metrics(),
	)
	return PageSnapshot(
		dom=json.dumps(dom_snapshot),
		screenshot=screenshot,
		viewport_width=viewport['viewportWidth'],
		viewport_height=viewport['viewportHeight'],
		pixel_ratio=viewport['pixelRatio'],
		layout_metrics=layout_metrics,
	)
