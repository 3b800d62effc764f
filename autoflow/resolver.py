"""Find the element that really sits under a viewport point.

``document.elementFromPoint`` stops at iframe and custom-element boundaries, so
the resolver keeps descending: into an iframe's document with the point
translated by the frame's bounding-rect origin, and into a custom element's
shadow root with the point unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from autoflow.capability import ElementHandle, VisualContext

logger = logging.getLogger(__name__)

RAW_POINTER_TAGS = frozenset({'CANVAS'})

# Deeper nesting is treated as if the current element were the innermost one.
MAX_DEPTH = 32


@dataclass(slots=True, frozen=True)
class ResolvedElement:
	element: ElementHandle | None
	tag_name: str | None
	is_custom_element: bool

	@property
	def found(self) -> bool:
		return self.element is not None

	@property
	def needs_raw_pointer(self) -> bool:
		"""True when element-level hover/click/fill must not be used."""
		return self.element is None or self.is_custom_element or self.tag_name in RAW_POINTER_TAGS

	def to_wire(self) -> dict[str, object]:
		return {'found': self.found, 'tagName': self.tag_name, 'isCustomElement': self.is_custom_element}


NOT_FOUND = ResolvedElement(element=None, tag_name=None, is_custom_element=False)


def is_custom_tag(tag_name: str) -> bool:
	return '-' in tag_name


async def resolve_point(context: VisualContext, x: float, y: float, _depth: int = 0) -> ResolvedElement:
	element = await context.element_at_point(x, y)
	if element is None:
		return NOT_FOUND

	tag_name = (await element.tag_name()).upper()
	is_custom = is_custom_tag(tag_name)

	if _depth >= MAX_DEPTH:
		logger.warning(f'Stopped descending at <{tag_name.lower()}> after {MAX_DEPTH} nested contexts')
		return ResolvedElement(element=element, tag_name=tag_name, is_custom_element=is_custom)

	if tag_name == 'IFRAME':
		frame = await context.frame_context_of(element)
		if frame is not None:
			origin_x, origin_y = await context.bounding_origin_of(element)
			logger.debug(f'Descending into iframe at ({origin_x}, {origin_y}) for point ({x}, {y})')
			return await resolve_point(frame, x - origin_x, y - origin_y, _depth + 1)

	if is_custom:
		shadow_root = await context.shadow_context_of(element)
		if shadow_root is not None:
			logger.debug(f'Descending into shadow root of <{tag_name.lower()}> for point ({x}, {y})')
			return await resolve_point(shadow_root, x, y, _depth + 1)

	return ResolvedElement(element=element, tag_name=tag_name, is_custom_element=is_custom)
