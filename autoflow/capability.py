"""Browser capability consumed by the task engine.

The engine never touches a live DOM directly. Everything it needs from the
browser goes through :class:`BrowserCapability`; :class:`autoflow.driver.AutoflowDriver`
is the Selenium/Chromium implementation, and tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


class ElementHandle(Protocol):
	"""A live element inside some visual context."""

	async def tag_name(self) -> str: ...

	async def hover(self) -> None: ...

	async def click(self) -> None: ...

	async def fill(self, value: str) -> None: ...

	async def select_option(self, value: str) -> None: ...


class VisualContext(Protocol):
	"""Something that can answer "which element is at this point": a page, a frame or a shadow root."""

	async def element_at_point(self, x: float, y: float) -> ElementHandle | None: ...

	async def bounding_origin_of(self, element: ElementHandle) -> tuple[float, float]: ...

	async def frame_context_of(self, element: ElementHandle) -> VisualContext | None:
		"""Content frame of an IFRAME element, or None when it has no loaded document."""
		...

	async def shadow_context_of(self, element: ElementHandle) -> VisualContext | None:
		"""Open shadow root hosted by the element, or None."""
		...


@runtime_checkable
class BrowserCapability(Protocol):
	async def move_to(self, x: float, y: float) -> None: ...

	async def click_at(self, x: float, y: float) -> None: ...

	async def type_text(self, text: str) -> None: ...

	async def press_key(self, key: str) -> None: ...

	async def navigate(self, url: str) -> str: ...

	async def evaluate_script(self, expression: str, *args: Any) -> Any: ...

	async def capture_screenshot(self) -> str: ...

	async def capture_dom_snapshot(self) -> dict[str, Any]: ...

	async def get_layout_metrics(self) -> dict[str, Any]: ...

	async def get_viewport_metadata(self) -> dict[str, float]: ...

	async def resolve_node_from_backend_id(self, backend_node_id: int) -> str: ...

	async def call_function_on(self, object_id: str, function_declaration: str) -> Any: ...

	async def get_content_quads_for_node(self, backend_node_id: int) -> list[list[float]]: ...

	def page_context(self) -> VisualContext: ...
