"""Async Chromium WebDriver wrapper implementing the browser capability.

Selenium calls are kept behind ``asyncio.to_thread()`` so the task engine's
event loop is never blocked by synchronous WebDriver calls. DevTools-only
operations (DOM snapshots, layout metrics, content quads) go through
``execute_cdp_cmd``, which is why only Chromium-based drivers are supported.
"""

import asyncio
import sys
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, validate_call

from autoflow.errors import UnsupportedBrowserError

T = TypeVar('T')

# Key aliases for Playwright-style key names ("Enter", "Meta+A").
_SELENIUM_KEY_ALIASES: dict[str, str] = {
	'backspace': 'BACKSPACE',
	'tab': 'TAB',
	'enter': 'ENTER',
	'return': 'RETURN',
	'esc': 'ESCAPE',
	'escape': 'ESCAPE',
	'space': 'SPACE',
	'pageup': 'PAGE_UP',
	'pagedown': 'PAGE_DOWN',
	'end': 'END',
	'home': 'HOME',
	'arrowleft': 'ARROW_LEFT',
	'arrowup': 'ARROW_UP',
	'arrowright': 'ARROW_RIGHT',
	'arrowdown': 'ARROW_DOWN',
	'delete': 'DELETE',
	'meta': 'COMMAND',
	'cmd': 'COMMAND',
	'command': 'COMMAND',
	'control': 'CONTROL',
	'ctrl': 'CONTROL',
	'alt': 'ALT',
	'shift': 'SHIFT',
}

DOM_SNAPSHOT_STYLES = ['background-color', 'visibility', 'opacity', 'z-index', 'overflow']

VIEWPORT_SCRIPT = """
return {
	viewportWidth: (window.visualViewport && window.visualViewport.width) || 0,
	viewportHeight: (window.visualViewport && window.visualViewport.height) || 0,
	pixelRatio: window.devicePixelRatio
};
"""

ELEMENT_FROM_POINT_SCRIPT = 'return document.elementFromPoint(arguments[0], arguments[1]);'

SHADOW_ELEMENT_FROM_POINT_SCRIPT = """
const root = arguments[0].shadowRoot;
if (!root || typeof root.elementFromPoint !== 'function') return null;
return root.elementFromPoint(arguments[1], arguments[2]);
"""


def select_all_chord() -> str:
	return 'Meta+A' if sys.platform == 'darwin' else 'Control+A'


class AutoflowDriverConfig(BaseModel):
	"""Configuration for the Chromium WebDriver wrapper."""

	model_config = ConfigDict(extra='forbid')

	headless: bool = True
	window_width: int = Field(default=1280, gt=0)
	window_height: int = Field(default=720, gt=0)
	command_timeout: float = Field(default=45.0, gt=0)
	page_load_timeout: float = Field(default=60.0, gt=0)
	script_timeout: float = Field(default=30.0, gt=0)


class DriverNotStartedError(RuntimeError):
	"""Raised when attempting to use AutoflowDriver before start() or attach()."""


class DriverElement:
	"""Element handle that remembers which frame it was found in."""

	def __init__(self, driver: 'AutoflowDriver', web_element: Any, frame_path: tuple[Any, ...] = ()):
		self._driver = driver
		self.web_element = web_element
		self.frame_path = frame_path

	def __repr__(self) -> str:
		return f'DriverElement(depth={len(self.frame_path)})'

	async def _run(self, operation: Callable[[Any, Any], T]) -> T:
		element = self.web_element
		return await self._driver._in_frames(self.frame_path, lambda d: operation(d, element))

	async def tag_name(self) -> str:
		return str(await self._run(lambda d, el: d.execute_script('return arguments[0].tagName;', el)) or '')

	async def hover(self) -> None:
		def _hover_sync(driver: Any, element: Any) -> None:
			from selenium.webdriver import ActionChains

			ActionChains(driver).move_to_element(element).perform()

		await self._run(_hover_sync)

	async def click(self) -> None:
		await self._run(lambda d, el: el.click())

	async def fill(self, value: str) -> None:
		def _fill_sync(driver: Any, element: Any) -> None:
			element.clear()
			element.send_keys(value)

		await self._run(_fill_sync)

	async def select_option(self, value: str) -> None:
		"""Select by option value, falling back to the visible label."""

		def _select_sync(driver: Any, element: Any) -> None:
			from selenium.common.exceptions import NoSuchElementException
			from selenium.webdriver.support.select import Select

			select = Select(element)
			try:
				select.select_by_value(value)
			except NoSuchElementException:
				select.select_by_visible_text(value)

		await self._run(_select_sync)


class FrameContext:
	"""The top-level document (empty frame path) or the document of a nested iframe."""

	def __init__(self, driver: 'AutoflowDriver', frame_path: tuple[Any, ...] = ()):
		self._driver = driver
		self.frame_path = frame_path

	async def element_at_point(self, x: float, y: float) -> DriverElement | None:
		web_element = await self._driver._in_frames(self.frame_path, lambda d: d.execute_script(ELEMENT_FROM_POINT_SCRIPT, x, y))
		if web_element is None:
			return None
		return DriverElement(self._driver, web_element, self.frame_path)

	async def bounding_origin_of(self, element: DriverElement) -> tuple[float, float]:
		rect = await element._run(
			lambda d, el: d.execute_script('const r = arguments[0].getBoundingClientRect(); return [r.x, r.y];', el)
		)
		return float(rect[0]), float(rect[1])

	async def frame_context_of(self, element: DriverElement) -> 'FrameContext | None':
		has_frame = await element._run(lambda d, el: d.execute_script('return !!arguments[0].contentWindow;', el))
		if not has_frame:
			return None
		return FrameContext(self._driver, element.frame_path + (element.web_element,))

	async def shadow_context_of(self, element: DriverElement) -> 'ShadowRootContext | None':
		has_shadow_root = await element._run(lambda d, el: d.execute_script('return !!arguments[0].shadowRoot;', el))
		if not has_shadow_root:
			return None
		return ShadowRootContext(self._driver, element)


class ShadowRootContext(FrameContext):
	"""An open shadow root. Shares its host's frame and coordinate space."""

	def __init__(self, driver: 'AutoflowDriver', host: DriverElement):
		super().__init__(driver, host.frame_path)
		self.host = host

	async def element_at_point(self, x: float, y: float) -> DriverElement | None:
		web_element = await self.host._run(lambda d, el: d.execute_script(SHADOW_ELEMENT_FROM_POINT_SCRIPT, el, x, y))
		if web_element is None:
			return None
		return DriverElement(self._driver, web_element, self.frame_path)


class AutoflowDriver:
	"""Thin async wrapper around a Selenium Chromium WebDriver."""

	def __init__(self, config: AutoflowDriverConfig | None = None):
		self.config = config or AutoflowDriverConfig()
		self._driver: Any | None = None
		self._owns_driver = True
		self._lock = asyncio.Lock()

	@classmethod
	def attach(cls, webdriver: Any, config: AutoflowDriverConfig | None = None) -> 'AutoflowDriver':
		"""Wrap a WebDriver owned by the caller. close() will not quit it."""
		driver = cls(config=config)
		driver._driver = webdriver
		driver._owns_driver = False
		return driver

	@property
	def is_started(self) -> bool:
		return self._driver is not None

	def _require_driver(self) -> Any:
		if self._driver is None:
			raise DriverNotStartedError('AutoflowDriver is not started. Call await start() or attach a WebDriver first.')
		return self._driver

	async def _run_sync(self, operation: Callable[[], T], timeout: float | None = None) -> T:
		"""Run a blocking Selenium operation in a thread with timeout."""
		return await asyncio.wait_for(asyncio.to_thread(operation), timeout=timeout or self.config.command_timeout)

	async def _with_driver(self, operation: Callable[[Any], T], timeout: float | None = None) -> T:
		"""Run a blocking operation while holding the driver lock."""
		async with self._lock:
			driver = self._require_driver()
			return await self._run_sync(lambda: operation(driver), timeout=timeout)

	async def _in_frames(self, frame_path: Sequence[Any], operation: Callable[[Any], T]) -> T:
		"""Run an operation with the driver switched into the given iframe chain, then back to the top document."""
		if not frame_path:
			return await self._with_driver(operation)

		def _framed_sync(driver: Any) -> T:
			driver.switch_to.default_content()
			try:
				for frame in frame_path:
					driver.switch_to.frame(frame)
				return operation(driver)
			finally:
				driver.switch_to.default_content()

		return await self._with_driver(_framed_sync)

	def _cdp(self, driver: Any, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
		if not hasattr(driver, 'execute_cdp_cmd'):
			raise UnsupportedBrowserError('The autoflow engine can only be run against Chromium browsers.')
		return driver.execute_cdp_cmd(method, params or {})

	def _parse_key_token(self, token: str) -> Any:
		from selenium.webdriver.common.keys import Keys

		cleaned = token.strip()
		if not cleaned:
			return ''
		if len(cleaned) == 1:
			return cleaned
		mapped = _SELENIUM_KEY_ALIASES.get(cleaned.lower())
		if mapped is None:
			return cleaned
		return getattr(Keys, mapped)

	@validate_call
	async def start(self) -> None:
		"""Start a Chromium WebDriver session if one is not already running."""
		async with self._lock:
			if self._driver is not None:
				return

			def _start_sync() -> Any:
				try:
					from selenium import webdriver
					from selenium.common.exceptions import SessionNotCreatedException
					from selenium.webdriver.chrome.options import Options as ChromeOptions
				except ImportError as exc:
					raise RuntimeError('Selenium is required to drive Chromium. Install with `pip install selenium`.') from exc

				options = ChromeOptions()
				if self.config.headless:
					options.add_argument('--headless=new')
				options.add_argument(f'--window-size={self.config.window_width},{self.config.window_height}')
				try:
					driver = webdriver.Chrome(options=options)
				except SessionNotCreatedException as exc:
					raise RuntimeError(f'Failed to start Chromium WebDriver session: {exc}') from exc
				driver.set_page_load_timeout(self.config.page_load_timeout)
				driver.set_script_timeout(self.config.script_timeout)
				return driver

			self._driver = await self._run_sync(_start_sync)
			self._owns_driver = True

	@validate_call
	async def close(self) -> None:
		"""Quit the WebDriver session if this wrapper started it, and forget it either way."""
		async with self._lock:
			if self._driver is None:
				return
			driver = self._driver
			self._driver = None

		if self._owns_driver:
			await self._run_sync(driver.quit)

	async def __aenter__(self) -> 'AutoflowDriver':
		await self.start()
		return self

	async def __aexit__(self, exc_type, exc, tb) -> None:
		await self.close()

	async def is_alive(self) -> bool:
		"""Check whether the driver session is still responsive."""
		if self._driver is None:
			return False
		try:
			await self._with_driver(lambda d: d.title)
			return True
		except Exception:
			return False

	def page_context(self) -> FrameContext:
		return FrameContext(self)

	# Pointer and keyboard

	@validate_call
	async def move_to(self, x: float, y: float) -> None:
		"""Move the pointer to viewport coordinates."""

		def _move_sync(driver: Any) -> None:
			from selenium.webdriver.common.actions.action_builder import ActionBuilder

			builder = ActionBuilder(driver)
			builder.pointer_action.move_to_location(round(x), round(y))
			builder.perform()

		await self._with_driver(_move_sync)

	@validate_call
	async def click_at(self, x: float, y: float) -> None:
		"""Move to and click viewport coordinates without element semantics."""

		def _click_sync(driver: Any) -> None:
			from selenium.webdriver.common.actions.action_builder import ActionBuilder

			builder = ActionBuilder(driver)
			builder.pointer_action.move_to_location(round(x), round(y))
			builder.pointer_action.click()
			builder.perform()

		await self._with_driver(_click_sync)

	@validate_call
	async def type_text(self, text: str) -> None:
		"""Type text into whatever currently has focus."""

		def _type_sync(driver: Any) -> None:
			from selenium.webdriver import ActionChains

			ActionChains(driver).send_keys(text).perform()

		await self._with_driver(_type_sync)

	@validate_call
	async def press_key(self, key: str) -> None:
		"""Press a key or a ``Modifier+Key`` chord, e.g. ``Enter`` or ``Meta+A``."""

		def _press_sync(driver: Any) -> None:
			from selenium.webdriver import ActionChains

			parts = [part for part in key.split('+') if part]
			if not parts:
				raise ValueError(f'Empty key chord: {key!r}')
			mods = [self._parse_key_token(part) for part in parts[:-1]]
			main_key = self._parse_key_token(parts[-1])
			if mods and len(main_key) == 1:
				# Shifted letters would turn Control+A into Control+Shift+A.
				main_key = main_key.lower()
			chain = ActionChains(driver)
			for mod in mods:
				chain.key_down(mod)
			chain.send_keys(main_key)
			for mod in reversed(mods):
				chain.key_up(mod)
			chain.perform()

		await self._with_driver(_press_sync)

	# Page

	@validate_call
	async def navigate(self, url: str) -> str:
		"""Navigate to a URL and return the final URL."""
		return await self._with_driver(lambda d: (d.get(url), d.current_url)[1], timeout=self.config.page_load_timeout)

	async def evaluate_script(self, expression: str, *args: Any) -> Any:
		"""Execute JavaScript in the top-level document."""
		return await self._with_driver(lambda d: d.execute_script(expression, *args), timeout=self.config.script_timeout)

	async def capture_screenshot(self) -> str:
		"""Capture the viewport as a base64 PNG string."""
		return await self._with_driver(lambda d: d.get_screenshot_as_base64())

	async def get_viewport_metadata(self) -> dict[str, float]:
		metadata = await self.evaluate_script(VIEWPORT_SCRIPT)
		if not isinstance(metadata, dict):
			metadata = {}
		return {
			'viewportWidth': float(metadata.get('viewportWidth') or 0),
			'viewportHeight': float(metadata.get('viewportHeight') or 0),
			'pixelRatio': float(metadata.get('pixelRatio') or 1),
		}

	# DevTools

	async def capture_dom_snapshot(self) -> dict[str, Any]:
		params = {'computedStyles': DOM_SNAPSHOT_STYLES, 'includePaintOrder': True, 'includeDOMRects': True}
		return await self._with_driver(lambda d: self._cdp(d, 'DOMSnapshot.captureSnapshot', params))

	async def get_layout_metrics(self) -> dict[str, Any]:
		return await self._with_driver(lambda d: self._cdp(d, 'Page.getLayoutMetrics'))

	@validate_call
	async def resolve_node_from_backend_id(self, backend_node_id: int) -> str:
		"""Return the remote object id for a backend DOM node id."""
		response = await self._with_driver(lambda d: self._cdp(d, 'DOM.resolveNode', {'backendNodeId': backend_node_id}))
		return str(response['object']['objectId'])

	@validate_call
	async def call_function_on(self, object_id: str, function_declaration: str) -> Any:
		"""Call a JavaScript function with ``this`` bound to a remote object."""
		params = {'functionDeclaration': function_declaration, 'objectId': object_id, 'returnByValue': True}
		response = await self._with_driver(lambda d: self._cdp(d, 'Runtime.callFunctionOn', params))
		if 'exceptionDetails' in response:
			raise RuntimeError(str(response['exceptionDetails'].get('text', 'JavaScript exception')))
		return response.get('result', {}).get('value')

	@validate_call
	async def get_content_quads_for_node(self, backend_node_id: int) -> list[list[float]]:
		response = await self._with_driver(lambda d: self._cdp(d, 'DOM.getContentQuads', {'backendNodeId': backend_node_id}))
		return [list(map(float, quad)) for quad in response.get('quads', [])]
