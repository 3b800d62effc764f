"""Unit tests for AutoflowDriver's async Selenium wrapper behavior."""

from __future__ import annotations

from typing import Any

import pytest
import selenium.webdriver
import selenium.webdriver.common.actions.action_builder as action_builder_module
from selenium.webdriver.common.keys import Keys

from autoflow.driver import (
	AutoflowDriver,
	DriverElement,
	DriverNotStartedError,
	FrameContext,
	ShadowRootContext,
	select_all_chord,
)
from autoflow.errors import UnsupportedBrowserError


class _FakeSwitchTo:
	def __init__(self, driver: _FakeWebDriver) -> None:
		self._driver = driver

	def default_content(self) -> None:
		self._driver.switches.append('default')
		self._driver.current_frame = None

	def frame(self, frame: Any) -> None:
		self._driver.switches.append(f'frame:{frame}')
		self._driver.current_frame = frame


class _FakeWebDriver:
	def __init__(self) -> None:
		self.switches: list[str] = []
		self.current_frame: Any = None
		self.scripts: list[tuple[str, tuple[Any, ...], Any]] = []
		self.script_results: dict[str, Any] = {}
		self.cdp_calls: list[tuple[str, dict[str, Any]]] = []
		self.cdp_results: dict[str, dict[str, Any]] = {}
		self.url = 'about:blank'
		self.quit_called = False
		self.switch_to = _FakeSwitchTo(self)

	@property
	def title(self) -> str:
		return 'Fake'

	@property
	def current_url(self) -> str:
		return self.url

	def get(self, url: str) -> None:
		self.url = url

	def get_screenshot_as_base64(self) -> str:
		return 'base64-screenshot'

	def execute_script(self, expression: str, *args: Any) -> Any:
		self.scripts.append((expression, args, self.current_frame))
		for marker, result in self.script_results.items():
			if marker in expression:
				return result
		return None

	def execute_cdp_cmd(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
		self.cdp_calls.append((method, params))
		return self.cdp_results.get(method, {})

	def quit(self) -> None:
		self.quit_called = True


class _NonChromiumWebDriver:
	def execute_script(self, expression: str, *args: Any) -> Any:
		return None


class _RecordingActionChains:
	instances: list[_RecordingActionChains] = []

	def __init__(self, driver: Any) -> None:
		self.driver = driver
		self.steps: list[tuple[str, Any]] = []
		self.performed = False
		_RecordingActionChains.instances.append(self)

	def key_down(self, value: Any) -> _RecordingActionChains:
		self.steps.append(('key_down', value))
		return self

	def key_up(self, value: Any) -> _RecordingActionChains:
		self.steps.append(('key_up', value))
		return self

	def send_keys(self, *keys: Any) -> _RecordingActionChains:
		self.steps.append(('send_keys', keys))
		return self

	def move_to_element(self, element: Any) -> _RecordingActionChains:
		self.steps.append(('move_to_element', element))
		return self

	def perform(self) -> None:
		self.performed = True


class _RecordingPointer:
	def __init__(self) -> None:
		self.steps: list[tuple[Any, ...]] = []

	def move_to_location(self, x: int, y: int) -> None:
		self.steps.append(('move_to_location', x, y))

	def click(self) -> None:
		self.steps.append(('click',))


class _RecordingActionBuilder:
	instances: list[_RecordingActionBuilder] = []

	def __init__(self, driver: Any) -> None:
		self.driver = driver
		self.pointer_action = _RecordingPointer()
		self.performed = False
		_RecordingActionBuilder.instances.append(self)

	def perform(self) -> None:
		self.performed = True


@pytest.fixture
def started_driver(monkeypatch: pytest.MonkeyPatch) -> tuple[AutoflowDriver, _FakeWebDriver]:
	fake = _FakeWebDriver()
	driver = AutoflowDriver.attach(fake)

	async def fake_run_sync(operation, timeout: float | None = None):  # type: ignore[no-untyped-def]
		del timeout
		return operation()

	monkeypatch.setattr(driver, '_run_sync', fake_run_sync)
	return driver, fake


@pytest.fixture
def recorded_actions(monkeypatch: pytest.MonkeyPatch) -> None:
	_RecordingActionChains.instances.clear()
	_RecordingActionBuilder.instances.clear()
	monkeypatch.setattr(selenium.webdriver, 'ActionChains', _RecordingActionChains)
	monkeypatch.setattr(action_builder_module, 'ActionBuilder', _RecordingActionBuilder)


@pytest.mark.asyncio
async def test_driver_requires_start_before_use() -> None:
	driver = AutoflowDriver()
	with pytest.raises(DriverNotStartedError):
		await driver.capture_screenshot()


def test_parse_key_token_maps_known_aliases_and_passthrough() -> None:
	driver = AutoflowDriver()
	assert driver._parse_key_token('Enter') == Keys.ENTER
	assert driver._parse_key_token('Backspace') == Keys.BACKSPACE
	assert driver._parse_key_token('Meta') == Keys.COMMAND
	assert driver._parse_key_token('Control') == Keys.CONTROL
	assert driver._parse_key_token('ArrowDown') == Keys.ARROW_DOWN
	assert driver._parse_key_token('A') == 'A'
	assert driver._parse_key_token('F13') == 'F13'


def test_select_all_chord_uses_platform_modifier(monkeypatch: pytest.MonkeyPatch) -> None:
	monkeypatch.setattr('autoflow.driver.sys.platform', 'darwin')
	assert select_all_chord() == 'Meta+A'
	monkeypatch.setattr('autoflow.driver.sys.platform', 'linux')
	assert select_all_chord() == 'Control+A'


@pytest.mark.asyncio
async def test_attached_driver_is_not_quit_on_close(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	await driver.close()
	assert fake.quit_called is False
	assert driver.is_started is False


@pytest.mark.asyncio
async def test_owned_driver_is_quit_on_close(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	driver._owns_driver = True
	await driver.close()
	await driver.close()
	assert fake.quit_called is True


@pytest.mark.asyncio
async def test_start_is_idempotent_when_driver_already_running(monkeypatch: pytest.MonkeyPatch) -> None:
	driver = AutoflowDriver()
	run_sync_calls = 0
	fake_driver = object()

	async def fake_run_sync(operation, timeout: float | None = None):  # type: ignore[no-untyped-def]
		del operation, timeout
		nonlocal run_sync_calls
		run_sync_calls += 1
		return fake_driver

	monkeypatch.setattr(driver, '_run_sync', fake_run_sync)
	await driver.start()
	assert driver.is_started is True
	assert run_sync_calls == 1

	await driver.start()
	assert run_sync_calls == 1


@pytest.mark.asyncio
async def test_is_alive_reflects_driver_state(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, _ = started_driver
	assert await driver.is_alive() is True
	await driver.close()
	assert await driver.is_alive() is False


@pytest.mark.asyncio
async def test_navigate_returns_final_url(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	assert await driver.navigate('https://example.com/') == 'https://example.com/'
	assert fake.url == 'https://example.com/'


@pytest.mark.asyncio
async def test_viewport_metadata_is_coerced_to_floats(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	fake.script_results['devicePixelRatio'] = {'viewportWidth': 1280, 'viewportHeight': 720, 'pixelRatio': None}
	assert await driver.get_viewport_metadata() == {'viewportWidth': 1280.0, 'viewportHeight': 720.0, 'pixelRatio': 1.0}


@pytest.mark.asyncio
async def test_devtools_calls_use_cdp_methods(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	fake.cdp_results['DOM.getContentQuads'] = {'quads': [[10, 20, 110, 20, 110, 60, 10, 60]]}
	fake.cdp_results['DOM.resolveNode'] = {'object': {'objectId': 'obj-7'}}
	fake.cdp_results['Runtime.callFunctionOn'] = {'result': {'value': 3}}

	await driver.capture_dom_snapshot()
	await driver.get_layout_metrics()
	quads = await driver.get_content_quads_for_node(7)
	object_id = await driver.resolve_node_from_backend_id(7)
	value = await driver.call_function_on(object_id, 'function() { return 3; }')

	assert quads == [[10.0, 20.0, 110.0, 20.0, 110.0, 60.0, 10.0, 60.0]]
	assert object_id == 'obj-7'
	assert value == 3
	assert [method for method, _ in fake.cdp_calls] == [
		'DOMSnapshot.captureSnapshot',
		'Page.getLayoutMetrics',
		'DOM.getContentQuads',
		'DOM.resolveNode',
		'Runtime.callFunctionOn',
	]
	assert fake.cdp_calls[0][1]['includeDOMRects'] is True
	assert fake.cdp_calls[4][1] == {'functionDeclaration': 'function() { return 3; }', 'objectId': 'obj-7', 'returnByValue': True}


@pytest.mark.asyncio
async def test_call_function_on_raises_on_javascript_exception(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
) -> None:
	driver, fake = started_driver
	fake.cdp_results['Runtime.callFunctionOn'] = {'exceptionDetails': {'text': 'Uncaught TypeError'}}
	with pytest.raises(RuntimeError, match='Uncaught TypeError'):
		await driver.call_function_on('obj-1', 'function() { null.x; }')


@pytest.mark.asyncio
async def test_devtools_calls_reject_non_chromium_drivers(monkeypatch: pytest.MonkeyPatch) -> None:
	driver = AutoflowDriver.attach(_NonChromiumWebDriver())

	async def fake_run_sync(operation, timeout: float | None = None):  # type: ignore[no-untyped-def]
		del timeout
		return operation()

	monkeypatch.setattr(driver, '_run_sync', fake_run_sync)
	with pytest.raises(UnsupportedBrowserError, match='only be run against Chromium browsers'):
		await driver.capture_dom_snapshot()


@pytest.mark.asyncio
async def test_frame_context_switches_into_frame_chain_and_back(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
) -> None:
	driver, fake = started_driver
	fake.script_results['elementFromPoint'] = 'inner-element'
	context = FrameContext(driver, ('outer', 'inner'))

	element = await context.element_at_point(5, 6)

	assert isinstance(element, DriverElement)
	assert element.frame_path == ('outer', 'inner')
	assert fake.switches == ['default', 'frame:outer', 'frame:inner', 'default']
	assert fake.scripts[-1][1:] == ((5, 6), 'inner')


@pytest.mark.asyncio
async def test_top_level_context_does_not_switch_frames(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	fake.script_results['elementFromPoint'] = None
	assert await driver.page_context().element_at_point(1, 1) is None
	assert fake.switches == []


@pytest.mark.asyncio
async def test_frame_and_shadow_contexts_extend_from_element(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
) -> None:
	driver, fake = started_driver
	fake.script_results['contentWindow'] = True
	fake.script_results['return !!arguments[0].shadowRoot'] = True
	fake.script_results['getBoundingClientRect'] = [100, 50.5]
	context = driver.page_context()
	element = DriverElement(driver, 'frame-element')

	frame = await context.frame_context_of(element)
	shadow = await context.shadow_context_of(element)

	assert isinstance(frame, FrameContext)
	assert frame.frame_path == ('frame-element',)
	assert isinstance(shadow, ShadowRootContext)
	assert shadow.frame_path == ()
	assert await context.bounding_origin_of(element) == (100.0, 50.5)


@pytest.mark.asyncio
async def test_shadow_context_queries_the_host_shadow_root(started_driver: tuple[AutoflowDriver, _FakeWebDriver]) -> None:
	driver, fake = started_driver
	fake.script_results['shadowRoot;\nif'] = 'shadow-child'
	host = DriverElement(driver, 'host-element')
	shadow = ShadowRootContext(driver, host)

	element = await shadow.element_at_point(10, 20)

	assert element is not None
	assert element.web_element == 'shadow-child'
	assert fake.scripts[-1][1] == ('host-element', 10, 20)


@pytest.mark.asyncio
async def test_press_key_holds_modifiers_around_lowercased_key(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
	recorded_actions: None,
) -> None:
	driver, _ = started_driver
	await driver.press_key('Control+A')

	chain = _RecordingActionChains.instances[-1]
	assert chain.steps == [('key_down', Keys.CONTROL), ('send_keys', ('a',)), ('key_up', Keys.CONTROL)]
	assert chain.performed is True


@pytest.mark.asyncio
async def test_press_key_sends_named_key(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
	recorded_actions: None,
) -> None:
	driver, _ = started_driver
	await driver.press_key('Enter')
	assert _RecordingActionChains.instances[-1].steps == [('send_keys', (Keys.ENTER,))]


@pytest.mark.asyncio
async def test_click_at_rounds_viewport_coordinates(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
	recorded_actions: None,
) -> None:
	driver, _ = started_driver
	await driver.click_at(10.4, 20.6)

	builder = _RecordingActionBuilder.instances[-1]
	assert builder.pointer_action.steps == [('move_to_location', 10, 21), ('click',)]
	assert builder.performed is True


@pytest.mark.asyncio
async def test_type_text_sends_to_focused_element(
	started_driver: tuple[AutoflowDriver, _FakeWebDriver],
	recorded_actions: None,
) -> None:
	driver, _ = started_driver
	await driver.type_text('hello')
	assert _RecordingActionChains.instances[-1].steps == [('send_keys', ('hello',))]
