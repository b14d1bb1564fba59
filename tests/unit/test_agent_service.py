import asyncio
import io
import logging
import time

import pytest

from darwin_sdk.agent.overlays import OverlaySet
from darwin_sdk.agent.prompts import FORCE_THINK_INSTRUCTION
from darwin_sdk.agent.reasoning import DEFAULT_SUCCESS_MESSAGE
from darwin_sdk.agent.service import AgentLifecycle, BrowserAgent, format_tool_args
from darwin_sdk.agent.views import TaskConfig
from darwin_sdk.concurrency import drain_pending
from darwin_sdk.exceptions import AgentConfigurationError, AgentNotInitializedError
from fakes import ExplodingOverlay, FakeCapabilityFactory, FakePage, ScriptedRun, think_call, two_step_script


def _agent(config, factory, **kwargs):
    return BrowserAgent(config, factory, output=io.StringIO(), **kwargs)


@pytest.mark.asyncio
async def test_two_step_run_records_thoughts_and_one_action(task_config, factory, events):
    agent = _agent(task_config, factory)
    await agent.init()
    outcome = await agent.execute()

    assert [(t.step, t.text, t.source) for t in outcome.thoughts] == [
        (1, 'Scanning header', 'step_finish'),
        (2, 'Clicked menu', 'step_finish'),
    ]
    actions = [payload for kind, payload in events if kind == 'action']
    assert actions == [{'tool_name': 'click', 'args': {'x': 10, 'y': 20}}]
    assert ('status', 'running') in events
    assert [p for k, p in events if k == 'think'] == ['Scanning header', 'Clicked menu']
    assert outcome.steps == 2
    assert outcome.result.success is True
    assert outcome.result.message == 'Done'
    assert agent.state is AgentLifecycle.COMPLETED
    assert [r.step_number for r in agent.get_logs()] == [1, 2]


@pytest.mark.asyncio
async def test_engine_is_driven_with_task_instruction(task_config, factory):
    agent = _agent(task_config, factory)
    await agent.init()
    await agent.execute()

    capability = factory.capability
    assert capability.page.visited == ['https://shop.example.com']
    assert capability.agent_kwargs['mode'] == 'hybrid'
    assert capability.agent_kwargs['stream'] is True
    assert capability.agent_kwargs['model'] == task_config.model
    assert capability.engine_agent.instruction == 'Find the pricing page\n\nWebsite: https://shop.example.com'
    assert capability.engine_agent.max_steps == 5
    published = [args for script, args in capability.page.evaluations if 'darwin_task_id' in script]
    assert published == [(agent.task_id,)]


@pytest.mark.asyncio
async def test_step_after_mixed_tool_calls_gets_forcing_instruction(task_config):
    script = two_step_script()
    script.steps.append({'stepNumber': 3, 'toolCalls': [think_call({'thought': 'Reading prices'})]})
    factory = FakeCapabilityFactory(script)
    agent = _agent(task_config, factory)
    await agent.init()
    await agent.execute()

    contexts = factory.capability.engine_agent.contexts
    forced = [any(m['content'] == FORCE_THINK_INSTRUCTION for m in ctx['messages']) for ctx in contexts]
    # step 2 follows a pure think step, step 3 follows think + click
    assert forced == [False, False, True]


@pytest.mark.asyncio
async def test_stream_thoughts_merge_with_step_thoughts(task_config):
    script = two_step_script(
        events=[
            {'type': 'tool-call', 'toolName': 'think', 'args': {'thought': 'Scanning header'}},
            {'type': 'tool-call', 'toolName': 'think', 'args': {'thought': 'Pricing link spotted'}},
        ],
        text=['Working', ' on it'],
    )
    factory = FakeCapabilityFactory(script)
    output = io.StringIO()
    agent = BrowserAgent(task_config, factory, output=output)
    await agent.init()
    outcome = await agent.execute()

    assert [(t.text, t.source) for t in outcome.thoughts] == [
        ('Scanning header', 'step_finish'),
        ('Clicked menu', 'step_finish'),
        ('Pricing link spotted', 'stream'),
    ]
    assert output.getvalue() == 'Working on it'


@pytest.mark.asyncio
async def test_action_reported_on_both_channels_is_emitted_once(task_config, events):
    script = two_step_script(
        events=[
            {'type': 'tool-call', 'toolName': 'think', 'args': {'thought': 'Scanning header'}},
            {'type': 'tool-call', 'toolName': 'click', 'args': {'x': 10, 'y': 20}},
            {'type': 'tool-call', 'toolName': 'think', 'args': {'text': '{"reasoning": Clicked menu}'}},
        ],
    )
    agent = _agent(task_config, FakeCapabilityFactory(script))
    await agent.init()
    outcome = await agent.execute()

    assert [(t.text, t.source) for t in outcome.thoughts] == [
        ('Scanning header', 'step_finish'),
        ('Clicked menu', 'step_finish'),
    ]
    assert [p for k, p in events if k == 'action'] == [{'tool_name': 'click', 'args': {'x': 10, 'y': 20}}]


@pytest.mark.asyncio
async def test_repeated_action_with_call_ids_is_emitted_per_call(task_config, events):
    click = {'x': 10, 'y': 20}
    script = ScriptedRun(
        steps=[
            {'stepNumber': 1, 'toolCalls': [{'toolName': 'click', 'toolCallId': 'call-1', 'args': click}]},
            {'stepNumber': 2, 'toolCalls': [{'toolName': 'click', 'toolCallId': 'call-2', 'args': click}]},
        ],
        events=[
            {'type': 'tool-call', 'toolName': 'click', 'toolCallId': 'call-1', 'args': click},
            {'type': 'tool-call', 'toolName': 'click', 'toolCallId': 'call-2', 'args': click},
        ],
    )
    agent = _agent(task_config, FakeCapabilityFactory(script))
    await agent.init()
    await agent.execute()

    assert [p for k, p in events if k == 'action'] == [{'tool_name': 'click', 'args': click}] * 2


@pytest.mark.asyncio
async def test_result_message_is_sanitized_and_close_reasoning_recorded(task_config):
    script = two_step_script(
        result={
            'success': True,
            'message': '\x07<ctrl07>',
            'actions': [{'type': 'click'}, {'type': 'close', 'reasoning': '{"reasoning": "Pricing page reached"}'}],
        }
    )
    agent = _agent(task_config, FakeCapabilityFactory(script))
    await agent.init()
    outcome = await agent.execute()

    assert outcome.result.message == DEFAULT_SUCCESS_MESSAGE
    last = outcome.thoughts[-1]
    assert (last.text, last.source) == ('Pricing page reached', 'final_reasoning')


@pytest.mark.asyncio
async def test_execute_before_init_is_rejected(task_config, factory):
    agent = _agent(task_config, factory)
    with pytest.raises(AgentNotInitializedError):
        await agent.execute()


@pytest.mark.asyncio
async def test_remote_env_requires_credentials(monkeypatch, factory):
    monkeypatch.delenv('BROWSERBASE_API_KEY', raising=False)
    monkeypatch.delenv('BROWSERBASE_PROJECT_ID', raising=False)
    config = TaskConfig(website='https://a.example', task='t', env='BROWSERBASE', api_key='key-only')

    agent = _agent(config, factory)
    with pytest.raises(AgentConfigurationError):
        await agent.init()
    assert factory.created == []


@pytest.mark.asyncio
async def test_remote_env_reads_credentials_from_environment(monkeypatch, factory):
    monkeypatch.setenv('BROWSERBASE_API_KEY', 'bb-key')
    monkeypatch.setenv('BROWSERBASE_PROJECT_ID', 'bb-project')
    config = TaskConfig(website='https://a.example', task='t', env='BROWSERBASE')

    agent = _agent(config, factory)
    await agent.init()
    options = factory.capability.options
    assert (options.env, options.api_key, options.project_id) == ('BROWSERBASE', 'bb-key', 'bb-project')
    assert factory.capability.initialized


@pytest.mark.asyncio
async def test_engine_failure_moves_to_error_and_reraises(task_config, events):
    factory = FakeCapabilityFactory(ScriptedRun(error=RuntimeError("engine crashed")))
    agent = _agent(task_config, factory)
    await agent.init()

    with pytest.raises(RuntimeError, match="engine crashed"):
        await agent.execute()
    assert agent.state is AgentLifecycle.ERROR
    assert ('error', 'engine crashed') in events


@pytest.mark.asyncio
async def test_failing_overlays_do_not_change_thoughts(task_config):
    baseline_agent = _agent(task_config, FakeCapabilityFactory(two_step_script()))
    await baseline_agent.init()
    baseline = await baseline_agent.execute()

    broken = ExplodingOverlay()
    agent = _agent(
        task_config,
        FakeCapabilityFactory(two_step_script()),
        overlays=OverlaySet(timer=broken, analytics=broken, reasoning=broken),
    )
    await agent.init()
    outcome = await agent.execute()
    await agent.close()

    assert [t.text for t in outcome.thoughts] == [t.text for t in baseline.thoughts]
    assert {'inject', 'stop', 'update', 'remove'} <= set(broken.calls)


@pytest.mark.asyncio
async def test_close_never_raises_and_releases_engine_once(task_config):
    factory = FakeCapabilityFactory(two_step_script(), page=FakePage(), close_error=RuntimeError("already gone"))
    agent = _agent(task_config, factory)
    await agent.init()
    await agent.execute()
    factory.capability.page.evaluate_error = RuntimeError("page crashed")

    await agent.close()
    await agent.close()

    capability = factory.capability
    assert capability.close_calls == 1
    # the session_ended telemetry is attempted on every close
    assert len(capability.page.telemetry_calls) == 2


@pytest.mark.asyncio
async def test_close_reports_overlay_updates_still_running(caplog, task_config):
    gate = asyncio.Event()

    class SlowReasoningOverlay:
        async def inject(self, page, options=None):
            pass

        async def update(self, page, text):
            if text:
                await gate.wait()

        async def remove(self, page):
            pass

    agent = _agent(
        task_config,
        FakeCapabilityFactory(two_step_script()),
        overlays=OverlaySet(reasoning=SlowReasoningOverlay()),
    )
    caplog.set_level(logging.DEBUG, logger='darwin_sdk.agent.service')
    await agent.init()
    await agent.execute()
    await agent.close()
    gate.set()
    await drain_pending(timeout=1.0)

    assert any('overlay update(s) still running at close' in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_close_telemetry_is_bounded(monkeypatch, task_config):
    monkeypatch.setenv('DARWIN_CLOSE_TELEMETRY_TIMEOUT_SECONDS', '0.05')
    factory = FakeCapabilityFactory(two_step_script(), page=FakePage(telemetry_delay=5.0))
    agent = _agent(task_config, factory)
    await agent.init()
    await agent.execute()

    started = time.monotonic()
    await asyncio.wait_for(agent.close(), timeout=2.0)
    assert time.monotonic() - started < 2.0
    assert factory.capability.close_calls == 1


@pytest.mark.asyncio
async def test_close_without_init_is_a_no_op(task_config, factory):
    agent = _agent(task_config, factory)
    await agent.close()
    assert factory.created == []


def test_tool_args_formatting():
    assert format_tool_args({'x': 1, 'y': 2}, 'click') == 'at (1, 2)'
    assert format_tool_args({'text': 'hello'}, 'type') == '"hello"'
    assert format_tool_args({'url': 'https://a.example'}, 'goto') == 'https://a.example'
    assert format_tool_args({'a': 1, 'b': 2, 'c': 3}, 'act') == '3 parameters'
    assert format_tool_args({}, 'act') == ''
