import anyio
import pytest

from botframe.dispatch import (
    FAILURE_TEXT,
    UNAVAILABLE_TEXT,
    DispatchOutcome,
    Dispatcher,
)
from tests.fakes import (
    FakeStore,
    FakeTransport,
    RecordingCommand,
    make_context,
    make_message,
)


def _dispatcher(*commands, store=None, transport=None, **kwargs):
    context = make_context(
        store=store, transport=transport, commands=commands, **kwargs
    )
    return Dispatcher(context), context


@pytest.mark.anyio
async def test_help_executes_without_usage_reply() -> None:
    transport = FakeTransport()
    help_cmd = RecordingCommand("help")
    dispatcher, _ = _dispatcher(help_cmd, transport=transport)

    outcome = await dispatcher.handle(make_message("!help"))

    assert outcome is DispatchOutcome.EXECUTED
    assert len(help_cmd.calls) == 1
    assert transport.send_calls == []


@pytest.mark.anyio
async def test_message_without_prefix_is_ignored() -> None:
    transport = FakeTransport()
    store = FakeStore()
    help_cmd = RecordingCommand("help")
    dispatcher, _ = _dispatcher(help_cmd, transport=transport, store=store)

    outcome = await dispatcher.handle(make_message("help"))

    assert outcome is DispatchOutcome.IGNORED
    assert help_cmd.calls == []
    assert transport.send_calls == []
    assert store.member_loads == []


@pytest.mark.anyio
async def test_bot_author_is_ignored_before_resolution() -> None:
    transport = FakeTransport()
    store = FakeStore()
    ban = RecordingCommand("ban", usage="ban <user> <reason>", min_args=2)
    dispatcher, _ = _dispatcher(ban, transport=transport, store=store)

    outcome = await dispatcher.handle(make_message("!ban", bot=True))

    assert outcome is DispatchOutcome.IGNORED
    assert transport.send_calls == []
    assert store.member_loads == []


@pytest.mark.anyio
async def test_direct_messages_are_ignored() -> None:
    store = FakeStore()
    dispatcher, _ = _dispatcher(RecordingCommand("help"), store=store)

    outcome = await dispatcher.handle(make_message("!help", guild_id=None))

    assert outcome is DispatchOutcome.IGNORED
    assert store.guild_loads == []


@pytest.mark.anyio
async def test_unknown_command_is_silent() -> None:
    transport = FakeTransport()
    dispatcher, _ = _dispatcher(RecordingCommand("help"), transport=transport)

    outcome = await dispatcher.handle(make_message("!nope"))

    assert outcome is DispatchOutcome.UNKNOWN
    assert transport.send_calls == []


@pytest.mark.anyio
async def test_too_few_arguments_sends_usage() -> None:
    transport = FakeTransport()
    ban = RecordingCommand("ban", usage="ban <user> <reason>", min_args=2)
    dispatcher, _ = _dispatcher(ban, transport=transport)

    outcome = await dispatcher.handle(make_message("!ban alice", channel_id=77))

    assert outcome is DispatchOutcome.USAGE
    assert ban.calls == []
    assert transport.send_calls == [
        {"channel_id": 77, "text": "Usage:  `ban <user> <reason>`"}
    ]


@pytest.mark.anyio
async def test_enough_arguments_executes_once_with_remainder() -> None:
    transport = FakeTransport()
    ban = RecordingCommand("ban", aliases=["b"], usage="ban <user> <reason>", min_args=2)
    dispatcher, _ = _dispatcher(ban, transport=transport)

    outcome = await dispatcher.handle(make_message("!b alice spamming links"))

    assert outcome is DispatchOutcome.EXECUTED
    assert len(ban.calls) == 1
    parsed = ban.calls[0]
    assert parsed.command is ban
    assert parsed.name == "b"
    assert parsed.args == ("alice", "spamming", "links")
    assert parsed.args_text == "alice spamming links"
    assert transport.send_calls == []


@pytest.mark.anyio
async def test_guild_prefix_from_store_is_used() -> None:
    store = FakeStore(guilds={10: {"prefix": "?"}})
    help_cmd = RecordingCommand("help")
    dispatcher, _ = _dispatcher(help_cmd, store=store)

    assert await dispatcher.handle(make_message("!help")) is DispatchOutcome.IGNORED
    assert await dispatcher.handle(make_message("?help")) is DispatchOutcome.EXECUTED
    assert help_cmd.calls[0].prefix == "?"


@pytest.mark.anyio
async def test_guild_settings_loaded_once_across_messages() -> None:
    store = FakeStore()
    dispatcher, _ = _dispatcher(RecordingCommand("help"), store=store)

    for author_id in (1, 2, 1):
        await dispatcher.handle(make_message("!help", author_id=author_id))
    await dispatcher.handle(make_message("not a command"))

    assert store.guild_loads == [10]
    assert store.member_loads == [1, 2]


@pytest.mark.anyio
async def test_concurrent_messages_share_guild_load() -> None:
    gate = anyio.Event()
    store = FakeStore(gate=gate)
    help_cmd = RecordingCommand("help")
    dispatcher, _ = _dispatcher(help_cmd, store=store)

    async with anyio.create_task_group() as tg:
        tg.start_soon(dispatcher.handle, make_message("!help", author_id=1))
        tg.start_soon(dispatcher.handle, make_message("!help", author_id=2))
        await anyio.wait_all_tasks_blocked()
        gate.set()

    assert store.guild_loads == [10]
    assert len(help_cmd.calls) == 2


@pytest.mark.anyio
async def test_command_failure_is_reported_and_contained() -> None:
    transport = FakeTransport()
    broken = RecordingCommand("explode", error=RuntimeError("kaboom"))
    dispatcher, _ = _dispatcher(broken, transport=transport)

    outcome = await dispatcher.handle(make_message("!explode"))

    assert outcome is DispatchOutcome.FAILED
    assert transport.texts == [FAILURE_TEXT]
    assert await dispatcher.handle(make_message("!explode")) is DispatchOutcome.FAILED


@pytest.mark.anyio
async def test_guild_settings_failure_is_silent() -> None:
    transport = FakeTransport()
    store = FakeStore(fail_guild=True)
    dispatcher, _ = _dispatcher(RecordingCommand("help"), transport=transport, store=store)

    outcome = await dispatcher.handle(make_message("!help"))

    assert outcome is DispatchOutcome.UNAVAILABLE
    assert transport.send_calls == []


@pytest.mark.anyio
async def test_member_settings_failure_asks_to_retry() -> None:
    transport = FakeTransport()
    store = FakeStore(fail_member=True)
    help_cmd = RecordingCommand("help")
    dispatcher, _ = _dispatcher(help_cmd, transport=transport, store=store)

    outcome = await dispatcher.handle(make_message("!help"))

    assert outcome is DispatchOutcome.UNAVAILABLE
    assert transport.texts == [UNAVAILABLE_TEXT]
    assert help_cmd.calls == []

    store.fail_member = False
    assert await dispatcher.handle(make_message("!help")) is DispatchOutcome.EXECUTED


@pytest.mark.anyio
async def test_command_can_reply_through_input() -> None:
    transport = FakeTransport()

    class Echo(RecordingCommand):
        async def execute(self, input) -> None:
            await input.reply(" ".join(input.args))

    dispatcher, _ = _dispatcher(Echo("echo"), transport=transport)

    await dispatcher.handle(make_message("!echo hi there", channel_id=5))

    assert transport.send_calls == [{"channel_id": 5, "text": "hi there"}]


@pytest.mark.anyio
async def test_apostrophes_and_backslashes_count_as_plain_tokens() -> None:
    transport = FakeTransport()
    kick = RecordingCommand("kick", usage="kick <user> <reason>", min_args=2)
    say = RecordingCommand("say", min_args=1)
    dispatcher, _ = _dispatcher(kick, say, transport=transport)

    assert (
        await dispatcher.handle(make_message("!kick Bob's it's rude"))
        is DispatchOutcome.EXECUTED
    )
    assert kick.calls[0].args == ("Bob's", "it's", "rude")

    await dispatcher.handle(make_message("!say C:\\temp\\new"))
    assert say.calls[0].args == ("C:\\temp\\new",)
    assert transport.send_calls == []
