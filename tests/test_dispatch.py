import pytest

from fakes import FakeClient, group, members
from notifier.dispatch.broadcast import GroupBroadcast
from notifier.dispatch.direct import DirectFanout
from notifier.models import MENTION_MODES, Conversation
from notifier.participants import ParticipantProvider


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _broadcast(client: FakeClient, sleep: RecordingSleep, chunk_size: int = 50) -> GroupBroadcast:
    return GroupBroadcast(
        client,
        ParticipantProvider(client),
        chunk_size=chunk_size,
        batch_delay_seconds=2.0,
        sleep=sleep,
    )


class TestGroupBroadcast:
    @pytest.mark.asyncio
    async def test_120_members_send_three_batches_then_summary(self):
        target = group(count=120)
        client = FakeClient([target])
        sleep = RecordingSleep()

        report = await _broadcast(client, sleep).deliver(target, "Standup now")

        assert [len(m.mentions) for m in client.sent[:3]] == [50, 50, 20]
        assert [m for s in client.sent[:3] for m in s.mentions] == list(members(120))
        assert len(client.sent) == 4
        assert client.sent[3].mentions is None
        assert "Batch 1/3" in client.sent[0].text
        assert "Batch 3/3" in client.sent[2].text
        assert sleep.calls == [2.0, 2.0]
        assert (report.success_count, report.fail_count) == (120, 0)

    @pytest.mark.asyncio
    async def test_single_batch_has_no_batch_annotation(self):
        target = group(count=3)
        client = FakeClient([target])

        await _broadcast(client, RecordingSleep()).deliver(target, "Standup now")

        first = client.sent[0].text
        assert first.startswith("Standup now\n\n@")
        assert "Batch" not in first
        assert first.split("\n\n")[1] == "@62811000000 @62811000001 @62811000002"

    @pytest.mark.asyncio
    async def test_failed_batch_does_not_block_later_batches(self):
        target = group(count=5)
        client = FakeClient([target])
        client.fail_texts.add("Batch 1/3")

        report = await _broadcast(client, RecordingSleep(), chunk_size=2).deliver(target, "hi")

        assert [s.mentions for s in client.sent[:2]] == [list(members(5)[2:4]), list(members(5)[4:])]
        assert (report.success_count, report.fail_count) == (3, 2)
        assert "2 failed" in client.sent[-1].text

    @pytest.mark.asyncio
    async def test_empty_roster_is_skipped(self):
        target = Conversation(id="g1", name="x", is_group=True, members=())
        client = FakeClient([target])

        report = await _broadcast(client, RecordingSleep()).deliver(target, "hi")

        assert report.skipped_reason == "empty roster"
        assert client.sent == []


class TestDirectFanout:
    @pytest.mark.asyncio
    async def test_sends_dm_per_member_spaced_then_summary(self):
        target = group(count=3)
        client = FakeClient([target])
        fanout = DirectFanout(client, ParticipantProvider(client), spacing_seconds=0.4)

        report = await fanout.deliver(target, "Standup now")

        dms = client.sent[:3]
        assert [d.target_id for d in dms] == list(members(3))
        assert all(not d.is_group for d in dms)
        gaps = [b.at - a.at for a, b in zip(dms, dms[1:])]
        assert all(gap >= 0.399 for gap in gaps)
        summary = client.sent[3]
        assert summary.target_id == "g1"
        assert summary.mentions is None
        assert "3 members" in summary.text
        assert (report.success_count, report.fail_count) == (3, 0)

    @pytest.mark.asyncio
    async def test_one_failure_does_not_affect_others(self):
        target = group(count=3)
        client = FakeClient([target])
        client.fail_targets.add(members(3)[1])
        fanout = DirectFanout(client, ParticipantProvider(client), spacing_seconds=0)

        report = await fanout.deliver(target, "hi")

        assert [d.target_id for d in client.sent[:2]] == [members(3)[0], members(3)[2]]
        assert (report.success_count, report.fail_count) == (2, 1)
        assert report.failures == [members(3)[1]]
        assert "1 failed" in client.sent[-1].text

    @pytest.mark.asyncio
    async def test_summary_sent_after_all_dms(self):
        target = group(count=4)
        client = FakeClient([target])
        fanout = DirectFanout(client, ParticipantProvider(client), spacing_seconds=0.01)

        await fanout.deliver(target, "hi")

        assert [s.target_id for s in client.sent] == [*members(4), "g1"]

    @pytest.mark.asyncio
    async def test_empty_roster_is_skipped(self):
        target = Conversation(id="g1", name="x", is_group=True, members=())
        client = FakeClient([target])
        fanout = DirectFanout(client, ParticipantProvider(client), spacing_seconds=0)

        report = await fanout.deliver(target, "hi")

        assert report.skipped
        assert client.sent == []


def test_strategies_are_keyed_by_mention_mode():
    assert {GroupBroadcast.mode, DirectFanout.mode} == set(MENTION_MODES)
