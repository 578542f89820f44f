import pytest

from smtpdextras.api import (
    DeliveryType,
    EnhancedStatusClass,
    EnhancedStatusCode,
    EnvelopeFlags,
    EvpState,
    MailAddr,
    ProcType,
    SchedFlag,
    SchedulerInfo,
    TableService,
    evpid_to_msgid,
    msgid_to_evpid,
)


def test_evpid_msgid_round_trip():
    for msgid in (1, 0x12345678, 0xFFFFFFFF):
        assert evpid_to_msgid(msgid_to_evpid(msgid)) == msgid


def test_evpid_low_bits_ignored():
    evpid = msgid_to_evpid(0xDEADBEEF) | 0xABCD
    assert evpid_to_msgid(evpid) == 0xDEADBEEF


def test_msgid_to_evpid_low_half_zero():
    assert msgid_to_evpid(0xCAFE) & 0xFFFFFFFF == 0


def test_sched_flags_from_value():
    assert SchedFlag(0x01) is SchedFlag.REMOVE
    combined = SchedFlag(0x30)
    assert combined == SchedFlag.MDA | SchedFlag.MTA
    assert SchedFlag.MDA in combined
    assert SchedFlag.BOUNCE not in combined


def test_delivery_and_proc_from_value():
    info = SchedulerInfo(evpid=msgid_to_evpid(3), type=DeliveryType(1))
    assert info.type is DeliveryType.MTA
    assert DeliveryType(0) is DeliveryType.MDA
    assert DeliveryType(2) is DeliveryType.BOUNCE
    assert ProcType(8) is ProcType.CLIENT


def test_envelope_flags_and_table_service_from_value():
    state = EvpState(evpid=1, flags=EnvelopeFlags(0x90))
    assert state.flags & EnvelopeFlags.HOLD
    assert state.flags & EnvelopeFlags.PENDING
    assert not state.flags & EnvelopeFlags.INFLIGHT
    assert TableService(0x100) is TableService.MAILADDRMAP


def test_enhanced_status_from_value():
    assert EnhancedStatusCode(77) is EnhancedStatusCode.MESSAGE_INTEGRITY_FAILURE
    assert EnhancedStatusClass(5) is EnhancedStatusClass.PERMFAIL


def test_mailaddr_str_and_limits():
    addr = MailAddr("alice", "example.com")
    assert str(addr) == "alice@example.com"
    with pytest.raises(ValueError):
        MailAddr("a" * 256, "example.com")
    with pytest.raises(ValueError):
        MailAddr("alice", "d" * 256)


def test_scheduler_info_defaults():
    info = SchedulerInfo(evpid=msgid_to_evpid(5), type=DeliveryType.MTA)
    assert info.retry == 0
    assert info.nexttry == 0
    assert evpid_to_msgid(info.evpid) == 5


def test_evpstate_fields():
    state = EvpState(evpid=7, flags=EnvelopeFlags.PENDING | EnvelopeFlags.HOLD)
    assert state.flags & EnvelopeFlags.HOLD
    assert state.time == 0