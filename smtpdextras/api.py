"""Shared types and constants for queue, scheduler and table backends."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag

FILTER_API_VERSION = 52
PROC_QUEUE_API_VERSION = 2
PROC_SCHEDULER_API_VERSION = 2
PROC_TABLE_API_VERSION = 2

SMTPD_MAXLOCALPARTSIZE = 255 + 1
SMTPD_MAXDOMAINPARTSIZE = 255 + 1

SMTPD_USER = "_smtpd"
SMTPD_QUEUE_USER = "_smtpq"
PATH_CHROOT = "/var/empty"
PATH_SPOOL = "/var/spool/smtpd"

TAG_CHAR = "+"

K_ANY = 0xFFF


class ProcType(IntEnum):
    """Process roles inside the mail daemon."""

    PARENT = 0
    LKA = 1
    QUEUE = 2
    CONTROL = 3
    SCHEDULER = 4
    PONY = 5
    CA = 6
    FILTER = 7
    CLIENT = 8


class FilterStatus(IntEnum):
    """Outcome reported by a filter."""

    OK = 0
    FAIL = 1
    CLOSE = 2


class EnvelopeFlags(IntFlag):
    """Envelope flags; the high nibble is runtime state, never stored."""

    AUTHENTICATED = 0x01
    BOUNCE = 0x02
    INTERNAL = 0x04
    PENDING = 0x10
    INFLIGHT = 0x20
    SUSPEND = 0x40
    HOLD = 0x80


class DeliveryType(IntEnum):
    """How an envelope is to be delivered."""

    MDA = 0
    MTA = 1
    BOUNCE = 2


class SchedFlag(IntFlag):
    """Kinds of work a scheduler batch may hand out."""

    REMOVE = 0x01
    EXPIRE = 0x02
    UPDATE = 0x04
    BOUNCE = 0x08
    MDA = 0x10
    MTA = 0x20


class TableService(IntFlag):
    """Lookup services a table may provide."""

    NONE = 0x000
    ALIAS = 0x001
    DOMAIN = 0x002
    CREDENTIALS = 0x004
    NETADDR = 0x008
    USERINFO = 0x010
    SOURCE = 0x020
    MAILADDR = 0x040
    ADDRNAME = 0x080
    MAILADDRMAP = 0x100


class EnhancedStatusCode(IntEnum):
    """RFC 3463 enhanced status subject/detail codes."""

    OTHER_STATUS = 0

    OTHER_ADDRESS_STATUS = 10
    BAD_DESTINATION_MAILBOX_ADDRESS = 11
    BAD_DESTINATION_SYSTEM_ADDRESS = 12
    BAD_DESTINATION_MAILBOX_ADDRESS_SYNTAX = 13
    DESTINATION_MAILBOX_ADDRESS_AMBIGUOUS = 14
    DESTINATION_ADDRESS_VALID = 15
    DESTINATION_MAILBOX_HAS_MOVED = 16
    BAD_SENDER_MAILBOX_ADDRESS_SYNTAX = 17
    BAD_SENDER_SYSTEM_ADDRESS = 18

    OTHER_MAILBOX_STATUS = 20
    MAILBOX_DISABLED = 21
    MAILBOX_FULL = 22
    MESSAGE_LENGTH_TOO_LARGE = 23
    MAILING_LIST_EXPANSION_PROBLEM = 24

    OTHER_MAIL_SYSTEM_STATUS = 30
    MAIL_SYSTEM_FULL = 31
    SYSTEM_NOT_ACCEPTING_MESSAGES = 32
    SYSTEM_NOT_CAPABLE_OF_SELECTED_FEATURES = 33
    MESSAGE_TOO_BIG_FOR_SYSTEM = 34
    SYSTEM_INCORRECTLY_CONFIGURED = 35

    OTHER_NETWORK_ROUTING_STATUS = 40
    NO_ANSWER_FROM_HOST = 41
    BAD_CONNECTION = 42
    DIRECTORY_SERVER_FAILURE = 43
    UNABLE_TO_ROUTE = 44
    MAIL_SYSTEM_CONGESTION = 45
    ROUTING_LOOP_DETECTED = 46
    DELIVERY_TIME_EXPIRED = 47

    INVALID_RECIPIENT = 50
    INVALID_COMMAND = 51
    SYNTAX_ERROR = 52
    TOO_MANY_RECIPIENTS = 53
    INVALID_COMMAND_ARGUMENTS = 54
    WRONG_PROTOCOL_VERSION = 55

    OTHER_MEDIA_ERROR = 60
    MEDIA_NOT_SUPPORTED = 61
    CONVERSION_REQUIRED_AND_PROHIBITED = 62
    CONVERSION_REQUIRED_BUT_NOT_SUPPORTED = 63
    CONVERSION_WITH_LOSS_PERFORMED = 64
    CONVERSION_FAILED = 65

    OTHER_SECURITY_STATUS = 70
    DELIVERY_NOT_AUTHORIZED_MESSAGE_REFUSED = 71
    MAILING_LIST_EXPANSION_PROHIBITED = 72
    SECURITY_CONVERSION_REQUIRED_NOT_POSSIBLE = 73
    SECURITY_FEATURES_NOT_SUPPORTED = 74
    CRYPTOGRAPHIC_FAILURE = 75
    CRYPTOGRAPHIC_ALGORITHM_NOT_SUPPORTED = 76
    MESSAGE_INTEGRITY_FAILURE = 77


class EnhancedStatusClass(IntEnum):
    """RFC 3463 status class."""

    OK = 2
    TEMPFAIL = 4
    PERMFAIL = 5


@dataclass(frozen=True)
class MailAddr:
    """A mail address split into local part and domain."""

    user: str
    domain: str

    def __post_init__(self) -> None:
        if len(self.user) >= SMTPD_MAXLOCALPARTSIZE:
            raise ValueError("local part too long")
        if len(self.domain) >= SMTPD_MAXDOMAINPARTSIZE:
            raise ValueError("domain part too long")

    def __str__(self) -> str:
        return f"{self.user}@{self.domain}"


@dataclass
class SchedulerInfo:
    """What a scheduler is told about an envelope."""

    evpid: int
    type: DeliveryType
    retry: int = 0
    creation: int = 0
    expire: int = 0
    lasttry: int = 0
    lastbounce: int = 0
    nexttry: int = 0


@dataclass
class EvpState:
    """State of an envelope as reported by a scheduler."""

    evpid: int
    flags: int = 0
    retry: int = 0
    time: int = 0


def evpid_to_msgid(evpid: int) -> int:
    """Return the message id held in the high 32 bits of an envelope id."""
    return (evpid >> 32) & 0xFFFFFFFF


def msgid_to_evpid(msgid: int) -> int:
    """Return the envelope id whose high 32 bits are the message id."""
    return (msgid & 0xFFFFFFFF) << 32