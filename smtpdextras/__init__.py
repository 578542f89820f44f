"""Queue and scheduler backends for an SMTP daemon: stub, null, in-memory and callback-driven."""

__version__ = "5.7.2"

__all__ = [
    "api",
    "tree",
    "util",
    "queues",
    "queue_python",
    "schedulers",
    "scheduler_python",
    "rqueue",
    "scheduler_ram",
]