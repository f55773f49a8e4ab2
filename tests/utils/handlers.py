"""Handlers referenced by import path from task files in the tests."""

CALLS: list[str] = []


def ping():
    CALLS.append("ping")
    return "pong"


async def async_ping():
    CALLS.append("async_ping")
    return "pong"


class Nightly:
    def run(self):
        CALLS.append("nightly")
        return "done"


class NoRun:
    pass


NOT_CALLABLE = 42


class namespace:
    @staticmethod
    def nested():
        return "nested"
