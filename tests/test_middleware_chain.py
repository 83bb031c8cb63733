from jworker.core.middleware import Chain, Entry

CALLS: list[str] = []


def _recorder(label: str) -> type:
    class Recorder:
        def __init__(self, suffix: str = "") -> None:
            self.suffix = suffix

        async def __call__(self, *args):
            *_, call_next = args
            CALLS.append(f"{label}{self.suffix}:before")
            result = await call_next()
            CALLS.append(f"{label}{self.suffix}:after")
            return result

    Recorder.__name__ = label
    return Recorder


A = _recorder("A")
B = _recorder("B")
C = _recorder("C")


def _classes(chain: Chain) -> list[type]:
    return [entry.klass for entry in chain]


def setup_function() -> None:
    CALLS.clear()


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def test_add_appends_in_order():
    chain = Chain()
    chain.add(A)
    chain.add(B)
    assert _classes(chain) == [A, B]
    assert len(chain) == 2


def test_add_existing_moves_to_end():
    chain = Chain()
    chain.add(A)
    chain.add(B)
    chain.add(A)
    assert _classes(chain) == [B, A]


def test_prepend_puts_first():
    chain = Chain()
    chain.add(A)
    chain.prepend(B)
    assert _classes(chain) == [B, A]


def test_prepend_moves_existing_entry_to_front():
    chain = Chain()
    chain.add(A)
    chain.add(B, 1)
    chain.prepend(B, 2)
    assert _classes(chain) == [B, A]
    assert chain.entries[0].args == (2,)


def test_insert_before_and_after():
    chain = Chain()
    chain.add(A)
    chain.add(C)
    chain.insert_before(C, B)
    assert _classes(chain) == [A, B, C]

    chain.insert_after(A, C)
    assert _classes(chain) == [A, C, B]


def test_insert_relative_to_missing_entry():
    chain = Chain()
    chain.add(A)
    chain.insert_before(C, B)
    assert _classes(chain) == [B, A]

    chain = Chain()
    chain.add(A)
    chain.insert_after(C, B)
    assert _classes(chain) == [A, B]


def test_remove_exists_and_contains():
    chain = Chain()
    chain.add(A)
    chain.add(B)
    chain.remove(A)
    assert not chain.exists(A)
    assert B in chain
    chain.remove(C)
    assert _classes(chain) == [B]


def test_clear():
    chain = Chain()
    chain.add(A)
    chain.clear()
    assert len(chain) == 0


def test_copy_is_independent():
    chain = Chain()
    chain.add(A)
    copy = chain.copy()
    copy.add(B)
    assert _classes(chain) == [A]
    assert _classes(copy) == [A, B]


def test_retrieve_builds_fresh_instances_with_args():
    chain = Chain()
    chain.add(A, suffix="1")
    first, second = chain.retrieve()[0], chain.retrieve()[0]
    assert first is not second
    assert first.suffix == "1"


def test_entry_make_new_passes_kwargs():
    entry = Entry(A, (), {"suffix": "x"})
    assert entry.make_new().suffix == "x"


# ---------------------------------------------------------------------------
# Invocation
# ---------------------------------------------------------------------------


async def test_invoke_without_middleware_runs_terminal():
    async def terminal():
        return "done"

    assert await Chain().invoke("worker", {}, "default", terminal=terminal) == "done"


async def test_invoke_nests_in_order():
    chain = Chain()
    chain.add(A)
    chain.add(B)

    async def terminal():
        CALLS.append("terminal")
        return 42

    result = await chain.invoke("worker", {}, "default", terminal=terminal)

    assert result == 42
    assert CALLS == ["A:before", "B:before", "terminal", "B:after", "A:after"]


async def test_invoke_passes_arguments_through():
    seen = []

    class Capture:
        async def __call__(self, worker, job, queue, call_next):
            seen.append((worker, job, queue))
            return await call_next()

    chain = Chain()
    chain.add(Capture)

    async def terminal():
        return None

    await chain.invoke("w", {"jid": "1"}, "low", terminal=terminal)
    assert seen == [("w", {"jid": "1"}, "low")]


async def test_middleware_can_short_circuit():
    class Stop:
        def __call__(self, *args):
            return None

    chain = Chain()
    chain.add(Stop)
    chain.add(A)

    async def terminal():
        CALLS.append("terminal")
        return "job"

    assert await chain.invoke("x", terminal=terminal) is None
    assert CALLS == []


async def test_sync_middleware_returning_call_next_result():
    class SyncPassThrough:
        def __call__(self, *args):
            *_, call_next = args
            return call_next()

    chain = Chain()
    chain.add(SyncPassThrough)

    async def terminal():
        return "ok"

    assert await chain.invoke(terminal=terminal) == "ok"
