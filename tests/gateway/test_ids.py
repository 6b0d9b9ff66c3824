from chatgate.gateway.ids import (
    CounterIdGenerator,
    RandomIdGenerator,
    make_id_generator,
)


def test_counter_ids_are_sequential():
    gen = CounterIdGenerator(start=7)
    assert [gen(), gen(), gen()] == ["chatcmpl-7", "chatcmpl-8", "chatcmpl-9"]


def test_random_ids_are_unique_and_prefixed():
    gen = RandomIdGenerator()
    ids = {gen() for _ in range(200)}
    assert len(ids) == 200
    assert all(i.startswith("chatcmpl-") for i in ids)


def test_make_id_generator():
    assert isinstance(make_id_generator("counter"), CounterIdGenerator)
    assert isinstance(make_id_generator("random"), RandomIdGenerator)
    assert isinstance(make_id_generator("bogus"), RandomIdGenerator)
