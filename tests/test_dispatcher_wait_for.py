import pytest

from fluxdispatch.core.errors import (
    AlreadyDispatchingError,
    CircularDependencyError,
    DispatcherError,
    InvalidTokenError,
    NotDispatchingError,
)


def test_wait_for_runs_dependency_first(dispatcher):
    order = []
    tokens = {}

    def b(p):
        order.append("b:start")
        dispatcher.wait_for([tokens["a"]])
        order.append("b:after-wait")

    tokens["b"] = dispatcher.register(b)          # registered before a
    tokens["a"] = dispatcher.register(lambda p: order.append("a"))

    dispatcher.dispatch({})

    assert order == ["b:start", "a", "b:after-wait"]


def test_wait_for_on_already_handled_is_noop(dispatcher):
    order = []
    ta = dispatcher.register(lambda p: order.append("a"))

    def b(p):
        dispatcher.wait_for([ta])
        order.append("b")

    dispatcher.register(b)
    dispatcher.dispatch({})

    assert order == ["a", "b"]


def test_shared_dependency_runs_once(dispatcher):
    runs = []
    tokens = {}

    def waiter(name):
        def cb(p):
            dispatcher.wait_for([tokens["a"]])
            runs.append(name)
        return cb

    dispatcher.register(waiter("b"))
    dispatcher.register(waiter("c"))
    tokens["a"] = dispatcher.register(lambda p: runs.append("a"))

    dispatcher.dispatch({})

    assert runs == ["a", "b", "c"]
    assert runs.count("a") == 1


def test_wait_for_is_depth_first_left_to_right(dispatcher):
    order = []
    t = {}

    def a(p):
        dispatcher.wait_for([t["c"]])
        order.append("a")

    def main(p):
        dispatcher.wait_for([t["a"], t["b"]])
        order.append("main")

    t["main"] = dispatcher.register(main)
    t["a"] = dispatcher.register(a)
    t["b"] = dispatcher.register(lambda p: order.append("b"))
    t["c"] = dispatcher.register(lambda p: order.append("c"))

    dispatcher.dispatch({})

    assert order == ["c", "a", "b", "main"]


def test_wait_for_accepts_single_token(dispatcher):
    order = []
    t = {}

    def b(p):
        dispatcher.wait_for(t["a"])
        order.append("b")

    dispatcher.register(b)
    t["a"] = dispatcher.register(lambda p: order.append("a"))
    dispatcher.dispatch({})

    assert order == ["a", "b"]


def test_circular_dependency_aborts_dispatch(dispatcher):
    ran = []
    t = {}

    def a(p):
        ran.append("a")
        dispatcher.wait_for([t["b"]])

    def b(p):
        ran.append("b")
        dispatcher.wait_for([t["a"]])

    t["a"] = dispatcher.register(a)
    t["b"] = dispatcher.register(b)
    dispatcher.register(lambda p: ran.append("c"))

    with pytest.raises(CircularDependencyError) as exc:
        dispatcher.dispatch({})

    assert exc.value.token == t["a"]
    assert ran == ["a", "b"]


def test_waiting_for_self_is_circular(dispatcher):
    t = {}
    t["a"] = dispatcher.register(lambda p: dispatcher.wait_for([t["a"]]))

    with pytest.raises(CircularDependencyError):
        dispatcher.dispatch({})


def test_wait_for_unknown_token(dispatcher):
    dispatcher.register(lambda p: dispatcher.wait_for(["ID_999"]))

    with pytest.raises(InvalidTokenError) as exc:
        dispatcher.dispatch({})
    assert exc.value.token == "ID_999"


def test_wait_for_outside_dispatch(dispatcher):
    token = dispatcher.register(lambda p: None)
    with pytest.raises(NotDispatchingError):
        dispatcher.wait_for([token])


def test_nested_dispatch_is_rejected(dispatcher):
    ran = []

    def reentrant(p):
        ran.append("reentrant")
        dispatcher.dispatch({"nested": True})

    dispatcher.register(reentrant)
    dispatcher.register(lambda p: ran.append("after"))

    with pytest.raises(AlreadyDispatchingError):
        dispatcher.dispatch({})
    assert ran == ["reentrant"]


def test_errors_share_a_base_class():
    for cls in (AlreadyDispatchingError, NotDispatchingError, InvalidTokenError, CircularDependencyError):
        assert issubclass(cls, DispatcherError)
        assert issubclass(cls, RuntimeError)


def test_idle_after_circular_error(dispatcher):
    t = {}
    calls = []
    armed = [True]

    def a(p):
        calls.append(("a", p))
        if armed[0]:
            dispatcher.wait_for([t["a"]])

    t["a"] = dispatcher.register(a)

    with pytest.raises(CircularDependencyError):
        dispatcher.dispatch(1)
    assert not dispatcher.is_dispatching()

    armed[0] = False
    dispatcher.dispatch(2)
    assert calls == [("a", 1), ("a", 2)]


def test_callback_error_propagates_and_stops_remaining(dispatcher):
    ran = []

    def boom(p):
        raise ValueError("bad payload")

    dispatcher.register(lambda p: ran.append("first"))
    dispatcher.register(boom)
    dispatcher.register(lambda p: ran.append("third"))

    with pytest.raises(ValueError, match="bad payload"):
        dispatcher.dispatch({})

    assert ran == ["first"]
    assert not dispatcher.is_dispatching()
    assert dispatcher.payload is None

    # the failing callback runs again next time, nothing stays pending
    with pytest.raises(ValueError):
        dispatcher.dispatch({})
    assert ran == ["first", "first"]


def test_error_in_dependency_surfaces_through_waiter(dispatcher):
    t = {}

    def waiter(p):
        dispatcher.wait_for([t["dep"]])

    def dep(p):
        raise KeyError("missing")

    dispatcher.register(waiter)
    t["dep"] = dispatcher.register(dep)

    with pytest.raises(KeyError):
        dispatcher.dispatch({})
    assert not dispatcher.is_dispatching()


def test_dependency_on_unregistered_mid_session_token(dispatcher):
    t = {}

    def first(p):
        dispatcher.unregister(t["victim"])

    def waiter(p):
        dispatcher.wait_for([t["victim"]])

    t["first"] = dispatcher.register(first)
    t["waiter"] = dispatcher.register(waiter)
    t["victim"] = dispatcher.register(lambda p: None)

    with pytest.raises(InvalidTokenError):
        dispatcher.dispatch({})


def test_country_city_price_chain_registered_in_reverse(dispatcher):
    order = []
    t = {}

    def price(p):
        dispatcher.wait_for([t["city"]])
        order.append("price")

    def city(p):
        dispatcher.wait_for([t["country"]])
        order.append("city")

    t["price"] = dispatcher.register(price)
    t["city"] = dispatcher.register(city)
    t["country"] = dispatcher.register(lambda p: order.append("country"))

    dispatcher.dispatch({"type": "country-update", "value": "X"})

    assert order == ["country", "city", "price"]
