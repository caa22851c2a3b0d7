import threading

from chat_gateway.infrastructure.storage.memory_store import InMemoryConversationStore


def test_get_unknown_session_is_empty():
    store = InMemoryConversationStore()
    assert store.get("nope") == ()
    assert "nope" in store.session_keys()


def test_append_preserves_order_and_timestamps():
    store = InMemoryConversationStore()
    texts = [f"msg-{i}" for i in range(25)]
    for i, t in enumerate(texts):
        store.append("s1", "user" if i % 2 == 0 else "assistant", t)
    msgs = store.get("s1")
    assert [m.text for m in msgs] == texts
    assert all(a.timestamp <= b.timestamp for a, b in zip(msgs, msgs[1:]))
    assert len({m.id for m in msgs}) == len(texts)


def test_append_returns_stored_message_and_allows_empty_text():
    store = InMemoryConversationStore()
    msg = store.append("s1", "user", "")
    assert msg.text == ""
    assert store.get("s1") == (msg,)


def test_get_returns_snapshot():
    store = InMemoryConversationStore()
    store.append("s1", "user", "a")
    snapshot = store.get("s1")
    store.append("s1", "assistant", "b")
    assert len(snapshot) == 1
    assert len(store.get("s1")) == 2


def test_concurrent_appends_do_not_mix_sessions():
    store = InMemoryConversationStore()
    per_thread = 200

    def worker(key: str):
        for i in range(per_thread):
            store.append(key, "user", f"{key}-{i}")

    threads = [threading.Thread(target=worker, args=(k,)) for k in ("a", "b", "a", "b")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for key in ("a", "b"):
        msgs = store.get(key)
        assert len(msgs) == per_thread * 2
        assert all(m.text.startswith(f"{key}-") for m in msgs)
        assert all(x.timestamp <= y.timestamp for x, y in zip(msgs, msgs[1:]))
