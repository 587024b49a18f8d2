import asyncio

import pytest

from note_corpus.corpus import (
    Corpus,
    CorpusStatus,
    CorpusStore,
    CorpusUnavailableError,
)


def test_from_mapping_rejects_unusable_keys():
    load = Corpus.from_mapping({"ok.md": "text", "a//b": "text", 7: "text"})

    assert dict(load.corpus) == {"ok.md": "text"}
    assert sorted(load.rejected) == ["7", "a//b"]


def test_from_mapping_can_accept_empty_segments():
    load = Corpus.from_mapping({"/lead": "text"}, accept_empty_segments=True)
    assert list(load.corpus) == ["/lead"]
    assert load.rejected == ()


def test_corpus_is_read_only():
    corpus = Corpus({"a": "text"})
    with pytest.raises(TypeError):
        corpus["b"] = "other"  # type: ignore[index]


def test_malformed_note_stays_in_tree_but_not_in_index():
    store = CorpusStore()
    snapshot = store.rebuild({"good.md": "hello world", "bad.md": 42})

    assert snapshot.tree.leaves() == {"good.md", "bad.md"}
    assert snapshot.skipped == ("bad.md",)
    assert store.search("hello") == [("good.md", "hello world")]
    assert not snapshot.corpus.note("bad.md").is_text


def test_status_follows_installed_snapshot():
    store = CorpusStore()
    assert store.status is CorpusStatus.NOT_LOADED
    assert store.current is None
    assert store.search("anything") == []

    store.rebuild({})
    assert store.status is CorpusStatus.EMPTY
    assert store.status_message() == "No notes found. Please import."

    store.rebuild({"a": "text"})
    assert store.status is CorpusStatus.READY
    assert store.status_message() == "Ready to search!"


def test_stale_snapshot_is_discarded():
    store = CorpusStore()
    older = store.begin_refresh()
    newer = store.begin_refresh()

    assert store.install(store.build({"new": "text"}, newer))
    assert not store.install(store.build({"old": "text"}, older))
    assert list(store.current.corpus) == ["new"]


def test_failed_refresh_keeps_previous_snapshot():
    store = CorpusStore()
    previous = store.rebuild({"a": "kept"})

    async def fetch():
        raise CorpusUnavailableError("service down")

    installed = asyncio.run(store.refresh(fetch))

    assert not installed
    assert store.status is CorpusStatus.UNAVAILABLE
    assert store.error == "service down"
    assert store.current is previous
    assert store.search("kept") == [("a", "kept")]


def test_refresh_installs_fetched_corpus():
    store = CorpusStore()

    async def fetch():
        return {"notes/a.md": "fetched text"}

    assert asyncio.run(store.refresh(fetch))
    assert store.status is CorpusStatus.READY
    assert store.current.tree.leaves() == {"notes/a.md"}
    assert store.search("fetched") == [("notes/a.md", "fetched text")]


def test_overlapping_refresh_keeps_latest_result():
    store = CorpusStore()

    async def scenario():
        release = asyncio.Event()

        async def slow():
            await release.wait()
            return {"old": "text"}

        async def fast():
            return {"new": "text"}

        first = asyncio.create_task(store.refresh(slow))
        await asyncio.sleep(0)
        second_installed = await store.refresh(fast)
        release.set()
        first_installed = await first
        return first_installed, second_installed

    first_installed, second_installed = asyncio.run(scenario())

    assert second_installed
    assert not first_installed
    assert list(store.current.corpus) == ["new"]


def test_failure_from_superseded_refresh_is_ignored():
    store = CorpusStore()
    older = store.begin_refresh()
    store.rebuild({"a": "text"})

    store.mark_unavailable("late failure", older)

    assert store.status is CorpusStatus.READY
    assert store.error is None


def test_refresh_indexes_deeply_nested_key():
    store = CorpusStore()
    key = "/".join(["a"] * 1500)

    async def fetch():
        return {key: "deep note"}

    assert asyncio.run(store.refresh(fetch))
    assert store.current.tree.leaves() == {key}
    assert store.search("deep") == [(key, "deep note")]


def test_failed_build_marks_store_unavailable(monkeypatch):
    store = CorpusStore()
    previous = store.rebuild({"a": "kept"})

    def broken_build(mapping, version):
        raise RuntimeError("index exploded")

    monkeypatch.setattr(store, "build", broken_build)

    async def fetch():
        return {"b": "new"}

    installed = asyncio.run(store.refresh(fetch))

    assert not installed
    assert store.status is CorpusStatus.UNAVAILABLE
    assert "index exploded" in store.error
    assert store.current is previous
