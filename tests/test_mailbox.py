import threading

import pytest

from pairsignal.signaling import Answer, CandidateFragment, Drained, End, InMemoryMailbox, Mailbox, Offer


def _fragment(n, sender="alice"):
    return CandidateFragment(candidate={"candidate": f"cand-{n}"}, sender=sender, timestamp=n)


def test_set_entry_replaces_previous_entry():
    mailbox = InMemoryMailbox()
    mailbox.set_entry("bob", Offer(sdp="first", sender="alice", timestamp=1))
    mailbox.set_entry("bob", Offer(sdp="second", sender="alice", timestamp=2))

    entry, candidates = mailbox.drain("bob")
    assert entry == Offer(sdp="second", sender="alice", timestamp=2)
    assert candidates == []


def test_drain_returns_candidates_in_append_order_and_clears():
    mailbox = InMemoryMailbox()
    for n in range(5):
        mailbox.append_candidate("bob", _fragment(n))

    drained = mailbox.drain("bob")
    assert [fragment.timestamp for fragment in drained.candidates] == [0, 1, 2, 3, 4]
    assert drained.entry is None

    again = mailbox.drain("bob")
    assert again.empty
    assert again.candidates == []


def test_drain_of_unknown_recipient_is_empty():
    mailbox = InMemoryMailbox()
    drained = mailbox.drain("nobody")
    assert drained.entry is None
    assert drained.candidates == []
    assert drained.to_dict() == {"signal": None, "iceCandidates": []}


def test_write_after_drain_survives_to_next_drain():
    mailbox = InMemoryMailbox()
    mailbox.set_entry("bob", Offer(sdp="o", sender="alice", timestamp=1))
    mailbox.drain("bob")

    mailbox.set_entry("bob", Answer(sdp="a", sender="alice", timestamp=2))
    mailbox.append_candidate("bob", _fragment(3))

    entry, candidates = mailbox.drain("bob")
    assert isinstance(entry, Answer)
    assert len(candidates) == 1


def test_channels_clear_independently():
    mailbox = InMemoryMailbox()
    mailbox.set_entry("bob", End(sender="alice", timestamp=1))
    mailbox.append_candidate("bob", _fragment(1))

    mailbox.clear_entry("bob")
    assert mailbox.pending("bob") == (False, 1)

    mailbox.set_entry("bob", End(sender="alice", timestamp=2))
    mailbox.clear_candidates("bob")
    assert mailbox.pending("bob") == (True, 0)


def test_recipients_are_isolated():
    mailbox = InMemoryMailbox()
    mailbox.set_entry("bob", Offer(sdp="for bob", sender="alice", timestamp=1))
    mailbox.append_candidate("alice", _fragment(1, sender="bob"))

    assert mailbox.drain("alice").entry is None
    assert mailbox.drain("bob").candidates == []


def test_candidate_cap_evicts_oldest():
    mailbox = InMemoryMailbox(max_candidates=3)
    for n in range(5):
        mailbox.append_candidate("bob", _fragment(n))

    _, candidates = mailbox.drain("bob")
    assert [fragment.timestamp for fragment in candidates] == [2, 3, 4]


def test_candidate_cap_must_be_positive():
    with pytest.raises(ValueError):
        InMemoryMailbox(max_candidates=0)


def test_concurrent_appends_are_all_delivered_once():
    mailbox = InMemoryMailbox()
    per_thread = 200
    delivered = []
    done = threading.Event()

    def writer(tag):
        for n in range(per_thread):
            mailbox.append_candidate("bob", CandidateFragment(candidate=(tag, n), sender=tag, timestamp=n))

    def reader():
        while not done.is_set():
            delivered.extend(mailbox.drain("bob").candidates)

    writers = [threading.Thread(target=writer, args=(f"w{i}",)) for i in range(4)]
    poller = threading.Thread(target=reader)
    poller.start()
    for thread in writers:
        thread.start()
    for thread in writers:
        thread.join()
    done.set()
    poller.join()
    delivered.extend(mailbox.drain("bob").candidates)

    seen = [fragment.candidate for fragment in delivered]
    assert len(seen) == 4 * per_thread
    assert len(set(seen)) == len(seen)
    for i in range(4):
        ordered = [n for tag, n in seen if tag == f"w{i}"]
        assert ordered == list(range(per_thread))


def test_close_drops_pending_state():
    mailbox = InMemoryMailbox()
    mailbox.set_entry("bob", End(sender="alice", timestamp=1))
    mailbox.append_candidate("bob", _fragment(1))
    mailbox.close()
    assert mailbox.drain("bob").empty


def test_entry_serialisation():
    assert Offer(sdp="v=0", sender="a", timestamp=5).to_dict() == {
        "type": "offer",
        "sdp": "v=0",
        "from": "a",
        "timestamp": 5,
    }
    assert End(sender="a", timestamp=6).to_dict() == {"type": "end", "from": "a", "timestamp": 6}


def test_lock_table_only_tracks_recipients_with_mail():
    mailbox = InMemoryMailbox()
    for n in range(50):
        mailbox.drain(f"visitor-{n}")
    assert mailbox._locks == {}

    mailbox.set_entry("bob", Offer(sdp="o", sender="alice", timestamp=1))
    mailbox.append_candidate("carol", _fragment(1))
    assert set(mailbox._locks) == {"bob", "carol"}

    mailbox.drain("bob")
    mailbox.clear_candidates("carol")
    assert mailbox._locks == {}


def test_pending_is_part_of_the_mailbox_interface():
    class WriteOnly(Mailbox):
        def set_entry(self, recipient, entry):
            pass

        def append_candidate(self, recipient, fragment):
            pass

        def drain(self, recipient):
            return Drained()

        def clear_entry(self, recipient):
            pass

        def clear_candidates(self, recipient):
            pass

    with pytest.raises(TypeError):
        WriteOnly()
