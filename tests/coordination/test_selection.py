"""Tests for vote winner and best work selection."""

from agqr.coordination.coordinator import best_work, vote_winner
from agqr.coordination.records import HostAttempt


def attempt(host, vote=-1, tries=0, single=True, complete=True):
    meta = None
    if complete:
        meta = {"try": tries}
        if single:
            meta["single_mp3_path"] = "all.mp3"
    return HostAttempt(host=host, prefix=f"Foo/work/ts/{host}/", meta=meta, vote=vote)


class TestErrorCount:
    def test_attempts_plus_penalty(self):
        assert attempt("a", tries=0).error_count == 0
        assert attempt("a", tries=3).error_count == 3
        assert attempt("a", tries=3, single=False).error_count == 1003

    def test_missing_try(self):
        assert HostAttempt(host="a", prefix="p/", meta={"single_mp3_path": "x"}).error_count == 0

    def test_garbled_try(self):
        assert HostAttempt(host="a", prefix="p/", meta={"try": "lots", "single_mp3_path": "x"}).error_count == 0


class TestVoteWinner:
    def test_highest_vote_then_greatest_host(self):
        winner = vote_winner([attempt("A", vote=5), attempt("B", vote=9), attempt("C", vote=9)])
        assert winner.host == "C"

    def test_order_does_not_matter(self):
        winner = vote_winner([attempt("C", vote=9), attempt("A", vote=5), attempt("B", vote=9)])
        assert winner.host == "C"

    def test_missing_votes_cannot_win(self):
        assert vote_winner([attempt("A"), attempt("B", vote=0)]).host == "B"
        assert vote_winner([attempt("A"), attempt("B")]) is None

    def test_incomplete_hosts_cannot_win(self):
        winner = vote_winner([attempt("A", vote=1), attempt("Z", vote=999, complete=False)])
        assert winner.host == "A"


class TestBestWork:
    def test_lowest_error_count(self):
        assert best_work([attempt("h1", tries=2), attempt("h2", tries=0)]).host == "h2"

    def test_tie_goes_to_first(self):
        assert best_work([attempt("h2", tries=1), attempt("h1", tries=1)]).host == "h2"

    def test_no_single_output_loses(self):
        assert best_work([attempt("h1", tries=0, single=False), attempt("h2", tries=5)]).host == "h2"

    def test_incomplete_excluded(self):
        assert best_work([attempt("h1", complete=False)]) is None
        assert best_work([]) is None
