import pytest

from stats import VoteKind, compute_stats, parse_vote


def test_empty_votes_give_zeroed_stats():
    stats = compute_stats({})
    assert stats.total_votes == 0
    assert stats.unique_values == 0
    assert stats.most_frequent is None
    assert stats.average is None


def test_mode_tie_goes_to_first_value_to_reach_max():
    stats = compute_stats(["5", "5", "8", "8"])
    assert stats.most_frequent == "5"
    assert stats.total_votes == 4
    assert stats.unique_values == 2


def test_mode_follows_running_maximum_not_first_seen():
    # "8" is seen first but "3" is the first to reach a count of 2
    stats = compute_stats({"a": "8", "b": "3", "c": "3", "d": "8"})
    assert stats.most_frequent == "3"


def test_average_ignores_symbol_votes():
    stats = compute_stats({"a": "5", "b": "?", "c": "8"})
    assert stats.average == 6.5
    assert stats.total_votes == 3
    assert stats.unique_values == 3


def test_average_is_none_when_no_numeric_votes():
    stats = compute_stats({"a": "?", "b": "☕"})
    assert stats.average is None
    assert stats.most_frequent == "?"


def test_none_votes_are_not_counted():
    stats = compute_stats({"a": "1", "b": None})
    assert stats.total_votes == 1


@pytest.mark.parametrize("raw, kind, number", [
    ("13", VoteKind.NUMERIC, 13.0),
    ("0.5", VoteKind.NUMERIC, 0.5),
    (" 3 ", VoteKind.NUMERIC, 3.0),
    ("?", VoteKind.SYMBOL, None),
    ("☕", VoteKind.SYMBOL, None),
    ("", VoteKind.SYMBOL, None),
    ("inf", VoteKind.SYMBOL, None),
    ("nan", VoteKind.SYMBOL, None),
    ("1_000", VoteKind.SYMBOL, None),
    ("\u0661\u0662", VoteKind.SYMBOL, None),
    ("\uff13", VoteKind.SYMBOL, None),
    ("1e3", VoteKind.NUMERIC, 1000.0),
    (".5", VoteKind.NUMERIC, 0.5),
    ("-2", VoteKind.NUMERIC, -2.0),
])
def test_parse_vote(raw, kind, number):
    vote = parse_vote(raw)
    assert vote.kind is kind
    assert vote.number == number
    assert vote.raw == raw


def test_stats_serialise_camel_case():
    dumped = compute_stats({"a": "1"}).model_dump(by_alias=True)
    assert dumped == {"totalVotes": 1, "uniqueValues": 1, "mostFrequent": "1", "average": 1.0}


def test_underscore_and_non_ascii_digits_stay_out_of_average():
    stats = compute_stats({"a": "1_000", "b": "2", "c": "٣"})
    assert stats.average == 2.0
