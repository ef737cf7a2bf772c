"""Unit tests for issue key normalization."""

import pytest

from jiraflow.issue_key import InvalidIssueKeyError, normalize_issue_key


@pytest.mark.unit
class TestNormalizeIssueKey:
    """Tests for normalize_issue_key()."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("KAN-12", "KAN-12"),
            ("kan-12", "KAN-12"),
            ("  KAN-12  ", "KAN-12"),
            ("https://acme.atlassian.net/browse/kan-12", "KAN-12"),
            ("https://acme.atlassian.net/browse/KAN-12?focusedCommentId=3", "KAN-12"),
            ("please look at KAN-12 today", "KAN-12"),
            ("OPS_2-7", "OPS_2-7"),
        ],
    )
    def test_extracts_key(self, raw, expected):
        assert normalize_issue_key(raw) == expected

    def test_browse_url_wins_over_other_keys(self):
        text = "dup of ABC-1, see https://acme.atlassian.net/browse/KAN-12"

        assert normalize_issue_key(text) == "KAN-12"

    def test_non_key_input_is_upper_cased(self):
        assert normalize_issue_key("backlog item") == "BACKLOG ITEM"

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_input_raises(self, raw):
        with pytest.raises(InvalidIssueKeyError, match="Issue key is empty"):
            normalize_issue_key(raw)

    def test_error_is_value_error(self):
        assert issubclass(InvalidIssueKeyError, ValueError)
