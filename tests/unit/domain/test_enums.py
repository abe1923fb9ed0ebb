"""Tests for widetable/domain/models/enums.py."""

import pytest

from widetable.domain.models.enums import (
    ErrorKind,
    NotificationAction,
    OutcomeStatus,
    QueryOperator,
)


# --- OutcomeStatus ---

def test_outcome_status_values_are_http_codes():
    assert [s.value for s in OutcomeStatus] == [200, 206, 400, 404, 406, 409, 500, 503]


def test_ok_is_success():
    assert OutcomeStatus.OK.is_success is True


def test_partial_content_is_success():
    assert OutcomeStatus.PARTIAL_CONTENT.is_success is True


def test_conflict_is_not_success():
    assert OutcomeStatus.CONFLICT.is_success is False


def test_outcome_status_compares_to_int():
    assert OutcomeStatus.NOT_ACCEPTABLE == 406


# --- ErrorKind.retryable ---

def test_conflict_is_retryable():
    assert ErrorKind.CONFLICT.retryable is True


def test_backend_unavailable_is_retryable():
    assert ErrorKind.BACKEND_UNAVAILABLE.retryable is True


@pytest.mark.parametrize(
    "kind",
    [ErrorKind.BAD_KEY, ErrorKind.BACKEND_REJECTED, ErrorKind.UNKNOWN, ErrorKind.NOT_FOUND],
)
def test_other_errors_are_not_retryable(kind):
    assert kind.retryable is False


# --- String mixin ---

def test_notification_action_is_string_comparable():
    assert NotificationAction.CREATE == "Create"


def test_error_kind_is_string_comparable():
    assert ErrorKind.BAD_KEY == "bad_key"


# --- QueryOperator ---

def test_equal_symbol():
    assert QueryOperator.EQUAL.symbol == "="


def test_greater_than_or_equal_symbol():
    assert QueryOperator.GREATER_THAN_OR_EQUAL.symbol == ">="


def test_begins_with_has_no_symbol():
    assert QueryOperator.BEGINS_WITH.symbol is None


def test_between_has_no_symbol():
    assert QueryOperator.BETWEEN.symbol is None


def test_parse_by_name():
    assert QueryOperator.parse("BeginsWith") is QueryOperator.BEGINS_WITH


def test_parse_unknown_name_raises():
    with pytest.raises(ValueError, match="Unsupported query operator"):
        QueryOperator.parse("Contains")
