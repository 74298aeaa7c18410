"""Submission form validation tests."""

import pytest
from pydantic import ValidationError

from fakes import make_form


@pytest.mark.parametrize("email", ["j@.x.com", "a@b..c", "no-at-sign", "two@@x.com", "j@x"])
def test_malformed_email_is_rejected(email):
    with pytest.raises(ValidationError):
        make_form(email=email)


def test_email_is_trimmed():
    assert make_form(email="  jane@example.com ").email == "jane@example.com"


def test_blank_payout_email_becomes_none():
    assert make_form(payout_email="   ").payout_email is None


def test_malformed_payout_email_is_rejected():
    with pytest.raises(ValidationError):
        make_form(payout_email="pay@.lena.de")


def test_terms_must_be_accepted():
    with pytest.raises(ValidationError, match="terms and conditions"):
        make_form(agree_terms=False)


def test_recorder_required_when_not_own_recording():
    with pytest.raises(ValidationError, match="Recorder name"):
        make_form(is_own_recording=False)

    form = make_form(is_own_recording=False, recorder_name="Aunt May")
    assert form.recorder_name == "Aunt May"


def test_credit_fields_dropped_when_credit_not_requested():
    form = make_form(want_credit=False, credit_platform="instagram", credit_username="jane")

    assert form.credit_platform is None
    assert form.credit_username is None
