from datetime import datetime, timedelta, timezone

from sqlmodel import select

from creator_platform.models import User, WebhookEvent, utcnow


def test_timestamps_round_trip_as_utc(session, make_user):
    user = make_user()
    session.expire_all()
    user = session.get(User, user.id)
    assert user.created_at.tzinfo == timezone.utc
    assert user.updated_at.tzinfo == timezone.utc
    assert user.email_verification_expiry is None


def test_naive_and_offset_values_are_stored_in_utc(session, make_user):
    naive = make_user(refresh_token_expiry=datetime(2030, 1, 1, 12, 0))
    offset = make_user(refresh_token_expiry=datetime(2030, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2))))
    session.expire_all()

    expected = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)
    assert session.get(User, naive.id).refresh_token_expiry == expected
    assert session.get(User, offset.id).refresh_token_expiry == expected


def test_expiry_filters_compare_against_aware_now(session, make_user):
    live = make_user(reset_token="live", reset_token_expiry=utcnow() + timedelta(minutes=30))
    make_user(reset_token="stale", reset_token_expiry=utcnow() - timedelta(minutes=30))

    found = session.exec(select(User).where(User.reset_token_expiry > utcnow())).all()
    assert [user.id for user in found] == [live.id]


def test_webhook_event_records_receipt_time(session):
    session.add(WebhookEvent(uid="not_1", event_type="merchant.status.changed"))
    session.commit()
    session.expire_all()
    event = session.get(WebhookEvent, "not_1")
    assert event.received_at.tzinfo == timezone.utc
    assert utcnow() - event.received_at < timedelta(minutes=1)
