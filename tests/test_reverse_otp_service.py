import json
import threading

import pytest

from app.application.services.reverse_otp_service import (
    ReverseOTPConfig, ReverseOTPService, STATUS_PENDING, STATUS_VERIFIED,
)
from app.exceptions import InternalError, NotFoundError, RateLimitedError
from app.infrastructure.kv.memory_store import InMemoryStore

PHONE = "+6281234567890"
OTHER = "+6281111111111"
BUSINESS = "+6280000000001"


class FakeMessaging:
    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    def get_business_number(self) -> str:
        return BUSINESS

    def send_message(self, to: str, body: str) -> None:
        if self.fail:
            raise RuntimeError("platform down")
        self.sent.append((to, body))


def make_service(store, messaging=None, **overrides):
    return ReverseOTPService(store=store, messaging=messaging or FakeMessaging(), config=ReverseOTPConfig(**overrides))


def test_init_session_writes_session_and_code_index(store):
    svc = make_service(store)
    session = svc.init_session(PHONE)

    assert session.target_number == BUSINESS
    assert len(session.unique_code) == 6
    assert session.unique_code.isalnum() and session.unique_code.upper() == session.unique_code
    assert store.get(f"rotp:code:{session.unique_code}") == session.session_id
    record = json.loads(store.get(f"rotp:session:{session.session_id}"))
    assert record["phone"] == PHONE
    assert record["status"] == STATUS_PENDING


def test_init_cooldown(store, clock):
    svc = make_service(store)
    svc.init_session(PHONE)
    with pytest.raises(RateLimitedError):
        svc.init_session(PHONE)
    clock.advance(60)
    svc.init_session(PHONE)


def test_code_collision_draws_again(store, monkeypatch):
    from app.application.services import reverse_otp_service as mod

    codes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    monkeypatch.setattr(mod, "generate_alphanumeric_code", lambda length: next(codes))
    svc = make_service(store, cooldown=0)

    first = svc.init_session(PHONE)
    second = svc.init_session(OTHER)
    assert first.unique_code == "AAAAAA"
    assert second.unique_code == "BBBBBB"


def test_code_collision_gives_up(store, monkeypatch):
    from app.application.services import reverse_otp_service as mod

    monkeypatch.setattr(mod, "generate_alphanumeric_code", lambda length: "AAAAAA")
    svc = make_service(store, cooldown=0, max_code_attempts=3)
    svc.init_session(PHONE)
    with pytest.raises(InternalError):
        svc.init_session(OTHER)


def test_check_unknown_session(store):
    with pytest.raises(NotFoundError):
        make_service(store).check_verification("missing")


def test_session_expires(store, clock):
    svc = make_service(store)
    session = svc.init_session(PHONE)
    clock.advance(300)
    with pytest.raises(NotFoundError):
        svc.check_verification(session.session_id)
    with pytest.raises(NotFoundError):
        svc.handle_incoming_message(PHONE, session.unique_code)


def test_extract_codes():
    svc = make_service(InMemoryStore())
    assert svc.extract_codes("my code is ab12cd, thx") == ["AB12CD"]
    assert svc.extract_codes("ABC123 ABC123 XYZ789") == ["ABC123", "XYZ789"]
    assert svc.extract_codes("too short AB1 and waytoolong1") == []
    assert svc.extract_codes("PLEASE VERIFY MYSELF THANKS FRIEND BUDDY code 9QX2LM") == ["9QX2LM"]
    assert len(svc.extract_codes(" ".join(f"CODE{i:02d}" for i in range(10)))) == 5


def test_matching_message_verifies_session(store):
    messaging = FakeMessaging()
    svc = make_service(store, messaging)
    session = svc.init_session(PHONE)

    assert svc.check_verification(session.session_id).status == STATUS_PENDING
    svc.handle_incoming_message(PHONE, f"Verify: {session.unique_code.lower()}")

    result = svc.check_verification(session.session_id)
    assert result.status == STATUS_VERIFIED
    assert result.phone == PHONE
    assert store.get(f"rotp:code:{session.unique_code}") is None
    assert messaging.sent and messaging.sent[0][0] == PHONE


def test_message_from_other_phone_is_rejected(store):
    svc = make_service(store)
    session = svc.init_session(PHONE)
    with pytest.raises(NotFoundError):
        svc.handle_incoming_message(OTHER, session.unique_code)
    assert svc.check_verification(session.session_id).status == STATUS_PENDING


def test_unknown_code_is_not_found(store):
    svc = make_service(store)
    svc.init_session(PHONE)
    with pytest.raises(NotFoundError):
        svc.handle_incoming_message(PHONE, "hello ZZZZZZ")


def test_confirmation_failure_does_not_undo_verification(store):
    svc = make_service(store, FakeMessaging(fail=True))
    session = svc.init_session(PHONE)
    svc.handle_incoming_message(PHONE, session.unique_code)
    assert svc.check_verification(session.session_id).status == STATUS_VERIFIED


def test_concurrent_deliveries_verify_once():
    store = InMemoryStore()
    messaging = FakeMessaging()
    svc = make_service(store, messaging)
    session = svc.init_session(PHONE)
    errors = []

    def deliver():
        try:
            svc.handle_incoming_message(PHONE, session.unique_code)
        except NotFoundError as e:
            errors.append(e)

    threads = [threading.Thread(target=deliver) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert svc.check_verification(session.session_id).status == STATUS_VERIFIED
    assert len(messaging.sent) == 1


def test_consume_verified_is_single_use(store):
    svc = make_service(store)
    session = svc.init_session(PHONE)
    with pytest.raises(NotFoundError):
        svc.consume_verified(session.session_id)

    svc.handle_incoming_message(PHONE, session.unique_code)
    assert svc.consume_verified(session.session_id) == PHONE
    with pytest.raises(NotFoundError):
        svc.consume_verified(session.session_id)


def test_generated_codes_carry_a_digit():
    from app.application.services.reverse_otp_service import generate_alphanumeric_code

    for _ in range(200):
        assert any(c.isdigit() for c in generate_alphanumeric_code(6))


def test_code_after_many_words_still_matches(store):
    svc = make_service(store)
    session = svc.init_session(PHONE)
    svc.handle_incoming_message(PHONE, f"please verify myself thanks friend buddy: {session.unique_code}")
    assert svc.check_verification(session.session_id).status == STATUS_VERIFIED
