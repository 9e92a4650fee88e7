import asyncio
import json

import httpx
import pytest

from focus_friend.cloud.auth_client import FirebaseAuth, classify_error, resolve_role
from focus_friend.errors import ExternalCollaboratorError
from focus_friend.models import UserIdentity


def make_auth(handler, api_key="test-key", teacher_emails=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FirebaseAuth(api_key=api_key, base_url="https://auth.test/v1", client=client,
                        teacher_emails=teacher_emails or [])


def ok(payload):
    return httpx.Response(200, json=payload)


def rejected(code):
    return httpx.Response(400, json={"error": {"code": 400, "message": code}})


def test_sign_in_with_password():
    seen = {}

    def handler(request):
        seen["url"] = request.url
        seen["body"] = json.loads(request.content)
        return ok({"localId": "u1", "email": "sam@school.test", "idToken": "tok"})

    auth = make_auth(handler)
    user = asyncio.run(auth.sign_in_with_password("sam@school.test", "secret"))

    assert "signInWithPassword" in str(seen["url"])
    assert seen["url"].params["key"] == "test-key"
    assert seen["body"]["returnSecureToken"] is True
    assert user.id == "u1"
    assert user.display_name == "sam"
    assert user.role == "student"


def test_teacher_role_from_configured_emails():
    auth = make_auth(lambda r: ok({"localId": "t1", "email": "Head@School.test"}),
                     teacher_emails=["head@school.test"])
    user = asyncio.run(auth.sign_in_with_password("head@school.test", "x"))
    assert user.role == "teacher"


def test_resolve_role():
    assert resolve_role(UserIdentity(email="ms.teacher@school.test"), []) == "teacher"
    assert resolve_role(UserIdentity(email="pupil@school.test"), []) == "student"
    assert resolve_role(UserIdentity(email=""), []) == "student"


@pytest.mark.parametrize("code, reason", [
    ("INVALID_PASSWORD", "invalid-credential"),
    ("EMAIL_EXISTS", "account-exists"),
    ("WEAK_PASSWORD : Password should be at least 6 characters", "weak-password"),
    ("TOO_MANY_ATTEMPTS_TRY_LATER", "too-many-requests"),
    ("SOMETHING_NEW", "unknown"),
])
def test_rejection_maps_to_reason(code, reason):
    auth = make_auth(lambda r: rejected(code))
    with pytest.raises(ExternalCollaboratorError) as exc:
        asyncio.run(auth.sign_up("a@b.test", "pw"))
    assert exc.value.reason == reason
    assert exc.value.status_code == 400


def test_classify_browser_codes():
    assert classify_error("auth/popup-closed-by-user") == "cancelled"
    assert classify_error("auth/popup-blocked") == "popup-blocked"
    assert classify_error("auth/network-request-failed") == "network"
    assert classify_error(None) == "unknown"


def test_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("boom", request=request)

    auth = make_auth(handler)
    with pytest.raises(ExternalCollaboratorError) as exc:
        asyncio.run(auth.sign_in_with_password("a@b.test", "pw"))
    assert exc.value.reason == "network"


def test_not_configured():
    auth = make_auth(lambda r: ok({}), api_key="")
    assert not auth.is_configured
    with pytest.raises(ExternalCollaboratorError) as exc:
        asyncio.run(auth.sign_in_with_password("a@b.test", "pw"))
    assert exc.value.reason == "not-configured"


def test_provider_sign_in_posts_idp_token():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return ok({"localId": "g1", "email": "kid@gmail.test", "displayName": "Kid"})

    auth = make_auth(handler)
    user = asyncio.run(auth.sign_in_with_provider("google", "google-id-token"))

    assert seen["body"]["postBody"] == "id_token=google-id-token&providerId=google.com"
    assert user.display_name == "Kid"


def test_provider_needs_confirmation():
    auth = make_auth(lambda r: ok({"needConfirmation": True, "email": "x@y.test"}))
    with pytest.raises(ExternalCollaboratorError) as exc:
        asyncio.run(auth.sign_in_with_provider("microsoft", "ms-token"))
    assert exc.value.reason == "account-exists"


def test_unknown_provider():
    auth = make_auth(lambda r: ok({}))
    with pytest.raises(ExternalCollaboratorError):
        asyncio.run(auth.sign_in_with_provider("myspace", "token"))


def test_subscribe_and_unsubscribe():
    auth = make_auth(lambda r: ok({"localId": "u1", "email": "a@b.test"}))
    changes = []
    unsubscribe = auth.subscribe(changes.append)

    asyncio.run(auth.sign_in_with_password("a@b.test", "pw"))
    asyncio.run(auth.sign_out())
    assert [u.id if u else None for u in changes] == ["u1", None]

    unsubscribe()
    asyncio.run(auth.sign_in_with_password("a@b.test", "pw"))
    assert len(changes) == 2


def test_failing_listener_does_not_break_sign_in():
    auth = make_auth(lambda r: ok({"localId": "u1", "email": "a@b.test"}))

    def broken(user):
        raise RuntimeError("listener bug")

    auth.subscribe(broken)
    user = asyncio.run(auth.sign_in_with_password("a@b.test", "pw"))
    assert user.id == "u1"


def test_sign_ins_share_no_current_user_state():
    accounts = {"a@b.test": "u1", "c@d.test": "u2"}

    def handler(request):
        email = json.loads(request.content)["email"]
        return ok({"localId": accounts[email], "email": email})

    auth = make_auth(handler)
    changes = []
    auth.subscribe(changes.append)

    first = asyncio.run(auth.sign_in_with_password("a@b.test", "pw"))
    second = asyncio.run(auth.sign_in_with_password("c@d.test", "pw"))
    asyncio.run(auth.sign_out(first))

    assert (first.id, second.id) == ("u1", "u2")
    assert [u.id if u else None for u in changes] == ["u1", "u2", None]
    assert not hasattr(auth, "user")
