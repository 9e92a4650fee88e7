"""
Firebase認証モジュール（HTTP API版）
firebase SDKの代わりにhttpxでIdentity Toolkit REST APIを呼び出す
"""
import logging
from typing import Callable, Dict, List, Optional

import httpx

from .. import config
from ..errors import ExternalCollaboratorError
from ..models import UserIdentity

logger = logging.getLogger(__name__)

# プロバイダー名 -> (providerId, postBodyのトークン名)
PROVIDERS = {
    "google": ("google.com", "id_token"),
    "microsoft": ("microsoft.com", "access_token"),
}

# 理由コード -> 画面に出すメッセージ
ERROR_MESSAGES = {
    "cancelled": "Sign-in was cancelled. Please try again.",
    "popup-blocked": "Pop-up was blocked by the browser. Please allow pop-ups for this site.",
    "network": "Could not reach the sign-in service. Check your connection and try again.",
    "invalid-credential": "Invalid email or password.",
    "account-exists": "This email is already registered. Please sign in instead.",
    "weak-password": "Password is too weak. Please use a stronger password.",
    "invalid-email": "Invalid email address.",
    "too-many-requests": "Too many failed attempts. Please try again later.",
    "not-configured": "Sign-in is not configured.",
    "unknown": "Failed to sign in. Please try again.",
}

# プロバイダーのエラーコード -> 理由コード
# auth/... はブラウザ側SDK、大文字はREST APIのコード
_ERROR_CODES = {
    "auth/popup-closed-by-user": "cancelled",
    "auth/cancelled-popup-request": "cancelled",
    "auth/user-cancelled": "cancelled",
    "auth/popup-blocked": "popup-blocked",
    "auth/network-request-failed": "network",
    "auth/user-not-found": "invalid-credential",
    "auth/wrong-password": "invalid-credential",
    "auth/invalid-credential": "invalid-credential",
    "auth/email-already-in-use": "account-exists",
    "auth/account-exists-with-different-credential": "account-exists",
    "auth/weak-password": "weak-password",
    "auth/invalid-email": "invalid-email",
    "auth/too-many-requests": "too-many-requests",
    "EMAIL_NOT_FOUND": "invalid-credential",
    "INVALID_PASSWORD": "invalid-credential",
    "INVALID_LOGIN_CREDENTIALS": "invalid-credential",
    "INVALID_IDP_RESPONSE": "invalid-credential",
    "USER_DISABLED": "invalid-credential",
    "EMAIL_EXISTS": "account-exists",
    "FEDERATED_USER_ID_ALREADY_LINKED": "account-exists",
    "WEAK_PASSWORD": "weak-password",
    "INVALID_EMAIL": "invalid-email",
    "MISSING_EMAIL": "invalid-email",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "too-many-requests",
}


def classify_error(code: str) -> str:
    """プロバイダーのエラーコードを理由コードに分類"""
    # "WEAK_PASSWORD : Password should be..." の形式がある
    code = (code or "").split(" : ")[0].strip()
    return _ERROR_CODES.get(code, "unknown")


def auth_error(code: str, status_code: Optional[int] = None) -> ExternalCollaboratorError:
    reason = classify_error(code)
    return ExternalCollaboratorError(reason, ERROR_MESSAGES[reason], status_code)


def resolve_role(identity: UserIdentity, teacher_emails: List[str] = None) -> str:
    """先生か生徒かを判定"""
    if teacher_emails is None:
        teacher_emails = config.TEACHER_EMAILS
    email = (identity.email or "").lower()
    if email and email in teacher_emails:
        return "teacher"
    # 暫定ルール：アドレスに teacher を含むアカウントは先生
    return "teacher" if "teacher" in email else "student"


class FirebaseAuth:
    """Firebase認証を管理するクラス（HTTP API版・ログイン中ユーザーの状態は持たない）"""

    def __init__(self, api_key: str = None, base_url: str = None,
                 client: httpx.AsyncClient = None, teacher_emails: List[str] = None):
        self.api_key = config.FIREBASE_API_KEY if api_key is None else api_key
        self.base_url = (base_url or config.FIREBASE_AUTH_URL).rstrip("/")
        self.teacher_emails = teacher_emails
        self._client = client
        self._listeners: List[Callable[[Optional[UserIdentity]], None]] = []

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    # ===== 購読 =====

    def subscribe(self, on_change: Callable[[Optional[UserIdentity]], None]) -> Callable[[], None]:
        """ログイン状態の変化を購読し、解除用の関数を返す"""
        self._listeners.append(on_change)

        def unsubscribe():
            if on_change in self._listeners:
                self._listeners.remove(on_change)

        return unsubscribe

    def _notify(self, user: Optional[UserIdentity]):
        for listener in list(self._listeners):
            try:
                listener(user)
            except Exception:
                logger.exception("auth state listener failed")

    # ===== HTTP =====

    async def _post(self, endpoint: str, payload: Dict) -> Dict:
        if not self.is_configured:
            raise ExternalCollaboratorError("not-configured", ERROR_MESSAGES["not-configured"])

        url = f"{self.base_url}/{endpoint}"
        try:
            if self._client is not None:
                response = await self._client.post(url, params={"key": self.api_key}, json=payload,
                                                   timeout=config.HTTP_TIMEOUT)
            else:
                async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT) as client:
                    response = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.HTTPError as e:
            logger.warning("auth request to %s failed: %s", endpoint, e)
            raise ExternalCollaboratorError("network", ERROR_MESSAGES["network"]) from e

        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}

        if response.status_code != 200:
            code = (data.get("error") or {}).get("message", "") if isinstance(data, dict) else ""
            logger.warning("auth request to %s rejected (%s): %s", endpoint, response.status_code, code)
            raise auth_error(code, response.status_code)
        return data

    def _signed_in(self, data: Dict, fallback_email: str = "") -> UserIdentity:
        email = data.get("email") or fallback_email
        identity = UserIdentity(
            id=data.get("localId", ""),
            email=email,
            display_name=data.get("displayName") or email.split("@")[0],
            id_token=data.get("idToken"),
        )
        identity.role = resolve_role(identity, self.teacher_emails)
        logger.info("signed in %s as %s", identity.email, identity.role)
        self._notify(identity)
        return identity

    # ===== 認証 =====

    async def sign_in_with_provider(self, provider_name: str, credential: str) -> UserIdentity:
        """Google / Microsoft のトークンでログイン"""
        if provider_name not in PROVIDERS:
            raise ExternalCollaboratorError("unknown", f"Unsupported provider '{provider_name}'.")
        provider_id, token_field = PROVIDERS[provider_name]

        data = await self._post("accounts:signInWithIdp", {
            "postBody": f"{token_field}={credential}&providerId={provider_id}",
            "requestUri": "http://localhost",
            "returnIdpCredential": True,
            "returnSecureToken": True,
        })
        if data.get("needConfirmation"):
            raise ExternalCollaboratorError("account-exists", ERROR_MESSAGES["account-exists"])
        return self._signed_in(data)

    async def sign_in_with_password(self, email: str, password: str) -> UserIdentity:
        """Email/Passwordでログイン"""
        data = await self._post("accounts:signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._signed_in(data, email)

    async def sign_up(self, email: str, password: str) -> UserIdentity:
        """Email/Passwordで新規登録"""
        data = await self._post("accounts:signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._signed_in(data, email)

    async def sign_out(self, user: UserIdentity = None):
        """ログアウト（トークンは保持していないので購読者への通知のみ）"""
        if user is not None:
            logger.info("signed out %s", user.email)
        self._notify(None)
