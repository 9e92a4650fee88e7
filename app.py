"""
FocusFriend - Flask Application
画面からのコマンドを受け付けるJSON API
"""
import asyncio
from datetime import date, datetime

from flask import Flask, abort, jsonify, request, session

from focus_friend import config
from focus_friend.cloud import GraphCalendar, get_auth
from focus_friend.cloud.auth_client import auth_error
from focus_friend.context import SessionContext
from focus_friend.database import Database, PROFILE_KEY
from focus_friend.errors import ExternalCollaboratorError, FocusFriendError, ValidationError
from focus_friend.logging_utils import get_logger
from focus_friend.logic.class_overview import class_averages, summarize_student
from focus_friend.logic.focus_tracker import FocusSessionTracker
from focus_friend.logic.reward_ledger import RewardLedger
from focus_friend.logic.schedule import ScheduleAggregator

logger = get_logger("focus_friend")

# エラー種別 -> HTTPステータス
STATUS_BY_KIND = {
    "validation": 400,
    "invalid_state": 409,
    "duplicate_entry": 409,
    "not_found": 404,
    "external": 502,
}
STATUS_BY_REASON = {
    "invalid-credential": 401,
    "auth-expired": 401,
    "account-exists": 409,
    "weak-password": 400,
    "invalid-email": 400,
    "cancelled": 400,
    "popup-blocked": 400,
    "too-many-requests": 429,
    "not-configured": 503,
}


def _parse_datetime(value):
    """ISO文字列を naive なローカル時刻に変換（保存データはすべて naive）"""
    if not value:
        return None
    try:
        text = value.strip()
        # ブラウザの toISOString() は末尾が Z
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except (AttributeError, TypeError, ValueError):
        raise ValidationError(f"Invalid timestamp '{value}'.")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _parse_date(value):
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{value}'.")


def _parse_int(value, default=0):
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Expected a number, got '{value}'.")


def create_app(db: Database = None, auth=None, calendar_factory=None) -> Flask:
    """アプリケーションを作成"""
    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY

    db = db or Database()
    auth = auth or get_auth()
    calendar_factory = calendar_factory or GraphCalendar
    contexts = {}
    app.extensions["focus_friend"] = contexts

    def on_identity_change(user):
        # サインインしたユーザーのコンテキストを用意
        if user is not None and user.id not in contexts:
            contexts[user.id] = SessionContext.open(user, db)

    auth.subscribe(on_identity_change)

    def current_context() -> SessionContext:
        user_id = session.get("user_id")
        ctx = contexts.get(user_id) if user_id else None
        if ctx is None:
            abort(401)
        ctx.ensure_open()
        return ctx

    def payload() -> dict:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}

    # ============ AUTH ============

    def _signed_in(user):
        if user.id not in contexts:
            contexts[user.id] = SessionContext.open(user, db)
        session["user_id"] = user.id
        return jsonify({"user": user.to_dict()})

    @app.route("/auth/sign-in", methods=["POST"])
    def sign_in():
        """Email/Passwordでログイン"""
        data = payload()
        user = asyncio.run(auth.sign_in_with_password(data.get("email", ""), data.get("password", "")))
        return _signed_in(user)

    @app.route("/auth/sign-up", methods=["POST"])
    def sign_up():
        """新規登録"""
        data = payload()
        user = asyncio.run(auth.sign_up(data.get("email", ""), data.get("password", "")))
        return _signed_in(user)

    @app.route("/auth/provider", methods=["POST"])
    def sign_in_with_provider():
        """Google / Microsoft ログイン（ブラウザ側のポップアップ結果を受け取る）"""
        data = payload()
        if data.get("errorCode"):
            raise auth_error(data["errorCode"])
        user = asyncio.run(auth.sign_in_with_provider(data.get("provider", ""), data.get("credential", "")))
        return _signed_in(user)

    @app.route("/auth/sign-out", methods=["POST"])
    def sign_out():
        """ログアウト"""
        user_id = session.pop("user_id", None)
        ctx = contexts.pop(user_id, None) if user_id else None
        if ctx is not None:
            ctx.close()
        asyncio.run(auth.sign_out(ctx.user if ctx is not None else None))
        return jsonify({"success": True})

    @app.route("/me")
    def me():
        """現在の状態"""
        ctx = current_context()
        return jsonify(ctx.snapshot(_parse_datetime(request.args.get("now"))))

    # ============ SCHEDULE ============

    @app.route("/schedule")
    def schedule_week():
        """週の時間割"""
        ctx = current_context()
        week = _parse_int(request.args.get("week"))
        today = _parse_date(request.args.get("today"))
        days = ctx.schedule.lessons_for_week(week, today)
        return jsonify({
            "days": [
                {"date": day.isoformat(), "lessons": [l.to_dict() for l in lessons]}
                for day, lessons in days.items()
            ]
        })

    @app.route("/schedule", methods=["POST"])
    def add_lesson():
        """レッスン追加"""
        ctx = current_context()
        data = payload()
        lesson = ctx.schedule.add_lesson(
            data.get("title", ""),
            data.get("time", ""),
            data.get("description", ""),
            bool(data.get("isDoubleLesson", False)),
            _parse_date(data.get("date")),
        )
        return jsonify(lesson.to_dict()), 201

    @app.route("/schedule/<lesson_id>", methods=["PATCH"])
    def edit_lesson(lesson_id):
        """レッスン編集"""
        ctx = current_context()
        data = payload()
        changes = {}
        # null は「変更なし」として扱う
        for src, dest in (("title", "title"), ("description", "description")):
            if data.get(src) is not None:
                changes[dest] = data[src]
        for src, dest in (("startTime", "start"), ("endTime", "end")):
            if data.get(src) is not None:
                changes[dest] = _parse_datetime(data[src])
        lesson = ctx.schedule.edit_lesson(lesson_id, **changes)
        return jsonify(lesson.to_dict())

    @app.route("/schedule/<lesson_id>", methods=["DELETE"])
    def delete_lesson(lesson_id):
        """レッスン削除"""
        ctx = current_context()
        ctx.schedule.delete_lesson(lesson_id)
        return jsonify({"success": True})

    @app.route("/schedule/current")
    def current_lesson():
        """現在・次のレッスン"""
        ctx = current_context()
        now = _parse_datetime(request.args.get("now")) or datetime.now()
        lesson = ctx.schedule.current_lesson(now)
        return jsonify({
            "current": lesson.to_dict() if lesson else None,
            "period": ctx.schedule.current_period(now),
            "upcoming": [l.to_dict() for l in ctx.schedule.upcoming_lessons(now)],
        })

    @app.route("/schedule/sync", methods=["POST"])
    def sync_calendar():
        """Outlookカレンダーから取り込み"""
        ctx = current_context()
        data = payload()
        token = data.get("accessToken")
        if not token:
            raise ValidationError("A calendar access token is required.")
        calendar = calendar_factory(token)
        added = asyncio.run(ctx.sync_calendar(
            calendar,
            _parse_int(data.get("week")),
            _parse_date(data.get("today")),
            data.get("timezone"),
        ))
        return jsonify({"added": [l.to_dict() for l in added]})

    # ============ FOCUS ============

    @app.route("/focus")
    def focus_state():
        """集中セッションの状態"""
        ctx = current_context()
        ctx.tracker.tick(_parse_datetime(request.args.get("now")))
        active = ctx.tracker.active_session
        return jsonify({
            "active": active.to_dict() if active else None,
            "history": [s.to_dict() for s in ctx.tracker.history],
        })

    @app.route("/focus/start", methods=["POST"])
    def focus_start():
        ctx = current_context()
        started = ctx.tracker.start_session(_parse_datetime(payload().get("timestamp")))
        return jsonify(started.to_dict()), 201

    @app.route("/focus/activity", methods=["POST"])
    def focus_activity():
        """離席・タブ切り替えなどを記録"""
        ctx = current_context()
        data = payload()
        activity = ctx.tracker.record_activity(
            data.get("type", ""),
            _parse_datetime(data.get("timestamp")),
            data.get("details", ""),
        )
        return jsonify({"activity": activity.to_dict() if activity else None})

    @app.route("/focus/stop", methods=["POST"])
    def focus_stop():
        ctx = current_context()
        summary = ctx.tracker.stop_session(_parse_datetime(payload().get("timestamp")))
        return jsonify(summary.to_dict())

    # ============ TIMER ============

    @app.route("/timer")
    def timer_state():
        ctx = current_context()
        return jsonify(ctx.timer.to_dict())

    @app.route("/timer/start", methods=["POST"])
    def timer_start():
        """カウントダウン開始（1秒ごとに画面側から /timer/tick を呼ぶ）"""
        ctx = current_context()
        ctx.timer.resume()
        return jsonify(ctx.timer.to_dict())

    @app.route("/timer/pause", methods=["POST"])
    def timer_pause():
        """一時停止（集中セッション中なら離席として記録）"""
        ctx = current_context()
        ctx.timer.pause()
        return jsonify(ctx.timer.to_dict())

    @app.route("/timer/reset", methods=["POST"])
    def timer_reset():
        ctx = current_context()
        ctx.timer.reset()
        return jsonify(ctx.timer.to_dict())

    @app.route("/timer/toggle", methods=["POST"])
    def timer_toggle():
        ctx = current_context()
        ctx.timer.toggle_mode()
        return jsonify(ctx.timer.to_dict())

    @app.route("/timer/minutes", methods=["POST"])
    def timer_minutes():
        """集中・休憩の長さを変更（0以下は無視）"""
        ctx = current_context()
        data = payload()
        if "focus" in data:
            ctx.timer.set_focus_minutes(_parse_int(data["focus"]))
        if "break" in data:
            ctx.timer.set_break_minutes(_parse_int(data["break"]))
        return jsonify(ctx.timer.to_dict())

    @app.route("/timer/tick", methods=["POST"])
    def timer_tick():
        ctx = current_context()
        summary = ctx.tick_timer(_parse_datetime(payload().get("timestamp")))
        return jsonify({
            **ctx.timer.to_dict(),
            "completedSession": summary.to_dict() if summary else None,
        })

    # ============ MOOD ============

    @app.route("/mood", methods=["POST"])
    def submit_mood():
        """気分の記録"""
        ctx = current_context()
        data = payload()
        entry = ctx.ledger.submit_mood(
            data.get("lessonId", ""),
            data.get("mood", ""),
            data.get("state", ""),
            data.get("note", ""),
            _parse_date(data.get("date")),
        )
        return jsonify({"entry": entry.to_dict(), "rewards": ctx.ledger.stats.to_dict()}), 201

    @app.route("/mood/stats/<lesson_id>")
    def mood_stats(lesson_id):
        ctx = current_context()
        return jsonify(ctx.ledger.mood_stats(lesson_id).to_dict())

    @app.route("/mood/weekly")
    def weekly_mood():
        """週間レポート"""
        ctx = current_context()
        report = ctx.ledger.weekly_mood_stats(
            _parse_int(request.args.get("week")),
            _parse_date(request.args.get("today")),
        )
        return jsonify(report.to_dict())

    # ============ REWARDS / GAME ============

    @app.route("/rewards")
    def rewards():
        ctx = current_context()
        return jsonify({
            "stats": ctx.ledger.stats.to_dict(),
            "level": ctx.ledger.level_info(),
            "highScore": ctx.ledger.high_score,
        })

    @app.route("/game/start", methods=["POST"])
    def game_start():
        ctx = current_context()
        ctx.game.start()
        return jsonify(ctx.game.to_dict())

    @app.route("/game/click", methods=["POST"])
    def game_click():
        ctx = current_context()
        data = payload()
        try:
            point = (float(data["x"]), float(data["y"]))
        except (KeyError, TypeError, ValueError):
            raise ValidationError("Click position needs numeric x and y.")
        hit = ctx.game.register_click(point)
        return jsonify({"hit": hit, **ctx.game.to_dict()})

    @app.route("/game/tick", methods=["POST"])
    def game_tick():
        """1秒ごとのカウントダウン（画面側のタイマーから呼ぶ）"""
        ctx = current_context()
        ctx.game.tick()
        return jsonify(ctx.game.to_dict())

    # ============ TEACHER ============

    @app.route("/teacher/overview")
    def teacher_overview():
        """クラス全体の集計（先生のみ）"""
        ctx = current_context()
        if ctx.user.role != "teacher":
            abort(403)

        now = _parse_datetime(request.args.get("now"))
        students = []
        for user_id in db.user_ids():
            store = db.for_user(user_id)
            profile = store.get(PROFILE_KEY) or {}
            if profile.get("role", "student") != "student":
                continue
            schedule = ScheduleAggregator.load(store)
            ledger = RewardLedger.load(store, schedule)
            tracker = FocusSessionTracker.load(store, ledger)
            students.append(summarize_student(
                user_id,
                profile.get("displayName") or profile.get("email") or user_id,
                schedule.lessons,
                ledger.entries,
                tracker.history,
                now,
            ))

        return jsonify({
            "students": [s.to_dict() for s in students],
            "averages": class_averages(students),
        })

    # ============ ERROR HANDLERS ============

    @app.errorhandler(FocusFriendError)
    def domain_error(e):
        status = STATUS_BY_KIND.get(e.kind, 400)
        if isinstance(e, ExternalCollaboratorError):
            status = STATUS_BY_REASON.get(e.reason, status)
            logger.warning("external error (%s): %s", e.reason, e.message)
        return jsonify({"error": e.to_dict()}), status

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify({"error": {"kind": "unauthorized", "message": "Please sign in to continue."}}), 401

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({"error": {"kind": "forbidden", "message": "Teachers only."}}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": {"kind": "not_found", "message": "Not found."}}), 404

    return app


# ============ MAIN ============

if __name__ == '__main__':
    import os
    port = int(os.environ.get('PORT', 8080))
    debug = os.environ.get('FLASK_DEBUG', 'false').lower() == 'true'
    create_app().run(host='0.0.0.0', port=port, debug=debug)
