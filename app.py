from botocore.exceptions import BotoCoreError, ClientError
from datetime import datetime, timezone, timedelta
from decimal import Decimal, InvalidOperation
from flask_cors import CORS
from flask import abort, current_app, Flask, g, jsonify, redirect, render_template_string, request, send_file, url_for
from flask_login import LoginManager, login_required, current_user, UserMixin
from flask_mail import Message, Mail
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from functools import wraps
from jwt import InvalidTokenError
from openai import OpenAI
from PIL import Image, UnidentifiedImageError
from business_cards import (
    generate_business_card_preview, generate_business_cards_pdf, get_template,
    list_templates, sanitize_filename_part, validate_card_data,
)
from catalog import (
    add_to_catalog, catalog_logo_to_dict, check_logo_in_catalog, delete_catalog_logo,
    get_catalog_logo_by_code, get_catalog_logo_image, get_catalog_logos,
    get_catalog_logos_metadata, get_catalog_stats, normalize_catalog_code, search_catalog_logos,
)
from identity import ALLOWED_STATUSES, AppManagerClient, AppManagerError, IdentityStore, user_status
from prompts import CLASSIFIER_SYSTEM_PROMPT, build_industry_classification_prompt, build_logo_prompt
from prompts import fallback_industry, normalize_industry, suggest_style
from quota import DEFAULT_LOGO_LIMIT, SUPERUSER_LOGO_LIMIT, usage_dict
from quota import get_or_create_credits, get_credits, get_credits_by_id, get_initial_logo_credits
from quota import consume_logo_or_deny, refund_logo, record_logo_created
from quota import add_purchased_credits, reset_for_registration, set_logo_limit, delete_credits
from sqlalchemy import desc
from sqlalchemy import func
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from werkzeug.utils import secure_filename
import base64
import bcrypt
import hashlib, secrets
import io
import json
import jwt
import logging
import openai
import os
import requests
import stripe
import time


logger = logging.getLogger()
logger.setLevel(logging.INFO)

if os.getenv("LOG_TO_STDOUT", "1") == "1":
    handler = logging.StreamHandler()
else:
    log_dir = os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(os.path.join(log_dir, "logomaker.log"))

handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
logger.addHandler(handler)


client = OpenAI()

app = Flask(__name__)
# defaults come from the plain env vars the deployment already sets
app.config.from_mapping(
    SECRET_KEY=os.getenv("SECRET_KEY", "dev-secret-change-me"),
    SQLALCHEMY_DATABASE_URI=os.getenv("SUPABASE_DB_URL", "sqlite:///logomaker.db"),
    SQLALCHEMY_TRACK_MODIFICATIONS=False,
    JWT_ACCESS_TOKEN_SECRET=os.getenv("JWT_ACCESS_TOKEN_SECRET", "access-token-secret"),
    ACCESS_TOKEN_TTL_DAYS=7,
    AUTH_COOKIE_NAME="access_token",
    COOKIE_SECURE=os.getenv("FLASK_ENV", "production") == "production",
    BCRYPT_ROUNDS=12,
    AWS_REGION=os.getenv("AWS_REGION", "us-east-1"),
    DYNAMODB_USERS_TABLE=os.getenv("DYNAMODB_USERS_TABLE", "AppUsers"),
    DYNAMODB_EMAIL_INDEX=os.getenv("DYNAMODB_EMAIL_INDEX", "email-index"),
    APP_ID=os.getenv("APP_ID", "logo-generator"),
    APP_MANAGER_API_ENDPOINT=os.getenv("APP_MANAGER_API_ENDPOINT", ""),
    APP_MANAGER_API_KEY=os.getenv("APP_MANAGER_API_KEY", ""),
    SUPERUSER_EMAILS=os.getenv("SUPERUSER_EMAILS", ""),
    STRIPE_SECRET_KEY=os.getenv("STRIPE_SECRET_KEY", ""),
    STRIPE_WEBHOOK_SECRET=os.getenv("STRIPE_WEBHOOK_SECRET", ""),
    SITE_URL=os.getenv("SITE_URL", "http://localhost:3000"),
    CORS_ORIGINS=os.getenv("CORS_ORIGINS", "http://localhost:3000"),
    OPENAI_IMAGE_MODEL="gpt-image-1",
    OPENAI_CHAT_MODEL="gpt-4o-mini",
    MAIL_SERVER=os.getenv("MAIL_SERVER", "email-smtp.us-east-1.amazonaws.com"),
    MAIL_PORT=int(os.getenv("MAIL_PORT", "587")),
    MAIL_USE_TLS=True,
    MAIL_USERNAME=os.getenv("MAIL_USERNAME"),
    MAIL_PASSWORD=os.getenv("MAIL_PASSWORD"),
    MAIL_DEFAULT_SENDER=os.getenv("MAIL_DEFAULT_SENDER", "no-reply@localhost"),
    RESET_LINK_BASE=os.getenv("RESET_LINK_BASE", "http://localhost:5000/reset"),
)
cfg_path = os.getenv("LOGOMAKER_CONFIG_FILE", "config.py")
if os.path.exists(cfg_path):
    app.config.from_pyfile(os.path.abspath(cfg_path))

# env overrides (Flask 3)
app.config.from_prefixed_env(prefix="LOGOMAKER")

# Supabase hands out postgres:// URLs; SQLAlchemy 2 only accepts postgresql://
if app.config["SQLALCHEMY_DATABASE_URI"].startswith("postgres://"):
    app.config["SQLALCHEMY_DATABASE_URI"] = "postgresql://" + app.config["SQLALCHEMY_DATABASE_URI"][len("postgres://"):]


def _split_list(value):
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    # allow comma or semicolon
    return [p.strip() for p in (value or "").replace(";", ",").split(",") if p.strip()]


CORS(app, supports_credentials=True, origins=_split_list(app.config["CORS_ORIGINS"]))

db = SQLAlchemy(app)
login_manager = LoginManager(app)
migrate = Migrate(app, db)
mail = Mail(app)


# Password reset with token (when user clicks the email)
# ---------------------------------------------------------------------------
# Minimal web reset page
# ---------------------------------------------------------------------------
RESET_PAGE_TEMPLATE = """
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Reset your Logo Generator password</title>
  <meta name="robots" content="noindex,nofollow">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body { background:#f5f3ff; color:#1f2937; font-family:system-ui,-apple-system,Segoe UI,Roboto,Ubuntu; display:flex; min-height:100vh; align-items:center; justify-content:center; margin:0; }
    .card { width: min(480px, 92vw); background:#fff; border: 1px solid #e5e7eb; border-radius: 14px; padding: 22px; box-shadow: 0 6px 24px rgba(17,24,39,0.08); }
    h1 { font-size: 20px; margin: 0 0 8px; }
    p { color:#6b7280; margin: 0 0 16px; }
    input[type=password] { width:100%; padding:12px; border-radius:10px; border:1px solid #d1d5db; margin-bottom:12px; box-sizing:border-box; }
    button { width:100%; padding:12px; border-radius:10px; border:0; background:#4f46e5; color:#fff; font-weight:600; cursor:pointer; }
    .msg{ margin-top:12px; padding:10px; border-radius:10px; }
    .err{ background:#fef2f2; border:1px solid #fecaca; color:#991b1b; }
    .hint{ font-size:12px; color:#9ca3af; margin-top:8px; text-align:center;}
  </style>
</head>
<body>
  <div class="card">
    {% if invalid %}
      <h1>Link expired or invalid</h1>
      <p>Please request a new reset link from the sign-in page.</p>
      <div class="hint">You can close this window.</div>
    {% elif done %}
      <h1>Password updated</h1>
      <p>You can now sign in with your new password.</p>
      <div class="hint"><a href="{{ site_url }}">Back to Logo Generator</a></div>
    {% else %}
      <h1>Set a new password</h1>
      <p>Enter a new password for your account.</p>
      {% if error %}<div class="msg err">{{ error }}</div>{% endif %}
      <form method="post">
        <input type="hidden" name="token" value="{{ token }}">
        <input type="password" name="pw1" placeholder="New password (min 8 chars)" minlength="8" required>
        <input type="password" name="pw2" placeholder="Confirm new password" minlength="8" required>
        <button type="submit">Update Password</button>
      </form>
    {% endif %}
  </div>
</body>
</html>
"""


# Models
class CreditAccount(db.Model):
    # quota record; camelCase columns are shared with the Supabase dashboard
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    logos_created = db.Column("logosCreated", db.Integer, nullable=False, default=0)
    logos_limit = db.Column("logosLimit", db.Integer, nullable=False, default=DEFAULT_LOGO_LIMIT)
    subscription_type = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<CreditAccount id={self.id} email={self.email!r} {self.logos_created}/{self.logos_limit}>"

class SubAppCredits(db.Model):
    __tablename__ = "subapp_credits"

    sub_app_id = db.Column(db.String(100), primary_key=True)
    logo_credits = db.Column(db.Integer, nullable=False, default=DEFAULT_LOGO_LIMIT)
    description = db.Column(db.String(255), nullable=True)

class CatalogLogo(db.Model):
    __tablename__ = "catalog_logos"

    id = db.Column(db.Integer, primary_key=True)
    catalog_code = db.Column(db.String(20), unique=True, nullable=False, index=True)   # CAT-001
    logo_key_id = db.Column(db.String(255), unique=True, nullable=False, index=True)   # client-side logo id
    image_data_uri = db.Column(db.Text, nullable=False)
    parameters = db.Column(db.JSON, nullable=True)
    original_company_name = db.Column(db.String(255), nullable=False)
    created_by = db.Column(db.String(255), nullable=True, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<CatalogLogo id={self.id} code={self.catalog_code}>"

# --- Payment transactions ---
class PaymentTransaction(db.Model):
    __tablename__ = "payment_transactions"

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)                # logo credits bought

    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    status = db.Column(db.String(20), nullable=False)   # completed/failed
    provider = db.Column(db.String(50), nullable=False) # stripe
    provider_transaction_id = db.Column(db.String(255), unique=True, index=True)

    provider_response = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

class PasswordResetToken(db.Model):
    __tablename__ = 'password_reset_tokens'
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)  # sha256 hex
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime, nullable=True)
    request_ip = db.Column(db.String(64))
    user_agent = db.Column(db.String(256))


# --- Auth resolution ---
NOT_ALLOWED = "not_allowed"

class AuthenticatedUser(UserMixin):
    """Identity record merged with its quota record for the current request."""

    def __init__(self, id, email, status, credits_id=None, logos_created=0, logos_limit=0,
                 is_superuser=False, superuser_privilege=None):
        self.id = id
        self.email = email
        self.status = status
        self.credits_id = credits_id
        self.logos_created = logos_created or 0
        self.logos_limit = logos_limit or 0
        self.is_superuser = is_superuser
        self.superuser_privilege = superuser_privilege

    @property
    def remaining_logos(self):
        return max(0, self.logos_limit - self.logos_created)

    def to_dict(self):
        return {
            "email": self.email,
            "logosCreated": self.logos_created,
            "logosLimit": self.logos_limit,
            "remainingLogos": self.remaining_logos,
            "status": self.status,
            "isSuperUser": self.is_superuser,
            "superUserPrivilege": self.superuser_privilege,
        }


def _get_superuser_emails():
    cfg = (current_app.config.get("SUPERUSER_EMAILS")
           or os.getenv("SUPERUSER_EMAILS")
           or "")
    return {e.lower() for e in _split_list(cfg)}

def is_superuser_email(email):
    return bool(email) and email.strip().lower() in _get_superuser_emails()


def get_identity_store() -> IdentityStore:
    store = app.extensions.get("identity_store")
    if store is None:
        store = IdentityStore(
            table_name=app.config["DYNAMODB_USERS_TABLE"],
            app_id=app.config["APP_ID"],
            email_index=app.config["DYNAMODB_EMAIL_INDEX"],
            region_name=app.config["AWS_REGION"],
        )
        app.extensions["identity_store"] = store
    return store

def get_app_manager() -> AppManagerClient:
    am = app.extensions.get("app_manager")
    if am is None:
        am = AppManagerClient(app.config["APP_MANAGER_API_ENDPOINT"], app.config["APP_MANAGER_API_KEY"])
        app.extensions["app_manager"] = am
    return am


def create_access_token(user_id, email):
    now = datetime.now(timezone.utc)
    payload = {
        "id": str(user_id),
        "email": email,
        "iat": now,
        "exp": now + timedelta(days=app.config["ACCESS_TOKEN_TTL_DAYS"]),
    }
    return jwt.encode(payload, app.config["JWT_ACCESS_TOKEN_SECRET"], algorithm="HS256")

def decode_access_token(token):
    try:
        return jwt.decode(token, app.config["JWT_ACCESS_TOKEN_SECRET"], algorithms=["HS256"])
    except InvalidTokenError:
        return None

def resolve_current_user(token):
    """None when unauthenticated, NOT_ALLOWED for a blocked account, else an AuthenticatedUser."""
    if not token:
        return None
    claims = decode_access_token(token)
    if not claims or not claims.get("id") or not claims.get("email"):
        return None

    try:
        item = get_identity_store().get_user_by_email(claims["email"])
    except (ClientError, BotoCoreError):
        logger.exception("Identity lookup failed")
        return None
    if not item or str(item.get("id")) != str(claims["id"]):
        return None

    email = item["email"].strip().lower()
    status = user_status(item)

    # Superusers bypass status checks and get a high limit without a quota record
    if is_superuser_email(email):
        acct = get_credits(email)
        return AuthenticatedUser(
            id=item["id"], email=email, status=status,
            credits_id=acct.id if acct else None,
            logos_created=acct.logos_created if acct else 0,
            logos_limit=acct.logos_limit if acct else SUPERUSER_LOGO_LIMIT,
            is_superuser=True, superuser_privilege="admin",
        )

    if status not in ALLOWED_STATUSES:
        logger.info("Account status %r does not allow access for %s", status, email)
        return NOT_ALLOWED

    acct = get_or_create_credits(email)
    return AuthenticatedUser(
        id=item["id"], email=email, status=status, credits_id=acct.id,
        logos_created=acct.logos_created, logos_limit=acct.logos_limit,
    )


@login_manager.request_loader
def load_user_from_request(req):
    result = resolve_current_user(req.cookies.get(app.config["AUTH_COOKIE_NAME"]))
    if result == NOT_ALLOWED:
        g.account_not_active = True
        return None
    return result

@login_manager.unauthorized_handler
def unauthorized():
    if request.path.startswith("/admin"):
        return redirect(url_for("admin_login_form"))
    if g.get("account_not_active"):
        return jsonify({"error": "Account not active"}), 403
    return jsonify({"error": "Unauthorized"}), 401


def superuser_required(fn):
    @wraps(fn)
    @login_required
    def _wrap(*a, **k):
        if not current_user.is_superuser:
            if request.path.startswith("/api/"):
                return jsonify({"error": "Superuser access required"}), 403
            abort(403)
        return fn(*a, **k)
    return _wrap


def _set_auth_cookie(resp, token):
    resp.set_cookie(
        app.config["AUTH_COOKIE_NAME"], token,
        max_age=app.config["ACCESS_TOKEN_TTL_DAYS"] * 24 * 3600,
        httponly=True, secure=app.config["COOKIE_SECURE"], samesite="Strict", path="/",
    )
    return resp

def _clear_auth_cookie(resp):
    resp.delete_cookie(app.config["AUTH_COOKIE_NAME"], path="/",
                       httponly=True, secure=app.config["COOKIE_SECURE"], samesite="Strict")
    return resp


def _hash_password(pw: str) -> str:
    rounds = int(app.config["BCRYPT_ROUNDS"])
    return bcrypt.hashpw(pw.encode('utf-8'), bcrypt.gensalt(rounds=rounds)).decode('utf-8')

def _check_password(pw: str, hashed: str | None) -> bool:
    if not pw or not hashed:
        return False
    try:
        return bcrypt.checkpw(pw.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        # not a bcrypt hash
        return False

def _hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()

RESET_TTL_MINUTES = 60

def _generate_raw_token() -> str:
    return secrets.token_urlsafe(32)

def _password_policy_ok(pw: str) -> bool:
    return isinstance(pw, str) and len(pw) >= 8


def _authenticate(email, password):
    """(identity item, None) on success, else (None, (json error, status))."""
    if not email or not password:
        return None, ({"error": "Email and password are required"}, 400)
    try:
        item = get_identity_store().get_user_by_email(email)
    except (ClientError, BotoCoreError):
        logger.exception("Identity lookup failed during login")
        return None, ({"error": "Login failed"}, 500)
    if not item or not _check_password(password, item.get("password")):
        return None, ({"error": "Invalid credentials"}, 401)
    if not is_superuser_email(email) and user_status(item) not in ALLOWED_STATUSES:
        return None, ({"error": "Account not active"}, 403)
    try:
        get_identity_store().record_login(item["id"])
    except (ClientError, BotoCoreError):
        logger.warning("Failed to update lastLogin for %s", email, exc_info=True)
    return item, None


# ROUTES
# --- Auth ---
@app.route("/api/auth/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    item, err = _authenticate(email, password)
    if err:
        body, code = err
        return jsonify(body), code

    limit = SUPERUSER_LOGO_LIMIT if is_superuser_email(email) else None
    acct = get_or_create_credits(email, logos_limit=limit)
    resp = jsonify({
        "message": "Login successful",
        "user": {"email": email, **usage_dict(acct.logos_created, acct.logos_limit)},
    })
    return _set_auth_cookie(resp, create_access_token(item["id"], email))


@app.route("/api/auth/register", methods=["POST"])
def register():
    """Registration through an App Manager purchase link."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    token = data.get("token") or ""
    app_id = data.get("appId") or app.config["APP_ID"]
    link_type = data.get("linkType") or ""
    subapp_id = data.get("subappId")
    order_number = data.get("orderNumber")

    if not email or not password or not token or not link_type:
        return jsonify({"error": "Missing required fields: email, password, token, linkType"}), 400
    if not _password_policy_ok(password):
        return jsonify({"error": "Password does not meet policy"}), 400

    try:
        am_response = get_app_manager().verify_app_purchase(
            email, password, token, app_id, link_type,
            subapp_id=subapp_id, order_number=order_number,
        )
    except AppManagerError as e:
        logger.warning("App Manager registration failed for %s: %s", email, e)
        return jsonify({"error": "App Manager registration failed", "details": str(e)}), 400

    try:
        get_identity_store().upsert_registered_user(
            email, _hash_password(password), app_manager_data=am_response, sub_app_id=subapp_id,
        )
        acct = reset_for_registration(email, get_initial_logo_credits(subapp_id))
    except (ClientError, BotoCoreError, SQLAlchemyError):
        db.session.rollback()
        logger.exception("Registration partially completed for %s", email)
        return jsonify({"error": "Registration partially completed. Please contact support."}), 500

    logger.info("Registered %s via App Manager (%s free logos)", email, acct.logos_limit)
    return jsonify({
        "success": True,
        "message": "Registration successful. You can now sign in.",
        "user": {"email": email, **usage_dict(acct.logos_created, acct.logos_limit)},
    })


@app.route("/api/auth/logout", methods=["POST"])
def logout():
    return _clear_auth_cookie(jsonify({"message": "Logged out"}))


# Change Password (logged in)
@app.route("/api/auth/change-password", methods=["POST"])
@login_required
def api_change_password():
    data = request.get_json(silent=True) or {}
    current_pw = data.get("currentPassword") or ""
    new_pw = data.get("newPassword") or ""
    if not new_pw:
        return jsonify({"error": "newPassword required"}), 400
    if not _password_policy_ok(new_pw):
        return jsonify({"error": "Password does not meet policy"}), 400

    store = get_identity_store()
    item = store.get_user(current_user.id)
    if not item:
        return jsonify({"error": "User not found"}), 404

    # accounts provisioned without a local password can set one directly
    hashed = item.get("password")
    if hashed:
        if not _check_password(current_pw, hashed):
            return jsonify({"error": "Current password incorrect"}), 401
        if _check_password(new_pw, hashed):
            return jsonify({"error": "New password must be different"}), 400

    try:
        store.set_password(item["id"], _hash_password(new_pw))
    except (ClientError, BotoCoreError):
        logger.exception("Failed to change password for %s", current_user.email)
        return jsonify({"error": "Failed to change password"}), 500
    return jsonify({"message": "Password changed"}), 200


def send_password_reset_email(recipient_email, raw_token):
    base = app.config.get("RESET_LINK_BASE")
    link = f"{base}?token={raw_token}"
    msg = Message(
        subject="Reset your Logo Generator password",
        recipients=[recipient_email],
        body=(
            "We received a request to reset your password.\n\n"
            f"Open this link to set a new password (expires in {RESET_TTL_MINUTES} minutes):\n{link}\n\n"
            "If you didn't request this, ignore this email."
        ),
    )
    mail.send(msg)

def _valid_reset_token(raw):
    if not raw:
        return None
    prt = PasswordResetToken.query.filter_by(token_hash=_hash_token(raw)).first()
    if not prt or prt.used_at is not None or prt.expires_at < datetime.utcnow():
        return None
    return prt

def _apply_password_reset(prt, new_pw):
    store = get_identity_store()
    item = store.get_user_by_email(prt.email)
    if not item:
        raise LookupError("identity record not found")
    store.set_password(item["id"], _hash_password(new_pw))
    prt.used_at = datetime.utcnow()
    db.session.commit()


# Request Password Reset (no user enumeration)
@app.route("/api/auth/send-password-reset", methods=["POST"])
def api_send_password_reset():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    if not email:
        return jsonify({"error": "Email is required"}), 400

    # Always say 200
    try:
        item = get_identity_store().get_user_by_email(email)
    except (ClientError, BotoCoreError):
        logger.exception("Identity lookup failed during password reset")
        item = None

    if item:
        # invalidate outstanding tokens
        PasswordResetToken.query.filter_by(email=email, used_at=None)\
            .update({PasswordResetToken.used_at: datetime.utcnow()})
        db.session.flush()

        raw = _generate_raw_token()
        prt = PasswordResetToken(
            email=email,
            token_hash=_hash_token(raw),
            created_at=datetime.utcnow(),
            expires_at=datetime.utcnow() + timedelta(minutes=RESET_TTL_MINUTES),
            request_ip=request.remote_addr,
            user_agent=request.headers.get("User-Agent", "")[:250],
        )
        db.session.add(prt)
        db.session.commit()

        try:
            send_password_reset_email(email, raw)
        except Exception:
            logger.exception("Failed to send reset email")

    return jsonify({"message": "If that email exists, a reset link was sent."}), 200


@app.route("/api/auth/verify-reset-token", methods=["POST"])
def api_verify_reset_token():
    data = request.get_json(silent=True) or {}
    prt = _valid_reset_token(data.get("token") or "")
    email = (data.get("email") or "").strip().lower()
    if not prt or (email and email != prt.email):
        return jsonify({"valid": False, "error": "Invalid or expired token"}), 400
    return jsonify({"valid": True, "email": prt.email}), 200


# Password Reset with token
@app.route("/api/auth/reset-password", methods=["POST"])
def api_reset_password():
    data = request.get_json(silent=True) or {}
    raw = data.get("token") or ""
    new_pw = data.get("newPassword") or ""
    if not raw or not new_pw:
        return jsonify({"error": "token and newPassword required"}), 400
    if not _password_policy_ok(new_pw):
        return jsonify({"error": "Password does not meet policy"}), 400

    prt = _valid_reset_token(raw)
    if not prt:
        return jsonify({"error": "Invalid or expired token"}), 400

    try:
        _apply_password_reset(prt, new_pw)
    except LookupError:
        return jsonify({"error": "Invalid or expired token"}), 400
    except (ClientError, BotoCoreError):
        db.session.rollback()
        logger.exception("Failed to reset password for %s", prt.email)
        return jsonify({"error": "Failed to reset password"}), 500
    return jsonify({"message": "Password updated"}), 200


@app.route("/reset", methods=["GET", "POST"])
def reset_page():
    """
    Web UI for password reset.
    GET: show form if token valid, else show 'expired/invalid'.
    POST: set new password and show success.
    """
    site_url = app.config["SITE_URL"]
    if request.method == "GET":
        raw = request.args.get("token", "", type=str)
        if not _valid_reset_token(raw):
            return render_template_string(RESET_PAGE_TEMPLATE, invalid=True), 400
        return render_template_string(RESET_PAGE_TEMPLATE, token=raw, invalid=False, done=False)

    # POST
    raw = request.form.get("token", "")
    pw1 = request.form.get("pw1", "")
    pw2 = request.form.get("pw2", "")
    if not raw or not pw1 or not pw2:
        return render_template_string(RESET_PAGE_TEMPLATE, invalid=True), 400
    if pw1 != pw2:
        return render_template_string(RESET_PAGE_TEMPLATE, token=raw, error="Passwords do not match"), 400
    if not _password_policy_ok(pw1):
        return render_template_string(RESET_PAGE_TEMPLATE, token=raw, error="Use at least 8 characters"), 400

    prt = _valid_reset_token(raw)
    if not prt:
        return render_template_string(RESET_PAGE_TEMPLATE, invalid=True), 400
    try:
        _apply_password_reset(prt, pw1)
    except LookupError:
        return render_template_string(RESET_PAGE_TEMPLATE, invalid=True), 400
    return render_template_string(RESET_PAGE_TEMPLATE, done=True, site_url=site_url)


# --- Current user / quota record ---
@app.route("/api/user", methods=["GET"])
@login_required
def get_user():
    acct = get_credits(current_user.email)
    return jsonify({
        **current_user.to_dict(),
        "subscription_type": acct.subscription_type if acct else None,
    })


@app.route("/api/user", methods=["PATCH"])
@superuser_required
def patch_user():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or current_user.email).strip().lower()

    def _opt_int(key):
        v = data.get(key)
        if v is None:
            return None
        if isinstance(v, bool) or not isinstance(v, int) or v < 0:
            raise ValueError(f"{key} must be a non-negative integer")
        return v

    try:
        logos_limit = _opt_int("logosLimit")
        logos_created = _opt_int("logosCreated")
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    subscription_type = data.get("subscriptionType", data.get("subscription_type"))

    acct = get_credits(email)
    if not acct:
        return jsonify({"error": "User not found"}), 404
    acct = set_logo_limit(acct.id, logos_limit=logos_limit, logos_created=logos_created,
                          subscription_type=subscription_type)
    logger.info("%s updated quota for %s: %s/%s", current_user.email, email, acct.logos_created, acct.logos_limit)
    return jsonify({"user": {
        "email": acct.email,
        **usage_dict(acct.logos_created, acct.logos_limit),
        "subscription_type": acct.subscription_type,
    }})


@app.route("/api/user/delete", methods=["DELETE"])
@login_required
def delete_user():
    delete_credits(current_user.email)
    try:
        # a deleted identity must not be re-provisioned with fresh free credits
        get_identity_store().set_status(current_user.id, "deleted")
    except (ClientError, BotoCoreError):
        logger.exception("Failed to mark identity %s deleted", current_user.id)
    logger.info("Account deleted: %s", current_user.email)
    return _clear_auth_cookie(jsonify({"message": "Account deleted"}))


# --- Generation ---
ALLOWED_SIZES = {"1024x1024", "1024x1536", "1536x1024", "auto"}
MAX_REFERENCE_PX = 1536
LIMIT_REACHED_MESSAGE = "You have reached your logo generation limit. Please upgrade your plan or contact support."

def _truthy(v) -> bool:
    return str(v or "").strip().lower() in ("1", "true", "yes", "on")

def _prepare_reference_image(file_storage):
    """Normalise an uploaded reference image into a PNG upload tuple for the OpenAI edit endpoint."""
    raw = file_storage.read()
    if not raw:
        raise ValueError("Reference image is empty")
    try:
        with Image.open(io.BytesIO(raw)) as img:
            img = img.convert("RGBA")
            img.thumbnail((MAX_REFERENCE_PX, MAX_REFERENCE_PX))
            buf = io.BytesIO()
            img.save(buf, "PNG")
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError("Reference image is not a valid image") from e
    stem = os.path.splitext(secure_filename(file_storage.filename or ""))[0] or "reference"
    return (f"{stem}.png", buf.getvalue(), "image/png")

def generate_logo_image(prompt, size="1024x1024", reference=None):
    """Returns the base64 PNG for the prompt; uses the edit endpoint when a reference is given."""
    model = app.config["OPENAI_IMAGE_MODEL"]
    if reference is not None:
        response = client.images.edit(model=model, image=reference, prompt=prompt, quality="high")
    else:
        response = client.images.generate(model=model, prompt=prompt, size=size, quality="high")
    if not response.data:
        raise ValueError("No image generated")
    b64 = response.data[0].b64_json
    if not b64:
        raise ValueError("No image data received")
    return b64


@app.route("/logos", methods=["GET"])
@login_required
def get_logo_usage():
    return jsonify({"usage": usage_dict(current_user.logos_created, current_user.logos_limit)})


@app.route("/logos", methods=["POST"])
@login_required
def generate_logo():
    data = request.form if request.form else (request.get_json(silent=True) or {})

    # 1) Input guard
    prompt = (data.get("prompt") or "").strip()
    if not prompt and data.get("parameters"):
        try:
            params = data["parameters"]
            if isinstance(params, str):
                params = json.loads(params)
            prompt = build_logo_prompt(params)
        except (ValueError, TypeError, AttributeError) as e:
            return jsonify({"error": f"Invalid parameters: {e}"}), 400
    if not prompt:
        return jsonify({"error": "Prompt is required"}), 400

    size = data.get("size") or "1024x1024"
    if size not in ALLOWED_SIZES:
        return jsonify({"error": f"Unsupported size {size!r}"}), 400

    is_revision = _truthy(data.get("isRevision"))
    reference = None
    upload = request.files.get("referenceImage")
    if upload and upload.filename:
        try:
            reference = _prepare_reference_image(upload)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

    # 2) Credits: new logos are charged up front, revisions are free
    charged_account = None
    if not is_revision and not current_user.is_superuser:
        if not consume_logo_or_deny(current_user.credits_id):
            return jsonify({"error": LIMIT_REACHED_MESSAGE}), 403
        charged_account = current_user.credits_id

    logger.info("Generating logo for %s (revision=%s, bulk=%s, original=%s, reference=%s)",
                current_user.email, is_revision, _truthy(data.get("isBulkGeneration")),
                data.get("originalLogoId"), reference is not None)
    try:
        b64 = generate_logo_image(prompt, size, reference)
    except openai.OpenAIError:
        db.session.rollback()
        if charged_account:
            refund_logo(charged_account)
        logger.error("OpenAI image generation failed", exc_info=True)
        return jsonify({"error": "OpenAI image generation failed"}), 502
    except ValueError as e:
        if charged_account:
            refund_logo(charged_account)
        logger.error(f"OpenAI returned no image: {e}")
        return jsonify({"error": str(e)}), 502
    except Exception:
        db.session.rollback()
        if charged_account:
            refund_logo(charged_account)
        logger.exception("Unexpected error during logo generation")
        return jsonify({"error": "Logo generation failed"}), 500

    if current_user.is_superuser and not is_revision:
        acct = get_or_create_credits(current_user.email, logos_limit=SUPERUSER_LOGO_LIMIT)
        record_logo_created(acct.id)
        acct = get_credits_by_id(acct.id)
    else:
        acct = get_credits_by_id(current_user.credits_id) if current_user.credits_id else None

    if acct:
        usage = usage_dict(acct.logos_created, acct.logos_limit)
    else:
        usage = usage_dict(current_user.logos_created, current_user.logos_limit)

    return jsonify({
        "image": {"type": "base64", "data": b64},
        "usage": usage,
        "isRevision": is_revision,
        "message": "Logo revision generated successfully" if is_revision else "Logo generated successfully",
    })


@app.route("/api/generate", methods=["POST"])
@login_required
def generate_proxy():
    """Raw image generation passthrough; does not touch credits."""
    data = request.get_json(silent=True) or {}
    prompt = (data.get("prompt") or "").strip()
    if not prompt:
        return jsonify({"error": "Prompt is required"}), 400
    size = data.get("size") or "1024x1024"
    if size not in ALLOWED_SIZES:
        return jsonify({"error": f"Unsupported size {size!r}"}), 400

    try:
        response = client.images.generate(
            model=app.config["OPENAI_IMAGE_MODEL"], prompt=prompt, size=size, quality="high",
        )
    except openai.OpenAIError:
        logger.error("OpenAI image generation failed", exc_info=True)
        return jsonify({"error": "OpenAI image generation failed"}), 502

    return jsonify({
        "created": getattr(response, "created", None),
        "data": [
            {"b64_json": getattr(d, "b64_json", None), "revised_prompt": getattr(d, "revised_prompt", None)}
            for d in (response.data or [])
        ],
    })


def call_openai_with_retry(messages, retries=3, delay=2, **kwargs):
    for attempt in range(retries):
        try:
            return client.chat.completions.create(
                model=app.config["OPENAI_CHAT_MODEL"],
                messages=messages,
                **kwargs,
            )
        except openai.OpenAIError as e:
            logger.warning(f"[GPT Retry] Attempt {attempt+1} failed: {e}")
            if attempt < retries - 1:
                time.sleep(delay)
            else:
                raise


@app.route("/api/classify-industry", methods=["GET"])
def classify_industry_info():
    return jsonify({"message": "Industry Classification API. Use POST to classify industries."})


@app.route("/api/classify-industry", methods=["POST"])
@login_required
def classify_industry():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    description = (data.get("description") or "").strip()
    slogan = (data.get("slogan") or "").strip()
    prompt = (data.get("prompt") or "").strip()
    if not prompt and name:
        prompt = build_industry_classification_prompt(name, description, slogan)
    if not prompt:
        return jsonify({"error": "Prompt is required"}), 400

    answer = None
    try:
        response = call_openai_with_retry(
            [
                {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=50,
            temperature=0.1,
        )
        answer = response.choices[0].message.content
    except openai.OpenAIError:
        logger.warning("Industry classification failed, using keyword fallback", exc_info=True)

    industry = normalize_industry(answer)
    source = "ai"
    if industry is None:
        if answer:
            logger.info("Classifier answered off-list: %r", answer)
        industry = fallback_industry(" ".join(p for p in (name, description, slogan) if p) or prompt)
        source = "fallback"

    return jsonify({
        "industry": industry,
        "success": True,
        "source": source,
        "suggestedStyle": suggest_style(industry),
    })


# --- Stripe ---
# quantity -> price in USD
CREDIT_PACKS = {
    1: Decimal("4.95"),
    3: Decimal("9.95"),
    6: Decimal("14.95"),
    9: Decimal("19.95"),
}

@app.route("/api/stripe/create-checkout", methods=["POST"])
@login_required
def create_checkout():
    secret = app.config.get("STRIPE_SECRET_KEY")
    if not secret:
        logger.error("STRIPE_SECRET_KEY is not configured")
        return jsonify({"error": "Stripe is not configured"}), 500

    data = request.get_json(silent=True) or {}
    try:
        quantity = int(data.get("quantity"))
        price = Decimal(str(data.get("priceUsd")))
    except (TypeError, ValueError, InvalidOperation):
        return jsonify({"error": "Invalid quantity or price"}), 400
    if CREDIT_PACKS.get(quantity) != price:
        return jsonify({"error": "Invalid purchase option"}), 400

    plural = "s" if quantity > 1 else ""
    customer_email = (data.get("email") or current_user.email).strip().lower()
    site = app.config["SITE_URL"].rstrip("/")

    stripe.api_key = secret
    try:
        session = stripe.checkout.Session.create(
            payment_method_types=["card"],
            line_items=[{
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": f"{quantity} Logo Credit{plural}",
                        "description": f"Generate {quantity} professional logo{plural} with 3 free revisions per logo",
                    },
                    "unit_amount": int(price * 100),
                },
                "quantity": 1,
            }],
            mode="payment",
            success_url=f"{site}/purchase?payment=success&quantity={quantity}",
            cancel_url=f"{site}/account?payment=cancelled",
            customer_email=customer_email,
            # credits always land on the signed-in account
            metadata={
                "userEmail": current_user.email,
                "appId": str(current_user.id),
                "quantity": str(quantity),
            },
        )
    except stripe.StripeError:
        logger.exception("Failed to create Stripe checkout session")
        return jsonify({"error": "Failed to create checkout session"}), 502

    logger.info("Checkout session %s created for %s (%d credits)", session.id, current_user.email, quantity)
    return jsonify({"url": session.url, "sessionId": session.id})


def _resolve_purchase_email(metadata):
    email = (metadata.get("userEmail") or "").strip().lower()
    if email:
        return email
    user_id = metadata.get("appId") or metadata.get("userId")
    if not user_id:
        return None
    try:
        item = get_identity_store().get_user(user_id)
    except (ClientError, BotoCoreError):
        logger.exception("Identity lookup failed for purchase metadata %s", user_id)
        return None
    return (item or {}).get("email")


@app.route("/api/stripe/webhook", methods=["POST"])
def stripe_webhook():
    payload = request.get_data()
    sig_header = request.headers.get("Stripe-Signature")
    if not sig_header:
        return jsonify({"error": "Missing stripe-signature header"}), 400
    webhook_secret = app.config.get("STRIPE_WEBHOOK_SECRET")
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return jsonify({"error": "Webhook not configured"}), 500

    try:
        stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning(f"Invalid Stripe webhook: {e}")
        return jsonify({"error": "Invalid signature"}), 400

    # verified above; work on the plain JSON body
    event = json.loads(payload)
    if event.get("type") != "checkout.session.completed":
        return jsonify({"received": True})

    session = (event.get("data") or {}).get("object") or {}
    if session.get("payment_status") != "paid":
        logger.info("Checkout %s completed with payment_status=%s, not crediting",
                    session.get("id"), session.get("payment_status"))
        return jsonify({"received": True})

    metadata = session.get("metadata") or {}
    email = _resolve_purchase_email(metadata)
    try:
        quantity = int(metadata.get("quantity") or 0)
    except (TypeError, ValueError):
        quantity = 0
    if not email or quantity <= 0:
        logger.error("Checkout %s is missing purchase metadata: %s", session.get("id"), metadata)
        return jsonify({"error": "Missing metadata"}), 400

    session_id = session.get("id")
    if PaymentTransaction.query.filter_by(provider_transaction_id=session_id).first():
        logger.info("Checkout %s already processed", session_id)
        return jsonify({"received": True, "duplicate": True})

    txn = PaymentTransaction(
        email=email,
        quantity=quantity,
        amount=Decimal(session.get("amount_total") or 0) / 100,
        currency=(session.get("currency") or "usd").upper(),
        status="completed",
        provider="stripe",
        provider_transaction_id=session_id,
        provider_response=session,
    )
    db.session.add(txn)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({"received": True, "duplicate": True})

    try:
        acct = add_purchased_credits(email, quantity)
    except Exception:
        db.session.rollback()
        # let Stripe retry the delivery
        db.session.delete(txn)
        db.session.commit()
        logger.exception("Failed to add %d credits for %s", quantity, email)
        return jsonify({"error": "Failed to add credits"}), 500

    logger.info("Added %d logo credits for %s (limit now %d)", quantity, email, acct.logos_limit)
    return jsonify({"received": True})


# --- Catalog ---
def _int_arg(name, default, minimum=None, maximum=None):
    try:
        v = int(request.args.get(name, default))
    except (TypeError, ValueError):
        v = default
    if minimum is not None:
        v = max(minimum, v)
    if maximum is not None:
        v = min(maximum, v)
    return v


@app.route("/api/catalog", methods=["GET"])
@login_required
def catalog_get():
    action = request.args.get("action")

    if action == "get_by_code":
        code = (request.args.get("code") or "").strip()
        if not code:
            return jsonify({"error": "Catalog code is required"}), 400
        if not normalize_catalog_code(code):
            return jsonify({"error": "Invalid catalog code format. Use CAT-XXX"}), 400
        logo = get_catalog_logo_by_code(code)
        if not logo:
            return jsonify({"error": "Logo not found"}), 404
        return jsonify({"catalogLogo": catalog_logo_to_dict(logo)})

    if action == "search":
        term = (request.args.get("search") or "").strip()
        if not term:
            return jsonify({"error": "Search term is required"}), 400
        return jsonify({"catalogLogos": [catalog_logo_to_dict(l) for l in search_catalog_logos(term)]})

    if action == "stats":
        return jsonify({"stats": get_catalog_stats()})

    limit = _int_arg("limit", 0, minimum=0, maximum=500) or None
    offset = _int_arg("offset", 0, minimum=0) or None
    return jsonify({"catalogLogos": [catalog_logo_to_dict(l) for l in get_catalog_logos(limit, offset)]})


@app.route("/api/catalog", methods=["POST"])
@login_required
def catalog_add():
    data = request.get_json(silent=True) or {}
    logo_key_id = data.get("logoKeyId")
    image_data_uri = data.get("imageDataUri")
    parameters = data.get("parameters")
    company = data.get("originalCompanyName")
    if not logo_key_id or not image_data_uri or parameters is None or not company:
        return jsonify({"error": "Missing required fields: logoKeyId, imageDataUri, parameters, originalCompanyName"}), 400

    existing = check_logo_in_catalog(logo_key_id)
    if existing:
        return jsonify({"error": "Logo already exists in catalog", "catalogCode": existing.catalog_code}), 409

    try:
        logo = add_to_catalog(logo_key_id, image_data_uri, parameters, company, current_user.email)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except IntegrityError:
        existing = check_logo_in_catalog(logo_key_id)
        return jsonify({
            "error": "Logo already exists in catalog",
            "catalogCode": existing.catalog_code if existing else None,
        }), 409

    return jsonify({
        "success": True,
        "catalogLogo": catalog_logo_to_dict(logo, include_image=False),
        "catalogCode": logo.catalog_code,
    }), 201


@app.route("/api/catalog", methods=["PUT"])
@login_required
def catalog_check():
    data = request.get_json(silent=True) or {}
    logo_key_id = data.get("logoKeyId")
    if not logo_key_id:
        return jsonify({"error": "logoKeyId is required"}), 400
    logo = check_logo_in_catalog(logo_key_id)
    return jsonify({
        "isInCatalog": logo is not None,
        "catalogLogo": catalog_logo_to_dict(logo, include_image=False) if logo else None,
    })


@app.route("/api/catalog/public", methods=["GET"])
def catalog_public():
    page = _int_arg("page", 1, minimum=1)
    limit = _int_arg("limit", 30, minimum=1, maximum=100)
    search = request.args.get("search", "")
    offset = (page - 1) * limit

    logos, total = get_catalog_logos_metadata(offset, limit, search)
    # stats only on the first page
    stats = get_catalog_stats() if page == 1 else None
    return jsonify({
        "logos": logos,
        "stats": stats,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": (total + limit - 1) // limit,
            "hasMore": offset + len(logos) < total,
        },
    })


@app.route("/api/catalog/image/<int:logo_id>", methods=["GET"])
def catalog_image(logo_id: int):
    logo = get_catalog_logo_image(logo_id)
    if not logo:
        return jsonify({"error": "Logo not found"}), 404
    resp = jsonify({"id": logo.id, "image_data_uri": logo.image_data_uri})
    resp.headers["Cache-Control"] = "public, max-age=3600"
    return resp


@app.route("/api/catalog/delete/<int:logo_id>", methods=["DELETE"])
@superuser_required
def catalog_delete(logo_id: int):
    if not delete_catalog_logo(logo_id):
        return jsonify({"error": "Logo not found"}), 404
    logger.info("%s deleted catalog logo %s", current_user.email, logo_id)
    return jsonify({
        "success": True,
        "message": "Logo deleted from catalog",
        "deletedLogoId": logo_id,
    })


# --- Business cards ---
@app.get("/api/business-cards/generate")
def business_cards_get():
    return jsonify({"error": "Method not allowed. Use POST to generate business cards."}), 405


@app.post("/api/business-cards/generate")
@login_required
def business_cards_generate():
    data = request.get_json(silent=True) or {}
    template_id = data.get("templateId")
    card_data = data.get("cardData")
    if not template_id or not card_data:
        return jsonify({"error": "Missing required parameters: templateId and cardData are required"}), 400
    if get_template(template_id) is None:
        return jsonify({"error": f"Unknown template {template_id!r}"}), 400
    errors = validate_card_data(card_data)
    if errors:
        return jsonify({"error": "Invalid card data", "details": errors}), 400

    try:
        pdf = generate_business_cards_pdf(template_id, card_data, data.get("cardCount", 10))
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        logger.exception("Business card generation failed")
        return jsonify({"error": "Business card generation failed"}), 500

    filename = f"business-cards-{sanitize_filename_part(card_data['companyName'])}-{int(time.time() * 1000)}.pdf"
    return send_file(io.BytesIO(pdf), mimetype="application/pdf", as_attachment=True, download_name=filename)


@app.post("/api/business-cards/preview")
@login_required
def business_cards_preview():
    data = request.get_json(silent=True) or {}
    card_data = data.get("cardData")
    if not card_data:
        return jsonify({"error": "cardData is required"}), 400
    try:
        pdf = generate_business_card_preview(data.get("templateId"), card_data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        logger.exception("Business card preview failed")
        return jsonify({"error": "Business card preview failed"}), 500
    return jsonify({"pdfDataUri": "data:application/pdf;base64," + base64.b64encode(pdf).decode("ascii")})


@app.get("/api/business-cards/templates")
def business_card_templates():
    return jsonify({"templates": list_templates()})


# ---------------------------------------------------------------------------
# Admin (superusers)
# ---------------------------------------------------------------------------
# Minimal inline templates to avoid files
ADMIN_SHELL = """<!doctype html><meta charset="utf-8">
<title>{{ title or 'Admin' }}</title>
<style>
  :root { --page-width: 1400px; }
  html,body{height:100%;margin:0;padding:0}
  *{box-sizing:border-box}
  body{font-family:system-ui,-apple-system,Segoe UI,Roboto,Ubuntu;color:#151515;background:#fff}
  .wrap{width:min(96vw, var(--page-width)); margin:20px auto; padding:0 8px;}

  a{color:#0a58ca;text-decoration:none}
  .msg{padding:6px 10px;border-radius:8px;background:#eef;display:inline-block}
  nav a{margin-right:12px}
  hr{border:0;border-top:1px solid #ddd;margin:12px 0}

  table{border-collapse:collapse;width:100%;margin:10px 0; table-layout:auto}
  th,td{border:1px solid #ddd;padding:8px;vertical-align:top}
  th{background:#f4f4f4}
  input[type=number]{width:90px}
</style>

<div class="wrap">
  <h1>Logo Generator Admin</h1>
  <nav>
    <a href="/admin/">Dashboard</a>
    <a href="/admin/accounts">Accounts</a>
    <a href="/admin/catalog">Catalog</a>
    <a href="/admin/logout" onclick="event.preventDefault();document.getElementById('al').submit()">Logout</a>
  </nav>
  <hr>
  {{ body|safe }}
  <form id="al" method="post" action="/admin/logout"></form>
</div>
"""


def _render_admin(body_tpl: str, title: str, **ctx):
    body = render_template_string(body_tpl, **ctx)
    return render_template_string(ADMIN_SHELL, title=title, body=body)

def _admin_redirect(path: str, msg: str = ""):
    msg_q = f"?msg={requests.utils.quote(msg)}" if msg else ""
    return redirect(f"{path}{msg_q}")


@app.get("/admin/login")
def admin_login_form():
    if current_user.is_authenticated and current_user.is_superuser:
        return redirect("/admin/")
    return """
    <form method='post' action='/admin/login' style='max-width:340px;margin:60px auto;font-family:system-ui'>
      <h3>Admin login</h3>
      <input name='email' placeholder='Email' style='width:100%;padding:8px;margin:6px 0'>
      <input name='password' type='password' placeholder='Password' style='width:100%;padding:8px;margin:6px 0'>
      <button type='submit' style='padding:8px 12px'>Sign in</button>
      <p style='font-size:12px;color:#666'>Email must be listed in SUPERUSER_EMAILS</p>
    </form>
    """

@app.post("/admin/login")
def admin_login_submit():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    if not is_superuser_email(email):
        return "Invalid credentials", 401
    item, err = _authenticate(email, password)
    if err:
        return "Invalid credentials", 401
    return _set_auth_cookie(redirect("/admin/"), create_access_token(item["id"], email))

@app.post("/admin/logout")
def admin_logout():
    return _clear_auth_cookie(redirect("/admin/login"))


@app.get("/admin/")
@superuser_required
def admin_dashboard():
    total_accounts = db.session.query(func.count(CreditAccount.id)).scalar()
    total_logos = db.session.query(func.coalesce(func.sum(CreditAccount.logos_created), 0)).scalar()
    exhausted = (db.session.query(func.count(CreditAccount.id))
                 .filter(CreditAccount.logos_created >= CreditAccount.logos_limit).scalar())
    stats = get_catalog_stats()
    recent_payments = (db.session.query(PaymentTransaction)
                       .order_by(desc(PaymentTransaction.created_at)).limit(10).all())
    BODY = """
    <h2>Dashboard</h2>
    <div class="msg">Accounts: <b>{{ total_accounts }}</b></div>
    <div class="msg">Logos generated: <b>{{ total_logos }}</b></div>
    <div class="msg">Out of credits: <b>{{ exhausted }}</b></div>
    <div class="msg">Catalog logos: <b>{{ stats.totalLogos }}</b> from <b>{{ stats.totalContributors }}</b> contributors</div>
    <h3>Recent payments</h3>
    <table>
      <tr><th>ID</th><th>Email</th><th>Credits</th><th>Amount</th><th>Status</th><th>Provider</th><th>When</th></tr>
      {% for p in recent_payments %}
      <tr>
        <td>{{ p.id }}</td>
        <td><a href="{{ url_for('admin_accounts_list', q=p.email) }}">{{ p.email }}</a></td>
        <td>{{ p.quantity }}</td>
        <td>{{ '%.2f'|format(p.amount) }} {{ p.currency }}</td>
        <td>{{ p.status }}</td>
        <td>{{ p.provider }}</td>
        <td>{{ p.created_at }}</td>
      </tr>
      {% endfor %}
    </table>
    """
    return _render_admin(BODY, "Dashboard",
                         total_accounts=total_accounts, total_logos=total_logos,
                         exhausted=exhausted, stats=stats, recent_payments=recent_payments)


@app.get("/admin/accounts")
@superuser_required
def admin_accounts_list():
    try:
        page = max(1, int(request.args.get("page", 1)))
    except ValueError:
        page = 1
    per_page = 50
    q = (request.args.get("q") or "").strip()
    msg = request.args.get("msg")

    qry = CreditAccount.query
    if q:
        like = f"%{q}%"
        qry = qry.filter(or_(CreditAccount.email.ilike(like), CreditAccount.subscription_type.ilike(like)))
    qry = qry.order_by(CreditAccount.created_at.desc(), CreditAccount.id.desc())

    rows = qry.limit(per_page + 1).offset((page - 1) * per_page).all()
    has_more = len(rows) > per_page
    accounts = rows[:per_page]

    BODY = """
    <h2>Accounts</h2>
    {% if msg %}<div class="msg">{{ msg }}</div>{% endif %}
    <form method="get">
      <input name="q" value="{{ q or '' }}" placeholder="search email or plan">
      <button type="submit">Search</button>
    </form>
    <table>
      <tr><th>ID</th><th>Email</th><th>Plan</th><th>Created</th><th>Logos used / limit</th><th></th></tr>
      {% for a in accounts %}
        <tr>
          <td>{{ a.id }}</td>
          <td>{{ a.email }}</td>
          <td>{{ a.subscription_type or '' }}</td>
          <td>{{ a.created_at }}</td>
          <td>
            <form method="post" action="{{ url_for('admin_update_credits', account_id=a.id) }}">
              <input type="number" min="0" name="logos_created" value="{{ a.logos_created }}"> /
              <input type="number" min="0" name="logos_limit" value="{{ a.logos_limit }}">
              <button type="submit">Save</button>
            </form>
          </td>
          <td>{{ [0, a.logos_limit - a.logos_created]|max }} left</td>
        </tr>
      {% endfor %}
    </table>
    <div>
      {% if page>1 %}<a href="?page={{ page-1 }}&q={{ q }}">Prev</a>{% endif %}
      <span>Page {{ page }}</span>
      {% if has_more %}<a href="?page={{ page+1 }}&q={{ q }}">Next</a>{% endif %}
    </div>
    """
    return _render_admin(BODY, "Accounts", accounts=accounts, page=page, q=q,
                         has_more=has_more, msg=msg)


# --- Update credits ---
@app.post("/admin/accounts/<int:account_id>/credits")
@superuser_required
def admin_update_credits(account_id: int):
    try:
        created = int(request.form.get("logos_created", "0"))
        limit = int(request.form.get("logos_limit", "0"))
    except ValueError:
        return _admin_redirect("/admin/accounts", "Credits must be whole numbers")
    try:
        acct = set_logo_limit(account_id, logos_limit=limit, logos_created=created)
    except LookupError:
        abort(404)
    except ValueError as e:
        return _admin_redirect("/admin/accounts", str(e))
    logger.info("%s set credits for %s to %d/%d", current_user.email, acct.email, created, limit)
    return _admin_redirect("/admin/accounts", f"Credits updated for {acct.email}")


@app.get("/admin/catalog")
@superuser_required
def admin_catalog():
    page = _int_arg("page", 1, minimum=1)
    per_page = 50
    q = (request.args.get("q") or "").strip()
    msg = request.args.get("msg")
    logos, total = get_catalog_logos_metadata((page - 1) * per_page, per_page, q)
    BODY = """
    <h2>Catalog ({{ total }})</h2>
    {% if msg %}<div class="msg">{{ msg }}</div>{% endif %}
    <form method="get">
      <input name="q" value="{{ q or '' }}" placeholder="search company or CAT-code">
      <button type="submit">Search</button>
    </form>
    <table>
      <tr><th>Code</th><th>Company</th><th>Added by</th><th>When</th><th></th></tr>
      {% for l in logos %}
      <tr>
        <td><a href="{{ url_for('catalog_image', logo_id=l.id) }}">{{ l.catalog_code }}</a></td>
        <td>{{ l.original_company_name }}</td>
        <td>{{ l.created_by or '' }}</td>
        <td>{{ l.created_at }}</td>
        <td>
          <form method="post" action="{{ url_for('admin_catalog_delete', logo_id=l.id) }}"
                onsubmit="return confirm('Delete {{ l.catalog_code }}?')">
            <button type="submit">Delete</button>
          </form>
        </td>
      </tr>
      {% endfor %}
    </table>
    <div>
      {% if page>1 %}<a href="?page={{ page-1 }}&q={{ q }}">Prev</a>{% endif %}
      <span>Page {{ page }}</span>
      {% if page * per_page < total %}<a href="?page={{ page+1 }}&q={{ q }}">Next</a>{% endif %}
    </div>
    """
    return _render_admin(BODY, "Catalog", logos=logos, total=total, page=page,
                         per_page=per_page, q=q, msg=msg)


@app.post("/admin/catalog/<int:logo_id>/delete")
@superuser_required
def admin_catalog_delete(logo_id: int):
    if not delete_catalog_logo(logo_id):
        abort(404)
    return _admin_redirect("/admin/catalog", f"Deleted logo {logo_id}")
