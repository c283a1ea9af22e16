# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Email verification before password login
- Login OTP, password reset and admin panel tokens are single use,
  bcrypt hashed and time bounded (see secret_service)
- Admin login lockout after repeated failed attempts
- No account enumeration on the request-a-code endpoints
- Sign-out clears admin panel verification before revoking the session
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..errors import (
    AccountLockedError,
    AccountNotFoundError,
    AuthFlowError,
    NoPendingRequestError,
    RateLimitedError,
)
from ..services import auth_service
from ..services import session_service
from ..services import login_throttle_service
from ..services import verification_service
from ..services import admin_verification_service
from ..services.auth_service import PasswordValidationError
from ..services.secret_service import POLICIES, SecretPurpose
from ..decorators import require_auth, get_bearer_token, get_client_ip
from storefront.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

GENERIC_OTP_MESSAGE = "If a verified account exists for this email, a sign-in code has been sent."
GENERIC_RESET_MESSAGE = "If an account exists for this email, a password reset link has been sent."
GENERIC_RESEND_MESSAGE = "If an unverified account exists for this email, a verification link has been sent."


def _error_response(exc: AuthFlowError):
    return jsonify(exc.to_dict()), exc.status_code


def _verification_error(exc: AuthFlowError):
    # An unknown email looks exactly like an email with nothing pending
    if isinstance(exc, AccountNotFoundError):
        exc = NoPendingRequestError()
    return _error_response(exc)


def _json_body() -> dict:
    return request.get_json(silent=True) or {}


def _lockout_response(seconds_remaining: int | None):
    return _error_response(AccountLockedError(retry_after_seconds=seconds_remaining))


def _session_response(user, message: str):
    """Open a session for `user` and build the login payload."""
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=get_client_ip(),
    )
    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
        "requires_admin_verification": user.is_admin and not admin_verification_service.is_verified(user),
        "message": message,
    }), 200


# =============================================================================
# REGISTRATION & EMAIL VERIFICATION
# =============================================================================

@auth_bp.post("/register")
def register_route():
    """
    Create a customer account and mail the email verification link.

    Request body: {"email": "...", "password": "...", "name": "..."}

    The account exists even if the mail could not be sent; the caller is
    told so (502) and can use /resend-verification.
    """
    try:
        data = _json_body()
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        try:
            user = auth_service.create_user(email, password, name=data.get("name"))
        except PasswordValidationError as e:
            return jsonify({"error": str(e)}), 400
        except ValueError as e:
            if str(e) == "User already exists":
                return jsonify({"error": "An account with this email already exists"}), 409
            return jsonify({"error": str(e)}), 400

        try:
            expires_at = verification_service.send_email_verification(user)
        except AuthFlowError as e:
            current_app.logger.warning("Verification email not sent for new user %s: %s", user.id, e.message)
            body = e.to_dict()
            body["account_created"] = True
            return jsonify(body), e.status_code

        return jsonify({
            "user": user.to_dict(),
            "verification_expires_at": to_utc_z(expires_at),
            "message": "Account created. Check your email to verify your address.",
        }), 201

    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/resend-verification")
def resend_verification_route():
    try:
        email = _json_body().get("email")
        if not email:
            return jsonify({"error": "email required"}), 400

        verification_service.resend_email_verification(email)
        return jsonify({"message": GENERIC_RESEND_MESSAGE}), 200

    except AuthFlowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to resend verification email")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-email")
def verify_email_route():
    """
    Consume the email verification token from the link.

    Request body: {"email": "...", "token": "..."}
    """
    try:
        data = _json_body()
        email = data.get("email")
        token = data.get("token")

        if not all([email, token]):
            return jsonify({"error": "email and token required"}), 400

        user = verification_service.confirm_email(email, token)
        return jsonify({
            "user": user.to_dict(),
            "message": "Email verified. You can now sign in.",
        }), 200

    except AuthFlowError as e:
        return _verification_error(e)
    except Exception:
        current_app.logger.exception("Failed to verify email")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LOGIN
# =============================================================================

@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password and create a session token.

    SECURITY:
    - Unknown email and wrong password give the same 401
    - Unverified email is only reported after a correct password
    - Admin accounts lock for 30 minutes after 5 failures (423)
    - Admin login attempts are written to the activity log
    """
    try:
        data = _json_body()
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = get_client_ip()

        account = auth_service.get_user_by_email(email)
        tracked_admin = account if account is not None and account.is_admin else None

        if tracked_admin is not None:
            is_locked, seconds_remaining = login_throttle_service.is_account_locked(tracked_admin)
            if is_locked:
                return _lockout_response(seconds_remaining)

        user = auth_service.authenticate(email, password)

        if not user:
            if tracked_admin is not None:
                failed_count = login_throttle_service.record_failed_attempt(
                    tracked_admin, ip_address=ip_address, user_agent=user_agent
                )
                if failed_count >= login_throttle_service.MAX_FAILED_ATTEMPTS:
                    return _lockout_response(
                        int(login_throttle_service.LOCKOUT_DURATION.total_seconds())
                    )
            return jsonify({"error": "Invalid credentials"}), 401

        if user.is_admin:
            login_throttle_service.record_successful_login(user, ip_address=ip_address, user_agent=user_agent)

        current_app.logger.info("User %s signed in with password", user.id)
        return _session_response(user, "Login successful")

    except AuthFlowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/request-login-otp")
def request_login_otp_route():
    """
    Mail a 6-digit sign-in code.

    Answers the same message whether or not the account exists. Within 30
    seconds of the previous code the answer is 429 with retry_after_seconds.
    """
    try:
        email = _json_body().get("email")
        if not email:
            return jsonify({"error": "email required"}), 400

        verification_service.request_login_otp(email)
        ttl = POLICIES[SecretPurpose.LOGIN_OTP].ttl
        return jsonify({
            "message": GENERIC_OTP_MESSAGE,
            "expires_in_seconds": int(ttl.total_seconds()),
        }), 200

    except AuthFlowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue login OTP")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-login-otp")
def verify_login_otp_route():
    """
    Consume a sign-in code and create a session token.

    Request body: {"email": "...", "code": "123456"}
    """
    try:
        data = _json_body()
        email = data.get("email")
        code = data.get("code") or data.get("otp")

        if not all([email, code]):
            return jsonify({"error": "email and code required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = get_client_ip()

        account = auth_service.get_user_by_email(email)
        tracked_admin = account if account is not None and account.is_admin else None

        if tracked_admin is not None:
            is_locked, seconds_remaining = login_throttle_service.is_account_locked(tracked_admin)
            if is_locked:
                return _lockout_response(seconds_remaining)

        try:
            user = verification_service.login_with_otp(email, str(code).strip())
        except AuthFlowError as e:
            if tracked_admin is not None and not isinstance(e, NoPendingRequestError):
                login_throttle_service.record_failed_attempt(
                    tracked_admin, ip_address=ip_address, user_agent=user_agent
                )
            return _verification_error(e)

        if user.is_admin:
            login_throttle_service.record_successful_login(user, ip_address=ip_address, user_agent=user_agent)

        current_app.logger.info("User %s signed in with a one-time code", user.id)
        return _session_response(user, "Login successful")

    except Exception:
        current_app.logger.exception("Failed to verify login OTP")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PASSWORD RESET
# =============================================================================

@auth_bp.post("/forgot-password")
def forgot_password_route():
    """
    Mail a password reset link.

    Unknown emails and the resend cooldown get the same 200 answer; only a
    mail delivery failure is reported (502).
    """
    try:
        email = _json_body().get("email")
        if not email:
            return jsonify({"error": "email required"}), 400

        try:
            verification_service.request_password_reset(email)
        except RateLimitedError:
            current_app.logger.info("Password reset requested again within the cooldown")

        return jsonify({"message": GENERIC_RESET_MESSAGE}), 200

    except AuthFlowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue password reset")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/verify-reset-token")
def verify_reset_token_route():
    """Check a reset link before showing the new-password form. Does not consume it."""
    try:
        data = _json_body()
        email = data.get("email")
        token = data.get("token")

        if not all([email, token]):
            return jsonify({"error": "email and token required"}), 400

        verification_service.check_reset_token(email, token)
        return jsonify({"valid": True}), 200

    except AuthFlowError as e:
        return _verification_error(e)
    except Exception:
        current_app.logger.exception("Failed to check reset token")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/reset-password")
def reset_password_route():
    """
    Consume the reset token and set a new password.

    Request body: {"email": "...", "token": "...", "password": "..."}

    All sessions of the account are revoked.
    """
    try:
        data = _json_body()
        email = data.get("email")
        token = data.get("token")
        password = data.get("password")

        if not all([email, token, password]):
            return jsonify({"error": "email, token and password required"}), 400

        user = verification_service.reset_password(email, token, password)
        current_app.logger.info("Password reset for user %s", user.id)
        return jsonify({"message": "Password has been reset. Please sign in."}), 200

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AuthFlowError as e:
        return _verification_error(e)
    except Exception:
        current_app.logger.exception("Failed to reset password")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SESSION
# =============================================================================

@auth_bp.post("/validate")
@require_auth
def validate_route():
    """
    Validate session token and return user info.

    WHY: Frontend can check if token is still valid and whether the admin
    panel still needs a second factor.
    """
    try:
        user = g.current_user
        return jsonify({
            "user": user.to_dict(),
            "session": g.session_context.session.to_dict(),
            "admin_panel_verified": user.is_admin and admin_verification_service.is_verified(user),
            "message": "Token valid",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to validate session")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Sign out: clear admin panel verification, then revoke the session token.

    Expects Authorization header: Bearer <token>

    Clearing the verification is best-effort; a failure there is logged and
    the session is still revoked.
    """
    try:
        token = get_bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        context = session_service.validate_session(token)
        if context and context.user.is_admin:
            try:
                admin_verification_service.clear_verification(
                    context.user,
                    reason="sign_out",
                    ip_address=get_client_ip(),
                    user_agent=request.headers.get("User-Agent"),
                )
            except Exception:
                db.session.rollback()
                current_app.logger.exception("Failed to clear admin verification on sign-out")

        revoked = session_service.revoke_session(token, reason="User logout")
        if not revoked:
            return jsonify({"message": "Already signed out"}), 200

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ADMIN PANEL VERIFICATION
# =============================================================================

@auth_bp.post("/clear-admin-verification")
def clear_admin_verification_route():
    """
    Drop AdminPanelVerified for the signed-in admin.

    Called on sign-out and when the inactivity monitor expires the admin
    working session. Without a valid session there is nothing to clear.

    Request body (optional): {"reason": "sign_out" | "inactivity"}
    """
    try:
        token = get_bearer_token()
        context = session_service.validate_session(token) if token else None
        if not context:
            return jsonify({"success": True}), 200

        reason = _json_body().get("reason") or "sign_out"
        if reason not in ("sign_out", "inactivity"):
            reason = "sign_out"

        cleared = admin_verification_service.clear_verification(
            context.user,
            reason=reason,
            ip_address=get_client_ip(),
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"success": True, "cleared": cleared}), 200

    except Exception:
        current_app.logger.exception("Failed to clear admin verification")
        return jsonify({"error": "Failed to clear admin verification"}), 500


@auth_bp.post("/admin-login-track")
@require_auth
def admin_login_track_route():
    """
    Record an admin sign-in outcome reported by the frontend.

    Request body: {"success": true|false}
    """
    try:
        user = g.current_user
        if not user.is_admin:
            return jsonify({"error": "Not an admin user"}), 403

        success = bool(_json_body().get("success"))
        ip_address = get_client_ip()
        user_agent = request.headers.get("User-Agent")

        if success:
            login_throttle_service.record_successful_login(user, ip_address=ip_address, user_agent=user_agent)
            return jsonify({"success": True}), 200

        attempts = login_throttle_service.record_failed_attempt(user, ip_address=ip_address, user_agent=user_agent)
        return jsonify({"success": True, "failed_attempts": attempts}), 200

    except Exception:
        current_app.logger.exception("Failed to track admin login")
        return jsonify({"error": "Failed to track login"}), 500


@auth_bp.post("/admin-panel-verify/request")
@require_auth
def request_admin_panel_verification_route():
    """
    Mail an admin panel verification link to the designated admin address.

    Only the designated admin gets a link; everyone else gets the uniform
    admin denial.
    """
    try:
        expires_at = admin_verification_service.request_verification(
            g.current_user,
            ip_address=get_client_ip(),
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({
            "message": "Verification link sent to the admin email address.",
            "expires_at": to_utc_z(expires_at),
        }), 200

    except AuthFlowError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to request admin panel verification")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/admin-panel-verify")
@require_auth
def admin_panel_verify_route():
    """
    Consume the admin panel token while signed in as the designated admin.

    Request body: {"token": "..."}
    """
    try:
        token = _json_body().get("token")
        if not token:
            return jsonify({"error": "token required"}), 400

        user = admin_verification_service.verify(
            g.current_user,
            token,
            ip_address=get_client_ip(),
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({
            "success": True,
            "message": "Admin panel access verified.",
            "verified_at": to_utc_z(user.admin_panel_verified_at),
        }), 200

    except AuthFlowError as e:
        return _verification_error(e)
    except Exception:
        current_app.logger.exception("Failed to verify admin panel access")
        return jsonify({"error": "Internal server error"}), 500
