import hmac
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone

import jwt
from flask import Blueprint, current_app, request, jsonify

from accounts import AccountError, find_user_by_email, normalize_email, validate_password
from db_config import db_signin, db_otp
from mail import send_reset_password_mail, send_otp_mail
from security import create_token, decode_token, hash_password

logger = logging.getLogger(__name__)

# Create blueprint
forgot_password = Blueprint('forgot_password', __name__)

RESET_TOKEN_MINUTES = 60
OTP_MINUTES = 15
OTP_TOKEN_MINUTES = 5
MAX_OTP_ATTEMPTS = 5


def generate_otp(length=6):
    """Generate a random OTP of specified length"""
    return ''.join(secrets.choice(string.digits) for _ in range(length))


def purge_expired_otps():
    """Drop OTP records past their expiry; run periodically by the scheduler"""
    result = db_otp().delete_many({"expires_at": {"$lt": datetime.now(timezone.utc)}})
    if result.deleted_count:
        logger.info("Purged %d expired OTP records", result.deleted_count)
    return result.deleted_count


def _set_password(user_id, new_password):
    result = db_signin().update_one(
        {"_id": user_id},
        {"$set": {"password": hash_password(new_password)}}
    )
    return result.matched_count > 0


def _as_utc(value):
    # Mongo hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@forgot_password.route('/forgot-password', methods=['POST'])
def request_password_reset():
    """Handle forgot password requests"""
    try:
        data = request.get_json(silent=True)
        if not data or 'email' not in data:
            return jsonify({'error': 'Email is required'}), 400

        user = find_user_by_email(data['email'])
        if not user:
            return jsonify({'error': 'No account found with this email'}), 404

        # Generate reset token
        token = create_token({'user_id': user['_id'], 'type': 'reset'}, minutes=RESET_TOKEN_MINUTES)
        reset_link = f"{current_app.config['FRONTEND_URL']}/reset-password?token={token}"

        if not send_reset_password_mail(user['email'], reset_link, user.get('name', 'User')):
            logger.warning("Reset link for %s could not be mailed", user['_id'])

        return jsonify({
            'message': 'Password reset link has been sent to your email',
            'success': True
        }), 200

    except Exception as e:
        logger.exception("Error requesting password reset")
        return jsonify({'error': str(e)}), 500


@forgot_password.route('/reset-password', methods=['POST'])
def reset_password():
    """Handle password reset"""
    try:
        data = request.get_json(silent=True)
        if not data or 'token' not in data or 'new_password' not in data:
            return jsonify({'error': 'Token and new password are required'}), 400

        # Verify token
        try:
            token_data = decode_token(data['token'])
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Reset link has expired'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid reset link'}), 401

        if token_data.get('type') != 'reset':
            return jsonify({'error': 'Invalid reset link'}), 401

        validate_password(data['new_password'])

        if _set_password(token_data['user_id'], data['new_password']):
            return jsonify({
                'message': 'Password has been reset successfully',
                'success': True
            }), 200
        return jsonify({'error': 'Failed to reset password'}), 404

    except AccountError as e:
        return jsonify({'error': e.message}), e.status_code
    except Exception as e:
        logger.exception("Error resetting password")
        return jsonify({'error': str(e)}), 500


@forgot_password.route('/send-otp', methods=['POST'])
def send_otp():
    """Send OTP to user's email for password reset"""
    try:
        data = request.get_json(silent=True)
        if not data or 'email' not in data:
            return jsonify({'error': 'Email is required'}), 400

        user = find_user_by_email(data['email'])
        if not user:
            return jsonify({'error': 'User not found'}), 404

        otp = generate_otp()
        expiry_time = datetime.now(timezone.utc) + timedelta(minutes=OTP_MINUTES)

        # Remove any existing OTP for this user
        db_otp().delete_many({"user_id": user['_id']})

        db_otp().insert_one({
            "user_id": user['_id'],
            "email": user['email'],
            "otp": otp,
            "expires_at": expiry_time,
            "attempts": 0
        })

        if not send_otp_mail(user['email'], otp, user.get('name', 'User')):
            logger.warning("OTP for %s could not be mailed", user['_id'])

        return jsonify({
            'message': 'OTP has been sent to your email',
            'success': True
        }), 200

    except Exception as e:
        logger.exception("Error sending OTP")
        return jsonify({'error': str(e)}), 500


@forgot_password.route('/verify-otp', methods=['POST'])
def verify_otp():
    """Verify OTP submitted by user"""
    try:
        data = request.get_json(silent=True)
        if not data or 'email' not in data or 'otp' not in data:
            return jsonify({'error': 'Email and OTP are required'}), 400

        otp_record = db_otp().find_one({"email": normalize_email(data['email'])})
        if not otp_record or _as_utc(otp_record['expires_at']) <= datetime.now(timezone.utc):
            return jsonify({'error': 'OTP expired or not found'}), 401

        if not hmac.compare_digest(otp_record['otp'].encode(), str(data['otp']).strip().encode()):
            attempts = otp_record.get('attempts', 0) + 1
            if attempts >= MAX_OTP_ATTEMPTS:
                db_otp().delete_one({"_id": otp_record["_id"]})
                logger.warning("OTP for %s discarded after %d failed attempts", otp_record['user_id'], attempts)
                return jsonify({'error': 'Too many attempts, request a new OTP'}), 401
            db_otp().update_one({"_id": otp_record["_id"]}, {"$inc": {"attempts": 1}})
            return jsonify({'error': 'Invalid OTP'}), 401

        # An OTP is good for one token only
        if db_otp().delete_one({"_id": otp_record["_id"]}).deleted_count == 0:
            return jsonify({'error': 'OTP expired or not found'}), 401

        # Generate a short-lived token for password reset
        token = create_token(
            {'user_id': otp_record['user_id'], 'type': 'otp', 'otp_verified': True},
            minutes=OTP_TOKEN_MINUTES,
        )

        return jsonify({
            'message': 'OTP verified successfully',
            'token': token,
            'success': True
        }), 200

    except Exception as e:
        logger.exception("Error verifying OTP")
        return jsonify({'error': str(e)}), 500


@forgot_password.route('/reset-user-password', methods=['POST'])
def reset_user_password():
    """Reset user password after OTP verification"""
    try:
        data = request.get_json(silent=True)
        if not data or 'token' not in data or 'new_password' not in data:
            return jsonify({'error': 'Token and new password are required'}), 400

        try:
            token_data = decode_token(data['token'])
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Session expired, please verify OTP again'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid token'}), 401

        if token_data.get('type') != 'otp' or not token_data.get('otp_verified', False):
            return jsonify({'error': 'OTP verification required'}), 401

        validate_password(data['new_password'])
        user_id = token_data['user_id']

        if _set_password(user_id, data['new_password']):
            # Clean up OTP records for this user
            db_otp().delete_many({"user_id": user_id})

            return jsonify({
                'message': 'Password has been reset successfully',
                'success': True
            }), 200
        return jsonify({'error': 'Failed to reset password'}), 404

    except AccountError as e:
        return jsonify({'error': e.message}), e.status_code
    except Exception as e:
        logger.exception("Error resetting password after OTP")
        return jsonify({'error': str(e)}), 500
