from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
import logging
import smtplib

from flask import current_app
from markupsafe import escape

logger = logging.getLogger(__name__)


def send_email(receiver_email, subject, email_body, name='User'):
    """Send an HTML email. Returns True when the message was handed to SMTP."""
    config = current_app.config
    sender_email = config.get('EMAIL_ADDRESS')
    sender_password = config.get('EMAIL_PASSWORD')

    msg = MIMEMultipart("alternative")
    msg["From"] = sender_email or "no-reply@teachngrow.local"
    msg["To"] = receiver_email
    msg["Subject"] = subject

    # HTML Email Body
    body = f"""
    <html>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
    <div style="max-width: 600px; margin: 0 auto;">
    <div style="background-color: #0e7490; color: white; padding: 20px; text-align: center;">
        <h1 style="margin: 0;">TeachnGrow</h1>
    </div>
    <div style="padding: 20px; border: 1px solid #e5e7eb; border-top: none;">
    <p>Dear {escape(name)},</p>
    {email_body}
    </div>
    <div style="background-color: #f3f4f6; padding: 10px; text-align: center; font-size: 12px; color: #6b7280;">
        <p>This is an automated message from the TeachnGrow appraisal system. Please do not reply to this email.</p>
    </div>
    </div>
    </body>
    </html>
    """

    msg.attach(MIMEText(body, "html"))  # Attach HTML body

    if config.get('MAIL_SUPPRESS_SEND'):
        logger.info("Mail suppressed: to=%s subject=%s", receiver_email, subject)
        return True

    if not sender_email or not sender_password:
        logger.warning("EMAIL_ADDRESS/EMAIL_PASSWORD not configured, cannot send '%s' to %s", subject, receiver_email)
        return False

    try:
        with smtplib.SMTP_SSL(config.get('SMTP_HOST'), config.get('SMTP_PORT')) as server:
            server.login(sender_email, sender_password)
            server.send_message(msg)
        return True
    except Exception as e:
        logger.error(f"Error sending email: {e}")
        return False


def _button(path, label):
    url = f"{current_app.config.get('FRONTEND_URL')}{path}"
    return f"""
    <div style="margin-top: 30px;">
        <a href="{escape(url)}" style="background-color: #0e7490; color: white; padding: 10px 20px; text-decoration: none; border-radius: 4px;">{escape(label)}</a>
    </div>"""


def send_username_password_mail(receiver_email, username, password, name):
    """Send username and password via email"""
    subject = "TeachnGrow Faculty Appraisal - Account Credentials"
    email_body = f"""
    <p>An account has been created for you. Your credentials are as follows:</p>
    <p>Username: <b>{escape(username)}</b></p>
    <p>Password: <b>{escape(password)}</b></p>
    <p>Use these credentials to login to your account.</p>
    <p style="color: red; font-weight: bold;">Please change your password after the first login.</p>
    {_button('/login', 'Login')}"""
    return send_email(receiver_email, subject, email_body, name)


def send_document_submitted_mail(hod_email, hod_name, faculty_name, document_title):
    """Tell the department head that a document is waiting for review"""
    subject = "New Document Submitted - TeachnGrow"
    email_body = f"""
    <p>A new document has been submitted for review:</p>
    <ul style="background-color: #f9fafb; padding: 15px; border-radius: 4px;">
        <li><strong>Faculty:</strong> {escape(faculty_name)}</li>
        <li><strong>Document Title:</strong> {escape(document_title)}</li>
    </ul>
    <p>Please review this document at your earliest convenience.</p>
    {_button('/dashboard', 'Review Document')}"""
    return send_email(hod_email, subject, email_body, hod_name or 'Department Head')


def send_document_approved_mail(faculty_email, faculty_name, document_title):
    subject = "Document Approved - TeachnGrow"
    email_body = f"""
    <p>We are pleased to inform you that your document <strong>{escape(document_title)}</strong> has been approved.</p>
    <p>The credits have been added to your profile.</p>
    <p>Thank you for your contribution!</p>
    {_button('/dashboard', 'View Dashboard')}"""
    return send_email(faculty_email, subject, email_body, faculty_name)


def send_document_revisable_mail(faculty_email, faculty_name, document_title, comments):
    subject = "Document Needs Revision - TeachnGrow"
    email_body = f"""
    <p>Your document <strong>{escape(document_title)}</strong> requires some revisions before it can be approved.</p>
    <p><strong>Reviewer Comments:</strong></p>
    <div style="background-color: #f9fafb; padding: 15px; border-left: 4px solid #0e7490; margin: 15px 0;">
        {escape(comments)}
    </div>
    <p>Please make the necessary changes and resubmit your document.</p>
    {_button('/dashboard', 'View Document')}"""
    return send_email(faculty_email, subject, email_body, faculty_name)


def send_document_rejected_mail(faculty_email, faculty_name, document_title, reason):
    subject = "Document Rejected - TeachnGrow"
    email_body = f"""
    <p>We regret to inform you that your document <strong>{escape(document_title)}</strong> has been rejected.</p>
    <p><strong>Reason for Rejection:</strong></p>
    <div style="background-color: #f9fafb; padding: 15px; border-left: 4px solid #dc2626; margin: 15px 0;">
        {escape(reason)}
    </div>
    <p>If you have any questions, please contact your department head.</p>
    {_button('/dashboard', 'View Dashboard')}"""
    return send_email(faculty_email, subject, email_body, faculty_name)


def send_credential_request_mail(admin_email, admin_name, requester_name, requester_email, requester_role, requester_department):
    subject = "New Credential Request - TeachnGrow"
    email_body = f"""
    <p>A new credential request has been submitted:</p>
    <div style="background-color: #f9fafb; padding: 15px; border-left: 4px solid #0e7490; margin: 15px 0;">
        <p><strong>Name:</strong> {escape(requester_name)}</p>
        <p><strong>Email:</strong> {escape(requester_email)}</p>
        <p><strong>Requested Role:</strong> {escape(requester_role)}</p>
        <p><strong>Department:</strong> {escape(requester_department)}</p>
    </div>
    <p>Please review this request and create appropriate credentials if approved.</p>
    {_button('/admin/users', 'Manage Users')}"""
    return send_email(admin_email, subject, email_body, admin_name or 'Administrator')


def send_reset_password_mail(recipient_email, reset_link, user_name):
    """Send password reset email"""
    subject = "Password Reset Request - TeachnGrow"
    html_content = f"""
    <p>We received a request to reset your password for the TeachnGrow appraisal system.</p>
    <p>Click the button below to reset your password. This link will expire in 1 hour.</p>
    <p>
        <a href="{escape(reset_link)}"
           style="background-color: #4CAF50; color: white; padding: 10px 20px;
                  text-decoration: none; border-radius: 5px; display: inline-block;">
            Reset Password
        </a>
    </p>
    <p>If you didn't request this password reset, you can safely ignore this email.</p>"""
    return send_email(recipient_email, subject, html_content, user_name)


def send_otp_mail(recipient_email, otp, user_name):
    """Send OTP verification email for password reset"""
    subject = "OTP Verification - TeachnGrow"
    html_content = f"""
    <p>We received a request to reset your password for the TeachnGrow appraisal system.</p>
    <p>Please use the following One-Time Password (OTP) to verify your identity:</p>
    <div style="background-color: #f0f0f0; padding: 15px; text-align: center; margin: 20px 0; border-radius: 5px;">
        <h2 style="margin: 0; color: #0056b3; letter-spacing: 5px;">{escape(otp)}</h2>
    </div>
    <p>This OTP will expire in 15 minutes.</p>
    <p>If you didn't request this password reset, you can safely ignore this email.</p>"""
    return send_email(recipient_email, subject, html_content, user_name)
