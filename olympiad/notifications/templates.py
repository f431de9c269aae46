from html import escape

TEAM_SIGNATURE = """
        <br/>
        <p>Best Regards,</p>
        <p>The Global Innovator Olympiad Team</p>
"""

CONTACT_LINK = '<a href="tel:+919594402916">+91 959 440 2916</a>'


def registration_email(name: str) -> tuple:
    """(subject, text, html) sent when a coordinator signs up"""
    name = escape(name or "Coordinator")
    subject = "Welcome to Global Innovator Olympiad"
    text = (
        f"Welcome to Global Innovator Olympiad, {name}!\n\n"
        "Your coordinator account has been created and is pending approval. "
        "You will receive another email once it is approved."
    )
    html = f"""
      <div style="font-family: Arial, sans-serif; line-height: 1.6;">
        <h2>Welcome to Global Innovator Olympiad, {name}!</h2>
        <p>Thank you for registering as a Coordinator. Your account has been created and is now pending approval by our administration team.</p>
        <p>Once approved, you will receive a notification to start using your coordinator dashboard.</p>
        <p>If you need assistance, contact us at {CONTACT_LINK}.</p>
        {TEAM_SIGNATURE}
      </div>
    """
    return subject, text, html


def approval_email(name: str) -> tuple:
    """(subject, text, html) sent when an admin approves a coordinator"""
    name = escape(name or "Coordinator")
    subject = "Your coordinator account has been approved"
    text = (
        f"Congratulations, {name}!\n\n"
        "Your coordinator account has been approved. You can now log in to your dashboard."
    )
    html = f"""
      <div style="font-family: Arial, sans-serif; line-height: 1.6;">
        <h2>Congratulations, {name}!</h2>
        <p>Your coordinator account has been approved by our administration team.</p>
        <p>You can now log in to your dashboard and start managing your students.</p>
        <p>If you have questions, reach out to us at {CONTACT_LINK}.</p>
        <p>Welcome aboard!</p>
        {TEAM_SIGNATURE}
      </div>
    """
    return subject, text, html
