"""
FILE: src/email/config.py
Email settings (Resend)
"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    RESEND_API_KEY: Optional[str] = None
    # Off in development/tests: messages are logged instead of sent
    SEND_EMAILS: bool = False
    MAIL_FROM: str = "no-reply@clinic.local"
    MAIL_FROM_NAME: str = "Clinic & Pharmacy"
    LOGIN_URL: str = "http://localhost:3000/login"
    SIGNUP_URL: str = "http://localhost:3000/signup"


email_settings = EmailSettings()
