from app.services.email.email_service import EmailService

__all__ = ["EmailService"]
