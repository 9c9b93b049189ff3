# auth_api/app/services/email_service.py
import asyncio
import traceback
from typing import Any, Dict, Protocol

import emails
from emails.template import JinjaTemplate
from loguru import logger

from app.core.config import Settings


class Notifier(Protocol):
    async def send_verification_code(self, email: str, name: str | None, code: str) -> bool: ...
    async def send_password_reset(self, email: str, name: str | None, token: str) -> bool: ...
    async def send_welcome(self, email: str, name: str | None) -> bool: ...


VERIFICATION_HTML = """
<html>
<body>
    <p>Hello {{ name }},</p>
    <p>Thanks for registering with {{ project_name }}. Your verification code is:</p>
    <p style="font-size: 24px; letter-spacing: 4px;"><strong>{{ code }}</strong></p>
    <p>This code expires in {{ expire_minutes }} minutes.</p>
    <p>If you did not register, please ignore this email.</p>
</body>
</html>
"""

RESET_HTML = """
<html>
<body>
    <p>Hello {{ name }},</p>
    <p>We received a request to reset your password on {{ project_name }}.</p>
    <p><a href="{{ reset_url }}">{{ reset_url }}</a></p>
    <p>This link expires in {{ expire_minutes }} minutes.</p>
    <p>If you did not request a password reset, please ignore this email.</p>
</body>
</html>
"""

WELCOME_HTML = """
<html>
<body>
    <p>Hello {{ name }},</p>
    <p>Your email has been verified. Welcome to {{ project_name }}!</p>
</body>
</html>
"""


class EmailNotifier:
    """
    Envio de emails transacionais via SMTP (biblioteca `emails`).

    Do ponto de vista do AccountService é fire-and-forget: cada método
    retorna True/False e nunca levanta exceção.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.project_name = settings.EMAIL_FROM_NAME or "User Onboarding"

    def _smtp_options(self) -> Dict[str, Any]:
        smtp_options: Dict[str, Any] = {
            "host": self.settings.EMAIL_HOST,
            "port": self.settings.EMAIL_PORT,
            "tls": self.settings.EMAIL_USE_TLS,
            "ssl": self.settings.EMAIL_USE_SSL,
        }
        if self.settings.EMAIL_USERNAME:
            smtp_options["user"] = self.settings.EMAIL_USERNAME
        if self.settings.EMAIL_PASSWORD:
            smtp_options["password"] = self.settings.EMAIL_PASSWORD
        return smtp_options

    async def send_email_async(
        self,
        email_to: str,
        subject_template: str = "",
        html_template: str = "",
        environment: Dict[str, Any] | None = None,
    ) -> bool:
        """Envia um email de forma assíncrona."""
        if not self.settings.EMAILS_ENABLED:
            logger.info(f"Envio de email desabilitado (EMAILS_ENABLED=false). Ignorando '{subject_template}' para {email_to}.")
            return False

        message = emails.Message(
            subject=JinjaTemplate(subject_template),
            html=JinjaTemplate(html_template),
            mail_from=(self.settings.EMAIL_FROM_NAME, self.settings.EMAIL_FROM),
        )
        smtp_options = self._smtp_options()
        logger.debug(f"Tentando conectar ao SMTP: {smtp_options.get('host')}:{smtp_options.get('port')}")

        try:
            # A biblioteca 'emails' não é nativamente async, rodamos em thread separada
            loop = asyncio.get_running_loop()
            response = await loop.run_in_executor(
                None,
                lambda: message.send(to=email_to, render=environment or {}, smtp=smtp_options),
            )
        except Exception as e:
            logger.error(f"Erro CRÍTICO ao enviar email para {email_to}: {e}")
            logger.error(f"Traceback completo: {traceback.format_exc()}")
            return False

        if response is None:
            logger.warning(f"Falha ao enviar email para {email_to}. A resposta do SMTP foi 'None' ou vazia.")
            return False
        logger.info(f"Email enviado para {email_to}, Assunto: {subject_template}. Resposta SMTP (status_code): {response.status_code}")
        return response.status_code in [250, 252]

    async def send_verification_code(self, email: str, name: str | None, code: str) -> bool:
        return await self.send_email_async(
            email_to=email,
            subject_template="{{ project_name }} - Verify your email address",
            html_template=VERIFICATION_HTML,
            environment={
                "project_name": self.project_name,
                "name": name or "",
                "code": code,
                "expire_minutes": self.settings.VERIFICATION_CODE_EXPIRE_MINUTES,
            },
        )

    async def send_password_reset(self, email: str, name: str | None, token: str) -> bool:
        reset_url = f"{self.settings.RESET_PASSWORD_URL_BASE}/{token}"
        return await self.send_email_async(
            email_to=email,
            subject_template="{{ project_name }} - Password reset",
            html_template=RESET_HTML,
            environment={
                "project_name": self.project_name,
                "name": name or "",
                "reset_url": reset_url,
                "expire_minutes": self.settings.RESET_PASSWORD_TOKEN_EXPIRE_MINUTES,
            },
        )

    async def send_welcome(self, email: str, name: str | None) -> bool:
        return await self.send_email_async(
            email_to=email,
            subject_template="Welcome to {{ project_name }}!",
            html_template=WELCOME_HTML,
            environment={"project_name": self.project_name, "name": name or ""},
        )
