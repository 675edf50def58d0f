import logging
import smtplib
import ssl
from datetime import date, datetime, timedelta
from email.message import EmailMessage
from typing import Iterable, List
from smtplib import SMTPException, SMTPServerDisconnected
from ..config import AppConfig

logger = logging.getLogger(__name__)


def appointment_start(day: date, time: str) -> datetime:
    hour, minute = (int(part) for part in time.split(":"))
    return datetime(day.year, day.month, day.day, hour, minute)


def due_reminders(appointments: Iterable, now: datetime, reminder_hours: int) -> List:
    """
    Agendamentos ainda marcados que começam nas próximas `reminder_hours` horas.

    `now` é o horário local da barbearia (sem fuso), o mesmo dos agendamentos.
    """
    now = now.replace(tzinfo=None)
    window = timedelta(hours=reminder_hours)
    due = []
    for appointment in appointments:
        if appointment.status != "agendado":
            continue
        delta = appointment_start(appointment.date, appointment.time) - now
        if timedelta(0) < delta <= window:
            due.append(appointment)
    return due


class NotificationService:
    """
    Serviço para envio de e-mails aos clientes.
    Em desenvolvimento (SMTP_HOST=dev-log), apenas loga a mensagem.
    """

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def _build(self, to_email: str, subject: str, body: str) -> EmailMessage:
        if not to_email or not to_email.strip():
            logger.error(f"Tentativa de envio de e-mail sem destinatário: subject={subject}")
            raise ValueError("to_email não pode estar vazio")
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._config.smtp_from
        msg["To"] = to_email
        msg.set_content(body)
        return msg

    def send_raffle_winner(self, to_email: str, winner_name: str, raffle_title: str, prize: str) -> None:
        body = f"""Olá, {winner_name}!

Parabéns! Você foi sorteado(a) no "{raffle_title}". 🎉

Prêmio: {prize}

Procure a recepção da barbearia com um documento para retirar seu prêmio.

Equipe Barbearia
"""
        self.send(self._build(to_email, f"Você ganhou o sorteio {raffle_title}!", body))

    def send_appointment_reminder(self, to_email: str, client_name: str, day: date, time: str) -> None:
        body = f"""Olá, {client_name}!

Lembrete: você tem um agendamento em {day.strftime('%d/%m/%Y')} às {time}.

Se não puder comparecer, avise-nos com antecedência.

Equipe Barbearia
"""
        self.send(self._build(to_email, "Lembrete de agendamento", body))

    def send(self, msg: EmailMessage) -> None:
        """
        Entrega a mensagem. Na porta 465 tenta SSL direto e, se a conexão
        cair, repete pela 587 com STARTTLS.
        """
        config = self._config
        if config.smtp_host == "dev-log":
            logger.warning(f"E-mail simulado (SMTP_HOST=dev-log), nada foi enviado: to={msg['To']}")
            logger.info(f"E-mail (FAKE): to={msg['To']}, subject={msg['Subject']}\n{msg.get_content()}")
            return

        ssl_context = ssl.create_default_context()
        port = config.smtp_port
        logger.info(f"Enviando e-mail: host={config.smtp_host}, port={port}, to={msg['To']}")
        try:
            if port == 465:
                try:
                    self._send_ssl(msg, ssl_context)
                except (SMTPServerDisconnected, ConnectionError, SMTPException) as e:
                    logger.warning(f"SSL na porta 465 falhou ({type(e).__name__}: {e}), tentando 587 com STARTTLS")
                    port = 587
                    self._send_starttls(msg, ssl_context, port=port)
            else:
                self._send_starttls(msg, ssl_context, port=port)
        except SMTPException as e:
            logger.error(
                f"Falha no envio de e-mail: to={msg['To']}, host={config.smtp_host}, "
                f"port={port}, user={config.smtp_user}, error={type(e).__name__}: {e}",
                exc_info=True,
            )
            raise
        logger.info(f"E-mail enviado: to={msg['To']}, port={port}")

    def _send_ssl(self, msg: EmailMessage, ssl_context: ssl.SSLContext) -> None:
        with smtplib.SMTP_SSL(self._config.smtp_host, 465, timeout=30, context=ssl_context) as server:
            if self._config.smtp_user:
                server.login(self._config.smtp_user, self._config.smtp_password)
            server.send_message(msg)

    def _send_starttls(self, msg: EmailMessage, ssl_context: ssl.SSLContext, port: int) -> None:
        with smtplib.SMTP(self._config.smtp_host, port, timeout=30) as server:
            if self._config.smtp_user:
                server.starttls(context=ssl_context)
                server.login(self._config.smtp_user, self._config.smtp_password)
            server.send_message(msg)
