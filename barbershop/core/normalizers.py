"""
Funções para normalizar e validar dados de entrada do usuário.
"""
import re
from typing import Optional


def normalize_name(raw: str) -> str:
    """
    Remove espaços extras e capitaliza o nome.

    Exemplo: "  joão   da silva " → "João Da Silva"
    """
    return " ".join(raw.split()).title()


def normalize_phone(raw: str) -> Optional[str]:
    """
    Extrai dígitos de um telefone brasileiro e formata como +55 DD XXXXX-XXXX
    (celular) ou +55 DD XXXX-XXXX (fixo).

    Retorna None se não encontrar nada com tamanho plausível.

    Exemplos:
        "(41) 99938-0969" → "+55 41 99938-0969"
        "4133224455" → "+55 41 3322-4455"
    """
    digits = re.sub(r"\D", "", raw)

    # Remove DDI 55 quando vier junto
    if digits.startswith("55") and len(digits) > 11:
        digits = digits[2:]

    if len(digits) not in (10, 11):
        return None

    ddd = digits[:2]
    num = digits[2:]
    split_at = len(num) - 4
    return f"+55 {ddd} {num[:split_at]}-{num[split_at:]}"


def normalize_email(raw: Optional[str]) -> Optional[str]:
    """
    E-mail em minúsculas, ou None se vazio/inválido.
    """
    if not raw:
        return None
    email = raw.strip().lower()
    if "@" not in email or "." not in email.split("@")[-1]:
        return None
    return email
